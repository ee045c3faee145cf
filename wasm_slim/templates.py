"""
Built-in optimization templates.

A template is a fully populated Profile. Framework templates (yew, leptos,
dioxus) start from `balanced` and reassign a few fields with TemplateBuilder.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

from .errors import TemplateNotFound


########################################################################
# Profile data
########################################################################

@dataclass(frozen=True)
class BindgenSettings:
    debug: bool = False
    remove_producers_section: bool = True
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Profile:
    """Compiler and post-processing settings applied to a project."""

    name: str
    opt_level: str = "s"
    lto: str = "fat"
    strip: bool = True
    codegen_units: int = 1
    panic: str = "abort"
    wasm_opt_flags: Tuple[str, ...] = ()
    bindgen: BindgenSettings = field(default_factory=BindgenSettings)
    dependency_hints: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()
    description: str = ""


class TemplateBuilder:
    """Clone a template and reassign selected fields."""

    def __init__(self, template: Profile):
        self._changes: Dict[str, object] = {}
        self._template = template

    def with_name(self, name: str) -> "TemplateBuilder":
        self._changes["name"] = name
        return self

    def with_description(self, description: str) -> "TemplateBuilder":
        self._changes["description"] = description
        return self

    def with_opt_level(self, opt_level: str) -> "TemplateBuilder":
        self._changes["opt_level"] = str(opt_level)
        return self

    def with_lto(self, lto: str) -> "TemplateBuilder":
        self._changes["lto"] = lto
        return self

    def with_strip(self, strip: bool) -> "TemplateBuilder":
        self._changes["strip"] = strip
        return self

    def with_codegen_units(self, units: int) -> "TemplateBuilder":
        self._changes["codegen_units"] = units
        return self

    def with_panic(self, panic: str) -> "TemplateBuilder":
        self._changes["panic"] = panic
        return self

    def with_wasm_opt_flags(self, flags: List[str]) -> "TemplateBuilder":
        self._changes["wasm_opt_flags"] = tuple(flags)
        return self

    def with_dependency_hints(self, hints: List[str]) -> "TemplateBuilder":
        self._changes["dependency_hints"] = tuple(hints)
        return self

    def with_notes(self, notes: List[str]) -> "TemplateBuilder":
        self._changes["notes"] = tuple(notes)
        return self

    def build(self) -> Profile:
        return replace(self._template, **self._changes)


########################################################################
# Catalog
########################################################################

WASM_OPT_SIZE_FLAGS = (
    "-Oz",
    "--enable-mutable-globals",
    "--enable-bulk-memory",
    "--enable-sign-ext",
    "--enable-nontrapping-float-to-int",
    "--strip-debug",
    "--strip-dwarf",
    "--strip-producers",
)

DEFAULT_TEMPLATE = "balanced"


def _minimal() -> Profile:
    return Profile(
        name="minimal",
        description="Maximum size reduction, may affect performance",
        opt_level="z",
        wasm_opt_flags=WASM_OPT_SIZE_FLAGS,
        dependency_hints=(
            "Set default-features = false on all dependencies",
            "Use getrandom with wasm_js feature",
        ),
        notes=(
            "Prioritizes size over performance",
            "May increase compile time significantly",
        ),
    )


def _balanced() -> Profile:
    return Profile(
        name="balanced",
        description="Balanced size/performance (Warp-validated, recommended)",
        opt_level="s",
        wasm_opt_flags=WASM_OPT_SIZE_FLAGS,
        dependency_hints=(
            "Minimize feature flags where possible",
            "Use getrandom with wasm_js feature",
        ),
        notes=(
            "Production-tested by Warp.dev (62% size reduction)",
            "Good balance between size and performance",
            "Recommended for most projects",
        ),
    )


def _aggressive() -> Profile:
    return Profile(
        name="aggressive",
        description="All optimizations enabled, maximum reduction",
        opt_level="z",
        wasm_opt_flags=WASM_OPT_SIZE_FLAGS + ("--vacuum", "--closed-world", "--gufa-optimizing"),
        bindgen=BindgenSettings(flags=("--omit-default-module-path",)),
        dependency_hints=(
            "Set default-features = false on ALL dependencies",
            "Use getrandom with wasm_js feature",
            "Consider lighter alternatives for heavy deps",
            "Externalize assets (fonts, images)",
        ),
        notes=(
            "Maximum size reduction at all costs",
            "Significantly longer compile times",
            "May affect runtime performance",
            "Use for production builds with strict size budgets",
            "Use nightly Rust for build-std (additional 10-20% reduction)",
        ),
    )


def _yew() -> Profile:
    return (
        TemplateBuilder(_balanced())
        .with_name("yew")
        .with_description("Optimized for Yew framework projects")
        .with_dependency_hints([
            'yew = { version = "*", default-features = false }',
            "Use yew-router with minimal features",
            "Avoid heavy dependencies in components",
            "Consider code-splitting for large apps",
        ])
        .with_notes([
            "Based on balanced template",
            "Optimized for Yew's component model",
            "Minimizes framework overhead",
        ])
        .build()
    )


def _leptos() -> Profile:
    return (
        TemplateBuilder(_balanced())
        .with_name("leptos")
        .with_description("Optimized for Leptos framework projects")
        .with_dependency_hints([
            'leptos = { version = "*", default-features = false }',
            "Enable only needed features (csr, hydrate, ssr)",
            "Use leptos_router with minimal features",
            "Leverage Leptos's fine-grained reactivity",
        ])
        .with_notes([
            "Based on balanced template",
            "Optimized for Leptos's fine-grained reactivity",
            "Supports both CSR and SSR modes",
            "Use nightly + build-std for 10-20% additional reduction",
            "Consider lightweight serialization (miniserde, serde-lite)",
        ])
        .build()
    )


def _dioxus() -> Profile:
    return (
        TemplateBuilder(_balanced())
        .with_name("dioxus")
        .with_description("Optimized for Dioxus framework projects")
        .with_dependency_hints([
            'dioxus = { version = "*", default-features = false }',
            "Enable only target features (web, desktop, mobile)",
            "Use dioxus-router with minimal features",
            "Leverage Dioxus's virtual DOM efficiently",
        ])
        .with_notes([
            "Based on balanced template",
            "Optimized for Dioxus's component model",
            "Supports multiple platforms",
        ])
        .build()
    )


def _custom() -> Profile:
    return Profile(
        name="custom",
        description="User-defined custom configuration",
        opt_level="s",
        wasm_opt_flags=("-Oz",),
        bindgen=BindgenSettings(remove_producers_section=False),
        notes=("Customize this template in .wasm-slim.toml",),
    )


TEMPLATES: Dict[str, Callable[[], Profile]] = {
    "minimal": _minimal,
    "balanced": _balanced,
    "aggressive": _aggressive,
    "yew": _yew,
    "leptos": _leptos,
    "dioxus": _dioxus,
    "custom": _custom,
}


def find_template(name: str) -> Optional[Profile]:
    """Case-insensitive lookup; None for unknown names."""
    factory = TEMPLATES.get(name.strip().lower())
    return factory() if factory else None


def get_template(name: str) -> Profile:
    template = find_template(name)
    if template is None:
        raise TemplateNotFound(name)
    return template


def template_names() -> List[str]:
    return sorted(TEMPLATES)


def all_templates() -> List[Profile]:
    return [TEMPLATES[name]() for name in template_names()]
