"""
Profile resolution: template defaults merged with user overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import List, Optional

from .templates import DEFAULT_TEMPLATE, Profile, TemplateBuilder, get_template

logger = logging.getLogger(__name__)


@dataclass
class ProfileOverrides:
    """User-supplied profile fields; None falls through to the template."""

    opt_level: Optional[str] = None
    lto: Optional[str] = None
    strip: Optional[bool] = None
    codegen_units: Optional[int] = None
    panic: Optional[str] = None
    wasm_opt_flags: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def resolve(template_name: str = DEFAULT_TEMPLATE, overrides: Optional[ProfileOverrides] = None) -> Profile:
    """
    Resolve the profile for a template, applying any overrides.

    Args:
        template_name: Template to start from (case-insensitive)
        overrides: Fields that replace the template's values when not None

    Returns:
        The resolved, immutable Profile

    Raises:
        TemplateNotFound: Unknown template name
    """
    profile = get_template(template_name)
    if overrides is None:
        return profile

    builder = TemplateBuilder(profile)
    overridden = []
    for f in fields(overrides):
        value = getattr(overrides, f.name)
        if value is not None:
            getattr(builder, f"with_{f.name}")(value)
            overridden.append(f.name)

    if overridden:
        logger.debug(f"Overriding {overridden} on template {profile.name}")
    return builder.build()


def from_profile(profile: Profile) -> ProfileOverrides:
    """Overrides that set every field explicitly, used to seed a config file."""
    return ProfileOverrides(
        opt_level=profile.opt_level,
        lto=profile.lto,
        strip=profile.strip,
        codegen_units=profile.codegen_units,
        panic=profile.panic,
        wasm_opt_flags=list(profile.wasm_opt_flags),
    )


def resolve_config(config) -> Profile:
    """Resolve the profile described by a loaded ConfigFile."""
    return resolve(config.template, config.overrides)
