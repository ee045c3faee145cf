"""
Configuration module for wasm-slim.

Holds fixed locations and limits, and loads/saves the per-project
`.wasm-slim.toml` file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tomlkit
from tomlkit.exceptions import ParseError as TomlParseError

from .budget import SizeBudget
from .errors import (
    InvalidBudgetConfiguration,
    InvalidConfiguration,
    IoError,
    ParseError,
    StructureError,
)
from .infra import FileSystem
from .profile import ProfileOverrides
from .templates import DEFAULT_TEMPLATE
from .validation import ValidatorRegistry, default_registry

logger = logging.getLogger(__name__)


########################################################################
# Locations and limits
########################################################################

CONFIG_FILE_NAME = ".wasm-slim.toml"
STATE_DIR_NAME = ".wasm-slim"
BACKUP_DIR_NAME = "backups"
HISTORY_FILE_NAME = "history.json"

MAX_HISTORY_RECORDS = 100
REGRESSION_THRESHOLD_PERCENT = 5.0

# Environment variables that override tool lookup on PATH
TOOL_ENV_VARS = {
    "cargo": "WASM_SLIM_CARGO",
    "wasm-bindgen": "WASM_SLIM_WASM_BINDGEN",
    "wasm-opt": "WASM_SLIM_WASM_OPT",
    "wasm-snip": "WASM_SLIM_WASM_SNIP",
}

# Inherited variables that would change how cargo compiles the artifact
BUILD_ENV_REMOVE = (
    "RUSTFLAGS",
    "CARGO_ENCODED_RUSTFLAGS",
    "CARGO_INCREMENTAL",
    "LLVM_PROFILE_FILE",
    "CARGO_LLVM_COV",
    "CARGO_LLVM_COV_TARGET_DIR",
)


def state_dir(project_root: Path) -> Path:
    return Path(project_root) / STATE_DIR_NAME


def backup_dir(project_root: Path) -> Path:
    return state_dir(project_root) / BACKUP_DIR_NAME


def history_path(project_root: Path) -> Path:
    return state_dir(project_root) / HISTORY_FILE_NAME


def config_path(project_root: Path) -> Path:
    return Path(project_root) / CONFIG_FILE_NAME


########################################################################
# Project configuration file
########################################################################

@dataclass
class ConfigFile:
    template: str = DEFAULT_TEMPLATE
    overrides: ProfileOverrides = field(default_factory=ProfileOverrides)
    size_budget: Optional[SizeBudget] = None


def _require_table(value, path: Path, name: str) -> dict:
    if not isinstance(value, dict):
        raise StructureError(path, f"'{name}' must be a table")
    return value


def _opt_level(value, path: Path) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise StructureError(path, "'profile.opt-level' must be a string or integer")
    return str(value)


def _lto(value, path: Path) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if not isinstance(value, str):
        raise StructureError(path, "'profile.lto' must be a string or boolean")
    return value


def _int(value, path: Path, name: str) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise StructureError(path, f"'{name}' must be an integer")
    return value


def _kb(value, path: Path, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructureError(path, f"'size_budget.{name}' must be a number")
    if value < 0:
        raise StructureError(path, f"'size_budget.{name}' must not be negative")
    return value


def _parse_config(data: dict, path: Path) -> ConfigFile:
    config = ConfigFile()

    template = data.get("template", DEFAULT_TEMPLATE)
    if not isinstance(template, str):
        raise StructureError(path, "'template' must be a string")
    config.template = template

    if "profile" in data:
        profile = _require_table(data["profile"], path, "profile")
        o = config.overrides
        if "opt-level" in profile:
            o.opt_level = _opt_level(profile["opt-level"], path)
        if "lto" in profile:
            o.lto = _lto(profile["lto"], path)
        if "strip" in profile:
            if not isinstance(profile["strip"], bool):
                raise StructureError(path, "'profile.strip' must be a boolean")
            o.strip = profile["strip"]
        if "codegen-units" in profile:
            o.codegen_units = _int(profile["codegen-units"], path, "profile.codegen-units")
        if "panic" in profile:
            if not isinstance(profile["panic"], str):
                raise StructureError(path, "'profile.panic' must be a string")
            o.panic = profile["panic"]

    if "wasm_opt" in data:
        wasm_opt = _require_table(data["wasm_opt"], path, "wasm_opt")
        if "flags" in wasm_opt:
            flags = wasm_opt["flags"]
            if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
                raise StructureError(path, "'wasm_opt.flags' must be a list of strings")
            config.overrides.wasm_opt_flags = list(flags)

    if "size_budget" in data:
        budget = _require_table(data["size_budget"], path, "size_budget")
        values = {}
        for key, attr in (("max-size-kb", "max_kb"), ("warn-threshold-kb", "warn_kb"), ("target-size-kb", "target_kb")):
            if key in budget:
                values[attr] = _kb(budget[key], path, key)
        config.size_budget = SizeBudget(**values)

    return config


class ConfigLoader:
    """Load and save `.wasm-slim.toml` through an injected filesystem."""

    def __init__(self, fs: FileSystem, registry: Optional[ValidatorRegistry] = None):
        self.fs = fs
        self.registry = registry if registry is not None else default_registry()

    def load(self, project_root: Path) -> ConfigFile:
        """
        Load the project configuration.

        A missing file yields defaults. Validation errors raise
        InvalidConfiguration (InvalidBudgetConfiguration for budget ordering);
        warnings are logged.
        """
        path = config_path(project_root)
        try:
            text = self.fs.read_text(path)
        except FileNotFoundError:
            logger.debug(f"No {CONFIG_FILE_NAME} in {project_root}, using defaults")
            return ConfigFile()
        except OSError as e:
            raise IoError(path, e, "read") from e
        except UnicodeDecodeError as e:
            raise ParseError(path, str(e)) from e

        try:
            data = tomlkit.parse(text).unwrap()
        except TomlParseError as e:
            raise ParseError(path, str(e)) from e

        config = _parse_config(data, path)
        self.validate(config, path)
        return config

    def validate(self, config: ConfigFile, path: Optional[Path] = None) -> None:
        result = self.registry.validate(config)
        for issue in result.warnings():
            logger.warning(str(issue))
        errors = result.errors()
        if not errors:
            return
        message = "; ".join(issue.message for issue in errors)
        if all(issue.field == "size_budget" for issue in errors):
            raise InvalidBudgetConfiguration(message, path)
        raise InvalidConfiguration(message, path)

    def save(self, config: ConfigFile, project_root: Path) -> Path:
        """Write the configuration, keeping comments of an existing file."""
        path = config_path(project_root)
        doc = tomlkit.document()
        if self.fs.exists(path):
            try:
                doc = tomlkit.parse(self.fs.read_text(path))
            except TomlParseError as e:
                raise ParseError(path, str(e)) from e
            except OSError as e:
                raise IoError(path, e, "read") from e

        doc["template"] = config.template

        o = config.overrides
        profile_values = [
            ("opt-level", o.opt_level),
            ("lto", o.lto),
            ("strip", o.strip),
            ("codegen-units", o.codegen_units),
            ("panic", o.panic),
        ]
        if any(value is not None for _, value in profile_values):
            profile = doc.get("profile")
            if not isinstance(profile, dict):
                profile = tomlkit.table()
                doc["profile"] = profile
            for key, value in profile_values:
                if value is not None:
                    profile[key] = value

        if o.wasm_opt_flags is not None:
            wasm_opt = doc.get("wasm_opt")
            if not isinstance(wasm_opt, dict):
                wasm_opt = tomlkit.table()
                doc["wasm_opt"] = wasm_opt
            flags = tomlkit.array()
            flags.extend(o.wasm_opt_flags)
            flags.multiline(True)
            wasm_opt["flags"] = flags

        if config.size_budget is not None and not config.size_budget.is_empty():
            budget = doc.get("size_budget")
            if not isinstance(budget, dict):
                budget = tomlkit.table()
                doc["size_budget"] = budget
            b = config.size_budget
            for key, value in (("max-size-kb", b.max_kb), ("warn-threshold-kb", b.warn_kb), ("target-size-kb", b.target_kb)):
                if value is not None:
                    budget[key] = value

        try:
            self.fs.write_text(path, tomlkit.dumps(doc))
        except OSError as e:
            raise IoError(path, e, "write") from e
        logger.info(f"Wrote {path}")
        return path
