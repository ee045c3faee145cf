"""
Nightly `build-std` configuration in `.cargo/config.toml`.

Rebuilding the standard library with `panic_immediate_abort` removes the
panic machinery from the binary (typically 10-20% smaller). Only works on a
nightly toolchain, so it is opt-in. Existing keys are never overwritten.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import tomlkit
from tomlkit.exceptions import ParseError as TomlParseError

from .backup import BackupManager
from .errors import IoError, ParseError, ToolFailed, ToolMissing
from .infra import CommandExecutor, FileSystem
from .manifest import get_table

logger = logging.getLogger(__name__)


@dataclass
class BuildStdConfig:
    std_components: List[str] = field(default_factory=lambda: ["std", "panic_abort", "core", "alloc"])
    features: List[str] = field(default_factory=lambda: ["panic_immediate_abort"])
    target: Optional[str] = None
    rustflags: List[str] = field(default_factory=list)

    @classmethod
    def with_ssr(cls, target: str) -> "BuildStdConfig":
        """Server-side rendering builds need std and an explicit target."""
        return cls(target=target, rustflags=["--cfg=has_std"])


def _string_array(values: List[str]):
    array = tomlkit.array()
    array.extend(values)
    return array


class BuildStdOptimizer:
    def __init__(self, project_root: Path, fs: FileSystem, backups: BackupManager):
        self.project_root = Path(project_root)
        self.fs = fs
        self.backups = backups

    @property
    def config_path(self) -> Path:
        return self.project_root / ".cargo" / "config.toml"

    def _load(self):
        path = self.config_path
        try:
            text = self.fs.read_bytes(path).decode("utf-8")
        except FileNotFoundError:
            return tomlkit.document(), False
        except OSError as e:
            raise IoError(path, e, "read") from e
        try:
            return tomlkit.parse(text), True
        except TomlParseError as e:
            raise ParseError(path, str(e)) from e

    def apply(self, config: BuildStdConfig, dry_run: bool = False) -> List[str]:
        """
        Add build-std settings that are not already present.

        Returns:
            Change records; empty when everything was already configured
        """
        path = self.config_path
        doc, existed = self._load()
        changes: List[str] = []

        unstable = get_table(doc, "unstable", path, "unstable", super_table=False)
        if "build-std" not in unstable:
            unstable["build-std"] = _string_array(config.std_components)
            changes.append(f"Set build-std = {json.dumps(config.std_components)} (10-20% reduction)")
        if config.features and "build-std-features" not in unstable:
            unstable["build-std-features"] = _string_array(config.features)
            changes.append(f"Set build-std-features = {json.dumps(config.features)} (smaller panic handler)")

        if config.target or config.rustflags:
            build = get_table(doc, "build", path, "build", super_table=False)
            if config.target and "target" not in build:
                build["target"] = config.target
                changes.append(f'Set target = "{config.target}" (SSR support)')
            if config.rustflags and "rustflags" not in build:
                build["rustflags"] = _string_array(config.rustflags)
                changes.append(f"Set rustflags = {json.dumps(config.rustflags)} (SSR compatibility)")

        if not changes or dry_run:
            return changes

        if existed:
            self.backups.snapshot(path)
        try:
            self.fs.mkdir(path.parent)
            self.fs.write_bytes(path, tomlkit.dumps(doc).encode("utf-8"))
        except OSError as e:
            raise IoError(path, e, "write") from e
        logger.info(f"Applied {len(changes)} build-std change(s) to {path}")
        return changes

    def is_configured(self) -> bool:
        doc, existed = self._load()
        unstable = doc.get("unstable")
        return existed and isinstance(unstable, dict) and "build-std" in unstable


class ToolchainDetector:
    def __init__(self, executor: CommandExecutor, rustc: str = "rustc"):
        self.executor = executor
        self.rustc = rustc

    def is_nightly(self) -> bool:
        """True when `rustc --version` reports a nightly toolchain."""
        try:
            result = self.executor.run(self.rustc, ["--version"])
        except FileNotFoundError as e:
            raise ToolMissing("rustc", "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh") from e
        if not result.ok:
            raise ToolFailed("rustc --version", result.exit_code, result.output)
        return "nightly" in result.stdout
