"""
Automatic application of dependency suggestions to `Cargo.toml`.

A DependencyReport (usually produced by an analyzer and saved as JSON) lists
issues per package. For each package the fix with the highest expected
savings is chosen; only feature minimization and wasm feature fixes can be
applied automatically, the rest need a human.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import tomlkit
from tomlkit.items import InlineTable, Table

from .backup import BackupManager
from .errors import IoError, ParseError, StructureError
from .infra import FileSystem
from .manifest import MANIFEST_NAME, load_document
from .utils import console

logger = logging.getLogger(__name__)

# Features known to be enough when default features are turned off
MINIMAL_FEATURES = {
    "lopdf": ["pom_parser"],
    "image": ["png"],
}


class FixKind(Enum):
    REPLACEMENT = "replacement"
    FEATURE_MINIMIZATION = "feature_minimization"
    SPLIT = "split"
    OPTIONAL = "optional"
    WASM_FIX = "wasm_fix"

    @classmethod
    def parse(cls, text: str) -> "FixKind":
        """Accept `wasm_fix`, `wasm-fix`, `WasmFix` or `WASM_FIX`."""
        snake = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", text.strip())
        return cls(snake.replace("-", "_").lower())


@dataclass
class DependencyIssue:
    package: str
    fix_kind: FixKind
    version: str = ""
    severity: str = "medium"
    issue: str = ""
    suggestion: str = ""
    savings_percent: int = 0


@dataclass
class DependencyReport:
    issues: List[DependencyIssue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, path: Path = Path("<report>")) -> "DependencyReport":
        if not isinstance(data, dict) or not isinstance(data.get("issues", []), list):
            raise StructureError(path, "expected an object with an 'issues' list")
        issues = []
        for raw in data.get("issues", []):
            try:
                issues.append(DependencyIssue(
                    package=raw["package"],
                    fix_kind=FixKind.parse(raw["fix_kind"]),
                    version=raw.get("version", ""),
                    severity=raw.get("severity", "medium"),
                    issue=raw.get("issue", ""),
                    suggestion=raw.get("suggestion", ""),
                    savings_percent=int(raw.get("savings_percent") or 0),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise StructureError(path, f"invalid issue entry {raw!r}: {e}") from e
        return cls(issues)

    @classmethod
    def load(cls, path: Path, fs: FileSystem) -> "DependencyReport":
        try:
            text = fs.read_text(path)
        except OSError as e:
            raise IoError(path, e, "read") from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(path, str(e)) from e
        return cls.from_dict(data, path)


def wasm_features(package: str, version: Optional[str]) -> Optional[List[str]]:
    """Features a crate needs to build for wasm32, when known."""
    if package == "getrandom":
        # getrandom 0.2 calls it "js"; 0.3+ renamed it
        if version and (version.startswith("0.2") or version.startswith("^0.2")):
            return ["js"]
        return ["wasm_js"]
    return None


def _plain(item):
    return item.unwrap() if hasattr(item, "unwrap") else item


def _to_table(dep) -> Table:
    """Convert a version string or inline table into a regular table."""
    table = tomlkit.table()
    if isinstance(dep, str):
        table["version"] = str(dep)
    else:
        for key, value in dep.items():
            table[key] = _plain(value)
    return table


def _add_features(table, features: List[str]) -> bool:
    existing = table.get("features")
    if existing is None:
        array = tomlkit.array()
        array.extend(features)
        table["features"] = array
        return True
    if not isinstance(existing, list):
        return False
    added = False
    for feature in features:
        if feature not in [_plain(v) for v in existing]:
            existing.append(feature)
            added = True
    return added


class SuggestionApplicator:
    def __init__(self, project_root: Path, fs: FileSystem, backups: BackupManager):
        self.project_root = Path(project_root)
        self.fs = fs
        self.backups = backups

    def apply(self, report: DependencyReport, dry_run: bool = False) -> int:
        """
        Apply automatic fixes from a report to the project's Cargo.toml.

        Returns:
            Number of packages fixed (or that would be fixed in a dry run)

        Raises:
            IoError: Cargo.toml is missing or cannot be written
        """
        manifest_path = self.project_root / MANIFEST_NAME
        doc = load_document(manifest_path, self.fs)

        by_package: Dict[str, List[DependencyIssue]] = {}
        for issue in report.issues:
            by_package.setdefault(issue.package, []).append(issue)

        fixes = 0
        for package, issues in by_package.items():
            best = max(issues, key=lambda i: i.savings_percent)
            if not self._apply_fix(doc, package, best.fix_kind):
                logger.debug(f"No automatic fix for {package} ({best.fix_kind.value})")
                continue
            fixes += 1
            verb = "Would fix" if dry_run else "Fixed"
            console.print(f"   [green]✓[/] {verb} [bold]{package}[/] ({best.savings_percent}% savings expected)")

        if fixes and not dry_run:
            backup = self.backups.snapshot(manifest_path)
            console.print(f"   [dim]Backup created: {backup.backup_path}[/]")
            try:
                self.fs.write_bytes(manifest_path, tomlkit.dumps(doc).encode("utf-8"))
            except OSError as e:
                raise IoError(manifest_path, e, "write") from e
            logger.info(f"Applied {fixes} dependency fix(es) to {manifest_path}")

        return fixes

    def _apply_fix(self, doc, package: str, kind: FixKind) -> bool:
        dependencies = doc.get("dependencies")
        if not isinstance(dependencies, dict) or package not in dependencies:
            return False
        if kind is FixKind.FEATURE_MINIMIZATION:
            return self._minimize_features(dependencies, package)
        if kind is FixKind.WASM_FIX:
            return self._add_wasm_features(dependencies, package)
        # REPLACEMENT, SPLIT and OPTIONAL need manual changes
        return False

    def _minimize_features(self, dependencies, package: str) -> bool:
        dep = dependencies[package]
        features = MINIMAL_FEATURES.get(package)

        if isinstance(dep, str):
            table = _to_table(dep)
            table["default-features"] = False
            if features:
                _add_features(table, features)
            dependencies[package] = table
            return True

        if not isinstance(dep, dict) or "default-features" in dep:
            return False

        inline = isinstance(dep, InlineTable)
        table = _to_table(dep) if inline else dep
        table["default-features"] = False
        if features and "features" not in table:
            _add_features(table, features)
        if inline:
            dependencies[package] = table
        return True

    def _add_wasm_features(self, dependencies, package: str) -> bool:
        dep = dependencies[package]
        if isinstance(dep, str):
            version = str(dep)
        elif isinstance(dep, dict):
            version = _plain(dep.get("version"))
        else:
            return False

        features = wasm_features(package, version if isinstance(version, str) else None)
        if not features:
            return False

        if isinstance(dep, str) or isinstance(dep, InlineTable):
            table = _to_table(dep)
            if not _add_features(table, features):
                return False
            dependencies[package] = table
            return True
        return _add_features(dep, features)
