"""
Format-preserving edits of `Cargo.toml`.

ManifestEditor applies a Profile to `[profile.release]` and the wasm-opt
flag list to `[package.metadata.wasm-pack.profile.release]`. Values that
already match are left alone, so running it twice changes nothing the second
time. Comments, key order and untouched formatting survive via tomlkit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import tomlkit
from tomlkit.exceptions import ParseError as TomlParseError

from .backup import BackupManager
from .errors import IoError, ParseError, StructureError
from .infra import FileSystem
from .templates import Profile

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"
WASM_PACK_RELEASE_PATH = ("package", "metadata", "wasm-pack", "profile", "release")


def _plain(item):
    """Unwrap a tomlkit item into a plain Python value."""
    return item.unwrap() if hasattr(item, "unwrap") else item


def _normalize(value) -> str:
    value = _plain(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_document(path: Path, fs: FileSystem) -> tomlkit.TOMLDocument:
    """Read and parse a TOML file, wrapping failures in wasm-slim errors."""
    try:
        text = fs.read_bytes(path).decode("utf-8")
    except OSError as e:
        raise IoError(path, e, "read") from e
    except UnicodeDecodeError as e:
        raise ParseError(path, str(e)) from e
    try:
        return tomlkit.parse(text)
    except TomlParseError as e:
        raise ParseError(path, str(e)) from e


def get_table(container, key: str, path: Path, dotted: str, create: bool = True, super_table: bool = True):
    """
    Return `container[key]` as a table, creating it when missing.

    Raises StructureError when the key exists but holds something else.
    Returns None when missing and create is False.
    """
    if key not in container:
        if not create:
            return None
        table = tomlkit.table(super_table)
        container[key] = table
        return container[key]
    table = container[key]
    if not isinstance(table, dict):
        raise StructureError(path, f"{dotted} is not a table")
    return table


def find_manifests(project_root: Path, fs: FileSystem) -> List[Path]:
    """Cargo manifests to optimize (the root manifest only)."""
    root_manifest = Path(project_root) / MANIFEST_NAME
    return [root_manifest] if fs.exists(root_manifest) else []


def is_wasm_crate(path: Path, fs: FileSystem) -> bool:
    """True when the manifest depends on wasm-bindgen or carries wasm-pack metadata."""
    doc = load_document(path, fs)
    dependencies = doc.get("dependencies")
    if isinstance(dependencies, dict) and "wasm-bindgen" in dependencies:
        return True
    package = doc.get("package")
    metadata = package.get("metadata") if isinstance(package, dict) else None
    return isinstance(metadata, dict) and "wasm-pack" in metadata


class ManifestEditor:
    def __init__(self, fs: FileSystem, backups: BackupManager):
        self.fs = fs
        self.backups = backups

    def mutate(
        self,
        manifest_path: Path,
        profile: Profile,
        wasm_opt_flags: Optional[Sequence[str]] = None,
        dry_run: bool = False,
    ) -> List[str]:
        """
        Apply `profile` (and optionally wasm-opt flags) to a Cargo manifest.

        Args:
            manifest_path: Path to Cargo.toml
            profile: Resolved profile to apply
            wasm_opt_flags: Flags for wasm-pack's wasm-opt step; None skips it
            dry_run: Compute changes without backing up or writing

        Returns:
            Human-readable change records; empty when nothing differs
        """
        manifest_path = Path(manifest_path)
        doc = load_document(manifest_path, self.fs)

        changes: List[str] = []
        self._apply_profile(doc, manifest_path, profile, changes)
        if wasm_opt_flags is not None:
            self._apply_wasm_opt(doc, manifest_path, list(wasm_opt_flags), changes)

        if not changes:
            logger.info(f"{manifest_path} already optimized")
            return changes
        if dry_run:
            logger.info(f"Dry run: {len(changes)} change(s) planned for {manifest_path}")
            return changes

        self.backups.snapshot(manifest_path)
        try:
            self.fs.write_bytes(manifest_path, tomlkit.dumps(doc).encode("utf-8"))
        except OSError as e:
            raise IoError(manifest_path, e, "write") from e
        logger.info(f"Applied {len(changes)} change(s) to {manifest_path}")
        return changes

    ########################################################################
    # [profile.release]
    ########################################################################

    def _apply_profile(self, doc, path: Path, profile: Profile, changes: List[str]) -> None:
        profiles = get_table(doc, "profile", path, "profile")
        release = get_table(profiles, "release", path, "profile.release", super_table=False)

        if "lto" not in release or _normalize(release["lto"]) != profile.lto:
            release["lto"] = _lto_value(profile.lto)
            changes.append(f'Set lto = "{profile.lto}" (15-30% reduction)')

        if "codegen-units" not in release or _normalize(release["codegen-units"]) != str(profile.codegen_units):
            release["codegen-units"] = int(profile.codegen_units)
            changes.append(f"Set codegen-units = {profile.codegen_units} (better optimization)")

        if "opt-level" not in release or _normalize(release["opt-level"]) != profile.opt_level:
            release["opt-level"] = int(profile.opt_level) if profile.opt_level.isdigit() else profile.opt_level
            changes.append(f'Set opt-level = "{profile.opt_level}" (size-optimized)')

        if "strip" not in release or _plain(release["strip"]) is not profile.strip:
            release["strip"] = profile.strip
            if profile.strip:
                changes.append("Set strip = true (remove debug symbols)")
            else:
                changes.append("Set strip = false (keep debug symbols)")

        if "panic" not in release or _normalize(release["panic"]) != profile.panic:
            release["panic"] = profile.panic
            changes.append(f'Set panic = "{profile.panic}" (smaller panic handler)')

    ########################################################################
    # [package.metadata.wasm-pack.profile.release]
    ########################################################################

    def _apply_wasm_opt(self, doc, path: Path, flags: List[str], changes: List[str]) -> None:
        table = doc
        dotted = []
        for i, key in enumerate(WASM_PACK_RELEASE_PATH):
            dotted.append(key)
            leaf = i == len(WASM_PACK_RELEASE_PATH) - 1
            table = get_table(table, key, path, ".".join(dotted), super_table=not leaf)

        existing = table.get("wasm-opt")
        if isinstance(existing, dict):
            raise StructureError(path, f"{'.'.join(dotted)}.wasm-opt is a table, expected an array")
        if isinstance(existing, list) and [_plain(v) for v in existing] == flags:
            return

        array = tomlkit.array()
        array.extend(flags)
        table["wasm-opt"] = array
        changes.append(f"Set wasm-opt flags ({len(flags)} optimizations)")


def _lto_value(lto: str):
    if lto in ("true", "false"):
        return lto == "true"
    return lto
