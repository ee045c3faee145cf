"""
Byte-exact snapshots of files before they are mutated.

Backups live in `<project>/.wasm-slim/backups/` and are never deleted
automatically.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import backup_dir
from .errors import IoError
from .infra import FileSystem

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"

# orders snapshots taken within the same microsecond
_sequence = itertools.count()


@dataclass(frozen=True)
class Backup:
    original_path: Path
    backup_path: Path
    content: bytes
    timestamp: str


def _timestamp() -> str:
    now = datetime.now()
    return now.strftime("%Y%m%d_%H%M%S") + f".{now.microsecond:06d}"


def original_name(backup_path: Path) -> str:
    """Recover the source file name from `<name>.<date_time>.<microseconds>.<sequence>-<uuid>.backup`."""
    stem = Path(backup_path).name
    if stem.endswith(BACKUP_SUFFIX):
        stem = stem[: -len(BACKUP_SUFFIX)]
    parts = stem.rsplit(".", 3)
    return parts[0] if len(parts) == 4 else stem


class BackupManager:
    def __init__(self, project_root: Path, fs: FileSystem):
        self.project_root = Path(project_root)
        self.fs = fs
        self.backup_dir = backup_dir(self.project_root)

    def snapshot(self, path: Path) -> Backup:
        """
        Copy `path` byte-for-byte into the backup directory.

        Raises:
            IoError: the source cannot be read (a missing file is never
                snapshotted) or the backup cannot be written
        """
        path = Path(path)
        try:
            content = self.fs.read_bytes(path)
        except OSError as e:
            raise IoError(path, e, "back up") from e

        timestamp = _timestamp()
        # file name only, so every backup stays inside backup_dir
        unique = f"{next(_sequence):09d}-{uuid.uuid4().hex[:12]}"
        backup_path = self.backup_dir / f"{path.name}.{timestamp}.{unique}{BACKUP_SUFFIX}"
        try:
            self.fs.mkdir(self.backup_dir)
            self.fs.write_bytes(backup_path, content)
        except OSError as e:
            raise IoError(backup_path, e, "write backup") from e

        logger.info(f"Backed up {path} to {backup_path}")
        return Backup(original_path=path, backup_path=backup_path, content=content, timestamp=timestamp)

    def restore(self, backup: Backup) -> None:
        try:
            self.fs.write_bytes(backup.original_path, backup.content)
        except OSError as e:
            raise IoError(backup.original_path, e, "restore") from e
        logger.info(f"Restored {backup.original_path} from {backup.backup_path}")

    def restore_path(self, backup_path: Path, destination: Optional[Path] = None) -> Path:
        """Restore a backup file found on disk; defaults to its file name in the project root."""
        backup_path = Path(backup_path)
        if destination is None:
            destination = self.project_root / original_name(backup_path)
        try:
            content = self.fs.read_bytes(backup_path)
        except OSError as e:
            raise IoError(backup_path, e, "read backup") from e
        self.restore(Backup(Path(destination), backup_path, content, ""))
        return Path(destination)

    def list_backups(self, name: Optional[str] = None) -> List[Path]:
        """Backups in the backup directory, newest first, optionally for one file name."""
        if not self.fs.is_dir(self.backup_dir):
            return []
        try:
            entries = self.fs.list_dir(self.backup_dir)
        except OSError as e:
            raise IoError(self.backup_dir, e, "list") from e
        backups = [p for p in entries if p.name.endswith(BACKUP_SUFFIX)]
        if name is not None:
            backups = [p for p in backups if original_name(p) == name]

        def sort_key(p: Path):
            stem = p.name[: -len(BACKUP_SUFFIX)].rsplit(".", 3)
            return tuple(stem[1:]) if len(stem) == 4 else ()

        return sorted(backups, key=sort_key, reverse=True)
