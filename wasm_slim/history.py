"""
Build size history and regression detection.

History is stored newest-first in `.wasm-slim/history.json` as
`{"records": [...]}` and capped at MAX_HISTORY_RECORDS entries.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .config import MAX_HISTORY_RECORDS, REGRESSION_THRESHOLD_PERCENT, history_path, state_dir
from .errors import IoError, ParseError, StructureError, ToolFailed
from .infra import FileSystem

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class BuildRecord:
    timestamp: str
    size_bytes: int
    commit_hash: Optional[str] = None
    branch: Optional[str] = None

    @classmethod
    def capture(cls, size_bytes: int, git=None) -> "BuildRecord":
        """Record for a build finished now, stamped with git metadata when available."""
        commit_hash = branch = None
        if git is not None:
            try:
                commit_hash = git.commit_hash()
                branch = git.branch()
            except ToolFailed as e:
                logger.warning(f"Could not read git metadata: {e}")
        return cls(utc_timestamp(), size_bytes, commit_hash, branch)

    def to_dict(self) -> dict:
        data = {"timestamp": self.timestamp, "size_bytes": self.size_bytes}
        if self.commit_hash is not None:
            data["commit_hash"] = self.commit_hash
        if self.branch is not None:
            data["branch"] = self.branch
        return data

    @classmethod
    def from_dict(cls, data, path: Path) -> "BuildRecord":
        if not isinstance(data, dict):
            raise StructureError(path, "history record must be an object")
        timestamp = data.get("timestamp")
        size = data.get("size_bytes")
        if not isinstance(timestamp, str):
            raise StructureError(path, "history record is missing 'timestamp'")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise StructureError(path, "history record 'size_bytes' must be a non-negative integer")
        for key in ("commit_hash", "branch"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise StructureError(path, f"history record '{key}' must be a string")
        return cls(timestamp, size, data.get("commit_hash"), data.get("branch"))


@dataclass
class RegressionResult:
    is_regression: bool
    previous_size: int
    current_size: int
    size_diff: int
    percent_change: float


@dataclass
class BuildHistory:
    records: List[BuildRecord] = field(default_factory=list)

    @classmethod
    def load(cls, project_root: Path, fs: FileSystem) -> "BuildHistory":
        """Load history; a missing file is an empty history."""
        path = history_path(project_root)
        try:
            text = fs.read_text(path)
        except FileNotFoundError:
            return cls()
        except OSError as e:
            raise IoError(path, e, "read") from e
        except UnicodeDecodeError as e:
            raise ParseError(path, str(e)) from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(path, str(e)) from e

        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise StructureError(path, "expected an object with a 'records' list")
        return cls([BuildRecord.from_dict(r, path) for r in data["records"]])

    def save(self, project_root: Path, fs: FileSystem) -> Path:
        path = history_path(project_root)
        text = json.dumps({"records": [r.to_dict() for r in self.records]}, indent=2)
        try:
            fs.mkdir(state_dir(project_root))
            fs.write_text(path, text + "\n")
        except OSError as e:
            raise IoError(path, e, "write") from e
        logger.debug(f"Saved {len(self.records)} build record(s) to {path}")
        return path

    def add_record(self, record: BuildRecord) -> None:
        self.records.insert(0, record)
        del self.records[MAX_HISTORY_RECORDS:]

    def latest(self) -> Optional[BuildRecord]:
        return self.records[0] if self.records else None

    def check_regression(self, current_size: int) -> Optional[RegressionResult]:
        """Compare against the latest record; None when there is no history."""
        previous = self.latest()
        if previous is None:
            return None
        diff = current_size - previous.size_bytes
        percent = diff / previous.size_bytes * 100.0 if previous.size_bytes else 0.0
        return RegressionResult(
            is_regression=percent > REGRESSION_THRESHOLD_PERCENT,
            previous_size=previous.size_bytes,
            current_size=current_size,
            size_diff=diff,
            percent_change=percent,
        )
