"""
Source-control metadata for build records.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .errors import ToolFailed
from .infra import CommandExecutor

logger = logging.getLogger(__name__)


class GitRepository:
    """Reads the current commit and branch; both are None outside a repository."""

    def __init__(self, executor: CommandExecutor, cwd: Optional[Path] = None):
        self.executor = executor
        self.cwd = cwd

    def _rev_parse(self, args: List[str]) -> Optional[str]:
        try:
            result = self.executor.run("git", ["rev-parse", *args, "HEAD"], cwd=self.cwd)
        except FileNotFoundError:
            logger.debug("git not installed, skipping commit metadata")
            return None
        if not result.ok:
            if "not a git repository" in result.stderr.lower():
                return None
            raise ToolFailed("git rev-parse", result.exit_code, result.output)
        return result.stdout.strip() or None

    def commit_hash(self) -> Optional[str]:
        return self._rev_parse(["--short"])

    def branch(self) -> Optional[str]:
        return self._rev_parse(["--abbrev-ref"])
