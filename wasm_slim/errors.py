"""
Error taxonomy for wasm-slim.

Every failure the library raises derives from WasmSlimError and renders as a
one-line diagnostic carrying its context (path, stage, tool).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class WasmSlimError(Exception):
    """Base class for all wasm-slim errors."""


class IoError(WasmSlimError):
    """Filesystem read/write/permission failure."""

    def __init__(self, path: Path, cause: BaseException, action: str = "access"):
        self.path = Path(path)
        self.cause = cause
        self.action = action
        super().__init__(f"Failed to {action} {self.path}: {cause}")

    @property
    def not_found(self) -> bool:
        return isinstance(self.cause, FileNotFoundError)


class ParseError(WasmSlimError):
    """Malformed structured text (TOML or JSON)."""

    def __init__(self, path: Path, detail: str):
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"Failed to parse {self.path}: {detail}")


class StructureError(WasmSlimError):
    """Well-formed text with an unexpected shape."""

    def __init__(self, path: Path, detail: str):
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"Invalid structure in {self.path}: {detail}")


class TemplateNotFound(WasmSlimError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Template '{name}' not found")


class ToolMissing(WasmSlimError):
    """A required external binary is not installed."""

    def __init__(self, tool: str, install_hint: str = ""):
        self.tool = tool
        self.install_hint = install_hint
        message = f"Required tool missing: {tool}"
        if install_hint:
            message += f" (install: {install_hint})"
        super().__init__(message)


class ToolFailed(WasmSlimError):
    """An external stage exited with a non-zero status."""

    def __init__(self, stage: str, exit_code: int, output: str = ""):
        self.stage = stage
        self.exit_code = exit_code
        self.output = output
        last_line = output.strip().splitlines()[-1] if output.strip() else ""
        message = f"{stage} failed with exit code {exit_code}"
        if last_line:
            message += f": {last_line}"
        super().__init__(message)


class BudgetExceeded(WasmSlimError):
    def __init__(self, result):
        self.result = result
        super().__init__(f"Size budget exceeded: {result.message}")


class InvalidConfiguration(WasmSlimError):
    """Project configuration failed validation."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        prefix = f"{self.path}: " if self.path else ""
        super().__init__(f"{prefix}{message}")


class InvalidBudgetConfiguration(InvalidConfiguration):
    """Size budget thresholds are not ordered target <= warn <= max."""


class PipelineError(WasmSlimError):
    """A pipeline run terminated in the FAILED state."""

    def __init__(self, state, cause: WasmSlimError, result=None):
        self.state = state
        self.cause = cause
        self.result = result
        state_name = getattr(state, "value", state)
        super().__init__(f"Pipeline failed after {state_name}: {cause}")
