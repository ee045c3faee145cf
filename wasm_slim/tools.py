"""
External tool discovery and install guidance.

cargo and wasm-bindgen are required; wasm-opt (binaryen) and wasm-snip are
optional and their stages are skipped when missing. A WASM_SLIM_<TOOL>
environment variable points at a specific binary and wins over PATH.
"""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .config import TOOL_ENV_VARS
from .errors import ToolMissing
from .infra import CommandExecutor

OS_SYSTEM = platform.system()

RUSTUP_INSTALL = "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh"


def _binaryen_hint() -> str:
    if OS_SYSTEM == "Darwin":
        return "brew install binaryen"
    return "sudo apt install binaryen"


@dataclass(frozen=True)
class Tool:
    name: str
    binary: str
    required: bool
    install_hint: str


TOOLS: Dict[str, Tool] = {
    "cargo": Tool("Cargo", "cargo", True, RUSTUP_INSTALL),
    "wasm-bindgen": Tool("wasm-bindgen-cli", "wasm-bindgen", True, "cargo install wasm-bindgen-cli"),
    "wasm-opt": Tool("wasm-opt (Binaryen)", "wasm-opt", False, _binaryen_hint()),
    "wasm-snip": Tool("wasm-snip", "wasm-snip", False, "cargo install wasm-snip"),
}


@dataclass
class ToolStatus:
    tool: Tool
    path: Optional[str]
    version: Optional[str] = None

    @property
    def installed(self) -> bool:
        return self.path is not None


class ToolLocator:
    def __init__(self, executor: CommandExecutor, environ: Optional[Mapping[str, str]] = None):
        self.executor = executor
        self.environ = os.environ if environ is None else environ

    def locate(self, binary: str) -> Optional[str]:
        """Path (or name) to invoke for `binary`, or None when not installed."""
        override = self.environ.get(TOOL_ENV_VARS.get(binary, ""), "")
        if override:
            return override
        return self.executor.which(binary)

    def require(self, binary: str) -> str:
        path = self.locate(binary)
        if path is None:
            raise ToolMissing(binary, install_hint(binary))
        return path

    def version(self, binary: str) -> Optional[str]:
        path = self.locate(binary)
        if path is None:
            return None
        try:
            result = self.executor.run(path, ["--version"])
        except FileNotFoundError:
            return None
        if not result.ok:
            return None
        lines = result.stdout.strip().splitlines()
        return lines[0] if lines else None

    def check_all(self) -> List[ToolStatus]:
        statuses = []
        for binary, tool in TOOLS.items():
            path = self.locate(binary)
            statuses.append(ToolStatus(tool, path, self.version(binary) if path else None))
        return statuses


def install_hint(binary: str) -> str:
    tool = TOOLS.get(binary)
    return tool.install_hint if tool else ""
