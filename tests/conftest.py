"""Shared pytest fixtures: in-memory project, scripted toolchain."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from wasm_slim.infra import CommandExecutor, CommandResult, MemoryFileSystem

PROJECT_ROOT = Path("/proj")

SAMPLE_MANIFEST = """\
[package]
name = "demo-app"
version = "0.1.0"
edition = "2021"

# Runtime dependencies
[dependencies]
wasm-bindgen = "0.2"  # keep in sync with the CLI
"""


class FakeExecutor(CommandExecutor):
    """Records every command; programs not in `installed` are missing."""

    def __init__(self, installed=("cargo", "wasm-bindgen", "wasm-opt", "wasm-snip")):
        self.installed = set(installed)
        self.calls: List[tuple] = []
        self.handlers: Dict[str, Callable[[List[str]], CommandResult]] = {}

    def which(self, program: str) -> Optional[str]:
        return program if program in self.installed else None

    def run(self, program, args, cwd=None, env_remove=()):
        args = [str(a) for a in args]
        self.calls.append((program, args, cwd, tuple(env_remove)))
        name = Path(program).name
        if name not in self.installed:
            raise FileNotFoundError(program)
        handler = self.handlers.get(name)
        if handler is not None:
            return handler(args)
        return CommandResult(program, args, 0)

    def programs(self) -> List[str]:
        return [Path(call[0]).name for call in self.calls]


class FakeToolchain:
    """Scripts cargo / wasm-bindgen / wasm-opt / wasm-snip to write artifacts of fixed sizes."""

    def __init__(self, fs: MemoryFileSystem, executor: FakeExecutor, root: Path = PROJECT_ROOT):
        self.fs = fs
        self.executor = executor
        self.root = root
        self.sizes = {"cargo": 400_000, "wasm-bindgen": 300_000, "wasm-opt": 200_000, "wasm-snip": 150_000}
        self.exit_codes = {}
        for name in self.sizes:
            executor.handlers[name] = self._handler(name)

    def _handler(self, name: str):
        def handle(args: List[str]) -> CommandResult:
            code = self.exit_codes.get(name, 0)
            if code != 0:
                return CommandResult(name, args, code, "", f"error: {name} exploded")
            data = b"\0" * self.sizes[name]
            if name == "cargo":
                out = self.root / "target" / "wasm32-unknown-unknown" / "release" / "demo_app.wasm"
            elif name == "wasm-bindgen":
                out = self.root / "pkg" / "demo_app_bg.wasm"
            else:
                out = Path(args[args.index("-o") + 1])
            self.fs.write_bytes(out, data)
            return CommandResult(name, args, 0, f"{name} ok", "")
        return handle


@pytest.fixture
def root() -> Path:
    return PROJECT_ROOT


@pytest.fixture
def fs() -> MemoryFileSystem:
    """In-memory filesystem holding a minimal wasm crate."""
    return MemoryFileSystem({str(PROJECT_ROOT / "Cargo.toml"): SAMPLE_MANIFEST.encode("utf-8")})


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def toolchain(fs: MemoryFileSystem, executor: FakeExecutor) -> FakeToolchain:
    return FakeToolchain(fs, executor)
