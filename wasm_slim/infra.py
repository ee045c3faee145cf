"""
Capability boundaries for filesystem access and external processes.

Every component receives a FileSystem (and, where it spawns tools, a
CommandExecutor) through its constructor. RealFileSystem and
ShCommandExecutor talk to the machine; MemoryFileSystem keeps everything in a
dict and records each mutating call so tests can assert on writes.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import sh


# =============================================================================
# Filesystem
# =============================================================================


class FileSystem:
    """Interface for the filesystem operations wasm-slim performs."""

    def read_bytes(self, path: Path) -> bytes:
        raise NotImplementedError

    def write_bytes(self, path: Path, data: bytes) -> None:
        raise NotImplementedError

    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def is_dir(self, path: Path) -> bool:
        raise NotImplementedError

    def mkdir(self, path: Path) -> None:
        """Create a directory and its parents; existing directories are fine."""
        raise NotImplementedError

    def size(self, path: Path) -> int:
        raise NotImplementedError

    def list_dir(self, path: Path) -> List[Path]:
        raise NotImplementedError

    def move(self, src: Path, dst: Path) -> None:
        raise NotImplementedError

    def remove(self, path: Path) -> None:
        raise NotImplementedError

    # Text helpers decode/encode explicitly so CRLF line endings survive a
    # read-modify-write cycle untouched.
    def read_text(self, path: Path) -> str:
        return self.read_bytes(path).decode("utf-8")

    def write_text(self, path: Path, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))


class RealFileSystem(FileSystem):
    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        Path(path).write_bytes(data)

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def mkdir(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def size(self, path: Path) -> int:
        return Path(path).stat().st_size

    def list_dir(self, path: Path) -> List[Path]:
        return sorted(Path(path).iterdir())

    def move(self, src: Path, dst: Path) -> None:
        shutil.move(str(src), str(dst))

    def remove(self, path: Path) -> None:
        Path(path).unlink()


class MemoryFileSystem(FileSystem):
    """In-memory filesystem for tests.

    `operations` logs every mutating call as ``(verb, path)``; paths listed in
    `read_only` reject writes with PermissionError.
    """

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files: Dict[Path, bytes] = {}
        self.dirs: Set[Path] = set()
        self.read_only: Set[Path] = set()
        self.operations: List[tuple] = []
        for name, data in (files or {}).items():
            self._store(Path(name), data if isinstance(data, bytes) else data.encode("utf-8"))

    def _store(self, path: Path, data: bytes) -> None:
        self.files[path] = data
        self.dirs.update(path.parents)

    def _check_writable(self, path: Path) -> None:
        if path in self.read_only or any(p in self.read_only for p in path.parents):
            raise PermissionError(f"Permission denied: '{path}'")

    def read_bytes(self, path: Path) -> bytes:
        path = Path(path)
        if path not in self.files:
            raise FileNotFoundError(f"No such file or directory: '{path}'")
        return self.files[path]

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        self._check_writable(path)
        self.operations.append(("write", path))
        self._store(path, bytes(data))

    def exists(self, path: Path) -> bool:
        path = Path(path)
        return path in self.files or path in self.dirs

    def is_dir(self, path: Path) -> bool:
        return Path(path) in self.dirs

    def mkdir(self, path: Path) -> None:
        path = Path(path)
        if path in self.dirs:
            return
        self._check_writable(path)
        self.operations.append(("mkdir", path))
        self.dirs.add(path)
        self.dirs.update(path.parents)

    def size(self, path: Path) -> int:
        return len(self.read_bytes(path))

    def list_dir(self, path: Path) -> List[Path]:
        path = Path(path)
        if path not in self.dirs:
            raise FileNotFoundError(f"No such file or directory: '{path}'")
        children = {p for p in self.files if p.parent == path}
        children.update(d for d in self.dirs if d.parent == path and d != path)
        return sorted(children)

    def move(self, src: Path, dst: Path) -> None:
        src, dst = Path(src), Path(dst)
        data = self.read_bytes(src)
        self._check_writable(dst)
        self.operations.append(("move", dst))
        del self.files[src]
        self._store(dst, data)

    def remove(self, path: Path) -> None:
        path = Path(path)
        self.read_bytes(path)
        self._check_writable(path)
        self.operations.append(("remove", path))
        del self.files[path]


# =============================================================================
# External commands
# =============================================================================


@dataclass
class CommandResult:
    program: str
    args: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Captured stdout followed by stderr."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandExecutor:
    """Interface for spawning external tools and locating binaries."""

    def run(
        self,
        program: str,
        args: Iterable[str],
        cwd: Optional[Path] = None,
        env_remove: Iterable[str] = (),
    ) -> CommandResult:
        """Run `program` to completion.

        Raises FileNotFoundError when the program cannot be found.
        """
        raise NotImplementedError

    def which(self, program: str) -> Optional[str]:
        raise NotImplementedError


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


@dataclass
class ShCommandExecutor(CommandExecutor):
    """CommandExecutor backed by the `sh` library."""

    extra_env: Dict[str, str] = field(default_factory=dict)

    def run(
        self,
        program: str,
        args: Iterable[str],
        cwd: Optional[Path] = None,
        env_remove: Iterable[str] = (),
    ) -> CommandResult:
        args = [str(arg) for arg in args]
        try:
            cmd_func = sh.Command(str(program))
        except sh.CommandNotFound as e:
            raise FileNotFoundError(f"Command not found: {program}") from e

        kwargs = {"_return_cmd": True}
        if cwd:
            kwargs["_cwd"] = str(cwd)

        env_remove = list(env_remove)
        if env_remove or self.extra_env:
            env = os.environ.copy()
            for name in env_remove:
                env.pop(name, None)
            env.update(self.extra_env)
            kwargs["_env"] = env

        try:
            proc = cmd_func(*args, **kwargs)
        except sh.ErrorReturnCode as e:
            return CommandResult(
                str(program), args, e.exit_code, _decode(e.stdout), _decode(e.stderr)
            )

        return CommandResult(
            str(program), args, proc.exit_code, _decode(proc.stdout), _decode(proc.stderr)
        )

    def which(self, program: str) -> Optional[str]:
        if "/" in program or "\\" in program:
            path = Path(program)
            return str(path) if path.exists() and os.access(path, os.X_OK) else None
        return shutil.which(program)
