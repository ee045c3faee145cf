"""
External build stages: cargo build, wasm-bindgen, wasm-opt, wasm-snip.

Each stage has a command builder (also used to describe the plan in a dry
run) and a runner that spawns the tool through the injected executor.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import BUILD_ENV_REMOVE
from .errors import IoError, ToolFailed, ToolMissing
from .infra import CommandExecutor, CommandResult, FileSystem
from .templates import Profile
from .tools import ToolLocator, install_hint

logger = logging.getLogger(__name__)


########################################################################
# Pipeline options
########################################################################

class WasmTarget(Enum):
    WASM32_UNKNOWN_UNKNOWN = "wasm32-unknown-unknown"
    WASM32_WASI = "wasm32-wasi"
    WASM32_UNKNOWN_EMSCRIPTEN = "wasm32-unknown-emscripten"


class BindgenTarget(Enum):
    WEB = "web"
    NODEJS = "nodejs"
    BUNDLER = "bundler"
    DENO = "deno"
    NO_MODULES = "no-modules"


class WasmOptLevel(Enum):
    O1 = "-O1"
    O2 = "-O2"
    O3 = "-O3"
    O4 = "-O4"
    OZ = "-Oz"


class Stage(Enum):
    COMPILE = "cargo build"
    BINDGEN = "wasm-bindgen"
    WASM_OPT = "wasm-opt"
    WASM_SNIP = "wasm-snip"


# Post-processing stages in execution order; COMPILE always runs first
POST_STAGES = (Stage.BINDGEN, Stage.WASM_OPT, Stage.WASM_SNIP)
DEFAULT_STAGES = (Stage.BINDGEN, Stage.WASM_OPT)


@dataclass
class PipelineConfig:
    target: WasmTarget = WasmTarget.WASM32_UNKNOWN_UNKNOWN
    profile: str = "release"
    stages: Tuple[Stage, ...] = DEFAULT_STAGES
    dry_run: bool = False
    json_output: bool = False
    check_budget: bool = False
    bindgen_target: BindgenTarget = BindgenTarget.WEB
    opt_level: WasmOptLevel = WasmOptLevel.OZ
    target_dir: Optional[Path] = None
    build_std: bool = False
    # set for server-side rendering builds; implies build_std
    ssr_target: Optional[str] = None

    def enabled_stages(self) -> List[Stage]:
        """Enabled post-processing stages in execution order."""
        return [stage for stage in POST_STAGES if stage in self.stages]


@dataclass
class StageResult:
    stage: Stage
    success: bool
    output: str = ""
    duration: float = 0.0
    artifact: Optional[Path] = None
    size_bytes: Optional[int] = None
    skipped: bool = False


########################################################################
# Stage runner
########################################################################

class StageRunner:
    def __init__(
        self,
        project_root: Path,
        config: PipelineConfig,
        fs: FileSystem,
        executor: CommandExecutor,
        tools: Optional[ToolLocator] = None,
    ):
        self.project_root = Path(project_root)
        self.config = config
        self.fs = fs
        self.executor = executor
        self.tools = tools or ToolLocator(executor)

        self._runners: Dict[Stage, Callable[[Path, Profile], StageResult]] = {
            Stage.COMPILE: lambda artifact, profile: self.compile(),
            Stage.BINDGEN: self.bindgen,
            Stage.WASM_OPT: self.wasm_opt,
            Stage.WASM_SNIP: self.wasm_snip,
        }
        missing = set(Stage) - set(self._runners)
        if missing:
            raise RuntimeError(f"No runner for stages: {sorted(s.name for s in missing)}")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def target_dir(self) -> Path:
        target_dir = self.config.target_dir
        if target_dir is None:
            return self.project_root / "target"
        target_dir = Path(target_dir)
        return target_dir if target_dir.is_absolute() else self.project_root / target_dir

    @property
    def build_dir(self) -> Path:
        # cargo writes the dev profile to "debug"
        profile_dir = "debug" if self.config.profile == "dev" else self.config.profile
        return self.target_dir / self.config.target.value / profile_dir

    @property
    def bindgen_out_dir(self) -> Path:
        return self.project_root / "pkg"

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    def compile_args(self) -> List[str]:
        args = ["build"]
        if self.config.profile == "release":
            args.append("--release")
        else:
            args.extend(["--profile", self.config.profile])
        args.extend(["--target", self.config.target.value])
        if self.config.target_dir is not None:
            args.extend(["--target-dir", str(self.target_dir)])
        return args

    def bindgen_args(self, artifact: Path, profile: Profile) -> List[str]:
        args = [
            str(artifact),
            "--out-dir", str(self.bindgen_out_dir),
            "--target", self.config.bindgen_target.value,
        ]
        if profile.bindgen.debug:
            args.append("--debug")
        if profile.bindgen.remove_producers_section:
            args.append("--remove-producers-section")
        args.extend(profile.bindgen.flags)
        return args

    def wasm_opt_flags(self, profile: Profile) -> List[str]:
        flags = list(profile.wasm_opt_flags)
        if not any(flag.startswith("-O") for flag in flags):
            flags.insert(0, self.config.opt_level.value)
        return flags

    def wasm_opt_args(self, artifact: Path, profile: Profile) -> List[str]:
        return [str(artifact), *self.wasm_opt_flags(profile), "-o", str(_temp_output(artifact))]

    def wasm_snip_args(self, artifact: Path) -> List[str]:
        return [str(artifact), "-o", str(_temp_output(artifact)), "--snip-rust-panicking-code"]

    def planned_command(self, stage: Stage, artifact: Path, profile: Profile) -> str:
        """Command line a stage would run, for dry-run reports."""
        if stage is Stage.COMPILE:
            return " ".join(["cargo", *self.compile_args()])
        if stage is Stage.BINDGEN:
            return " ".join(["wasm-bindgen", *self.bindgen_args(artifact, profile)])
        if stage is Stage.WASM_OPT:
            return " ".join(["wasm-opt", *self.wasm_opt_args(artifact, profile)])
        return " ".join(["wasm-snip", *self.wasm_snip_args(artifact)])

    # ------------------------------------------------------------------
    # Runners
    # ------------------------------------------------------------------

    def run(self, stage: Stage, artifact: Path, profile: Profile) -> StageResult:
        return self._runners[stage](artifact, profile)

    def _execute(self, stage: Stage, program: str, args: List[str], **kwargs) -> CommandResult:
        logger.info(f"Running {stage.value}: {program} {' '.join(args)}")
        try:
            result = self.executor.run(program, args, **kwargs)
        except FileNotFoundError as e:
            raise ToolMissing(stage.value.split()[0], install_hint(stage.value.split()[0])) from e
        if not result.ok:
            raise ToolFailed(stage.value, result.exit_code, result.stderr or result.stdout)
        return result

    def _find_wasm(self, directory: Path, prefer_suffix: str = "") -> Path:
        try:
            entries = self.fs.list_dir(directory)
        except OSError as e:
            raise IoError(directory, e, "locate .wasm artifact in") from e
        wasm_files = [p for p in entries if p.suffix == ".wasm"]
        if not wasm_files:
            raise IoError(directory, FileNotFoundError("no .wasm file produced"), "locate .wasm artifact in")
        preferred = [p for p in wasm_files if p.stem.endswith(prefer_suffix)] if prefer_suffix else []
        candidates = preferred or wasm_files
        if len(candidates) > 1:
            logger.warning(f"Multiple .wasm files in {directory}, using {candidates[0].name}")
        return candidates[0]

    def _size(self, path: Path) -> int:
        try:
            return self.fs.size(path)
        except OSError as e:
            raise IoError(path, e, "stat") from e

    def compile(self) -> StageResult:
        start = time.perf_counter()
        cargo = self.tools.require("cargo")
        result = self._execute(
            Stage.COMPILE,
            cargo,
            self.compile_args(),
            cwd=self.project_root,
            env_remove=BUILD_ENV_REMOVE,
        )
        artifact = self._find_wasm(self.build_dir)
        return StageResult(
            Stage.COMPILE,
            True,
            result.output,
            time.perf_counter() - start,
            artifact,
            self._size(artifact),
        )

    def bindgen(self, artifact: Path, profile: Profile) -> StageResult:
        start = time.perf_counter()
        program = self.tools.require("wasm-bindgen")
        result = self._execute(Stage.BINDGEN, program, self.bindgen_args(artifact, profile))
        output = self._find_wasm(self.bindgen_out_dir, prefer_suffix="_bg")
        return StageResult(
            Stage.BINDGEN,
            True,
            result.output,
            time.perf_counter() - start,
            output,
            self._size(output),
        )

    def _rewrite_in_place(self, stage: Stage, artifact: Path, args: List[str]) -> StageResult:
        start = time.perf_counter()
        program = self.tools.locate(stage.value)
        if program is None:
            logger.warning(f"Skipping {stage.value} (not installed, {install_hint(stage.value)})")
            return StageResult(stage, True, "", 0.0, artifact, self._size(artifact), skipped=True)

        result = self._execute(stage, program, args)
        temp = _temp_output(artifact)
        if not self.fs.exists(temp):
            raise IoError(temp, FileNotFoundError(f"{stage.value} produced no output"), "read")
        try:
            self.fs.move(temp, artifact)
        except OSError as e:
            raise IoError(artifact, e, "replace") from e
        return StageResult(
            stage,
            True,
            result.output,
            time.perf_counter() - start,
            artifact,
            self._size(artifact),
        )

    def wasm_opt(self, artifact: Path, profile: Profile) -> StageResult:
        return self._rewrite_in_place(Stage.WASM_OPT, artifact, self.wasm_opt_args(artifact, profile))

    def wasm_snip(self, artifact: Path, profile: Profile) -> StageResult:
        return self._rewrite_in_place(Stage.WASM_SNIP, artifact, self.wasm_snip_args(artifact))


def _temp_output(artifact: Path) -> Path:
    return Path(artifact).with_name(Path(artifact).name + ".tmp")
