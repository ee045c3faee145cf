"""
Build pipeline executor.

Runs the full optimization flow for one project:

1. load `.wasm-slim.toml` and resolve the profile
2. mutate Cargo.toml (and `.cargo/config.toml` when build-std is enabled)
3. cargo build for the wasm target
4. enabled post-processing stages (wasm-bindgen, wasm-opt, wasm-snip)
5. size budget check
6. regression check and history update

Manifest changes are not rolled back when a later step fails; the backups
in `.wasm-slim/backups/` are there for manual recovery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .backup import BackupManager
from .budget import BudgetResult, check
from .build_std import BuildStdConfig, BuildStdOptimizer, ToolchainDetector
from .config import ConfigLoader
from .errors import BudgetExceeded, IoError, PipelineError, WasmSlimError
from .git import GitRepository
from .history import BuildHistory, BuildRecord, RegressionResult
from .infra import CommandExecutor, FileSystem
from .manifest import MANIFEST_NAME, ManifestEditor, find_manifests, is_wasm_crate, load_document
from .profile import resolve_config
from .report import build_json
from .stages import PipelineConfig, Stage, StageResult, StageRunner
from .templates import Profile
from .tools import ToolLocator
from .validation import ValidatorRegistry

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    START = "start"
    PROFILE_RESOLVED = "profile-resolved"
    MANIFEST_MUTATED = "manifest-mutated"
    COMPILED = "compiled"
    POST_PROCESSED = "post-processed"
    BUDGET_CHECKED = "budget-checked"
    HISTORY_RECORDED = "history-recorded"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SizeMetrics:
    before_bytes: int
    after_bytes: int

    @property
    def reduction_bytes(self) -> int:
        return self.before_bytes - self.after_bytes

    @property
    def reduction_percent(self) -> float:
        if self.before_bytes == 0:
            return 0.0
        return self.reduction_bytes / self.before_bytes * 100.0


@dataclass
class PipelineResult:
    dry_run: bool = False
    states: List[PipelineState] = field(default_factory=list)
    profile: Optional[Profile] = None
    changes: List[str] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)
    stage_results: List[StageResult] = field(default_factory=list)
    artifact: Optional[Path] = None
    metrics: Optional[SizeMetrics] = None
    budget: Optional[BudgetResult] = None
    regression: Optional[RegressionResult] = None
    history_error: Optional[str] = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1] if self.states else PipelineState.START

    @property
    def success(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def final_size(self) -> Optional[int]:
        return self.metrics.after_bytes if self.metrics else None

    @property
    def exit_code(self) -> int:
        # budget violations only fail the run in check mode, where they raise
        return 0 if self.success else 1

    def to_json(self, error: Optional[str] = None) -> dict:
        return build_json(self, error)


class Pipeline:
    def __init__(
        self,
        project_root: Path,
        config: PipelineConfig,
        fs: FileSystem,
        executor: CommandExecutor,
        registry: Optional[ValidatorRegistry] = None,
        tools: Optional[ToolLocator] = None,
        git: Optional[GitRepository] = None,
    ):
        self.project_root = Path(project_root)
        self.config = config
        self.fs = fs
        self.executor = executor
        self.loader = ConfigLoader(fs, registry)
        self.backups = BackupManager(self.project_root, fs)
        self.editor = ManifestEditor(fs, self.backups)
        self.runner = StageRunner(self.project_root, config, fs, executor, tools)
        self.git = git if git is not None else GitRepository(executor, self.project_root)

    def run(self) -> PipelineResult:
        """
        Execute the pipeline.

        Returns:
            PipelineResult ending in the DONE state

        Raises:
            PipelineError: any step failed; carries the last state reached,
                the cause and the partial result
        """
        result = PipelineResult(dry_run=self.config.dry_run)
        self._advance(result, PipelineState.START)
        try:
            self._execute(result)
        except WasmSlimError as e:
            failed_after = result.state
            logger.error(f"Pipeline failed after {failed_after.value}: {e}")
            result.states.append(PipelineState.FAILED)
            raise PipelineError(failed_after, e, result) from e
        return result

    def _advance(self, result: PipelineResult, state: PipelineState) -> None:
        logger.debug(f"Pipeline state: {state.value}")
        result.states.append(state)

    def _execute(self, result: PipelineResult) -> None:
        config_file = self.loader.load(self.project_root)
        profile = resolve_config(config_file)
        result.profile = profile
        logger.info(f"Using profile '{profile.name}'")
        self._advance(result, PipelineState.PROFILE_RESOLVED)

        manifests = find_manifests(self.project_root, self.fs)
        if not manifests:
            manifest = self.project_root / MANIFEST_NAME
            raise IoError(manifest, FileNotFoundError(f"No {MANIFEST_NAME} found"), "read")
        for manifest in manifests:
            if not is_wasm_crate(manifest, self.fs):
                logger.warning(f"{manifest} has no wasm-bindgen dependency or wasm-pack metadata")
            result.changes.extend(
                self.editor.mutate(manifest, profile, profile.wasm_opt_flags, self.config.dry_run)
            )
        if self.config.build_std or self.config.ssr_target:
            result.changes.extend(self._apply_build_std())
        self._advance(result, PipelineState.MANIFEST_MUTATED)

        if self.config.dry_run:
            result.planned = self._plan(profile, manifests[0])
            self._advance(result, PipelineState.DONE)
            return

        compiled = self.runner.compile()
        result.stage_results.append(compiled)
        artifact = compiled.artifact
        before = compiled.size_bytes
        self._advance(result, PipelineState.COMPILED)

        for stage in self.config.enabled_stages():
            stage_result = self.runner.run(stage, artifact, profile)
            result.stage_results.append(stage_result)
            artifact = stage_result.artifact
            self._advance(result, PipelineState.POST_PROCESSED)

        after = result.stage_results[-1].size_bytes
        result.artifact = artifact
        result.metrics = SizeMetrics(before, after)

        if config_file.size_budget is not None and not config_file.size_budget.is_empty():
            result.budget = check(after, config_file.size_budget)
            logger.info(f"Budget: {result.budget.message}")
            if self.config.check_budget and not result.budget.passed:
                raise BudgetExceeded(result.budget)
        self._advance(result, PipelineState.BUDGET_CHECKED)

        self._record_history(result, after)
        self._advance(result, PipelineState.HISTORY_RECORDED)
        self._advance(result, PipelineState.DONE)

    def _apply_build_std(self) -> List[str]:
        optimizer = BuildStdOptimizer(self.project_root, self.fs, self.backups)
        if self.config.ssr_target:
            build_std = BuildStdConfig.with_ssr(self.config.ssr_target)
        else:
            build_std = BuildStdConfig()
        if self.config.dry_run:
            return optimizer.apply(build_std, dry_run=True)
        if not ToolchainDetector(self.executor).is_nightly():
            if optimizer.is_configured():
                logger.warning(f"{optimizer.config_path} enables build-std but the toolchain is not nightly")
            else:
                logger.warning("build-std requires a nightly toolchain, skipping")
            return []
        return optimizer.apply(build_std)

    def _record_history(self, result: PipelineResult, size: int) -> None:
        try:
            history = BuildHistory.load(self.project_root, self.fs)
            result.regression = history.check_regression(size)
            history.add_record(BuildRecord.capture(size, self.git))
            history.save(self.project_root, self.fs)
        except WasmSlimError as e:
            logger.warning(f"Build history not updated: {e}")
            result.history_error = str(e)

    def _plan(self, profile: Profile, manifest: Path) -> List[str]:
        crate = _crate_name(manifest, self.fs)
        artifact = self.runner.build_dir / f"{crate}.wasm"
        planned = [self.runner.planned_command(Stage.COMPILE, artifact, profile)]
        for stage in self.config.enabled_stages():
            planned.append(self.runner.planned_command(stage, artifact, profile))
            if stage is Stage.BINDGEN:
                artifact = self.runner.bindgen_out_dir / f"{crate}_bg.wasm"
        return planned


def _crate_name(manifest: Path, fs: FileSystem) -> str:
    package = load_document(manifest, fs).get("package")
    name = package.get("name") if isinstance(package, dict) else None
    return str(name).replace("-", "_") if name else "crate"
