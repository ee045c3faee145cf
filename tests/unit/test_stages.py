"""Stage command builders and runners."""

from pathlib import Path

import pytest

from wasm_slim.config import BUILD_ENV_REMOVE
from wasm_slim.errors import IoError, ToolFailed, ToolMissing
from wasm_slim.infra import CommandResult
from wasm_slim.profile import ProfileOverrides, resolve
from wasm_slim.stages import (
    BindgenTarget,
    PipelineConfig,
    Stage,
    StageRunner,
    WasmOptLevel,
    WasmTarget,
)
from wasm_slim.templates import get_template
from wasm_slim.tools import ToolLocator

RELEASE_DIR = Path("/proj/target/wasm32-unknown-unknown/release")


def _runner(fs, executor, root, **options):
    return StageRunner(root, PipelineConfig(**options), fs, executor, ToolLocator(executor, environ={}))


def test_every_stage_has_a_runner(fs, executor, root) -> None:
    assert set(_runner(fs, executor, root)._runners) == set(Stage)


def test_compile_args(fs, executor, root) -> None:
    runner = _runner(fs, executor, root)
    assert runner.compile_args() == ["build", "--release", "--target", "wasm32-unknown-unknown"]
    assert runner.build_dir == RELEASE_DIR

    custom = _runner(fs, executor, root, profile="dev", target=WasmTarget.WASM32_WASI, target_dir=Path("out"))
    assert custom.compile_args() == ["build", "--profile", "dev", "--target", "wasm32-wasi", "--target-dir", "/proj/out"]
    assert custom.build_dir == Path("/proj/out/wasm32-wasi/debug")


def test_bindgen_args(fs, executor, root) -> None:
    runner = _runner(fs, executor, root, bindgen_target=BindgenTarget.BUNDLER)
    artifact = RELEASE_DIR / "demo_app.wasm"

    assert runner.bindgen_args(artifact, get_template("balanced")) == [
        str(artifact), "--out-dir", "/proj/pkg", "--target", "bundler", "--remove-producers-section",
    ]
    assert "--remove-producers-section" not in runner.bindgen_args(artifact, get_template("custom"))
    assert runner.bindgen_args(artifact, get_template("aggressive"))[-1] == "--omit-default-module-path"


def test_wasm_opt_level_added_only_when_missing(fs, executor, root) -> None:
    runner = _runner(fs, executor, root, opt_level=WasmOptLevel.O3)
    assert runner.wasm_opt_flags(get_template("balanced"))[0] == "-Oz"

    bare = resolve("balanced", ProfileOverrides(wasm_opt_flags=["--strip-debug"]))
    assert runner.wasm_opt_flags(bare) == ["-O3", "--strip-debug"]


def test_planned_commands(fs, executor, root) -> None:
    runner = _runner(fs, executor, root)
    artifact = Path("/proj/pkg/demo_app_bg.wasm")
    profile = resolve("balanced", ProfileOverrides(wasm_opt_flags=["-Oz"]))

    assert runner.planned_command(Stage.COMPILE, artifact, profile) == "cargo build --release --target wasm32-unknown-unknown"
    assert runner.planned_command(Stage.WASM_OPT, artifact, profile) == (
        "wasm-opt /proj/pkg/demo_app_bg.wasm -Oz -o /proj/pkg/demo_app_bg.wasm.tmp"
    )
    assert runner.planned_command(Stage.WASM_SNIP, artifact, profile) == (
        "wasm-snip /proj/pkg/demo_app_bg.wasm -o /proj/pkg/demo_app_bg.wasm.tmp --snip-rust-panicking-code"
    )


def test_compile(fs, executor, root, toolchain) -> None:
    result = _runner(fs, executor, root).compile()

    assert result.stage is Stage.COMPILE
    assert result.artifact == RELEASE_DIR / "demo_app.wasm"
    assert result.size_bytes == 400_000
    program, args, cwd, env_remove = executor.calls[0]
    assert (program, cwd, env_remove) == ("cargo", root, BUILD_ENV_REMOVE)


def test_bindgen_prefers_bg_artifact(fs, executor, root, toolchain) -> None:
    fs.write_bytes(root / "pkg" / "aaa.wasm", b"x")
    runner = _runner(fs, executor, root)
    compiled = runner.compile()

    result = runner.run(Stage.BINDGEN, compiled.artifact, get_template("balanced"))
    assert result.artifact == root / "pkg" / "demo_app_bg.wasm"
    assert result.size_bytes == 300_000


def test_wasm_opt_rewrites_in_place(fs, executor, root, toolchain) -> None:
    runner = _runner(fs, executor, root)
    artifact = runner.compile().artifact

    result = runner.run(Stage.WASM_OPT, artifact, get_template("balanced"))
    assert result.artifact == artifact
    assert result.size_bytes == 200_000
    assert not fs.exists(artifact.with_name(artifact.name + ".tmp"))


def test_missing_optional_tool_is_skipped(fs, executor, root, toolchain) -> None:
    executor.installed.discard("wasm-snip")
    runner = _runner(fs, executor, root)
    artifact = runner.compile().artifact

    result = runner.run(Stage.WASM_SNIP, artifact, get_template("balanced"))
    assert result.skipped
    assert result.size_bytes == 400_000
    assert "wasm-snip" not in executor.programs()


def test_missing_required_tool(fs, executor, root, toolchain) -> None:
    executor.installed.discard("cargo")
    with pytest.raises(ToolMissing, match="cargo"):
        _runner(fs, executor, root).compile()


def test_failed_stage(fs, executor, root, toolchain) -> None:
    toolchain.exit_codes["cargo"] = 101
    with pytest.raises(ToolFailed) as excinfo:
        _runner(fs, executor, root).compile()
    assert excinfo.value.exit_code == 101
    assert str(excinfo.value) == "cargo build failed with exit code 101: error: cargo exploded"


def test_no_artifact_produced(fs, executor, root) -> None:
    fs.mkdir(RELEASE_DIR)
    executor.handlers["cargo"] = lambda args: CommandResult("cargo", args, 0)
    with pytest.raises(IoError, match="locate .wasm artifact"):
        _runner(fs, executor, root).compile()


def test_tool_without_output_file(fs, executor, root, toolchain) -> None:
    runner = _runner(fs, executor, root)
    artifact = runner.compile().artifact
    executor.handlers["wasm-opt"] = lambda args: CommandResult("wasm-opt", args, 0)

    with pytest.raises(IoError, match="produced no output"):
        runner.run(Stage.WASM_OPT, artifact, get_template("balanced"))
