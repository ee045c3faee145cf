"""Command line interface against real temporary projects."""

import json

import pytest
import tomlkit
from rich.text import Text
from typer.testing import CliRunner

from wasm_slim import cli
from wasm_slim.backup import BackupManager
from wasm_slim.cli import app
from wasm_slim.config import config_path
from wasm_slim.history import BuildHistory, BuildRecord
from wasm_slim.infra import RealFileSystem
from wasm_slim.pipeline import Pipeline
from wasm_slim.tools import ToolLocator

runner = CliRunner()

MANIFEST = """\
[package]
name = "cli-demo"
version = "0.1.0"

[dependencies]
image = "0.24"
wasm-bindgen = "0.2"
"""


def _plain(output: str) -> str:
    return Text.from_ansi(output).plain


@pytest.fixture
def project(tmp_path):
    """Temporary crate directory with a Cargo.toml."""
    (tmp_path / "Cargo.toml").write_text(MANIFEST)
    return tmp_path


def test_templates() -> None:
    result = runner.invoke(app, ["templates"])
    assert result.exit_code == 0
    for name in ("minimal", "balanced", "aggressive", "yew", "leptos", "dioxus", "custom"):
        assert name in _plain(result.stdout)


def test_template_details() -> None:
    result = runner.invoke(app, ["templates", "yew"])
    assert result.exit_code == 0

    out = _plain(result.stdout)
    assert "opt-level=s lto=fat strip=true codegen-units=1 panic=abort" in out
    assert "Dependency hints" in out
    assert 'yew = { version = "*", default-features = false }' in out
    assert "Based on balanced template" in out


def test_template_details_unknown() -> None:
    result = runner.invoke(app, ["templates", "tiny"])
    assert result.exit_code == 1
    assert "Template 'tiny' not found" in _plain(result.stdout)


def test_init_writes_config(project) -> None:
    result = runner.invoke(app, ["init", "--template", "minimal", "--path", str(project)])
    assert result.exit_code == 0

    data = tomlkit.parse(config_path(project).read_text()).unwrap()
    assert data["template"] == "minimal"
    assert data["profile"]["opt-level"] == "z"
    assert data["wasm_opt"]["flags"][0] == "-Oz"


def test_init_refuses_to_overwrite(project) -> None:
    config_path(project).write_text('template = "yew"\n')
    result = runner.invoke(app, ["init", "--path", str(project)])
    assert result.exit_code == 1
    assert config_path(project).read_text() == 'template = "yew"\n'

    forced = runner.invoke(app, ["init", "--force", "--path", str(project)])
    assert forced.exit_code == 0
    assert 'template = "balanced"' in config_path(project).read_text()


def test_init_unknown_template(project) -> None:
    result = runner.invoke(app, ["init", "--template", "tiny", "--path", str(project)])
    assert result.exit_code == 1
    assert "Template 'tiny' not found" in _plain(result.stdout)
    assert not config_path(project).exists()


def test_build_dry_run_json(project) -> None:
    result = runner.invoke(app, ["build", "--dry-run", "--json", "--snip", "--path", str(project)])
    assert result.exit_code == 0

    data = json.loads(result.stdout)
    assert data["success"] is True
    assert data["dry_run"] is True
    assert len(data["changes"]) == 6
    assert data["planned"][0] == "cargo build --release --target wasm32-unknown-unknown"
    assert data["planned"][-1].startswith("wasm-snip")
    assert (project / "Cargo.toml").read_text() == MANIFEST


def test_build_dry_run_text(project) -> None:
    result = runner.invoke(app, ["build", "-n", "--no-wasm-opt", "--path", str(project)])
    assert result.exit_code == 0
    assert "Planned steps" in _plain(result.stdout)
    assert "wasm-opt" not in _plain(result.stdout).split("Planned steps")[1]


def test_build_dry_run_ssr_target(project) -> None:
    result = runner.invoke(
        app, ["build", "--dry-run", "--json", "--ssr-target", "wasm32-unknown-unknown", "--path", str(project)]
    )
    assert result.exit_code == 0

    changes = json.loads(result.stdout)["changes"]
    assert 'Set target = "wasm32-unknown-unknown" (SSR support)' in changes
    assert 'Set rustflags = ["--cfg=has_std"] (SSR compatibility)' in changes
    assert not (project / ".cargo").exists()


def test_build_without_manifest(tmp_path) -> None:
    result = runner.invoke(app, ["build", "--dry-run", "--path", str(tmp_path)])
    assert result.exit_code == 1
    assert "Error:" in _plain(result.stdout)


def test_build_without_manifest_json(tmp_path) -> None:
    result = runner.invoke(app, ["build", "--dry-run", "--json", "--path", str(tmp_path)])
    assert result.exit_code == 1
    assert '"success": false' in result.stdout
    assert '"error": "Failed to read' in result.stdout


@pytest.fixture
def scripted_build(monkeypatch, fs, executor, root, toolchain):
    """Route `build` through the in-memory project and scripted toolchain."""
    fs.write_text(config_path(root), "[size_budget]\nmax-size-kb = 150\n")

    def make_pipeline(path, config, *_):
        return Pipeline(root, config, fs, executor, tools=ToolLocator(executor, environ={}))

    monkeypatch.setattr(cli, "Pipeline", make_pipeline)
    return root


def test_build_over_budget_without_check_exits_zero(scripted_build) -> None:
    result = runner.invoke(app, ["build", "--json", "--path", str(scripted_build)])
    assert result.exit_code == 0

    data = json.loads(result.stdout)
    assert data["success"] is True
    assert data["budget"]["status"] == "over_budget"
    assert data["budget"]["passed"] is False


def test_build_over_budget_with_check_exits_one(scripted_build) -> None:
    result = runner.invoke(app, ["build", "--check", "--path", str(scripted_build)])
    assert result.exit_code == 1
    assert "FAILED:" in _plain(result.stdout)


def test_history(project) -> None:
    empty = runner.invoke(app, ["history", "--path", str(project)])
    assert empty.exit_code == 0
    assert "No builds recorded yet" in _plain(empty.stdout)

    BuildHistory([BuildRecord("2024-01-01T00:00:00Z", 200_000, "abc1234", "main")]).save(project, RealFileSystem())
    result = runner.invoke(app, ["history", "--path", str(project)])
    assert result.exit_code == 0
    assert "abc1234" in _plain(result.stdout)


def test_fix_dry_run(project) -> None:
    report = project / "report.json"
    report.write_text(json.dumps({"issues": [{"package": "image", "fix_kind": "feature_minimization", "savings_percent": 35}]}))

    result = runner.invoke(app, ["fix", str(report), "--dry-run", "--path", str(project)])
    assert result.exit_code == 0
    assert "1 fix(es) would be applied" in _plain(result.stdout)
    assert (project / "Cargo.toml").read_text() == MANIFEST


def test_fix_applies(project) -> None:
    report = project / "report.json"
    report.write_text(json.dumps({"issues": [{"package": "image", "fix_kind": "FeatureMinimization"}]}))

    result = runner.invoke(app, ["fix", str(report), "--path", str(project)])
    assert result.exit_code == 0
    deps = tomlkit.parse((project / "Cargo.toml").read_text()).unwrap()["dependencies"]
    assert deps["image"]["default-features"] is False


def test_fix_missing_report(project) -> None:
    result = runner.invoke(app, ["fix", str(project / "nope.json"), "--path", str(project)])
    assert result.exit_code == 1


def test_restore(project) -> None:
    backup = BackupManager(project, RealFileSystem()).snapshot(project / "Cargo.toml")
    (project / "Cargo.toml").write_text("broken")

    result = runner.invoke(app, ["restore", str(backup.backup_path), "--path", str(project)])
    assert result.exit_code == 0
    assert (project / "Cargo.toml").read_text() == MANIFEST


def test_restore_newest_manifest_backup(project) -> None:
    missing = runner.invoke(app, ["restore", "--path", str(project)])
    assert missing.exit_code == 1

    BackupManager(project, RealFileSystem()).snapshot(project / "Cargo.toml")
    (project / "Cargo.toml").write_text("broken")

    result = runner.invoke(app, ["restore", "--path", str(project)])
    assert result.exit_code == 0
    assert (project / "Cargo.toml").read_text() == MANIFEST
