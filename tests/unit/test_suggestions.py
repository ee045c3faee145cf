"""Automatic dependency fixes."""

import json
from pathlib import Path

import pytest
import tomlkit

from wasm_slim.backup import BackupManager
from wasm_slim.config import backup_dir
from wasm_slim.errors import IoError, ParseError, StructureError
from wasm_slim.infra import MemoryFileSystem
from wasm_slim.suggestions import (
    DependencyIssue,
    DependencyReport,
    FixKind,
    SuggestionApplicator,
    wasm_features,
)

ROOT = Path("/app")
MANIFEST = ROOT / "Cargo.toml"

DEPENDENCIES = """\
[package]
name = "app"

[dependencies]
image = "0.24"
lopdf = { version = "0.31", features = ["nom_parser"] }
getrandom = "0.2"
serde = { version = "1", default-features = false }

[dependencies.chrono]
version = "0.4"
"""


@pytest.fixture
def project():
    return MemoryFileSystem({str(MANIFEST): DEPENDENCIES})


def _apply(fs, *issues, dry_run=False):
    applicator = SuggestionApplicator(ROOT, fs, BackupManager(ROOT, fs))
    return applicator.apply(DependencyReport(list(issues)), dry_run=dry_run)


def _deps(fs):
    return tomlkit.parse(fs.read_text(MANIFEST)).unwrap()["dependencies"]


def _issue(package, kind, savings=10, version=""):
    return DependencyIssue(package=package, fix_kind=kind, version=version, savings_percent=savings)


def test_minimize_string_dependency(project) -> None:
    assert _apply(project, _issue("image", FixKind.FEATURE_MINIMIZATION)) == 1
    assert _deps(project)["image"] == {"version": "0.24", "default-features": False, "features": ["png"]}


def test_minimize_inline_table_keeps_features(project) -> None:
    assert _apply(project, _issue("lopdf", FixKind.FEATURE_MINIMIZATION)) == 1
    assert _deps(project)["lopdf"] == {"version": "0.31", "features": ["nom_parser"], "default-features": False}


def test_minimize_full_table(project) -> None:
    assert _apply(project, _issue("chrono", FixKind.FEATURE_MINIMIZATION)) == 1
    assert _deps(project)["chrono"] == {"version": "0.4", "default-features": False}


def test_minimize_skips_when_already_set(project) -> None:
    assert _apply(project, _issue("serde", FixKind.FEATURE_MINIMIZATION)) == 0


def test_getrandom_wasm_fix(project) -> None:
    assert _apply(project, _issue("getrandom", FixKind.WASM_FIX)) == 1
    assert _deps(project)["getrandom"] == {"version": "0.2", "features": ["js"]}


def test_wasm_feature_names() -> None:
    assert wasm_features("getrandom", "0.2.15") == ["js"]
    assert wasm_features("getrandom", "^0.2") == ["js"]
    assert wasm_features("getrandom", "0.3") == ["wasm_js"]
    assert wasm_features("getrandom", None) == ["wasm_js"]
    assert wasm_features("serde", "1") is None


def test_unknown_wasm_fix_is_not_applied(project) -> None:
    assert _apply(project, _issue("serde", FixKind.WASM_FIX)) == 0
    assert project.operations == []


@pytest.mark.parametrize("kind", [FixKind.REPLACEMENT, FixKind.SPLIT, FixKind.OPTIONAL])
def test_manual_fixes_are_skipped(project, kind) -> None:
    assert _apply(project, _issue("image", kind)) == 0


def test_absent_package(project) -> None:
    assert _apply(project, _issue("tokio", FixKind.FEATURE_MINIMIZATION)) == 0


def test_highest_savings_wins(project) -> None:
    manual_first = [_issue("image", FixKind.REPLACEMENT, 80), _issue("image", FixKind.FEATURE_MINIMIZATION, 30)]
    assert _apply(project, *manual_first) == 0

    automatic_first = [_issue("image", FixKind.REPLACEMENT, 20), _issue("image", FixKind.FEATURE_MINIMIZATION, 30)]
    assert _apply(project, *automatic_first) == 1


def test_dry_run_counts_without_writing(project) -> None:
    fixes = _apply(
        project,
        _issue("image", FixKind.FEATURE_MINIMIZATION),
        _issue("getrandom", FixKind.WASM_FIX),
        dry_run=True,
    )
    assert fixes == 2
    assert project.operations == []
    assert project.read_text(MANIFEST) == DEPENDENCIES


def test_backup_before_write(project) -> None:
    _apply(project, _issue("image", FixKind.FEATURE_MINIMIZATION))
    backups = project.list_dir(backup_dir(ROOT))
    assert len(backups) == 1
    assert project.read_text(backups[0]) == DEPENDENCIES
    assert project.operations[-1] == ("write", MANIFEST)


def test_missing_manifest() -> None:
    with pytest.raises(IoError):
        _apply(MemoryFileSystem(), _issue("image", FixKind.FEATURE_MINIMIZATION))


def test_fix_kind_spellings() -> None:
    for text in ("wasm_fix", "wasm-fix", "WasmFix", "WASM_FIX"):
        assert FixKind.parse(text) is FixKind.WASM_FIX
    assert FixKind.parse("FeatureMinimization") is FixKind.FEATURE_MINIMIZATION


def test_report_from_dict() -> None:
    report = DependencyReport.from_dict({
        "issues": [
            {"package": "image", "fix_kind": "feature-minimization", "savings_percent": 40, "severity": "high"},
            {"package": "getrandom", "fix_kind": "WasmFix", "version": "0.2"},
        ]
    })
    assert [i.fix_kind for i in report.issues] == [FixKind.FEATURE_MINIMIZATION, FixKind.WASM_FIX]
    assert report.issues[0].savings_percent == 40
    assert report.issues[1].savings_percent == 0


@pytest.mark.parametrize("data", [[], {"issues": {}}, {"issues": [{"fix_kind": "split"}]}, {"issues": [{"package": "x", "fix_kind": "rewrite"}]}])
def test_report_bad_shape(data) -> None:
    with pytest.raises(StructureError):
        DependencyReport.from_dict(data)


def test_report_load(project) -> None:
    path = ROOT / "report.json"
    project.write_text(path, json.dumps({"issues": [{"package": "image", "fix_kind": "optional"}]}))
    assert DependencyReport.load(path, project).issues[0].fix_kind is FixKind.OPTIONAL

    project.write_text(path, "{oops")
    with pytest.raises(ParseError):
        DependencyReport.load(path, project)
