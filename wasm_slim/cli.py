"""
wasm-slim command line interface.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import report
from .backup import BackupManager
from .config import ConfigFile, ConfigLoader, config_path
from .errors import PipelineError, ToolMissing, WasmSlimError
from .history import BuildHistory
from .infra import RealFileSystem, ShCommandExecutor
from .manifest import MANIFEST_NAME
from .pipeline import Pipeline
from .profile import from_profile
from .stages import DEFAULT_STAGES, BindgenTarget, PipelineConfig, Stage, WasmOptLevel, WasmTarget
from .suggestions import DependencyReport, SuggestionApplicator
from .templates import DEFAULT_TEMPLATE, Profile, all_templates, get_template
from .tools import ToolLocator
from .utils import console, format_bytes
from .validation import default_registry

print = console.print  # route prints through Rich


########################################################################
app = typer.Typer(add_completion=False, help="Automated WASM binary size optimization")

PROJECT_OPTION = typer.Option(Path("."), "--path", "-p", help="Project root containing Cargo.toml")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def fail(error: WasmSlimError) -> None:
    """Print a one-line diagnostic and exit with status 1."""
    cause = error.cause if isinstance(error, PipelineError) else error
    print(f"[red]Error: {error}[/]")
    if isinstance(cause, ToolMissing) and cause.install_hint:
        print(f"   Install with: [bold]{cause.install_hint}[/]")
    raise typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    setup_logging(verbose)


########################################################################
# Commands
########################################################################

@app.command()
def init(
    template: str = typer.Option(DEFAULT_TEMPLATE, "--template", "-t", help="Template to start from"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing .wasm-slim.toml"),
    path: Path = PROJECT_OPTION,
):
    """
    Write .wasm-slim.toml with every profile field of a template spelled out.
    """
    fs = RealFileSystem()
    target = config_path(path)
    if fs.exists(target) and not force:
        print(f"[yellow]{target} already exists (use --force to overwrite)[/]")
        raise typer.Exit(code=1)
    try:
        profile = get_template(template)
        config = ConfigFile(template=profile.name, overrides=from_profile(profile))
        written = ConfigLoader(fs, default_registry()).save(config, path)
    except WasmSlimError as e:
        fail(e)
    print(f"[green]✓[/] Created {written} from template [bold]{profile.name}[/]")


@app.command()
def build(
    path: Path = PROJECT_OPTION,
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show changes and commands without running them"),
    check: bool = typer.Option(False, "--check", help="Fail when the size budget is exceeded"),
    json_output: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
    target: WasmTarget = typer.Option(WasmTarget.WASM32_UNKNOWN_UNKNOWN, "--target", help="Rust compilation target"),
    bindgen_target: BindgenTarget = typer.Option(BindgenTarget.WEB, "--bindgen-target", help="wasm-bindgen output flavor"),
    opt_level: WasmOptLevel = typer.Option(WasmOptLevel.OZ, "--opt-level", help="wasm-opt level when the profile sets none"),
    no_wasm_opt: bool = typer.Option(False, "--no-wasm-opt", help="Skip wasm-opt"),
    snip: bool = typer.Option(False, "--snip", help="Run wasm-snip to remove panicking code"),
    build_std: bool = typer.Option(False, "--build-std", help="Configure nightly build-std in .cargo/config.toml"),
    ssr_target: Optional[str] = typer.Option(None, "--ssr-target", help="Also pin the build target and std cfg for server-side rendering (implies --build-std)"),
    target_dir: Optional[Path] = typer.Option(None, "--target-dir", help="Cargo target directory"),
):
    """
    Optimize Cargo.toml, build, post-process and check the result.
    """
    stages = [s for s in DEFAULT_STAGES if not (no_wasm_opt and s is Stage.WASM_OPT)]
    if snip:
        stages.append(Stage.WASM_SNIP)

    config = PipelineConfig(
        target=target,
        stages=tuple(stages),
        dry_run=dry_run,
        json_output=json_output,
        check_budget=check,
        bindgen_target=bindgen_target,
        opt_level=opt_level,
        target_dir=target_dir,
        build_std=build_std,
        ssr_target=ssr_target,
    )
    pipeline = Pipeline(path, config, RealFileSystem(), ShCommandExecutor(), default_registry())

    try:
        result = pipeline.run()
    except PipelineError as e:
        if json_output and e.result is not None:
            typer.echo(report.dumps(e.result.to_json(error=str(e.cause))))
            raise typer.Exit(code=1)
        if e.result is not None and e.result.budget is not None:
            report.print_budget(e.result.budget)
        fail(e)

    if json_output:
        typer.echo(report.dumps(result.to_json()))
    else:
        report.print_result(result)
    raise typer.Exit(code=result.exit_code)


@app.command()
def fix(
    report_file: Path = typer.Argument(..., metavar="REPORT", help="Dependency report JSON"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show fixes without writing"),
    path: Path = PROJECT_OPTION,
):
    """
    Apply automatic dependency fixes from an analysis report.
    """
    fs = RealFileSystem()
    try:
        dependency_report = DependencyReport.load(report_file, fs)
        applicator = SuggestionApplicator(path, fs, BackupManager(path, fs))
        fixes = applicator.apply(dependency_report, dry_run=dry_run)
    except WasmSlimError as e:
        fail(e)

    if fixes == 0:
        print("[dim]No automatic fixes available[/]")
    elif dry_run:
        print(f"[yellow]{fixes} fix(es) would be applied[/]")
    else:
        print(f"[green]✓[/] Applied {fixes} fix(es)")


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of builds to show"),
    path: Path = PROJECT_OPTION,
):
    """
    Show recorded build sizes, newest first.
    """
    try:
        build_history = BuildHistory.load(path, RealFileSystem())
    except WasmSlimError as e:
        fail(e)

    if not build_history.records:
        print("[dim]No builds recorded yet[/]")
        return

    table = Table(title="Build history")
    table.add_column("Timestamp")
    table.add_column("Size", justify="right")
    table.add_column("Commit")
    table.add_column("Branch")
    for record in build_history.records[:limit]:
        table.add_row(
            record.timestamp,
            format_bytes(record.size_bytes),
            record.commit_hash or "-",
            record.branch or "-",
        )
    print(table)


@app.command()
def templates(
    name: Optional[str] = typer.Argument(None, help="Show settings, dependency hints and notes for one template"),
):
    """
    List the built-in optimization templates, or describe one.
    """
    if name is not None:
        try:
            template = get_template(name)
        except WasmSlimError as e:
            fail(e)
        print_template(template)
        return

    table = Table(title="Templates")
    table.add_column("Name", style="bold")
    table.add_column("opt-level")
    table.add_column("wasm-opt flags", justify="right")
    table.add_column("Description")
    for template in all_templates():
        table.add_row(
            template.name,
            template.opt_level,
            str(len(template.wasm_opt_flags)),
            template.description,
        )
    print(table)
    print("[dim]Run `wasm-slim templates NAME` for dependency hints and notes[/]")


def print_template(template: Profile) -> None:
    print(f"[bold]{template.name}[/] - {template.description}")
    print(
        f"   opt-level={template.opt_level} lto={template.lto} strip={str(template.strip).lower()} "
        f"codegen-units={template.codegen_units} panic={template.panic}"
    )
    print(f"   wasm-opt: {escape(' '.join(template.wasm_opt_flags)) or '(none)'}")
    if template.dependency_hints:
        print("\n[bold]Dependency hints[/]")
        for hint in template.dependency_hints:
            print(f"   • {escape(hint)}")
    if template.notes:
        print("\n[bold]Notes[/]")
        for note in template.notes:
            print(f"   • {escape(note)}")


@app.command()
def restore(
    backup: Optional[Path] = typer.Argument(None, help="Backup file from .wasm-slim/backups/ (default: newest Cargo.toml backup)"),
    to: Optional[Path] = typer.Option(None, "--to", help="File to restore (default: original name in the project root)"),
    path: Path = PROJECT_OPTION,
):
    """
    Restore a file from a backup.
    """
    backups = BackupManager(path, RealFileSystem())
    try:
        if backup is None:
            candidates = backups.list_backups(MANIFEST_NAME)
            if not candidates:
                print(f"[yellow]No {MANIFEST_NAME} backups in {backups.backup_dir}[/]")
                raise typer.Exit(code=1)
            backup = candidates[0]
        restored = backups.restore_path(backup, to)
    except WasmSlimError as e:
        fail(e)
    print(f"[green]✓[/] Restored {restored}")


@app.command()
def tools():
    """
    Check which external build tools are installed.
    """
    for status in ToolLocator(ShCommandExecutor()).check_all():
        tool = status.tool
        if status.installed:
            print(f"   [green]✓[/] [bold]{tool.name}[/] - [dim]{status.version or '(version unknown)'}[/]")
        elif tool.required:
            print(f"   [red]✗[/] [bold]{tool.name}[/] - [red]NOT FOUND[/]  install: {tool.install_hint}")
        else:
            print(f"   [yellow]○[/] [bold]{tool.name}[/] - [yellow]NOT FOUND[/] [dim](optional)[/]  install: {tool.install_hint}")


if __name__ == "__main__":
    app()
