"""CLI command: wormsign scan <directory> — one-shot scan for CI and terminals."""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table
from rich.text import Text

from wormsign.config import WormsignConfig
from wormsign.scanner.engine import (
    ProgressSnapshot,
    ScanConfig,
    ScanEngine,
    ScanError,
)
from wormsign.scanner.iocs import REGISTRY, IocRegistry, load_registry
from wormsign.scanner.models import ScanReport, Severity

console = Console(stderr=True)

SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "bright_red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

# Exit statuses for CI
EXIT_FINDINGS = 1
EXIT_FATAL = 2


@click.command()
@click.argument("directory", type=click.Path(path_type=Path))
@click.option(
    "--include-node-modules",
    "-n",
    is_flag=True,
    help="Also scan node_modules directories.",
)
@click.option("--json", "-j", "as_json", is_flag=True, help="Print the report as JSON.")
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Number of worker threads (default: CPU count).",
)
@click.option(
    "--ioc-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with extra filenames, hashes and packages.",
)
@click.pass_context
def scan(
    ctx: click.Context,
    directory: Path,
    include_node_modules: bool,
    as_json: bool,
    workers: int | None,
    ioc_file: Path | None,
) -> None:
    """Scan a directory for Shai-Hulud 2.0 indicators of compromise."""
    config: WormsignConfig = ctx.obj.get("config") or WormsignConfig.load()
    if include_node_modules:
        config.include_node_modules = True
    if workers is not None:
        config.workers = workers

    registry = _load_registry(ioc_file or config.ioc_file)
    scan_config = config.to_scan_config(directory)

    if not as_json:
        console.print(
            f"[bold]wormsign[/bold] scanning [cyan]{escape(str(directory))}[/cyan]"
            + (" [dim](including node_modules)[/dim]" if config.include_node_modules else "")
            + "\n"
        )

    try:
        report = _run(scan_config, registry, show_progress=not as_json)
    except ScanError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(EXIT_FATAL)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, directory)

    if not report.summary.passed:
        sys.exit(EXIT_FINDINGS)


def _load_registry(ioc_file: Path | None) -> IocRegistry:
    if ioc_file is None:
        return REGISTRY
    try:
        return load_registry(ioc_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise click.BadParameter(str(e), param_hint="--ioc-file") from e


def _run(
    scan_config: ScanConfig,
    registry: IocRegistry,
    show_progress: bool,
) -> ScanReport:
    """Run a scan in the foreground; Ctrl+C cancels cooperatively."""
    cancel = threading.Event()

    def _signal_handler(signum: int, frame: object) -> None:
        console.print("\n[dim]Cancelling — finishing in-flight files...[/dim]")
        cancel.set()

    original_sigint = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, _signal_handler)
    try:
        if not show_progress:
            engine = ScanEngine(scan_config, registry=registry, cancel_event=cancel)
            return engine.scan()

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning", total=None)

            def on_progress(snap: ProgressSnapshot) -> None:
                total = snap.files_discovered if snap.discovery_done else None
                progress.update(task, completed=snap.files_processed, total=total)

            engine = ScanEngine(
                scan_config,
                registry=registry,
                on_progress=on_progress,
                cancel_event=cancel,
            )
            return engine.scan()
    finally:
        signal.signal(signal.SIGINT, original_sigint)


def print_report(report: ScanReport, base_dir: str | Path) -> None:
    """Render a report as a Rich table grouped by severity."""
    if report.partial:
        console.print("[yellow]Scan cancelled — results are partial.[/yellow]")

    if not report.findings:
        console.print("[green]No indicators of compromise found.[/green]")
    else:
        table = Table(title="Findings", show_lines=False)
        table.add_column("Severity", style="bold", width=10)
        table.add_column("File", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Description")
        table.add_column("Context", max_width=50)

        for finding in report.findings:
            color = SEVERITY_COLORS[finding.severity]
            table.add_row(
                f"[{color}]{finding.severity.label}[/{color}]",
                Text(shorten_path(finding.file_path, base_dir)),
                str(finding.line) if finding.line is not None else "-",
                Text(finding.description),
                Text(finding.context),
            )
        console.print(table)

    _print_summary(report)


def _print_summary(report: ScanReport) -> None:
    summary = report.summary
    parts = [
        f"[{SEVERITY_COLORS[s]}]{summary.count(s)} {s.value}[/{SEVERITY_COLORS[s]}]"
        for s in Severity
    ]
    console.print(
        f"\nScanned {report.files_scanned} files in {report.duration:.2f}s"
    )
    console.print(f"Total findings: {summary.total} ({', '.join(parts)})")

    if report.read_errors:
        console.print(
            f"[yellow]{len(report.read_errors)} file(s) could not be read[/yellow]"
        )
    if summary.passed:
        console.print("[green]PASS[/green]")
    else:
        console.print("[red]FAIL[/red] — critical or high severity indicators found")


def shorten_path(file_path: str, base_dir: str | Path) -> str:
    """Shorten file path relative to the scan directory."""
    try:
        return str(Path(file_path).relative_to(Path(base_dir).resolve()))
    except ValueError:
        return file_path
