"""CLI command: wormsign browse [PATH] — interactive folder picker and scanner."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from wormsign.cli.scan import _load_registry, console
from wormsign.config import WormsignConfig
from wormsign.tui.app import TuiApp
from wormsign.tui.state import BrowserState


@click.command()
@click.argument(
    "path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option(
    "--include-node-modules",
    "-n",
    is_flag=True,
    help="Start with node_modules scanning enabled.",
)
@click.option(
    "--ioc-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with extra filenames, hashes and packages.",
)
@click.pass_context
def browse(
    ctx: click.Context,
    path: Path,
    include_node_modules: bool,
    ioc_file: Path | None,
) -> None:
    """Pick a folder interactively, scan it and browse the findings."""
    if not sys.stdin.isatty():
        raise click.UsageError("browse needs an interactive terminal; use 'wormsign scan'")

    config: WormsignConfig = ctx.obj.get("config") or WormsignConfig.load()
    registry = _load_registry(ioc_file or config.ioc_file)

    state = BrowserState(
        current_path=path,
        include_node_modules=include_node_modules or config.include_node_modules,
    )
    TuiApp(state, registry=registry, workers=config.workers).run()

    if state.report is not None:
        console.print(
            f"Last scan: {state.report.files_scanned} files, "
            f"{state.report.summary.total} finding(s)"
        )
