"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click
import yaml

from wormsign import __version__
from wormsign.config import WormsignConfig


class FatalError(click.ClickException):
    """Unrecoverable setup error; exits with the same status as a failed scan root."""

    exit_code = 2


@click.group()
@click.version_option(version=__version__, prog_name="wormsign")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """wormsign — detect Shai-Hulud 2.0 npm supply chain attack indicators."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        ctx.obj["config"] = WormsignConfig.load()
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise FatalError(f"Invalid configuration: {e}") from e


def _register_commands() -> None:
    from wormsign.cli.browse import browse  # noqa: F811
    from wormsign.cli.scan import scan  # noqa: F811

    main.add_command(scan)
    main.add_command(browse)


_register_commands()
