"""CLI entry point for biceplens.

Commands:
  review   review a local Bicep file and print the report
  pr       review a pull request's Bicep files and annotate the pull request
  init     write .biceplens.yml and a CI pipeline that runs `biceplens pr`
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from biceplens_cli.commands.init import init_cmd
from biceplens_cli.commands.pr import pr_cmd
from biceplens_cli.commands.review import review_cmd

console = Console(stderr=True)


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    """Route library logging through rich on stderr so stdout stays the report."""
    level = logging.DEBUG if debug else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=debug, rich_tracebacks=debug)],
        force=True,
    )
    # SDK and HTTP client chatter is only useful when debugging.
    for noisy in ("httpx", "openai", "anthropic", "urllib3", "github"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if debug else logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("biceplens"),
    prog_name="biceplens",
)
@click.option(
    "--config",
    "config_path",
    default=".biceplens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="BICEPLENS_CONFIG",
)
@click.option("--debug", is_flag=True, help="Verbose logging, including every completion and host call.")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors.")
@click.pass_context
def main(ctx: click.Context, config_path: str, debug: bool, quiet: bool):
    """LLM-assisted Bicep reviewer that checks files against a best-practices document."""
    configure_logging(debug=debug, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(pr_cmd)
main.add_command(init_cmd)
