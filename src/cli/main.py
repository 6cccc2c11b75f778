"""card: decision capsule knowledge base CLI."""

import sys
from pathlib import Path

import click
from rich.console import Console

from cli.commands import capsule, recall
from cli.config import load_config_model
from cli.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option("--home", type=click.Path(path_type=Path), default=None, help="Override CARD_HOME")
@click.pass_context
def cli(ctx, verbose: bool, json_logs: bool, home):
    """card - recorded engineering decisions and findings."""
    try:
        config = load_config_model()
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(json_mode=json_logs or config.logging.json_mode, level=level)
    ctx.ensure_object(dict)
    ctx.obj["home"] = home


cli.add_command(capsule)
cli.add_command(recall)


if __name__ == "__main__":
    cli()
