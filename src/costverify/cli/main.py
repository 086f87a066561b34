# src/costverify/cli/main.py
"""
Entry point of the costverify CLI. Registers `version`, `query`, `validate` and `controllers`.
"""

import logging

import typer

from .. import __version__
from ..core.config import config
from . import controllers, query, validate

# --- Setup Logger ---
logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="costverify",
    help="Check cost allocation API results against raw Prometheus metrics.",
    add_completion=False,
)


def _print_version(show: bool):
    if show:
        typer.echo(f"costverify version: {__version__}")
        raise typer.Exit()


@app.command()
def version():
    """
    Print the costverify version.
    """
    typer.echo(f"costverify version: {__version__}")


@app.callback()
def main(
    show_version: bool = typer.Option(
        None,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Print the version and exit.",
    ),
):
    """
    Compare an OpenCost-compatible allocation API with Prometheus.
    """


app.command(name="query")(query.query)
app.command(name="validate")(validate.validate)
app.command(name="controllers")(controllers.controllers)


if __name__ == "__main__":
    app()
