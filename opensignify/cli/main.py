"""Main CLI entry point for OpenSignify."""

import typer
from rich.console import Console

from opensignify import __version__
from opensignify.utils.config import get_settings
from opensignify.utils.logging import configure_from_settings, set_correlation_id

from .commands import invoice

app = typer.Typer(
    name="opensignify",
    help="Send invoices for signature and keep the signed PDFs",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]OpenSignify[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """
    OpenSignify - draft an invoice, send it for signature, keep the signed PDF.
    """
    configure_from_settings(get_settings())
    set_correlation_id()


app.add_typer(invoice.app, name="invoice", help="Manage invoices")


if __name__ == "__main__":
    app()
