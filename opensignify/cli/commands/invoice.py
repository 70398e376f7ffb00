"""Invoice commands: create, list, show, send, notify, link, sign, pdf, suggest."""

from __future__ import annotations

import json
from collections.abc import Coroutine
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from opensignify.core.events import GlobalEventBus, register_default_listeners
from opensignify.core.invoices.service import InvoiceService
from opensignify.domain.enums import InvoiceStatus
from opensignify.domain.formatting import format_amount, format_quantity
from opensignify.domain.models import InvoiceDraft, InvoiceRecord, Signature
from opensignify.exceptions import NotificationError, OpenSignifyError, ValidationError
from opensignify.notifications.notifier import create_notifier
from opensignify.signature.capture import CaptureSurface, typed_signature
from opensignify.storage.database.base import init_db
from opensignify.storage.repository import SqlAlchemyInvoiceStore
from opensignify.suggestions import SuggestionService, create_provider
from opensignify.utils.async_bridge import run_async
from opensignify.utils.config import get_settings
from opensignify.utils.datetime import format_long_date, format_long_datetime

app = typer.Typer()
console = Console()

T = TypeVar("T")

STATUS_COLORS = {
    InvoiceStatus.DRAFT: "dim",
    InvoiceStatus.PENDING: "yellow",
    InvoiceStatus.SIGNED: "green",
}

ActorOption = typer.Option(
    None,
    "--as",
    help="Caller identity (default: OPENSIGNIFY_CURRENT_USER_ID)",
)


def build_service() -> InvoiceService:
    """Service wired to the configured database and notifier."""
    settings = get_settings()
    settings.ensure_dirs()
    init_db(settings.resolved_database_url)

    event_bus = register_default_listeners(GlobalEventBus())
    return InvoiceService(
        SqlAlchemyInvoiceStore(),
        settings=settings,
        notifier=create_notifier(settings),
        event_bus=event_bus,
    )


def resolve_actor(actor: str | None) -> str:
    actor = actor or get_settings().current_user_id
    if not actor:
        console.print(
            "[red]No identity given. Use --as or set OPENSIGNIFY_CURRENT_USER_ID.[/red]"
        )
        raise typer.Exit(1)
    return actor


def run(coro: Coroutine[Any, Any, T], *, retry_hint: str | None = None) -> T:
    """Run a service call, turning domain errors into a red message and exit code 1.

    ``retry_hint`` is printed after a failed notification.
    """
    try:
        return run_async(coro)
    except NotificationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        if retry_hint:
            console.print(f"[yellow]{retry_hint}[/yellow]")
        raise typer.Exit(1) from e
    except ValidationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        for field, message in sorted(e.violations.items()):
            console.print(f"  [red]- {field}: {message}[/red]")
        raise typer.Exit(1) from e
    except OpenSignifyError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from e


def parse_items(values: list[str]) -> list[dict[str, str]]:
    """Split ``DESCRIPTION|QTY|UNIT_PRICE`` options into line item fields."""
    items: list[dict[str, str]] = []
    violations: dict[str, str] = {}
    for i, value in enumerate(values):
        parts = value.rsplit("|", 2)
        if len(parts) != 3:
            violations[f"items.{i}"] = "must be DESCRIPTION|QTY|UNIT_PRICE"
            continue
        description, quantity, unit_price = parts
        items.append({"description": description, "quantity": quantity, "unit_price": unit_price})
    if violations:
        raise ValidationError("Line items are invalid", violations=violations)
    return items


def _status(record: InvoiceRecord) -> str:
    color = STATUS_COLORS.get(record.status, "white")
    return f"[{color}]{record.status}[/{color}]"


def _details_table(record: InvoiceRecord) -> Table:
    table = Table(title=f"Invoice {record.invoice_number}", show_header=False)
    table.add_column("Field", style="cyan", width=16)
    table.add_column("Value", style="white")

    table.add_row("ID", record.id or "")
    table.add_row("Status", _status(record))
    table.add_row("Date", format_long_date(record.invoice_date))
    table.add_row("From", f"{record.sender_name} <{record.sender_email}>")
    if record.sender_address:
        table.add_row("Address", record.sender_address)
    if record.sender_phone:
        table.add_row("Phone", record.sender_phone)
    table.add_row("To", f"{record.recipient_name} <{record.recipient_email}>")
    table.add_row("Description", record.description)
    for item in record.items:
        table.add_row(
            "  Item",
            f"{item.description} (x{format_quantity(item.quantity)})  "
            f"{format_amount(item.total, record.currency)}",
        )
    table.add_row("[bold]Total[/bold]", f"[bold]{format_amount(record.amount, record.currency)}[/bold]")
    if record.signed_at and record.signature:
        table.add_row("Signed", f"{format_long_datetime(record.signed_at)} ({record.signature.kind})")
    return table


@app.command("create")
def create_invoice(
    sender_name: str = typer.Option(..., "--sender-name", prompt="Your name"),
    sender_email: str = typer.Option(..., "--sender-email", prompt="Your e-mail"),
    recipient_name: str = typer.Option(..., "--recipient-name", prompt="Recipient name"),
    recipient_email: str = typer.Option(..., "--recipient-email", prompt="Recipient e-mail"),
    description: str = typer.Option(..., "--description", prompt="Description"),
    amount: str = typer.Option(..., "--amount", prompt="Amount"),
    currency: str = typer.Option("USD", "--currency", help="INR, USD, EUR, GBP, AUD or CAD"),
    invoice_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Invoice date (default: today)"
    ),
    sender_address: str | None = typer.Option(None, "--sender-address"),
    sender_phone: str | None = typer.Option(None, "--sender-phone"),
    items: list[str] | None = typer.Option(
        None,
        "--item",
        help="Line item as DESCRIPTION|QTY|UNIT_PRICE (repeatable)",
    ),
    actor: str | None = ActorOption,
) -> None:
    """Create a draft invoice."""
    owner = resolve_actor(actor)
    service = build_service()

    async def _create() -> InvoiceRecord:
        draft = InvoiceDraft.parse(
            {
                "sender_name": sender_name,
                "sender_email": sender_email,
                "sender_address": sender_address,
                "sender_phone": sender_phone,
                "recipient_name": recipient_name,
                "recipient_email": recipient_email,
                "description": description,
                "amount": amount,
                "currency": currency,
                "invoice_date": invoice_date.date() if invoice_date else date.today(),
                "items": parse_items(items or []),
            }
        )
        return await service.create(draft, owner)

    record = run(_create())

    console.print(f"\n[bold green]✓ Invoice {record.invoice_number} created[/bold green]")
    console.print(_details_table(record))
    console.print(f"\n[dim]Send it with: opensignify invoice send {record.id}[/dim]")


@app.command("list")
def list_invoices(
    limit: int | None = typer.Option(None, "--limit", "-l", help="Max results"),
    actor: str | None = ActorOption,
) -> None:
    """List your most recent invoices."""
    owner = resolve_actor(actor)
    service = build_service()
    records = run(service.list_for_owner(owner, limit))

    if not records:
        console.print("[yellow]No invoices found[/yellow]")
        return

    table = Table(title=f"Invoices ({len(records)})", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Number", style="white", width=14)
    table.add_column("Date", style="white")
    table.add_column("Recipient", style="bold white")
    table.add_column("Total", style="green", justify="right")
    table.add_column("Status", width=10)

    for r in records:
        table.add_row(
            r.id or "",
            r.invoice_number,
            r.invoice_date.isoformat(),
            r.recipient_name[:30],
            format_amount(r.amount, r.currency),
            _status(r),
        )
    console.print(table)


@app.command("show")
def show_invoice(
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    actor: str | None = ActorOption,
) -> None:
    """Show invoice details."""
    owner = resolve_actor(actor)
    service = build_service()
    record = run(service.get(invoice_id, owner))
    console.print(_details_table(record))


@app.command("send")
def send_invoice(
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    embed: bool = typer.Option(False, "--embed", help="Embed the invoice in the link"),
    actor: str | None = ActorOption,
) -> None:
    """Dispatch a draft to its recipient for signature."""
    owner = resolve_actor(actor)
    service = build_service()
    record = run(
        service.dispatch(invoice_id, owner, embed_record=embed),
        retry_hint=(
            "The invoice is pending but the recipient was not notified. "
            f"Retry with: opensignify invoice notify {invoice_id}"
        ),
    )

    console.print(
        f"[green]✓ Invoice {record.invoice_number} sent to {record.recipient_email}[/green]"
    )
    console.print(f"Signing link: {service.signing_link(record, embed=embed)}")


@app.command("notify")
def notify_recipient(
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    embed: bool = typer.Option(False, "--embed", help="Embed the invoice in the link"),
    actor: str | None = ActorOption,
) -> None:
    """Send the signing request for a pending invoice again."""
    owner = resolve_actor(actor)
    service = build_service()
    record = run(service.notify(invoice_id, owner, embed_record=embed))

    console.print(
        f"[green]✓ Signing request for {record.invoice_number} "
        f"sent to {record.recipient_email}[/green]"
    )


@app.command("suggest")
def suggest_descriptions(
    text: str = typer.Argument("", help="What you have typed so far"),
    limit: int = typer.Option(5, "--limit", "-l", help="Max suggestions"),
    provider: str | None = typer.Option(
        None, "--provider", help="history or ollama (default: OPENSIGNIFY_SUGGEST_PROVIDER)"
    ),
    actor: str | None = ActorOption,
) -> None:
    """Suggest descriptions from your previous invoices."""
    owner = resolve_actor(actor)
    settings = get_settings()
    settings.ensure_dirs()
    init_db(settings.resolved_database_url)

    async def _suggest() -> list[str]:
        service = SuggestionService(
            SqlAlchemyInvoiceStore(),
            settings=settings,
            provider=create_provider(provider, settings),  # type: ignore[arg-type]
        )
        return await service.suggest(owner, text, limit)

    suggestions = run(_suggest())

    if not suggestions:
        console.print("[yellow]No suggestions[/yellow]")
        return
    for suggestion in suggestions:
        console.print(f"  • {suggestion}")


@app.command("link")
def show_link(
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    embed: bool = typer.Option(False, "--embed", help="Embed the invoice in the link"),
    actor: str | None = ActorOption,
) -> None:
    """Print the shareable signing link."""
    owner = resolve_actor(actor)
    service = build_service()
    record = run(service.get(invoice_id, owner))
    console.print(service.signing_link(record, embed=embed), soft_wrap=True)


def _load_signature(
    typed: str | None, strokes_file: Path | None, width: int, height: int
) -> tuple[Signature | None, str | None]:
    """Signature from a typed name or a JSON stroke file, plus the surface baseline."""
    if typed is not None and strokes_file is not None:
        console.print("[red]Use either --typed or --strokes, not both[/red]")
        raise typer.Exit(1)

    if typed is not None:
        state = typed_signature(typed)
        return (None if state.is_empty else state.to_signature()), None

    if strokes_file is None:
        console.print("[red]Provide a signature with --typed or --strokes[/red]")
        raise typer.Exit(1)

    try:
        strokes = json.loads(strokes_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read strokes: {e}[/red]")
        raise typer.Exit(1) from e

    surface = CaptureSurface.from_strokes(strokes, width=width, height=height)
    state = surface.current_state()
    return (None if state.is_empty else state.to_signature()), surface.baseline


@app.command("sign")
def sign_invoice(
    target: str = typer.Argument(..., help="Invoice ID or signing link"),
    typed: str | None = typer.Option(None, "--typed", help="Sign with a typed name"),
    strokes: Path | None = typer.Option(
        None,
        "--strokes",
        exists=True,
        dir_okay=False,
        help="JSON file with drawn strokes: [[[x, y], ...], ...]",
    ),
    width: int = typer.Option(600, "--width", help="Capture surface width"),
    height: int = typer.Option(200, "--height", help="Capture surface height"),
) -> None:
    """Sign a pending invoice as its recipient.

    Holding the invoice id or link is enough; no identity is required.
    """
    signature, baseline = _load_signature(typed, strokes, width, height)
    service = build_service()

    if "/sign-invoice/" in target:
        record = run(service.sign_from_link(target, signature, blank_baseline=baseline))
    else:
        record = run(service.sign(target, signature, blank_baseline=baseline, via_link=True))

    console.print(f"[bold green]✓ Invoice {record.invoice_number} signed[/bold green]")


@app.command("pdf")
def render_pdf(
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    output: Path | None = typer.Option(
        None, "--output", "-o", file_okay=False, help="Output directory"
    ),
    actor: str | None = ActorOption,
) -> None:
    """Render an invoice to PDF."""
    owner = resolve_actor(actor)
    service = build_service()
    path = run(service.render(invoice_id, owner, output))
    console.print(f"[green]✓ PDF written to {path}[/green]")
