"""CLI for MoneyFusion payments.

Operator commands for test payments, status checks and the pending sweep.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fusion_payments import __version__
from fusion_payments.config import get_settings
from fusion_payments.core.exceptions import NotFoundError, PaymentError, ValidationError
from fusion_payments.core.payloads import LineItem, PaymentRequest, to_decimal
from fusion_payments.database.connection import init_db
from fusion_payments.monitoring.logging import setup_logging
from fusion_payments.services import PaymentServices
from fusion_payments.workers.reconciliation_worker import run_pending_sweep

T = TypeVar("T")

app = typer.Typer(
    name="fusion-payments",
    help="MoneyFusion payments - operator tools",
    add_completion=False,
)

console = Console()


def _run(action: Callable[[PaymentServices], Awaitable[T]]) -> T:
    """Build the services, run one async action and release everything."""
    settings = get_settings()
    setup_logging(settings)

    async def runner() -> T:
        services = PaymentServices.from_settings(settings)
        try:
            return await action(services)
        finally:
            await services.close()

    return asyncio.run(runner())


def _state_style(state: str) -> str:
    return {"paid": "green", "failed": "red", "cancelled": "yellow"}.get(state, "blue")


@app.command()
def check(
    token: str = typer.Argument(..., help="Payment token"),
) -> None:
    """Refresh a payment from MoneyFusion and show its state."""

    async def action(services: PaymentServices) -> dict[str, Any]:
        return await services.engine.check_status(token)

    try:
        view = _run(action)
    except NotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except PaymentError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(1)

    state = view["state"]
    lines = [
        f"[bold]State:[/bold] [{_state_style(state)}]{state}[/{_state_style(state)}]",
        f"[bold]Amount:[/bold] {view['amount']}",
        f"[bold]Fee:[/bold] {view['fee']}",
        f"[bold]Transaction:[/bold] {view['transaction_ref'] or '-'}",
        f"[bold]Method:[/bold] {view['method'] or '-'}",
        f"[bold]Paid at:[/bold] {view['paid_at'] or '-'}",
    ]
    console.print(Panel("\n".join(lines), title=f"Payment {token}", border_style="green"))

    if view["source"] == "local_fallback":
        console.print("[yellow]MoneyFusion unreachable; showing the last known local state.[/yellow]")


@app.command()
def create(
    amount: str = typer.Option("5000", "--amount", "-a", help="Amount in FCFA (at least 100)"),
    client: str = typer.Option("Client Test", "--client", "-c", help="Customer name"),
    phone: Optional[str] = typer.Option(None, "--phone", "-p", help="Customer phone number"),
) -> None:
    """Create a test payment on MoneyFusion and print its token and URL."""
    try:
        total = to_decimal(amount, "amount")
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    request = PaymentRequest(
        amount=total,
        line_items=[LineItem(name="Article de test", unit_price=total, quantity=1)],
        customer_name=client,
        customer_phone=phone,
    )

    async def action(services: PaymentServices) -> dict[str, Any]:
        return await services.engine.create_payment(request)

    console.print("[bold]Creating payment...[/bold]")
    try:
        result = _run(action)
    except PaymentError as e:
        console.print(f"[red]✗[/red] Payment creation failed: {e}")
        raise typer.Exit(1)

    console.print("[green]✓[/green] Payment created")
    console.print(f"[bold]Token:[/bold] {result['token']}")
    console.print(f"[bold]URL:[/bold] {result['payment_url']}")


@app.command()
def sweep(
    older_than: Optional[int] = typer.Option(
        None,
        "--older-than",
        "-o",
        help="Only poll payments pending for at least this many seconds",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        help="Maximum number of payments to poll",
    ),
) -> None:
    """Poll MoneyFusion for payments stuck in pending."""
    console.print("[bold]Sweeping pending payments...[/bold]\n")

    async def action(services: PaymentServices) -> dict[str, Any]:
        return await run_pending_sweep(services, older_than_seconds=older_than, limit=limit)

    try:
        summary = _run(action)
    except PaymentError as e:
        console.print(f"[red]✗[/red] Sweep failed: {e}")
        raise typer.Exit(1)

    table = Table(title="Pending sweep")
    table.add_column("Checked", justify="right")
    table.add_column("Transitioned", justify="right", style="green")
    table.add_column("Fallbacks", justify="right", style="yellow")
    table.add_row(
        str(summary["checked"]), str(summary["transitioned"]), str(summary["fallbacks"])
    )
    console.print(table)


@app.command("init-db")
def init_database() -> None:
    """Create the payment tables if they do not exist."""

    async def action(services: PaymentServices) -> None:
        await init_db(services.db_engine)

    _run(action)
    console.print("[green]✓[/green] Database tables ready")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
) -> None:
    """MoneyFusion payments - operator tools."""
    if version:
        console.print(f"fusion-payments v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
