"""Operator CLI: run maintenance jobs by hand and inspect a user's subscription state."""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import InterfaceError, OperationalError

from learngate.config import get_settings
from learngate.utils import setup_logging

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"

app = typer.Typer(
    name="learngate",
    help="LearnGate subscription maintenance commands.",
    add_completion=False,
)
console = Console()

Verbose = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")]


@app.command()
def reconcile(verbose: Verbose = False):
    """
    Expire lapsed subscriptions now.

    Same job the worker runs every hour.
    """
    from learngate.scheduler_tasks import reconcile_subscriptions

    setup_logging(verbose)
    try:
        report = asyncio.run(reconcile_subscriptions())
    except (OperationalError, InterfaceError) as e:
        console.print(f"[{STYLE_ERROR}]Database unavailable, reconciliation aborted: {e.orig}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    console.print(f"[{STYLE_HEADER}]Reconciliation finished[/{STYLE_HEADER}]")
    console.print(f"  checked:  {report.checked}")
    console.print(f"  expired:  {report.expired}")
    console.print(f"  skipped:  {report.skipped}")
    if report.failed:
        console.print(f"[{STYLE_ERROR}]  failed:   {report.failed}[/{STYLE_ERROR}]")
        raise typer.Exit(1)


@app.command()
def purge(
    force: Annotated[bool, typer.Option("--force", "-f", help="Run even if PURGE_ENABLED is false")] = False,
    verbose: Verbose = False,
):
    """
    Delete expired subscriptions and failed payments past retention.
    """
    from learngate.scheduler_tasks import purge_stale_records

    setup_logging(verbose)
    if not get_settings().purge_enabled and not force:
        console.print(f"[{STYLE_WARNING}]Purge is disabled. Use --force to run anyway.[/{STYLE_WARNING}]")
        raise typer.Exit(1)

    report = asyncio.run(purge_stale_records())
    console.print(
        f"[{STYLE_SUCCESS}]Deleted {report.subscriptions_deleted} subscriptions, "
        f"{report.payments_deleted} payments[/{STYLE_SUCCESS}]"
    )


@app.command()
def plans():
    """
    Show the plan catalog, seeding the defaults if it is empty.
    """
    from learngate.db.session import async_session_factory
    from learngate.services.plan_service import ensure_default_plans

    async def _load():
        async with async_session_factory() as db:
            return await ensure_default_plans(db)

    table = Table(title="Plans")
    table.add_column("Type", style="cyan")
    table.add_column("Price", justify="right")
    table.add_column("Description")
    for plan in asyncio.run(_load()):
        table.add_row(plan.plan_type, str(plan.price), plan.description)
    console.print(table)


@app.command()
def status(user_id: Annotated[int, typer.Argument(help="User id")]):
    """
    Show a user's funnel position and next action.

    Runs the same self-healing status check as the API.
    """
    from learngate.db.session import async_session_factory
    from learngate.errors import SubscriptionError
    from learngate.services.subscription_service import check_status

    async def _check():
        async with async_session_factory() as db:
            return await check_status(db, user_id)

    try:
        result = asyncio.run(_check())
    except SubscriptionError as e:
        console.print(f"[{STYLE_ERROR}]{e.message}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    console.print(f"[{STYLE_HEADER}]User {user_id}[/{STYLE_HEADER}]")
    console.print(f"  status:          {result.status.value}")
    console.print(f"  next action:     {result.next_action.value}")
    console.print(f"  can start trial: {result.can_start_trial}")
    if result.subscription:
        sub = result.subscription
        console.print(
            f"  subscription #{sub.id}: {sub.status} / {sub.payment_status}, "
            f"{sub.plan_type}, {sub.remaining_days} days left"
        )


if __name__ == "__main__":
    app()
