"""Admin CLI for the billing service using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Load .env from project directory before settings are first read
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path, override=False)

from tiffin.utils import setup_logging  # noqa: E402

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="tiffin",
    help="Smart Tiffin billing - plan seeding and subscription sweeps.",
    add_completion=False,
)
console = Console()


def _format_price(amount: int | None) -> str:
    if amount is None:
        return "-"
    return f"Rs. {amount // 100:,}"


async def _seed_plans(region: str):
    from tiffin.db.session import engine, async_session_factory
    from tiffin.services.plan_catalog import upsert_plan

    try:
        async with async_session_factory() as db:
            return await upsert_plan(db, region)
    finally:
        await engine.dispose()


async def _list_plans(region: str):
    from tiffin.db.session import engine, async_session_factory
    from tiffin.services.plan_catalog import list_plans

    try:
        async with async_session_factory() as db:
            return await list_plans(db, region)
    finally:
        await engine.dispose()


async def _sweep():
    from tiffin.db.session import engine, async_session_factory
    from tiffin.services.sweeper import run_sweep

    try:
        async with async_session_factory() as db:
            return await run_sweep(db)
    finally:
        await engine.dispose()


@app.command("seed-plans")
def seed_plans(
    region: Annotated[str, typer.Option(help="Region code to seed")] = "PK",
    verbose: Annotated[bool, typer.Option(help="Verbose output")] = False,
):
    """
    Create or refresh the active premium plan for a region.

    Safe to run repeatedly: the existing active plan is updated in place.
    """
    setup_logging(verbose)
    try:
        plan, created = asyncio.run(_seed_plans(region))
    except Exception as e:
        console.print(f"[{STYLE_ERROR}]Seeding failed: {e}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    verb = "Created" if created else "Updated"
    console.print(f"[{STYLE_SUCCESS}]{verb} plan {plan.id} ({plan.name}) for {region}[/{STYLE_SUCCESS}]")


@app.command("plans")
def show_plans(
    region: Annotated[str, typer.Option(help="Region code")] = "PK",
):
    """Show the active plans for a region."""
    setup_logging(False)
    plans = asyncio.run(_list_plans(region))
    if not plans:
        console.print(f"[{STYLE_WARNING}]No active plans for {region}. Run `tiffin seed-plans`.[/{STYLE_WARNING}]")
        raise typer.Exit(1)

    table = Table(title=f"Plans ({region})", header_style=STYLE_HEADER)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("1 Month", justify="right")
    table.add_column("2 Months", justify="right")
    table.add_column("4 Months", justify="right")
    table.add_column("Boost")
    for plan in plans:
        table.add_row(
            str(plan.id),
            plan.name,
            _format_price(plan.price_monthly),
            _format_price(plan.price_quarterly),
            _format_price(plan.price_yearly),
            f"{plan.boost_duration_days}d" if plan.includes_boost else "no",
        )
    console.print(table)


@app.command()
def sweep(
    verbose: Annotated[Optional[bool], typer.Option(help="Verbose output")] = None,
):
    """
    Run one grace-period and expiry sweep now.

    Same work as the scheduled job and the cron endpoint.
    """
    setup_logging(bool(verbose))
    console.print(f"[{STYLE_HEADER}]Running sweep...[/{STYLE_HEADER}]")
    result = asyncio.run(_sweep())

    console.print(f"  Expired subscriptions: {result.expired_subscriptions}")
    console.print(f"  Suspended kitchens:    {result.suspended_kitchens}")
    console.print(f"  Expired boosts:        {result.expired_boosts}")
    if result.failures:
        console.print(f"[{STYLE_WARNING}]  Failures: {result.failures} (see log)[/{STYLE_WARNING}]")
        raise typer.Exit(1)
    console.print(f"[{STYLE_SUCCESS}]Sweep complete[/{STYLE_SUCCESS}]")


@app.command()
def token(
    user_id: Annotated[int, typer.Argument(help="User id to issue the token for")],
):
    """Issue a bearer token for local testing."""
    from tiffin.services.auth_service import create_jwt

    console.print(create_jwt(user_id))


if __name__ == "__main__":
    app()
