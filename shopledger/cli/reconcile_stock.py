# shopledger/cli/reconcile_stock.py
"""
Compare inventory stock against what transaction history says it should be.

    python -m shopledger.cli.reconcile_stock            # report only
    python -m shopledger.cli.reconcile_stock --apply    # write expected stock back
"""
import asyncio
import logging

import click
from tabulate import tabulate

from shopledger.core.config import get_settings
from shopledger.database import create_engine_from_settings, create_session_factory
from shopledger.services.backend import build_sql_backend
from shopledger.services.stock_replay import ReplayReport, StockReplayService

logger = logging.getLogger(__name__)


def print_report(report: ReplayReport) -> None:
    click.echo(f"Items checked: {report.checked}")
    if report.consistent:
        click.echo("Stock matches transaction history.")
    else:
        rows = [
            [d.item_name, d.expected, "missing" if d.missing else d.actual, d.difference]
            for d in report.drift
        ]
        click.echo(tabulate(rows, headers=["Item", "Expected", "Actual", "Difference"], tablefmt="simple"))
    if report.oversold:
        click.echo(f"Sales skipped for lack of stock: {', '.join(report.oversold)}")
    if report.untracked:
        click.echo(f"Not referenced by any transaction: {', '.join(report.untracked)}")
    if report.repaired:
        click.echo(f"Repaired: {', '.join(report.repaired)}")


async def _reconcile(apply: bool) -> ReplayReport:
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    if engine is None:
        raise click.ClickException("DATABASE_URL is not set")
    try:
        backend = build_sql_backend(create_session_factory(engine))
        service = StockReplayService(backend.transactions, backend.ledger)
        return await (service.repair() if apply else service.check())
    finally:
        await engine.dispose()


@click.command()
@click.option("--apply", is_flag=True, help="Write the replayed stock levels back to inventory")
def reconcile_stock(apply):
    """Replay transaction history and report (or repair) stock drift."""
    report = asyncio.run(_reconcile(apply))
    print_report(report)
    if not report.consistent and not apply:
        raise SystemExit(1)


if __name__ == "__main__":
    reconcile_stock()
