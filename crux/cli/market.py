"""Market calendar commands."""

from __future__ import annotations

from datetime import datetime

import typer

from crux.core.market import US_EQUITY_CALENDAR, utc_now

from .utils import VALIDATION_EXIT_CODE, emit_error, render_rows

market_app = typer.Typer(help="Market calendar operations.")


def register(app: typer.Typer) -> None:
    app.add_typer(market_app, name="market", help="Inspect US equity market hours")


@market_app.command("status")
def status_command(
    ctx: typer.Context,
    at: str | None = typer.Option(None, "--at", help="ISO-8601 timestamp to evaluate (naive values are UTC)."),
) -> None:
    """Report whether the market is open now or at ``--at``."""
    if at is None:
        moment = utc_now()
    else:
        try:
            moment = datetime.fromisoformat(at)
        except ValueError as exc:
            emit_error(f"invalid timestamp: {at}", "INVALID_TIMESTAMP")
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    render_rows(ctx, [US_EQUITY_CALENDAR.status(moment).as_dict()])
