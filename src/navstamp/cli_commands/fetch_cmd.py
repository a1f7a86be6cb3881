from __future__ import annotations

from typing import Callable

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


def _run_job(label: str, job: Callable[..., object]) -> None:
    from navstamp.config import load_settings
    from navstamp.errors import NavStampError

    c = Console()
    try:
        job(load_settings())
    except NavStampError as e:
        c.print(f"[red]❌ {label} FAILED:[/red] {e}")
        raise typer.Exit(code=1)
    c.print(f"[green]✅ {label} OK[/green]")


def register(app: typer.Typer, fetch_app: typer.Typer) -> None:
    @fetch_app.command("funding")
    def fetch_funding():
        """Drift funding rates (daily average + annualized %) for SOL/BTC/ETH perps."""
        from navstamp.data.drift_funding import update_funding_rates

        _run_job("Drift funding rates", update_funding_rates)

    @fetch_app.command("jlp")
    def fetch_jlp():
        """JLP pool snapshot: NAV, AUM, fee APY, trader exposure."""
        from navstamp.data.jlp import update_jlp_snapshots

        _run_job("JLP snapshot", update_jlp_snapshots)

    @fetch_app.command("trader-pnl")
    def fetch_trader_pnl():
        """JLP trader P&L and open-interest snapshot."""
        from navstamp.data.jlp import update_trader_pnl

        _run_job("Trader P&L", update_trader_pnl)

    @fetch_app.command("fees")
    def fetch_fees():
        """Protocol fee series from DefiLlama (last 90 days)."""
        from navstamp.data.defillama import update_fees

        _run_job("Fee data", update_fees)

    @app.command("daily")
    def daily():
        """Run every fetch job plus the NAV stamp; exit status = number of failed jobs."""
        from navstamp.config import load_settings
        from navstamp.pipeline import run_daily

        report = run_daily(load_settings())
        tbl = Table(title="Daily data fetch")
        tbl.add_column("job", style="bold")
        tbl.add_column("result")
        for name, result in report.results.items():
            style = "green" if result == "ok" else ("yellow" if "non-blocking" in result else "red")
            tbl.add_row(name, f"[{style}]{result}[/{style}]")
        c = Console()
        c.print(tbl)
        c.print(Panel(f"{report.errors} error(s)", title="Done", expand=False))
        raise typer.Exit(code=report.errors)
