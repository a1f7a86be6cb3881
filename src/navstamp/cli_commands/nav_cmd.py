from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


def register(nav_app: typer.Typer) -> None:
    calibration_app = typer.Typer(add_completion=False, help="Versioned normalization ratios for the secondary source")
    nav_app.add_typer(calibration_app, name="calibration")

    @nav_app.command("stamp")
    def nav_stamp(
        history_path: str = typer.Option("", "--history-path", help="Override the NAV history JSON path."),
        calibration_path: str = typer.Option("", "--calibration-path", help="Override the calibration JSON path."),
        timeout: float = typer.Option(0.0, "--timeout", help="Override the overall run budget in seconds."),
        json_out: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    ):
        """Stamp today's official NAV (run once per day at close of business)."""
        from navstamp.config import load_settings
        from navstamp.nav.stamp import run_stamp
        from navstamp.utils.deadline import Deadline
        from navstamp.utils.logging import log_event

        settings = load_settings()
        outcome = run_stamp(
            settings,
            deadline=Deadline(timeout) if timeout > 0 else None,
            history_path=history_path or None,
            calibration_path=calibration_path or None,
        )

        if json_out:
            log_event(
                "nav_stamp",
                {
                    "status": outcome.status,
                    "date": outcome.date,
                    "record": outcome.record,
                    "warnings": outcome.warnings,
                    "error": outcome.error,
                },
            )
            raise typer.Exit(code=outcome.exit_code)

        c = Console()
        day = outcome.date.isoformat()
        if outcome.status != "ok" or outcome.record is None:
            c.print(Panel(f"[red]{outcome.status.upper()}[/red]\n{outcome.error}", title=f"NAV stamp {day}", expand=False))
            raise typer.Exit(code=outcome.exit_code)

        rec = outcome.record
        lines = [f"Share Price: ${rec.share_price:.6f}"]
        if rec.total_value_locked is not None:
            lines.append(f"TVL (KV1):   ${rec.total_value_locked:,.0f}")
        if rec.day_change_pct is not None:
            lines.append(f"Day Change:  {rec.day_change_pct:+.4f}%")
        lines.append(f"Records:     {outcome.history_size} ({'updated' if outcome.replaced else 'added'} {day})")
        for w in outcome.warnings:
            lines.append(f"[yellow]⚠ {w}[/yellow]")
        c.print(Panel("\n".join(lines), title=f"NAV STAMP — {day}", expand=False))

    @nav_app.command("show")
    def nav_show(
        history_path: str = typer.Option("", "--history-path", help="Override the NAV history JSON path."),
        tail: int = typer.Option(10, "--tail", help="Show last N records."),
    ):
        """Print the most recent NAV records."""
        from navstamp.config import load_settings
        from navstamp.errors import PersistenceFailure
        from navstamp.nav.store import load_history

        settings = load_settings()
        path = history_path or settings.history_path
        c = Console()
        try:
            history = load_history(path)
        except PersistenceFailure as e:
            c.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        if not history:
            c.print(Panel(f"No NAV records yet.\nhistory: {path}", title="NAV", expand=False))
            raise typer.Exit(code=0)

        tbl = Table(title=f"NAV history ({len(history)} records)")
        tbl.add_column("date", style="bold")
        tbl.add_column("share price", justify="right")
        tbl.add_column("day change", justify="right")
        tbl.add_column("TVL", justify="right")
        tbl.add_column("provenance")
        for r in history[-max(1, int(tail)) :]:
            chg = r.day_change_pct
            style = "green" if (chg or 0) >= 0 else "red"
            tbl.add_row(
                r.date_key,
                "—" if r.share_price is None else f"{r.share_price:.6f}",
                "—" if chg is None else f"[{style}]{chg:+.4f}%[/{style}]",
                "—" if r.total_value_locked is None else f"${r.total_value_locked:,.0f}",
                r.provenance,
            )
        c.print(tbl)

    @calibration_app.command("list")
    def calibration_list(
        calibration_path: str = typer.Option("", "--calibration-path", help="Override the calibration JSON path."),
    ):
        """List calibration entries and their effective ranges."""
        from navstamp.config import load_settings
        from navstamp.nav.calibration import load_calibration

        settings = load_settings()
        path = calibration_path or settings.calibration_path
        book = load_calibration(path)
        c = Console()
        if not len(book):
            c.print(Panel(f"No calibration entries.\nfile: {path}", title="Calibration", expand=False))
            raise typer.Exit(code=0)
        tbl = Table(title="Calibration")
        tbl.add_column("version", style="bold")
        tbl.add_column("ratio", justify="right")
        tbl.add_column("from")
        tbl.add_column("to")
        tbl.add_column("note")
        for e in book.entries:
            tbl.add_row(
                e.version,
                f"{e.ratio:.6f}",
                e.effective_from.isoformat(),
                e.effective_to.isoformat() if e.effective_to else "open",
                e.note,
            )
        c.print(tbl)

    @calibration_app.command("add")
    def calibration_add(
        version: str = typer.Argument(..., help="Version label, e.g. 2026-03"),
        ratio: float = typer.Argument(..., help="Multiplier applied to the secondary source's raw share price."),
        effective_from: str = typer.Option(..., "--from", help="First day (YYYY-MM-DD) the ratio applies."),
        note: str = typer.Option("", "--note"),
        calibration_path: str = typer.Option("", "--calibration-path", help="Override the calibration JSON path."),
    ):
        """Add a calibration; the previous open-ended entry is closed the day before."""
        from navstamp.config import load_settings
        from navstamp.nav.calibration import CalibrationEntry, load_calibration, save_calibration
        from navstamp.utils.dates import parse_iso_date

        day = parse_iso_date(effective_from)
        if day is None:
            raise typer.BadParameter(f"Bad date '{effective_from}'. Expected YYYY-MM-DD.")

        settings = load_settings()
        path = calibration_path or settings.calibration_path
        book = load_calibration(path)
        try:
            entry = book.add(CalibrationEntry(version=version, ratio=float(ratio), effective_from=day, note=note))
        except ValueError as e:
            raise typer.BadParameter(str(e))
        save_calibration(book, path)
        Console().print(
            Panel(
                f"Added {entry.version}: ratio={entry.ratio:.6f} from {entry.effective_from.isoformat()}\nfile: {path}",
                title="Calibration",
                expand=False,
            )
        )
