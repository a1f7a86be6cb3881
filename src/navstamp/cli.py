"""
navstamp CLI

Primary commands:
- navstamp nav stamp / show / calibration
- navstamp fetch funding / jlp / trader-pnl / fees
- navstamp daily
"""
from __future__ import annotations

import typer

app = typer.Typer(
    add_completion=False,
    help="""navstamp — Vault NAV stamping & dashboard data

\b
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
NAV
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  navstamp nav stamp           Official daily share price
  navstamp nav show            Recent NAV records
  navstamp nav calibration     Secondary-source ratios

\b
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
DATA
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  navstamp fetch funding       Drift funding rates
  navstamp fetch jlp           JLP pool snapshot
  navstamp daily               Every job + fetch status

\b
Run 'navstamp <command> --help' for details.
""",
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    from navstamp.utils.logging import setup_logging

    setup_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# SUBGROUPS
# ---------------------------------------------------------------------------

nav_app = typer.Typer(add_completion=False, help="Official NAV history")
app.add_typer(nav_app, name="nav")

fetch_app = typer.Typer(add_completion=False, help="Dashboard data fetch jobs")
app.add_typer(fetch_app, name="fetch")


# ---------------------------------------------------------------------------
# COMMAND REGISTRATION
# ---------------------------------------------------------------------------

_COMMANDS_REGISTERED = False


def _register_commands() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from navstamp.cli_commands.fetch_cmd import register as register_fetch
    from navstamp.cli_commands.nav_cmd import register as register_nav

    register_nav(nav_app)
    register_fetch(app, fetch_app)

    _COMMANDS_REGISTERED = True


def main():
    _register_commands()
    app()


# Register on import
_register_commands()


if __name__ == "__main__":
    main()
