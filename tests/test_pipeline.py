from __future__ import annotations

import json

from navstamp.pipeline import STATUS_FILE, Step, default_steps, run_daily


def _boom(settings):
    raise RuntimeError("upstream down")


def test_run_daily_isolates_failures_and_writes_status(settings):
    ran = []
    steps = [
        Step("drift", "Drift", lambda s: ran.append("drift")),
        Step("jlp", "JLP", _boom),
        Step("nav", "NAV", lambda s: ran.append("nav")),
        Step("fees", "Fees", _boom, counts=False),
    ]
    report = run_daily(settings, steps=steps)

    assert ran == ["drift", "nav"]
    assert report.errors == 1
    assert report.results == {
        "drift": "ok",
        "jlp": "failed",
        "nav": "ok",
        "fees": "failed (non-blocking)",
    }

    status = json.loads((settings.data_dir / STATUS_FILE).read_text())
    assert status["errors"] == 1
    assert set(status["sources"]) == {"drift", "jlp", "traderPnl", "nav", "fees"}
    assert status["sources"]["nav"] == "missing"


def test_status_reports_mtime_of_existing_outputs(settings):
    settings.data_dir.mkdir(parents=True)
    settings.history_path.write_text("[]")
    run_daily(settings, steps=[])

    status = json.loads((settings.data_dir / STATUS_FILE).read_text())
    assert status["sources"]["nav"] != "missing"
    assert status["sources"]["drift"] == "missing"


def test_default_steps_order():
    steps = default_steps()
    assert [s.name for s in steps] == ["drift", "jlp", "traderPnl", "nav", "fees"]
    assert [s.name for s in steps if not s.counts] == ["fees"]
