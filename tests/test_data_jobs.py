from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from navstamp.data.defillama import FEES_FILE, META_FILE, fee_rows, update_fees
from navstamp.data.drift_funding import OUTPUT_FILE, daily_funding, parse_funding_payload, update_funding_rates
from navstamp.data.jlp import (
    SNAPSHOT_FILE,
    TRADER_PNL_FILE,
    build_jlp_snapshot,
    update_jlp_snapshots,
    update_trader_pnl,
)
from navstamp.data.series import load_accumulated, load_json, merge_by_date
from navstamp.errors import PersistenceFailure, SourceUnavailable

NOW = datetime(2026, 2, 18, 22, 0, tzinfo=timezone.utc)
FEB_18 = 1771372800  # 2026-02-18T00:00:00Z
HOUR = 3600


def _funding(ts, rate, twap=100_000_000):
    return {"ts": str(ts), "fundingRate": str(rate), "oraclePriceTwap": str(twap)}


# =============================================================================
# Series helpers
# =============================================================================

def test_merge_by_date_fresh_rows_win_and_dateless_rows_dropped():
    existing = [{"date": "2026-02-18", "v": 1}, {"date": "2026-02-17", "v": 1}]
    fresh = [{"date": "2026-02-18", "v": 2}, {"v": 3}]
    merged = merge_by_date(existing, fresh)
    assert merged == [{"date": "2026-02-17", "v": 1}, {"date": "2026-02-18", "v": 2}]


def test_load_json_unreadable_returns_default(tmp_path):
    path = tmp_path / "x.json"
    path.write_text("{nope")
    assert load_json(path, {"snapshots": []}) == {"snapshots": []}
    assert load_json(tmp_path / "missing.json", []) == []


# =============================================================================
# Drift funding
# =============================================================================

def test_parse_funding_payload_shapes():
    rec = _funding(FEB_18, 1)
    assert parse_funding_payload([rec]) == [rec]
    assert parse_funding_payload({"fundingRates": [rec]}) == [rec]
    assert parse_funding_payload(rec) == [rec]
    assert parse_funding_payload("garbage") == []


def test_daily_funding_averages_by_utc_date():
    records = [
        _funding(FEB_18, 1_000_000),
        _funding(FEB_18 + HOUR, 3_000_000),
        _funding(FEB_18 + 2 * HOUR, 9_000_000, twap=0),  # bad oracle row, ignored
        _funding(FEB_18 + 24 * HOUR, -1_000_000),
    ]
    rows = daily_funding(records)

    assert [r["date"] for r in rows] == ["2026-02-18", "2026-02-19"]
    # (1e6 / 1e9) / (1e8 / 1e6) = 1e-5 hourly; mean of 1e-5 and 3e-5
    assert rows[0]["avgRate"] == pytest.approx(2e-5)
    assert rows[0]["annualizedPct"] == pytest.approx(17.52)
    assert rows[1]["annualizedPct"] == pytest.approx(-8.76)


def test_daily_funding_empty_or_missing_columns():
    assert daily_funding([]) == []
    assert daily_funding([{"ts": 1}]) == []


def test_update_funding_keeps_stored_series_for_failed_market(settings):
    output = settings.data_dir / OUTPUT_FILE
    output.parent.mkdir(parents=True)
    stored_btc = [{"date": "2026-02-10", "avgRate": 1e-6, "annualizedPct": 0.876}]
    output.write_text(json.dumps({"markets": {"BTC-PERP": stored_btc}}))

    def fake_fetch(settings, index, *, deadline):
        if index == 1:
            raise SourceUnavailable("drift-funding", "HTTP 502")
        return [_funding(FEB_18, 1_000_000)]

    with patch("navstamp.data.drift_funding.fetch_market", side_effect=fake_fetch):
        result = update_funding_rates(settings)

    saved = json.loads(output.read_text())
    assert saved["markets"]["BTC-PERP"] == stored_btc
    assert [r["date"] for r in saved["markets"]["SOL-PERP"]] == ["2026-02-18"]
    assert result["markets"].keys() == {"SOL-PERP", "BTC-PERP", "ETH-PERP"}


def test_update_funding_all_markets_failed_writes_nothing(settings):
    with patch(
        "navstamp.data.drift_funding.fetch_market",
        side_effect=SourceUnavailable("drift-funding", "down"),
    ):
        with pytest.raises(SourceUnavailable):
            update_funding_rates(settings)
    assert not (settings.data_dir / OUTPUT_FILE).exists()


# =============================================================================
# JLP
# =============================================================================

JLP_INFO = {
    "aumUsd": "1500000000000000",
    "jlpPriceUsd": "4500000",
    "jlpApyPct": 12.3,
    "custodies": [
        {"symbol": "SOL", "shortPnlDelta": "2000000000000", "shortTradersHasProfit": True},
        {"symbol": "ETH", "shortPnlDelta": "500000000000", "shortTradersHasProfit": False},
        {"symbol": "USDC", "shortPnlDelta": "999000000000000"},
    ],
}
FEE_DATA = {"total24h": 1_200_000, "totalDataChart": [[FEB_18 - d * 86400, 1_000_000] for d in range(10)]}


def test_build_jlp_snapshot():
    snap = build_jlp_snapshot(JLP_INFO, FEE_DATA, now=NOW, tz="America/New_York")

    assert snap["date"] == "2026-02-18"
    assert snap["aum"] == pytest.approx(1.5e9)
    assert snap["navPrice"] == pytest.approx(4.5)
    assert snap["avgDailyFees7d"] == 1_000_000
    # 1e6 * 0.75 * 365 / 1.5e9 * 100
    assert snap["realTimeFeeApyPct"] == pytest.approx(18.25)
    assert set(snap["traderExposure"]) == {"SOL", "ETH"}
    assert snap["totalTraderPnl"] == pytest.approx(1_500_000)
    assert snap["traderPnlLabel"] == "traders_winning"


def test_build_jlp_snapshot_requires_aum_and_price():
    with pytest.raises(SourceUnavailable):
        build_jlp_snapshot({"aumUsd": 0, "jlpPriceUsd": 1}, FEE_DATA, now=NOW, tz="America/New_York")


def test_update_jlp_snapshots_one_row_per_day(settings):
    def fake_get(url, *, source, deadline, timeout, params=None):
        return JLP_INFO if source == "jlp-info" else FEE_DATA

    with patch("navstamp.data.jlp.get_json", side_effect=fake_get):
        update_jlp_snapshots(settings, now=NOW)
        update_jlp_snapshots(settings, now=NOW)

    saved = json.loads((settings.data_dir / SNAPSHOT_FILE).read_text())
    assert len(saved["snapshots"]) == 1
    assert saved["lastUpdated"] == "2026-02-18T22:00:00.000Z"


def test_update_trader_pnl_appends_by_date(settings):
    info = {"poolNavUsd": "1", "aumUsd": "2", "jlpApyPct": "11.5", "totalOpenInterestUsd": "300000000000000"}
    with patch("navstamp.data.jlp.get_json", return_value=info):
        update_trader_pnl(settings, now=NOW)
        snap = update_trader_pnl(settings, now=datetime(2026, 2, 19, 22, 0, tzinfo=timezone.utc))

    rows = json.loads((settings.data_dir / TRADER_PNL_FILE).read_text())
    assert [r["date"] for r in rows] == ["2026-02-18", "2026-02-19"]
    assert snap["jlpApyPct"] == 11.5
    assert snap["traderPnl"] is None


# =============================================================================
# DefiLlama fees
# =============================================================================

def test_fee_rows_filters_window_and_bad_points():
    chart = [
        [1735689600, 5.0],  # 2025-01-01, outside 90 days
        [FEB_18 - 86400, 100.004],
        [FEB_18, 12345.678],
        ["x", 1],
        [1],
    ]
    rows = fee_rows(chart, now=NOW, keep_days=90)

    assert [r["date"] for r in rows] == ["2026-02-17", "2026-02-18"]
    assert rows[1]["total_fees"] == 12345.68
    assert rows[1]["source"] == "defillama"


def test_update_fees_writes_series_and_meta(settings):
    payload = {"totalDataChart": [[FEB_18, 10.0]]}
    with patch("navstamp.data.defillama.get_json", return_value=payload) as get:
        rows = update_fees(settings, now=NOW)

    assert get.call_args.kwargs["params"] == {"dataType": "dailyFees"}
    assert len(rows) == 1
    assert json.loads((settings.data_dir / FEES_FILE).read_text()) == rows
    meta = json.loads((settings.data_dir / META_FILE).read_text())
    assert meta["feeDays"] == 1
    assert meta["traderPnlAvailable"] is False


# =============================================================================
# Malformed inputs
# =============================================================================

def test_merge_by_date_drops_non_object_rows():
    assert merge_by_date([["2026-02-17", 1]], [{"date": "2026-02-18"}]) == [{"date": "2026-02-18"}]


def test_load_accumulated_refuses_unreadable_or_wrong_shape(tmp_path):
    path = tmp_path / "snap.json"
    assert load_accumulated(path, []) == []

    path.write_text('[{"date": "2026-02-17"}')
    with pytest.raises(PersistenceFailure):
        load_accumulated(path, [])

    path.write_text('{"date": "2026-02-17"}')
    with pytest.raises(PersistenceFailure):
        load_accumulated(path, [])


def test_truncated_trader_pnl_history_is_not_overwritten(settings):
    output = settings.data_dir / TRADER_PNL_FILE
    output.parent.mkdir(parents=True)
    rows = [{"date": f"2026-01-{d:02d}", "aumUsd": "1"} for d in range(1, 29)]
    text = json.dumps(rows, indent=2)[:-20]
    output.write_text(text)

    with patch("navstamp.data.jlp.get_json", return_value={"aumUsd": "2"}):
        with pytest.raises(PersistenceFailure):
            update_trader_pnl(settings, now=NOW)

    assert output.read_text() == text


def test_corrupt_jlp_snapshots_are_not_overwritten(settings):
    output = settings.data_dir / SNAPSHOT_FILE
    output.parent.mkdir(parents=True)
    output.write_text('{"snapshots": [{"date": "2026-02-17"')

    def fake_get(url, *, source, deadline, timeout, params=None):
        return JLP_INFO if source == "jlp-info" else FEE_DATA

    with patch("navstamp.data.jlp.get_json", side_effect=fake_get):
        with pytest.raises(PersistenceFailure):
            update_jlp_snapshots(settings, now=NOW)

    assert output.read_text() == '{"snapshots": [{"date": "2026-02-17"'


@pytest.mark.parametrize(
    "fee_data",
    [
        {"totalDataChart": [[FEB_18, 1.0], [FEB_18]]},
        {"totalDataChart": [5, 6]},
        {"totalDataChart": {"2026-02-18": 1.0}},
    ],
)
def test_build_jlp_snapshot_malformed_fee_chart(fee_data):
    with pytest.raises(SourceUnavailable):
        build_jlp_snapshot(JLP_INFO, fee_data, now=NOW, tz="America/New_York")


def test_build_jlp_snapshot_malformed_custodies():
    info = dict(JLP_INFO, custodies={"SOL": {}})
    with pytest.raises(SourceUnavailable):
        build_jlp_snapshot(info, FEE_DATA, now=NOW, tz="America/New_York")

    info = dict(JLP_INFO, custodies=["SOL", {"symbol": "SOL", "shortPnlDelta": "1000000"}])
    snap = build_jlp_snapshot(info, FEE_DATA, now=NOW, tz="America/New_York")
    assert set(snap["traderExposure"]) == {"SOL"}


def test_update_funding_rebuilds_malformed_stored_file(settings):
    output = settings.data_dir / OUTPUT_FILE
    output.parent.mkdir(parents=True)
    output.write_text(json.dumps({"markets": ["SOL-PERP"]}))

    with patch("navstamp.data.drift_funding.fetch_market", return_value=[_funding(FEB_18, 1_000_000)]):
        result = update_funding_rates(settings)

    assert [r["date"] for r in result["markets"]["SOL-PERP"]] == ["2026-02-18"]


def test_fee_rows_skip_non_numeric_fees():
    rows = fee_rows([[FEB_18, "n/a"], [FEB_18 + 86400, "7.5"]], now=NOW, keep_days=90)
    assert [r["total_fees"] for r in rows] == [7.5]


def test_update_fees_rejects_non_list_chart(settings):
    with patch("navstamp.data.defillama.get_json", return_value={"totalDataChart": {"a": 1}}):
        with pytest.raises(SourceUnavailable):
            update_fees(settings, now=NOW)
    assert not (settings.data_dir / FEES_FILE).exists()
