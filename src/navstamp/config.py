from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ImplausiblePolicy = Literal["reject", "warn-and-persist"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Where every job writes its JSON output (dashboards read from here).
    NAV_DATA_DIR: str = "data"
    NAV_HISTORY_FILE: str = "official-nav-history.json"
    NAV_CALIBRATION_FILE: str = "nav-calibration.json"
    # "Close of business" valuation day is taken in this timezone, not UTC.
    NAV_TIMEZONE: str = "America/New_York"

    # Primary: vault equity document (equity / totalShares / netDeposits).
    NAV_VAULT_URL: str | None = None
    NAV_VAULT_PRECISION: float = Field(default=1_000_000, gt=0)
    # Secondary: Prime Number KV1 (TVL + raw share price on its own scale).
    NAV_SECONDARY_URL: str | None = "https://app.primenumber.trade/data/PN_KV1.json"

    NAV_RUN_TIMEOUT_S: float = Field(default=90.0, gt=0)
    NAV_HTTP_TIMEOUT_S: float = Field(default=15.0, gt=0)

    NAV_DEVIATION_LOOKBACK: int = Field(default=4, ge=1)
    NAV_DEVIATION_THRESHOLD: float = Field(default=0.05, gt=0)
    NAV_MAX_SHARE_PRICE: float = Field(default=100.0, gt=0)
    NAV_MAX_DROP_PCT: float = Field(default=50.0, gt=0, le=100)
    NAV_ON_IMPLAUSIBLE: ImplausiblePolicy = "warn-and-persist"
    NAV_DAY_CHANGE_PRECISION: int = Field(default=4, ge=0)

    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None

    DRIFT_DATA_API: str = "https://data.api.drift.trade"
    JLP_INFO_URL: str = "https://perps-api.jup.ag/v2/jlp-info"
    DEFILLAMA_FEES_URL: str = "https://api.llama.fi/summary/fees/jupiter-perpetual-exchange"
    SERIES_KEEP_DAYS: int = Field(default=90, ge=1)

    # snake_case accessors used across the codebase.
    @property
    def data_dir(self) -> Path:
        return Path(self.NAV_DATA_DIR)

    @property
    def history_path(self) -> Path:
        return self.data_dir / self.NAV_HISTORY_FILE

    @property
    def calibration_path(self) -> Path:
        return self.data_dir / self.NAV_CALIBRATION_FILE

    @property
    def timezone(self) -> str:
        return self.NAV_TIMEZONE

    @property
    def vault_url(self) -> str | None:
        return self.NAV_VAULT_URL or None

    @property
    def vault_precision(self) -> float:
        return self.NAV_VAULT_PRECISION

    @property
    def secondary_url(self) -> str | None:
        return self.NAV_SECONDARY_URL or None

    @property
    def run_timeout_s(self) -> float:
        return self.NAV_RUN_TIMEOUT_S

    @property
    def http_timeout_s(self) -> float:
        return self.NAV_HTTP_TIMEOUT_S

    @property
    def deviation_lookback(self) -> int:
        return self.NAV_DEVIATION_LOOKBACK

    @property
    def deviation_threshold(self) -> float:
        return self.NAV_DEVIATION_THRESHOLD

    @property
    def max_share_price(self) -> float:
        return self.NAV_MAX_SHARE_PRICE

    @property
    def max_drop_pct(self) -> float:
        return self.NAV_MAX_DROP_PCT

    @property
    def on_implausible(self) -> ImplausiblePolicy:
        return self.NAV_ON_IMPLAUSIBLE

    @property
    def day_change_precision(self) -> int:
        return self.NAV_DAY_CHANGE_PRECISION

    @property
    def telegram_bot_token(self) -> str | None:
        return self.TELEGRAM_BOT_TOKEN

    @property
    def telegram_chat_id(self) -> str | None:
        return self.TELEGRAM_CHAT_ID

    @property
    def drift_data_api(self) -> str:
        return self.DRIFT_DATA_API.rstrip("/")

    @property
    def jlp_info_url(self) -> str:
        return self.JLP_INFO_URL

    @property
    def defillama_fees_url(self) -> str:
        return self.DEFILLAMA_FEES_URL

    @property
    def series_keep_days(self) -> int:
        return self.SERIES_KEEP_DAYS


def load_settings(**overrides) -> Settings:
    return Settings(**overrides)
