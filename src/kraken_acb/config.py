from __future__ import annotations

from datetime import date
from decimal import Decimal
from functools import cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_USD_CAD_FX = Decimal("1.3978")


class AppSettings(BaseSettings):
    fallback_usd_cad_fx: Decimal = DEFAULT_FALLBACK_USD_CAD_FX
    include_transfers: bool = False
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="KRAKEN_ACB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@cache
def config() -> AppSettings:
    return AppSettings()


def default_tax_year(today: date | None = None) -> int:
    """The last completed calendar year."""
    return (today or date.today()).year - 1
