import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        week_start: int,
        currency: str,
        currency_symbol: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.week_start = week_start
        self.currency = currency
        self.currency_symbol = currency_symbol


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGLY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _week_start_from_env() -> int:
    value = int(os.getenv("BUDGLY_WEEK_START", "6"))
    if not 0 <= value <= 6:
        raise ValueError("BUDGLY_WEEK_START must be a weekday index between 0 and 6")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budgly.db"
    database_url = os.getenv("BUDGLY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGLY_TIMEZONE", "Asia/Karachi")
    currency = os.getenv("BUDGLY_CURRENCY", "PKR")
    currency_symbol = os.getenv("BUDGLY_CURRENCY_SYMBOL", "Rs.")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        week_start=_week_start_from_env(),
        currency=currency,
        currency_symbol=currency_symbol,
    )
