import os
from functools import lru_cache
from pathlib import Path


SAVINGS_CAP_MODES = ("soft", "hard")


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        savings_cap_mode: str,
        history_months: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.savings_cap_mode = savings_cap_mode
        self.history_months = history_months
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Berlin")
    savings_cap_mode = os.getenv("BUDGET_SAVINGS_CAP_MODE", "soft").strip().lower()
    if savings_cap_mode not in SAVINGS_CAP_MODES:
        raise ValueError(
            f"BUDGET_SAVINGS_CAP_MODE must be one of {', '.join(SAVINGS_CAP_MODES)}"
        )
    history_months = int(os.getenv("BUDGET_HISTORY_MONTHS", "6"))
    scheduler_enabled = _env_flag("BUDGET_SCHEDULER_ENABLED")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        savings_cap_mode=savings_cap_mode,
        history_months=history_months,
        scheduler_enabled=scheduler_enabled,
    )
