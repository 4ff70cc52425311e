from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}")

    @classmethod
    def of(cls, d: date) -> "MonthKey":
        return cls(d.year, d.month)

    def shift(self, count: int) -> "MonthKey":
        month_index = (self.year * 12) + (self.month - 1) + count
        return MonthKey(month_index // 12, (month_index % 12) + 1)

    def previous(self) -> "MonthKey":
        return self.shift(-1)

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return self.shift(1).start - date.resolution

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_at(self) -> datetime:
        """Exclusive upper bound for creation timestamps."""
        return datetime.combine(self.shift(1).start, time.min)

    @property
    def label(self) -> str:
        return self.start.strftime("%b %Y")


def now_local() -> datetime:
    """Naive wall-clock time in the configured timezone.

    Income months are derived from creation timestamps, so they are stored
    in the same clock the current month is read from.
    """
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def current_month(today: Optional[date] = None) -> MonthKey:
    return MonthKey.of(today or today_local())


def trailing_months(end: MonthKey, count: int) -> list[MonthKey]:
    if count < 1:
        raise ValueError("count must be positive")
    return [end.shift(-offset) for offset in range(count - 1, -1, -1)]
