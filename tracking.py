from dataclasses import dataclass

from models import BudgetCategory
from money import cents_to_units


@dataclass(frozen=True)
class CategorySnapshot:
    category: BudgetCategory
    allocated: int
    spent: int
    transferred: int
    carryover: int
    overspending: int
    available: int
    remaining: int
    overspent: int

    def as_dict(self) -> dict[str, float]:
        return {
            "allocated": cents_to_units(self.allocated),
            "spent": cents_to_units(self.spent),
            "transferred": cents_to_units(self.transferred),
            "carryover": cents_to_units(self.carryover),
            "overspending": cents_to_units(self.overspending),
            "available": cents_to_units(self.available),
            "remaining": cents_to_units(self.remaining),
            "overspent": cents_to_units(self.overspent),
        }


def carryover_from(allocated: int, spent: int) -> tuple[int, int]:
    """Previous month's (carryover, overspending) for one category."""
    net = allocated - spent
    if net > 0:
        return net, 0
    return 0, -net


def build_snapshot(
    category: BudgetCategory,
    *,
    allocated: int,
    spent: int,
    transferred: int,
    carryover: int,
    overspending: int,
) -> CategorySnapshot:
    available = allocated + carryover - overspending
    # Transfers between accounts are not consumption of the investment budget.
    if category == BudgetCategory.investment:
        remaining = available - spent
    else:
        remaining = available - spent - transferred
    return CategorySnapshot(
        category=category,
        allocated=allocated,
        spent=spent,
        transferred=transferred,
        carryover=carryover,
        overspending=overspending,
        available=available,
        remaining=max(0, remaining),
        overspent=max(0, -remaining),
    )


def history_point(label: str, allocated: int, spent: int) -> dict[str, object]:
    return {
        "month": label,
        "allocated": cents_to_units(allocated),
        "spent": cents_to_units(spent),
        "remaining": cents_to_units(allocated - spent),
    }
