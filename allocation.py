"""Income allocation across the four budget categories.

Everything in this module is pure arithmetic on integer cents. Percentage
rules are basis points of the income, fixed rules are cents clamped to the
income they are taken from. Caps are monthly ceilings on what a category
may be allocated, not on what may be spent from it.

Redistribution walks ``CAP_ORDER``: a capped category keeps at most what
is left under its cap and hands the rest to savings. Savings is the sink
for that excess and for any unallocated remainder, so the allocated total
equals the income. With ``savings_cap_mode="hard"`` savings is itself
clipped to its cap and the overflow is reported as ``dropped_cents``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from models import AllocationMode, BudgetCategory
from money import cents_to_units, percent_of


SAVINGS_SINK = BudgetCategory.savings
CAP_ORDER: tuple[BudgetCategory, ...] = (
    BudgetCategory.fixed_costs,
    BudgetCategory.investment,
    BudgetCategory.guilt_free_spending,
)
ALLOCATION_ORDER: tuple[BudgetCategory, ...] = CAP_ORDER + (SAVINGS_SINK,)

SOFT_SAVINGS_CAP = "soft"
HARD_SAVINGS_CAP = "hard"


@dataclass(frozen=True)
class AllocationRule:
    mode: AllocationMode
    value: int
    cap_cents: Optional[int] = None

    def raw_share(self, income_cents: int) -> int:
        if self.mode == AllocationMode.fixed:
            return min(self.value, income_cents)
        return percent_of(income_cents, self.value)


@dataclass(frozen=True)
class AllocationPolicy:
    rules: Mapping[BudgetCategory, AllocationRule]

    def rule(self, category: BudgetCategory) -> AllocationRule:
        return self.rules[category]

    def cap(self, category: BudgetCategory) -> Optional[int]:
        return self.rules[category].cap_cents

    @classmethod
    def from_row(cls, row) -> "AllocationPolicy":
        """Build a policy from a ``FundAllocation`` row (``<category>_mode`` etc)."""
        rules: dict[BudgetCategory, AllocationRule] = {}
        for category in ALLOCATION_ORDER:
            prefix = category.name
            rules[category] = AllocationRule(
                mode=AllocationMode(getattr(row, f"{prefix}_mode")),
                value=int(getattr(row, f"{prefix}_value") or 0),
                cap_cents=getattr(row, f"{prefix}_cap_cents"),
            )
        return cls(rules)


DEFAULT_POLICY = AllocationPolicy(
    {
        BudgetCategory.fixed_costs: AllocationRule(AllocationMode.percentage, 5000),
        BudgetCategory.savings: AllocationRule(AllocationMode.percentage, 2000),
        BudgetCategory.investment: AllocationRule(AllocationMode.percentage, 1000),
        BudgetCategory.guilt_free_spending: AllocationRule(
            AllocationMode.percentage, 2000
        ),
    }
)


def empty_amounts() -> dict[BudgetCategory, int]:
    return {category: 0 for category in ALLOCATION_ORDER}


@dataclass
class Allocation:
    income_cents: int
    amounts: dict[BudgetCategory, int] = field(default_factory=empty_amounts)
    dropped_cents: int = 0

    def __getitem__(self, category: BudgetCategory) -> int:
        return self.amounts[category]

    @property
    def total_cents(self) -> int:
        return sum(self.amounts.values())

    def as_dict(self) -> dict[str, float]:
        return {
            category.value: cents_to_units(self.amounts[category])
            for category in ALLOCATION_ORDER
        }


def raw_allocation(income_cents: int, policy: AllocationPolicy) -> dict[BudgetCategory, int]:
    if income_cents <= 0:
        raise ValueError("Income must be greater than 0")
    return {
        category: policy.rule(category).raw_share(income_cents)
        for category in ALLOCATION_ORDER
    }


def _clip_to_cap(amount: int, existing: int, cap: Optional[int]) -> tuple[int, int]:
    if cap is None or existing + amount <= cap:
        return amount, 0
    kept = max(0, cap - existing)
    return kept, amount - kept


def _trim_overallocation(amounts: dict[BudgetCategory, int], deficit: int) -> None:
    for category in reversed(ALLOCATION_ORDER):
        if deficit <= 0:
            break
        taken = min(amounts[category], deficit)
        amounts[category] -= taken
        deficit -= taken


def redistribute(
    raw: Mapping[BudgetCategory, int],
    income_cents: int,
    policy: AllocationPolicy,
    existing: Optional[Mapping[BudgetCategory, int]] = None,
    *,
    savings_cap_mode: str = SOFT_SAVINGS_CAP,
) -> Allocation:
    """Apply caps to ``raw`` given what each category already holds this month."""
    existing = existing or {}
    amounts = empty_amounts()

    excess_to_savings = 0
    for category in CAP_ORDER:
        kept, excess = _clip_to_cap(
            raw[category], existing.get(category, 0), policy.cap(category)
        )
        amounts[category] = kept
        excess_to_savings += excess
    amounts[SAVINGS_SINK] = raw[SAVINGS_SINK] + excess_to_savings

    residual = income_cents - sum(amounts.values())
    if residual < 0:
        _trim_overallocation(amounts, -residual)
    else:
        amounts[SAVINGS_SINK] += residual

    dropped = 0
    if savings_cap_mode == HARD_SAVINGS_CAP:
        kept, dropped = _clip_to_cap(
            amounts[SAVINGS_SINK],
            existing.get(SAVINGS_SINK, 0),
            policy.cap(SAVINGS_SINK),
        )
        amounts[SAVINGS_SINK] = kept
    elif savings_cap_mode != SOFT_SAVINGS_CAP:
        raise ValueError(f"Unknown savings cap mode: {savings_cap_mode}")

    return Allocation(income_cents=income_cents, amounts=amounts, dropped_cents=dropped)


def allocate_income(
    income_cents: int,
    policy: AllocationPolicy,
    existing: Optional[Mapping[BudgetCategory, int]] = None,
    *,
    savings_cap_mode: str = SOFT_SAVINGS_CAP,
) -> Allocation:
    """Breakdown of a single income event against the month so far."""
    raw = raw_allocation(income_cents, policy)
    return redistribute(
        raw, income_cents, policy, existing, savings_cap_mode=savings_cap_mode
    )


def compute_month_balances(
    income_amounts: Iterable[int],
    policy: AllocationPolicy,
    *,
    savings_cap_mode: str = SOFT_SAVINGS_CAP,
) -> Allocation:
    """Month aggregate: per-event raw shares summed, caps applied to the sums."""
    totals = empty_amounts()
    income_total = 0
    for income_cents in income_amounts:
        income_total += income_cents
        for category, share in raw_allocation(income_cents, policy).items():
            totals[category] += share
    return redistribute(
        totals, income_total, policy, savings_cap_mode=savings_cap_mode
    )
