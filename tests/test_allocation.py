import pytest

from allocation import (
    AllocationPolicy,
    AllocationRule,
    DEFAULT_POLICY,
    allocate_income,
    compute_month_balances,
    raw_allocation,
)
from models import AllocationMode, BudgetCategory


FC = BudgetCategory.fixed_costs
SAV = BudgetCategory.savings
INV = BudgetCategory.investment
GF = BudgetCategory.guilt_free_spending


def _pct(bps, cap=None):
    return AllocationRule(AllocationMode.percentage, bps, cap)


def _policy(fc=_pct(5000), sav=_pct(2000), inv=_pct(1000), gf=_pct(2000)):
    return AllocationPolicy({FC: fc, SAV: sav, INV: inv, GF: gf})


def test_month_aggregate_sums_event_shares():
    result = compute_month_balances([100_000, 50_000], DEFAULT_POLICY)
    assert result.amounts == {FC: 75_000, SAV: 30_000, INV: 15_000, GF: 30_000}
    assert result.total_cents == 150_000
    assert result.dropped_cents == 0


def test_empty_month_is_all_zero():
    result = compute_month_balances([], DEFAULT_POLICY)
    assert result.total_cents == 0
    assert result.income_cents == 0


def test_rounding_residual_keeps_total_equal_to_income():
    policy = _policy(fc=_pct(3333), sav=_pct(3333), inv=_pct(3334), gf=_pct(0))
    result = allocate_income(1_001, policy)
    assert result.total_cents == 1_001
    assert result[SAV] == 333


def test_unallocated_percentage_goes_to_savings():
    policy = _policy(sav=_pct(0))
    result = allocate_income(100_000, policy)
    assert result[SAV] == 20_000
    assert result.total_cents == 100_000


def test_cap_excess_moves_to_savings_in_month_aggregate():
    policy = _policy(fc=_pct(5000, cap=60_000))
    result = compute_month_balances([100_000, 100_000], policy)
    assert result[FC] == 60_000
    assert result[SAV] == 80_000
    assert result[INV] == 20_000
    assert result[GF] == 40_000
    assert result.total_cents == 200_000


def test_single_event_cap_respects_existing_month_balance():
    policy = _policy(fc=_pct(5000, cap=60_000))
    existing = {FC: 50_000, SAV: 20_000, INV: 10_000, GF: 20_000}
    result = allocate_income(100_000, policy, existing)
    assert result[FC] == 10_000
    assert result[SAV] == 60_000
    assert result.total_cents == 100_000


def test_cap_already_exhausted_sends_whole_share_to_savings():
    policy = _policy(inv=_pct(1000, cap=5_000))
    result = allocate_income(100_000, policy, {INV: 7_000})
    assert result[INV] == 0
    assert result[SAV] == 30_000


def test_fixed_amount_is_clamped_to_income_and_others_trimmed():
    policy = _policy(fc=AllocationRule(AllocationMode.fixed, 150_000))
    result = allocate_income(100_000, policy)
    assert result[FC] == 100_000
    assert result[SAV] == 0
    assert result[GF] == 0
    assert result[INV] == 0
    assert result.total_cents == 100_000


def test_fixed_amount_is_taken_per_event_in_month_aggregate():
    policy = _policy(fc=AllocationRule(AllocationMode.fixed, 30_000))
    result = compute_month_balances([100_000, 100_000], policy)
    assert result[FC] == 60_000
    assert result.total_cents == 200_000


def test_hard_savings_cap_drops_overflow():
    policy = _policy(sav=_pct(2000, cap=10_000))
    soft = allocate_income(100_000, policy)
    hard = allocate_income(100_000, policy, savings_cap_mode="hard")
    assert soft[SAV] == 20_000
    assert hard[SAV] == 10_000
    assert hard.dropped_cents == 10_000
    assert hard.total_cents + hard.dropped_cents == 100_000


def test_hard_savings_cap_counts_existing_savings():
    policy = _policy(sav=_pct(2000, cap=10_000))
    result = allocate_income(100_000, policy, {SAV: 10_000}, savings_cap_mode="hard")
    assert result[SAV] == 0
    assert result.dropped_cents == 20_000


def test_unknown_savings_cap_mode_is_rejected():
    with pytest.raises(ValueError, match="Unknown savings cap mode"):
        allocate_income(100_000, DEFAULT_POLICY, savings_cap_mode="strict")


def test_non_positive_income_is_rejected():
    with pytest.raises(ValueError):
        raw_allocation(0, DEFAULT_POLICY)


def test_as_dict_uses_currency_units_and_wire_keys():
    result = allocate_income(100_050, DEFAULT_POLICY)
    data = result.as_dict()
    assert set(data) == {"fixedCosts", "savings", "investment", "guiltFreeSpending"}
    assert data["fixedCosts"] == 500.25
