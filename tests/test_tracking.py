from models import BudgetCategory
from tracking import build_snapshot, carryover_from, history_point


def test_carryover_from_surplus():
    assert carryover_from(50_000, 30_000) == (20_000, 0)


def test_carryover_from_overspend():
    assert carryover_from(30_000, 50_000) == (0, 20_000)


def test_carryover_from_exact_spend():
    assert carryover_from(10_000, 10_000) == (0, 0)


def test_snapshot_counts_transfers_against_regular_categories():
    snap = build_snapshot(
        BudgetCategory.fixed_costs,
        allocated=10_000,
        spent=2_000,
        transferred=5_000,
        carryover=0,
        overspending=0,
    )
    assert snap.remaining == 3_000
    assert snap.overspent == 0


def test_snapshot_investment_ignores_transfers():
    snap = build_snapshot(
        BudgetCategory.investment,
        allocated=10_000,
        spent=2_000,
        transferred=5_000,
        carryover=0,
        overspending=0,
    )
    assert snap.remaining == 8_000


def test_snapshot_overspent_is_reported_separately():
    snap = build_snapshot(
        BudgetCategory.guilt_free_spending,
        allocated=1_000,
        spent=2_500,
        transferred=0,
        carryover=500,
        overspending=0,
    )
    assert snap.available == 1_500
    assert snap.remaining == 0
    assert snap.overspent == 1_000
    assert snap.as_dict()["overspent"] == 10.0


def test_history_point_remaining_is_not_clamped():
    point = history_point("Mar 2026", 1_000, 3_000)
    assert point == {
        "month": "Mar 2026",
        "allocated": 10.0,
        "spent": 30.0,
        "remaining": -20.0,
    }
