from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, BudgetCategory, CategoryBalance, IncomeEntry
from periods import MonthKey
from schemas import (
    AccountIn,
    AllocationRuleIn,
    ExpenseIn,
    FundAllocationIn,
    IncomeIn,
    InvestmentIn,
    TransferIn,
)
from services import (
    AccountService,
    CategoryTrackingService,
    ExpenseService,
    FundAllocationService,
    HistoryService,
    IncomeService,
    InvestmentService,
    NotFound,
    PolicyMissing,
    TransferService,
)


MARCH = MonthKey(2026, 3)
APRIL = MonthKey(2026, 4)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def setup_budget(session, starting_broker="0"):
    main = AccountService(session).create(
        AccountIn(
            name="Main",
            bank_name="Bank",
            account_type=AccountType.checking,
            is_default=True,
        )
    )
    broker = AccountService(session).create(
        AccountIn(
            name="Broker",
            bank_name="Bank",
            account_type=AccountType.investment,
            starting_funds=Decimal(starting_broker),
        )
    )
    FundAllocationService(session).update(
        FundAllocationIn(
            fixed_costs=AllocationRuleIn(value=Decimal("50")),
            savings=AllocationRuleIn(value=Decimal("20")),
            investment=AllocationRuleIn(value=Decimal("10")),
            guilt_free_spending=AllocationRuleIn(value=Decimal("20")),
        ),
        month=MARCH,
    )
    IncomeService(session).record(
        IncomeIn(income=Decimal("1000")), now=datetime(2026, 3, 2, 9, 0)
    )
    return main, broker


def spend(session, account, amount, category, day=10, month=3):
    return ExpenseService(session).create(
        ExpenseIn(
            account_id=account.id,
            amount=Decimal(amount),
            category=category,
            date=date(2026, month, day),
        )
    )


def test_surplus_carries_into_next_month() -> None:
    session = make_session()
    main, _ = setup_budget(session)
    spend(session, main, "300", BudgetCategory.fixed_costs)

    snapshot = CategoryTrackingService(session).snapshots(APRIL)[
        BudgetCategory.fixed_costs
    ]

    assert snapshot.carryover == 20_000
    assert snapshot.overspending == 0
    assert snapshot.allocated == 0
    assert snapshot.available == 20_000
    assert snapshot.remaining == 20_000


def test_overspend_carries_as_deficit() -> None:
    session = make_session()
    main, _ = setup_budget(session)
    spend(session, main, "350", BudgetCategory.guilt_free_spending)

    snapshot = CategoryTrackingService(session).snapshots(APRIL)[
        BudgetCategory.guilt_free_spending
    ]

    assert snapshot.carryover == 0
    assert snapshot.overspending == 15_000
    assert snapshot.available == -15_000
    assert snapshot.remaining == 0
    assert snapshot.overspent == 15_000


def test_investment_spend_comes_from_holdings_only() -> None:
    session = make_session()
    main, broker = setup_budget(session, starting_broker="500")
    spend(session, main, "40", BudgetCategory.investment)
    TransferService(session).create(
        TransferIn(
            from_account_id=main.id,
            to_account_id=broker.id,
            amount=Decimal("50"),
            category=BudgetCategory.investment,
            date=date(2026, 3, 11),
        )
    )
    InvestmentService(session).create(
        InvestmentIn(
            investment_account_id=broker.id,
            investment_name="World ETF",
            amount=Decimal("80"),
            date=date(2026, 3, 12),
        )
    )

    snapshots = CategoryTrackingService(session).snapshots(MARCH)
    investment = snapshots[BudgetCategory.investment]

    assert investment.allocated == 10_000
    assert investment.spent == 8_000
    assert investment.transferred == 5_000
    assert investment.remaining == 2_000


def test_transfers_reduce_regular_category_remaining() -> None:
    session = make_session()
    main, broker = setup_budget(session)
    TransferService(session).create(
        TransferIn(
            from_account_id=main.id,
            to_account_id=broker.id,
            amount=Decimal("100"),
            category=BudgetCategory.fixed_costs,
            date=date(2026, 3, 11),
        )
    )

    tracking = CategoryTrackingService(session).tracking(MARCH)

    assert tracking["month"] == 3
    assert tracking["year"] == 2026
    assert tracking["tracking"]["fixedCosts"]["remaining"] == 400.0
    assert tracking["tracking"]["fixedCosts"]["transferred"] == 100.0


def test_tracking_requires_policy() -> None:
    session = make_session()

    with pytest.raises(PolicyMissing):
        CategoryTrackingService(session).tracking(MARCH)


def test_tracking_derives_allocation_when_month_has_no_cache() -> None:
    session = make_session()
    FundAllocationService(session).get_or_create_default()
    session.add(
        IncomeEntry(
            amount_cents=100_000,
            date=date(2026, 4, 1),
            created_at=datetime(2026, 4, 1, 8, 0),
            updated_at=datetime(2026, 4, 1, 8, 0),
        )
    )
    session.commit()

    snapshots = CategoryTrackingService(session).snapshots(APRIL)

    assert snapshots[BudgetCategory.fixed_costs].allocated == 50_000
    assert snapshots[BudgetCategory.savings].allocated == 20_000


def test_history_has_six_months_oldest_first() -> None:
    session = make_session()
    setup_budget(session)

    history = HistoryService(session).history(end=MARCH)["history"]

    labels = [point["month"] for point in history["fixedCosts"]]
    assert labels == [
        "Oct 2025",
        "Nov 2025",
        "Dec 2025",
        "Jan 2026",
        "Feb 2026",
        "Mar 2026",
    ]
    assert history["fixedCosts"][-1]["allocated"] == 500.0
    assert history["fixedCosts"][0]["allocated"] == 0


def test_history_ignores_cached_balances() -> None:
    session = make_session()
    main, _ = setup_budget(session)
    spend(session, main, "600", BudgetCategory.fixed_costs)
    before = HistoryService(session).history(end=MARCH)

    for row in session.scalars(select(CategoryBalance)):
        row.balance_cents = 999_999
    session.commit()
    after = HistoryService(session).history(end=MARCH)

    assert before == after
    march = after["history"]["fixedCosts"][-1]
    assert march == {
        "month": "Mar 2026",
        "allocated": 500.0,
        "spent": 600.0,
        "remaining": -100.0,
    }


def test_history_without_policy_is_empty() -> None:
    session = make_session()

    history = HistoryService(session).history(end=MARCH)["history"]

    assert history == {
        "fixedCosts": [],
        "investment": [],
        "guiltFreeSpending": [],
        "savings": [],
    }


def test_expense_requires_funds() -> None:
    session = make_session()
    main, _ = setup_budget(session)

    with pytest.raises(ValueError, match="Insufficient funds"):
        spend(session, main, "5000", BudgetCategory.fixed_costs)


def test_investment_requires_investment_account() -> None:
    session = make_session()
    main, _ = setup_budget(session)

    with pytest.raises(NotFound):
        InvestmentService(session).create(
            InvestmentIn(
                investment_account_id=main.id,
                investment_name="World ETF",
                amount=Decimal("10"),
            )
        )


def test_investment_amount_from_shares_and_fee() -> None:
    session = make_session()
    _, broker = setup_budget(session, starting_broker="500")

    holding = InvestmentService(session).create(
        InvestmentIn(
            investment_account_id=broker.id,
            investment_name="World ETF",
            number_of_shares=Decimal("2.5"),
            price_per_unit=Decimal("40"),
            brokerage_fee=Decimal("1.50"),
            date=date(2026, 3, 12),
        )
    )

    assert holding.amount_cents == 10_150
    session.refresh(broker)
    assert broker.balance_cents == 50_000 - 10_150


def test_account_with_ledger_rows_cannot_be_deleted() -> None:
    session = make_session()
    main, _ = setup_budget(session)

    with pytest.raises(ValueError, match="cannot be deleted"):
        AccountService(session).delete(main.id)


def test_deleting_ledger_rows_restores_balances() -> None:
    session = make_session()
    main, broker = setup_budget(session, starting_broker="500")
    transfer = TransferService(session).create(
        TransferIn(
            from_account_id=main.id,
            to_account_id=broker.id,
            amount=Decimal("100"),
            date=date(2026, 3, 11),
        )
    )
    holding = InvestmentService(session).create(
        InvestmentIn(
            investment_account_id=broker.id,
            investment_name="World ETF",
            amount=Decimal("80"),
            date=date(2026, 3, 12),
        )
    )

    InvestmentService(session).delete(holding.id)
    TransferService(session).delete(transfer.id)

    session.refresh(main)
    session.refresh(broker)
    assert main.balance_cents == 100_000
    assert broker.balance_cents == 50_000


def test_past_month_tracking_follows_policy_changes() -> None:
    session = make_session()
    setup_budget(session)

    FundAllocationService(session).update(
        FundAllocationIn(
            fixed_costs=AllocationRuleIn(value=Decimal("100")),
            savings=AllocationRuleIn(value=Decimal("0")),
            investment=AllocationRuleIn(value=Decimal("0")),
            guilt_free_spending=AllocationRuleIn(value=Decimal("0")),
        ),
        month=APRIL,
    )

    tracking = CategoryTrackingService(session)
    march = tracking.snapshots(MARCH)[BudgetCategory.fixed_costs]
    april = tracking.snapshots(APRIL)[BudgetCategory.fixed_costs]
    history = HistoryService(session).history(end=MARCH)["history"]

    assert march.allocated == 100_000
    assert history["fixedCosts"][-1]["allocated"] == 1000.0
    assert april.carryover == 100_000
    assert session.scalars(
        select(CategoryBalance).where(CategoryBalance.month == MARCH.month)
    ).all() == []
