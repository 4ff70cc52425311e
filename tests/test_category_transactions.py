from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import BudgetCategory, CategoryTransactionType
from periods import MonthKey
from schemas import AllocationRuleIn, CategoryTransactionIn, FundAllocationIn, IncomeIn
from services import (
    CategoryTrackingService,
    CategoryTransactionService,
    FundAllocationService,
    IncomeService,
    NotFound,
)


MARCH = MonthKey(2026, 3)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def log(session, category, amount, day, month=3, kind=CategoryTransactionType.expense):
    return CategoryTransactionService(session).create(
        CategoryTransactionIn(
            category=category,
            type=kind,
            amount=Decimal(amount),
            description="adjustment",
            date=date(2026, month, day),
        )
    )


def test_create_derives_month_from_date() -> None:
    session = make_session()

    transaction = log(session, BudgetCategory.savings, "12.34", day=15, month=4)

    assert transaction.amount_cents == 1234
    assert (transaction.year, transaction.month) == (2026, 4)
    payload = CategoryTransactionService.serialize(transaction)
    assert payload["category"] == "savings"
    assert payload["type"] == "expense"
    assert payload["amount"] == 12.34
    assert payload["date"] == "2026-04-15"


def test_list_filters_by_category_and_month_newest_first() -> None:
    session = make_session()
    log(session, BudgetCategory.fixed_costs, "10", day=3)
    later = log(session, BudgetCategory.fixed_costs, "20", day=20)
    log(session, BudgetCategory.savings, "30", day=5)
    log(session, BudgetCategory.fixed_costs, "40", day=5, month=4)

    service = CategoryTransactionService(session)
    march_fixed = service.list(category=BudgetCategory.fixed_costs, month=MARCH)

    assert [t.amount_cents for t in march_fixed] == [2000, 1000]
    assert march_fixed[0].id == later.id
    assert len(service.list()) == 4
    assert len(service.list(month=MARCH)) == 3


def test_delete_removes_transaction() -> None:
    session = make_session()
    transaction = log(session, BudgetCategory.investment, "5", day=1)

    CategoryTransactionService(session).delete(transaction.id)

    assert CategoryTransactionService(session).list() == []
    with pytest.raises(NotFound, match="Transaction not found"):
        CategoryTransactionService(session).delete(transaction.id)


def test_ledger_does_not_change_tracking() -> None:
    session = make_session()
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
    log(session, BudgetCategory.fixed_costs, "250", day=10)
    log(
        session,
        BudgetCategory.fixed_costs,
        "75",
        day=11,
        kind=CategoryTransactionType.income,
    )

    snapshot = CategoryTrackingService(session).snapshots(MARCH)[
        BudgetCategory.fixed_costs
    ]

    assert snapshot.allocated == 50_000
    assert snapshot.spent == 0
    assert snapshot.remaining == 50_000
