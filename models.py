from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BudgetCategory(str, Enum):
    fixed_costs = "fixedCosts"
    savings = "savings"
    investment = "investment"
    guilt_free_spending = "guiltFreeSpending"


BUDGET_CATEGORY_ENUM = SAEnum(
    BudgetCategory,
    name="budgetcategory",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class AllocationMode(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class CategoryTransactionType(str, Enum):
    expense = "expense"
    income = "income"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    investment = "investment"
    cash = "cash"
    credit = "credit"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    income_entries: Mapped[list["IncomeEntry"]] = relationship(
        "IncomeEntry", back_populates="account"
    )

    __table_args__ = (Index("ix_accounts_user_default", "user_id", "is_default"),)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.bank_name})"

    @property
    def is_cash(self) -> bool:
        return self.account_type == AccountType.cash


class FundAllocation(Base, TimestampMixin):
    """Allocation policy, one row per user.

    Percentage values are basis points (5000 == 50%); fixed values and caps
    are cents. A NULL cap means the category is uncapped.
    """

    __tablename__ = "fund_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    fixed_costs_mode: Mapped[AllocationMode] = mapped_column(
        SAEnum(AllocationMode), nullable=False, default=AllocationMode.percentage
    )
    fixed_costs_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fixed_costs_cap_cents: Mapped[Optional[int]] = mapped_column(Integer)

    savings_mode: Mapped[AllocationMode] = mapped_column(
        SAEnum(AllocationMode), nullable=False, default=AllocationMode.percentage
    )
    savings_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    savings_cap_cents: Mapped[Optional[int]] = mapped_column(Integer)

    investment_mode: Mapped[AllocationMode] = mapped_column(
        SAEnum(AllocationMode), nullable=False, default=AllocationMode.percentage
    )
    investment_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    investment_cap_cents: Mapped[Optional[int]] = mapped_column(Integer)

    guilt_free_spending_mode: Mapped[AllocationMode] = mapped_column(
        SAEnum(AllocationMode), nullable=False, default=AllocationMode.percentage
    )
    guilt_free_spending_value: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    guilt_free_spending_cap_cents: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("fixed_costs_value >= 0", name="ck_fund_fixed_costs_value"),
        CheckConstraint("savings_value >= 0", name="ck_fund_savings_value"),
        CheckConstraint("investment_value >= 0", name="ck_fund_investment_value"),
        CheckConstraint(
            "guilt_free_spending_value >= 0", name="ck_fund_guilt_free_value"
        ),
    )


class IncomeEntry(Base, TimestampMixin):
    __tablename__ = "income_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    period_start: Mapped[Optional[date]] = mapped_column(Date)
    period_end: Mapped[Optional[date]] = mapped_column(Date)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    exclude_from_allocation: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="income_entries"
    )

    __table_args__ = (
        Index("ix_income_user_created", "user_id", "created_at"),
        CheckConstraint("amount_cents > 0", name="ck_income_amount_positive"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[BudgetCategory]] = mapped_column(BUDGET_CATEGORY_ENUM)
    expense_category: Mapped[Optional[str]] = mapped_column(String(100))
    date: Mapped[date] = mapped_column(Date, nullable=False)

    account: Mapped["Account"] = relationship("Account")

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category", "date"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )


class Transfer(Base, TimestampMixin):
    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    from_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    to_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[BudgetCategory]] = mapped_column(BUDGET_CATEGORY_ENUM)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    from_account: Mapped["Account"] = relationship(
        "Account", foreign_keys=[from_account_id]
    )
    to_account: Mapped["Account"] = relationship(
        "Account", foreign_keys=[to_account_id]
    )

    __table_args__ = (
        Index("ix_transfers_user_date", "user_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_transfers_amount_positive"),
        CheckConstraint(
            "from_account_id != to_account_id", name="ck_transfers_distinct_accounts"
        ),
    )


class InvestmentHolding(Base, TimestampMixin):
    __tablename__ = "investment_holdings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    shares_micros: Mapped[Optional[int]] = mapped_column(Integer)
    price_per_unit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    brokerage_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    account: Mapped["Account"] = relationship("Account")

    __table_args__ = (
        Index("ix_investments_user_date", "user_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
    )


class CategoryBalance(Base, TimestampMixin):
    """Cached month allocation per category; overwritten on every recompute."""

    __tablename__ = "category_balances"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "category",
            "year",
            "month",
            name="uq_category_balance_user_category_month",
        ),
        Index("ix_category_balance_user_month", "user_id", "year", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[BudgetCategory] = mapped_column(
        BUDGET_CATEGORY_ENUM, nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CategoryTransaction(Base, TimestampMixin):
    """Manual adjustment logged against a budget category.

    Kept as a standalone ledger; allocation and tracking do not read it.
    """

    __tablename__ = "category_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[BudgetCategory] = mapped_column(
        BUDGET_CATEGORY_ENUM, nullable=False
    )
    type: Mapped[CategoryTransactionType] = mapped_column(
        SAEnum(CategoryTransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("ix_category_txn_user_month", "user_id", "year", "month"),
        CheckConstraint("amount_cents > 0", name="ck_category_txn_amount_positive"),
    )
