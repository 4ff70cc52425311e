"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None

BUDGET_CATEGORIES = ("fixedCosts", "savings", "investment", "guiltFreeSpending")


def _budget_category():
    return sa.Enum(*BUDGET_CATEGORIES, name="budgetcategory")


def _allocation_mode():
    return sa.Enum("percentage", "fixed", name="allocationmode")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum(
                "checking", "savings", "investment", "cash", "credit",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index(
        "ix_accounts_user_default", "accounts", ["user_id", "is_default"]
    )

    category_columns = []
    for prefix in ("fixed_costs", "savings", "investment", "guilt_free_spending"):
        category_columns.extend(
            [
                sa.Column(
                    f"{prefix}_mode",
                    _allocation_mode(),
                    nullable=False,
                    server_default="percentage",
                ),
                sa.Column(
                    f"{prefix}_value", sa.Integer(), nullable=False, server_default="0"
                ),
                sa.Column(f"{prefix}_cap_cents", sa.Integer()),
            ]
        )
    op.create_table(
        "fund_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        *category_columns,
        *_timestamps(),
        sa.CheckConstraint("fixed_costs_value >= 0", name="ck_fund_fixed_costs_value"),
        sa.CheckConstraint("savings_value >= 0", name="ck_fund_savings_value"),
        sa.CheckConstraint("investment_value >= 0", name="ck_fund_investment_value"),
        sa.CheckConstraint(
            "guilt_free_spending_value >= 0", name="ck_fund_guilt_free_value"
        ),
    )

    op.create_table(
        "income_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("period_start", sa.Date()),
        sa.Column("period_end", sa.Date()),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column(
            "exclude_from_allocation",
            sa.Boolean(),
            nullable=False,
            server_default="0",
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_income_amount_positive"),
    )
    op.create_index(
        "ix_income_user_created", "income_entries", ["user_id", "created_at"]
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", _budget_category()),
        sa.Column("expense_category", sa.String(length=100)),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date", "expenses", ["user_id", "category", "date"]
    )

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "from_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id"),
            nullable=False,
        ),
        sa.Column(
            "to_account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", _budget_category()),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transfers_amount_positive"),
        sa.CheckConstraint(
            "from_account_id != to_account_id", name="ck_transfers_distinct_accounts"
        ),
    )
    op.create_index("ix_transfers_user_date", "transfers", ["user_id", "date"])

    op.create_table(
        "investment_holdings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("shares_micros", sa.Integer()),
        sa.Column("price_per_unit_cents", sa.Integer()),
        sa.Column(
            "brokerage_fee_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
    )
    op.create_index(
        "ix_investments_user_date", "investment_holdings", ["user_id", "date"]
    )

    op.create_table(
        "category_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("category", _budget_category(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "category",
            "year",
            "month",
            name="uq_category_balance_user_category_month",
        ),
    )
    op.create_index(
        "ix_category_balance_user_month",
        "category_balances",
        ["user_id", "year", "month"],
    )

    op.create_table(
        "category_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("category", _budget_category(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("expense", "income", name="categorytransactiontype"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_category_txn_amount_positive"),
    )
    op.create_index(
        "ix_category_txn_user_month",
        "category_transactions",
        ["user_id", "year", "month"],
    )


def downgrade():
    op.drop_index("ix_category_txn_user_month", table_name="category_transactions")
    op.drop_table("category_transactions")
    op.drop_index("ix_category_balance_user_month", table_name="category_balances")
    op.drop_table("category_balances")
    op.drop_index("ix_investments_user_date", table_name="investment_holdings")
    op.drop_table("investment_holdings")
    op.drop_index("ix_transfers_user_date", table_name="transfers")
    op.drop_table("transfers")
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_income_user_created", table_name="income_entries")
    op.drop_table("income_entries")
    op.drop_table("fund_allocations")
    op.drop_index("ix_accounts_user_default", table_name="accounts")
    op.drop_table("accounts")
