from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from allocation import (
    ALLOCATION_ORDER,
    Allocation,
    AllocationPolicy,
    DEFAULT_POLICY,
    allocate_income,
    compute_month_balances,
)
from config import get_settings
from locks import month_lock
from models import (
    Account,
    AccountType,
    AllocationMode,
    BudgetCategory,
    CategoryBalance,
    CategoryTransaction,
    Expense,
    FundAllocation,
    IncomeEntry,
    InvestmentHolding,
    Transfer,
)
from money import bps_to_percent, cents_to_units, percent_to_bps, to_cents
from periods import MonthKey, current_month, now_local, trailing_months
from schemas import (
    AccountIn,
    CategoryTransactionIn,
    ExpenseIn,
    FundAllocationIn,
    IncomeIn,
    InvestmentIn,
    TransferIn,
)
from tracking import CategorySnapshot, build_snapshot, carryover_from, history_point


logger = logging.getLogger(__name__)


class PolicyMissing(ValueError):
    pass


class NotFound(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


@contextmanager
def month_write(session: Session, user_id: int, month: MonthKey) -> Iterator[None]:
    """Hold the month lock across the whole write and its commit."""
    with month_lock(user_id, month.year, month.month):
        try:
            yield
            session.commit()
        except Exception:
            session.rollback()
            raise


def _commit(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def adjust_balance(
    session: Session,
    account_id: int,
    delta_cents: int,
    *,
    require_funds: bool = False,
    message: str = "Insufficient funds in the account",
) -> None:
    """Apply ``delta_cents`` to an account balance in a single UPDATE.

    With ``require_funds`` a withdrawal only happens while the stored balance
    covers it; otherwise ``ValueError`` is raised and nothing changes.
    """
    stmt = (
        update(Account)
        .where(Account.id == account_id)
        .values(balance_cents=Account.balance_cents + delta_cents)
        .execution_options(synchronize_session=False)
    )
    if require_funds:
        stmt = stmt.where(Account.balance_cents >= -delta_cents)
    result = session.execute(stmt)
    if result.rowcount != 1:
        raise ValueError(message)
    loaded = session.identity_map.get(Session.identity_key(Account, account_id))
    if loaded is not None:
        session.expire(loaded, ["balance_cents"])


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.is_default.desc(), Account.name.asc(), Account.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFound("Account not found")
        return account

    def default(self) -> Optional[Account]:
        return self.session.scalar(
            select(Account).where(
                Account.user_id == self.user_id, Account.is_default.is_(True)
            )
        )

    def create(self, data: AccountIn) -> Account:
        if data.is_default:
            for account in self.list_all():
                account.is_default = False
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            bank_name=data.bank_name.strip(),
            account_type=data.account_type,
            balance_cents=to_cents(data.starting_funds),
            is_default=data.is_default,
        )
        self.session.add(account)
        _commit(self.session)
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        references = [
            select(func.count(IncomeEntry.id)).where(
                IncomeEntry.account_id == account.id
            ),
            select(func.count(Expense.id)).where(Expense.account_id == account.id),
            select(func.count(Transfer.id)).where(
                or_(
                    Transfer.from_account_id == account.id,
                    Transfer.to_account_id == account.id,
                )
            ),
            select(func.count(InvestmentHolding.id)).where(
                InvestmentHolding.account_id == account.id
            ),
        ]
        if any(self.session.scalar(stmt) for stmt in references):
            raise ValueError("Account has recorded transactions and cannot be deleted")
        self.session.delete(account)
        _commit(self.session)

    @staticmethod
    def serialize(account: Account) -> dict[str, object]:
        return {
            "id": account.id,
            "name": account.name,
            "bankName": account.bank_name,
            "accountType": account.account_type.value,
            "balance": cents_to_units(account.balance_cents),
            "isDefault": account.is_default,
        }


class FundAllocationService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        savings_cap_mode: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.savings_cap_mode = savings_cap_mode

    def get(self) -> Optional[FundAllocation]:
        return self.session.scalar(
            select(FundAllocation).where(FundAllocation.user_id == self.user_id)
        )

    def policy(self) -> AllocationPolicy:
        row = self.get()
        if not row:
            raise PolicyMissing("Configure fund allocation first")
        return AllocationPolicy.from_row(row)

    def get_or_create_default(self) -> FundAllocation:
        row = self.get()
        if row:
            return row
        row = FundAllocation(user_id=self.user_id)
        for category in ALLOCATION_ORDER:
            rule = DEFAULT_POLICY.rule(category)
            setattr(row, f"{category.name}_mode", rule.mode)
            setattr(row, f"{category.name}_value", rule.value)
            setattr(row, f"{category.name}_cap_cents", rule.cap_cents)
        self.session.add(row)
        _commit(self.session)
        self.session.refresh(row)
        return row

    def update(
        self, data: FundAllocationIn, *, month: Optional[MonthKey] = None
    ) -> FundAllocation:
        month = month or current_month()
        row = self.get()
        if not row:
            row = FundAllocation(user_id=self.user_id)
            self.session.add(row)
        for category in ALLOCATION_ORDER:
            rule = data.rule_for(category)
            if rule.mode == AllocationMode.percentage:
                value = percent_to_bps(rule.value)
            else:
                value = to_cents(rule.value)
            setattr(row, f"{category.name}_mode", rule.mode)
            setattr(row, f"{category.name}_value", value)
            setattr(
                row,
                f"{category.name}_cap_cents",
                to_cents(rule.cap) if rule.cap is not None else None,
            )

        # Cached balances were derived under the old policy.
        balances = CategoryBalanceService(
            self.session, self.user_id, savings_cap_mode=self.savings_cap_mode
        )
        with month_write(self.session, self.user_id, month):
            self.session.flush()
            stale = self.session.execute(
                delete(CategoryBalance).where(
                    CategoryBalance.user_id == self.user_id,
                    or_(
                        CategoryBalance.year != month.year,
                        CategoryBalance.month != month.month,
                    ),
                )
            )
            balances.recompute_month(month, AllocationPolicy.from_row(row))
        logger.info(
            f"fund_allocation_updated: user_id={self.user_id} "
            f"stale_balances_deleted={stale.rowcount}"
        )
        self.session.refresh(row)
        return row

    @staticmethod
    def serialize(row: FundAllocation) -> dict[str, object]:
        out: dict[str, object] = {"id": row.id}
        for category in ALLOCATION_ORDER:
            mode = AllocationMode(getattr(row, f"{category.name}_mode"))
            value = getattr(row, f"{category.name}_value")
            cap = getattr(row, f"{category.name}_cap_cents")
            out[category.value] = {
                "mode": mode.value,
                "value": bps_to_percent(value)
                if mode == AllocationMode.percentage
                else cents_to_units(value),
                "cap": cents_to_units(cap) if cap is not None else None,
            }
        return out


class CategoryBalanceService:
    """Write-through cache of each month's allocation per category.

    The cached rows are always overwritten with a full re-derivation of the
    month; they are never incremented.
    """

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        savings_cap_mode: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.savings_cap_mode = savings_cap_mode or get_settings().savings_cap_mode

    def allocatable_income(self, month: MonthKey) -> list[int]:
        stmt = (
            select(IncomeEntry.amount_cents)
            .where(
                IncomeEntry.user_id == self.user_id,
                IncomeEntry.exclude_from_allocation.is_(False),
                IncomeEntry.created_at >= month.start_at,
                IncomeEntry.created_at < month.end_at,
            )
            .order_by(IncomeEntry.created_at.asc(), IncomeEntry.id.asc())
        )
        return [int(amount) for amount in self.session.scalars(stmt)]

    def derive_month(self, month: MonthKey, policy: AllocationPolicy) -> Allocation:
        return compute_month_balances(
            self.allocatable_income(month),
            policy,
            savings_cap_mode=self.savings_cap_mode,
        )

    def list_rows(self, month: MonthKey) -> list[CategoryBalance]:
        stmt = (
            select(CategoryBalance)
            .where(
                CategoryBalance.user_id == self.user_id,
                CategoryBalance.year == month.year,
                CategoryBalance.month == month.month,
            )
            .order_by(CategoryBalance.id.asc())
        )
        return self.session.scalars(stmt).all()

    def balances_for_month(self, month: MonthKey) -> dict[BudgetCategory, int]:
        return {row.category: row.balance_cents for row in self.list_rows(month)}

    def _rows_for_update(self, month: MonthKey) -> dict[BudgetCategory, CategoryBalance]:
        stmt = (
            select(CategoryBalance)
            .where(
                CategoryBalance.user_id == self.user_id,
                CategoryBalance.year == month.year,
                CategoryBalance.month == month.month,
            )
            .with_for_update()
        )
        return {row.category: row for row in self.session.scalars(stmt)}

    def recompute_month(
        self, month: MonthKey, policy: Optional[AllocationPolicy] = None
    ) -> Allocation:
        """Overwrite the month's cached rows. Callers hold ``month_write``."""
        if policy is None:
            policy = FundAllocationService(self.session, self.user_id).policy()
        allocation = self.derive_month(month, policy)
        rows = self._rows_for_update(month)
        for category in ALLOCATION_ORDER:
            row = rows.get(category)
            if row is None:
                row = CategoryBalance(
                    user_id=self.user_id,
                    category=category,
                    year=month.year,
                    month=month.month,
                )
                self.session.add(row)
            row.balance_cents = allocation[category]
        self.session.flush()
        logger.info(
            f"recompute_month: user_id={self.user_id} year={month.year} "
            f"month={month.month} income_cents={allocation.income_cents} "
            + " ".join(
                f"{category.name}={allocation[category]}"
                for category in ALLOCATION_ORDER
            )
            + f" dropped_cents={allocation.dropped_cents}"
        )
        return allocation

    def sync_month(self, month: Optional[MonthKey] = None) -> Allocation:
        month = month or current_month()
        policy = FundAllocationService(self.session, self.user_id).policy()
        with month_write(self.session, self.user_id, month):
            allocation = self.recompute_month(month, policy)
        return allocation

    def ensure_month(self, month: Optional[MonthKey] = None) -> list[CategoryBalance]:
        """Make sure the month has one cached row per category."""
        month = month or current_month()
        row = FundAllocationService(self.session, self.user_id).get()
        with month_write(self.session, self.user_id, month):
            existing = self._rows_for_update(month)
            missing = [c for c in ALLOCATION_ORDER if c not in existing]
            if missing and row is not None:
                self.recompute_month(month, AllocationPolicy.from_row(row))
            elif missing:
                for category in missing:
                    self.session.add(
                        CategoryBalance(
                            user_id=self.user_id,
                            category=category,
                            year=month.year,
                            month=month.month,
                            balance_cents=0,
                        )
                    )
                self.session.flush()
        return self.list_rows(month)

    @staticmethod
    def serialize(row: CategoryBalance) -> dict[str, object]:
        return {
            "id": row.id,
            "category": row.category.value,
            "balance": cents_to_units(row.balance_cents),
            "month": row.month,
            "year": row.year,
        }


class IncomeService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        savings_cap_mode: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.balances = CategoryBalanceService(
            session, self.user_id, savings_cap_mode=savings_cap_mode
        )
        self.savings_cap_mode = self.balances.savings_cap_mode

    def _deposit_account(self, account_id: Optional[int]) -> Optional[Account]:
        accounts = AccountService(self.session, self.user_id)
        if account_id:
            return accounts.get(account_id)
        return accounts.default()

    def record(self, data: IncomeIn, *, now: Optional[datetime] = None) -> dict[str, object]:
        policy = FundAllocationService(self.session, self.user_id).policy()
        income_cents = to_cents(data.income)
        if income_cents <= 0:
            raise ValueError("Valid income amount is required")

        now = now or now_local()
        month = MonthKey.of(now.date())
        account = self._deposit_account(data.account_id)
        is_cash = bool(account and account.is_cash)
        excluded = is_cash or not data.allocate_to_budget

        with month_write(self.session, self.user_id, month):
            if excluded:
                breakdown = Allocation(income_cents=income_cents)
            else:
                existing = self.balances.derive_month(month, policy)
                breakdown = allocate_income(
                    income_cents,
                    policy,
                    existing.amounts,
                    savings_cap_mode=self.savings_cap_mode,
                )

            entry = IncomeEntry(
                user_id=self.user_id,
                amount_cents=income_cents,
                description=data.description or None,
                date=data.date or now.date(),
                period_start=data.period_start,
                period_end=data.period_end,
                account_id=account.id if account else None,
                exclude_from_allocation=excluded,
                created_at=now,
                updated_at=now,
            )
            self.session.add(entry)
            self.session.flush()

            if account:
                adjust_balance(self.session, account.id, income_cents)
            else:
                logger.warning(
                    f"record_income: user_id={self.user_id} no default account, "
                    "income not deposited to any account"
                )

            if not excluded:
                self.balances.recompute_month(month, policy)

        logger.info(
            f"record_income: user_id={self.user_id} entry_id={entry.id} "
            f"income_cents={income_cents} excluded={excluded}"
        )
        response: dict[str, object] = {"income": cents_to_units(income_cents)}
        response.update(breakdown.as_dict())
        response.update(
            {
                "total": cents_to_units(breakdown.total_cents),
                "dropped": cents_to_units(breakdown.dropped_cents),
                "incomeEntryId": entry.id,
                "depositedToAccount": account.id if account else None,
                "depositedToAccountName": account.display_name if account else None,
                "isCashAccount": is_cash,
            }
        )
        return response

    def get(self, entry_id: int) -> IncomeEntry:
        entry = self.session.get(IncomeEntry, entry_id)
        if not entry or entry.user_id != self.user_id:
            raise NotFound("Income entry not found")
        return entry

    def month_entries(self, month: Optional[MonthKey] = None) -> list[IncomeEntry]:
        month = month or current_month()
        stmt = (
            select(IncomeEntry)
            .options(joinedload(IncomeEntry.account))
            .where(
                IncomeEntry.user_id == self.user_id,
                IncomeEntry.created_at >= month.start_at,
                IncomeEntry.created_at < month.end_at,
            )
            .order_by(IncomeEntry.created_at.desc(), IncomeEntry.id.desc())
        )
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 50) -> list[IncomeEntry]:
        stmt = (
            select(IncomeEntry)
            .options(joinedload(IncomeEntry.account))
            .where(IncomeEntry.user_id == self.user_id)
            .order_by(IncomeEntry.created_at.desc(), IncomeEntry.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def month_summary(self, month: Optional[MonthKey] = None) -> Optional[dict[str, float]]:
        """Month breakdown; displayed income includes cash, allocation does not."""
        month = month or current_month()
        entries = self.month_entries(month)
        income_all = sum(entry.amount_cents for entry in entries)
        allocatable = [
            entry.amount_cents for entry in entries if not entry.exclude_from_allocation
        ]
        row = FundAllocationService(self.session, self.user_id).get()
        if not allocatable:
            allocation = Allocation(income_cents=0)
        elif row is None:
            return None
        else:
            allocation = compute_month_balances(
                allocatable,
                AllocationPolicy.from_row(row),
                savings_cap_mode=self.savings_cap_mode,
            )
        summary: dict[str, float] = {"income": cents_to_units(income_all)}
        summary.update(allocation.as_dict())
        summary["total"] = cents_to_units(allocation.total_cents)
        return summary

    def latest_breakdown(self) -> Optional[dict[str, object]]:
        entries = self.recent(limit=1)
        row = FundAllocationService(self.session, self.user_id).get()
        if not entries or row is None:
            return None
        entry = entries[0]
        if entry.exclude_from_allocation:
            allocation = Allocation(income_cents=entry.amount_cents)
        else:
            allocation = allocate_income(
                entry.amount_cents,
                AllocationPolicy.from_row(row),
                savings_cap_mode=self.savings_cap_mode,
            )
        breakdown: dict[str, object] = {"income": cents_to_units(entry.amount_cents)}
        breakdown.update(allocation.as_dict())
        breakdown["total"] = cents_to_units(allocation.total_cents)
        return breakdown

    def delete(self, entry_id: int) -> None:
        entry = self.get(entry_id)
        month = MonthKey.of(entry.created_at.date())
        row = FundAllocationService(self.session, self.user_id).get()
        with month_write(self.session, self.user_id, month):
            if entry.account_id is not None:
                adjust_balance(self.session, entry.account_id, -entry.amount_cents)
            self.session.delete(entry)
            self.session.flush()
            if row is not None:
                self.balances.recompute_month(month, AllocationPolicy.from_row(row))

    def reset(self) -> dict[str, int]:
        income_result = self.session.execute(
            delete(IncomeEntry).where(IncomeEntry.user_id == self.user_id)
        )
        balance_result = self.session.execute(
            delete(CategoryBalance).where(CategoryBalance.user_id == self.user_id)
        )
        _commit(self.session)
        logger.info(
            f"income_reset: user_id={self.user_id} "
            f"income_deleted={income_result.rowcount} "
            f"balances_deleted={balance_result.rowcount}"
        )
        return {
            "deletedIncomeCount": income_result.rowcount,
            "deletedBalanceCount": balance_result.rowcount,
        }

    @staticmethod
    def serialize(entry: IncomeEntry) -> dict[str, object]:
        return {
            "id": entry.id,
            "amount": cents_to_units(entry.amount_cents),
            "description": entry.description,
            "date": entry.date.isoformat(),
            "periodStart": entry.period_start.isoformat() if entry.period_start else None,
            "periodEnd": entry.period_end.isoformat() if entry.period_end else None,
            "accountId": entry.account_id,
            "accountName": entry.account.display_name if entry.account else None,
            "excludeFromAllocation": entry.exclude_from_allocation,
            "createdAt": entry.created_at.isoformat(),
        }


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: ExpenseIn) -> Expense:
        account = AccountService(self.session, self.user_id).get(data.account_id)
        amount_cents = to_cents(data.amount)
        if amount_cents <= 0:
            raise ValueError("Amount must be greater than 0")
        expense = Expense(
            user_id=self.user_id,
            account_id=account.id,
            amount_cents=amount_cents,
            description=data.description,
            category=data.category,
            expense_category=data.expense_category,
            date=data.date,
        )
        try:
            adjust_balance(
                self.session, account.id, -amount_cents, require_funds=True
            )
            self.session.add(expense)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(expense)
        return expense

    def list(
        self,
        month: Optional[MonthKey] = None,
        categories: Optional[list[BudgetCategory]] = None,
        limit: int = 100,
    ) -> list[Expense]:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.account))
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
            .limit(limit)
        )
        if month:
            stmt = stmt.where(Expense.date.between(month.start, month.end))
        if categories:
            stmt = stmt.where(Expense.category.in_(categories))
        return self.session.scalars(stmt).all()

    def delete(self, expense_id: int) -> None:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFound("Expense not found")
        adjust_balance(self.session, expense.account_id, expense.amount_cents)
        self.session.delete(expense)
        _commit(self.session)

    def spent_by_category(self, month: MonthKey) -> dict[BudgetCategory, int]:
        """Expense totals per budget category.

        Expenses tagged ``investment`` are legacy data; investment spend comes
        from recorded holdings only.
        """
        stmt = (
            select(
                Expense.category,
                func.coalesce(func.sum(Expense.amount_cents), 0).label("spent"),
            )
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(month.start, month.end),
                Expense.category.is_not(None),
                Expense.category != BudgetCategory.investment,
            )
            .group_by(Expense.category)
        )
        return {
            row.category: int(row.spent or 0) for row in self.session.execute(stmt)
        }

    @staticmethod
    def serialize(expense: Expense) -> dict[str, object]:
        return {
            "id": expense.id,
            "amount": cents_to_units(expense.amount_cents),
            "description": expense.description,
            "date": expense.date.isoformat(),
            "category": expense.category.value if expense.category else None,
            "expenseCategory": expense.expense_category,
            "accountId": expense.account_id,
            "accountName": expense.account.display_name if expense.account else None,
        }


class TransferService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: TransferIn) -> Transfer:
        if data.from_account_id == data.to_account_id:
            raise ValueError("Cannot transfer to the same account")
        accounts = AccountService(self.session, self.user_id)
        try:
            from_account = accounts.get(data.from_account_id)
            to_account = accounts.get(data.to_account_id)
        except NotFound as exc:
            raise NotFound("One or both accounts not found") from exc
        amount_cents = to_cents(data.amount)
        if amount_cents <= 0:
            raise ValueError("Amount must be greater than 0")
        transfer = Transfer(
            user_id=self.user_id,
            from_account_id=from_account.id,
            to_account_id=to_account.id,
            amount_cents=amount_cents,
            description=data.description or None,
            category=data.category,
            date=data.date or now_local().date(),
        )
        try:
            adjust_balance(
                self.session,
                from_account.id,
                -amount_cents,
                require_funds=True,
                message="Insufficient funds",
            )
            adjust_balance(self.session, to_account.id, amount_cents)
            self.session.add(transfer)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(transfer)
        return transfer

    def list(self, month: Optional[MonthKey] = None, limit: int = 100) -> list[Transfer]:
        stmt = (
            select(Transfer)
            .options(joinedload(Transfer.from_account), joinedload(Transfer.to_account))
            .where(Transfer.user_id == self.user_id)
            .order_by(Transfer.date.desc(), Transfer.id.desc())
            .limit(limit)
        )
        if month:
            stmt = stmt.where(Transfer.date.between(month.start, month.end))
        return self.session.scalars(stmt).all()

    def delete(self, transfer_id: int) -> None:
        transfer = self.session.get(Transfer, transfer_id)
        if not transfer or transfer.user_id != self.user_id:
            raise NotFound("Transfer not found")
        adjust_balance(self.session, transfer.from_account_id, transfer.amount_cents)
        adjust_balance(self.session, transfer.to_account_id, -transfer.amount_cents)
        self.session.delete(transfer)
        _commit(self.session)

    def transferred_by_category(self, month: MonthKey) -> dict[BudgetCategory, int]:
        stmt = (
            select(
                Transfer.category,
                func.coalesce(func.sum(Transfer.amount_cents), 0).label("total"),
            )
            .where(
                Transfer.user_id == self.user_id,
                Transfer.date.between(month.start, month.end),
                Transfer.category.is_not(None),
            )
            .group_by(Transfer.category)
        )
        return {
            row.category: int(row.total or 0) for row in self.session.execute(stmt)
        }

    @staticmethod
    def serialize(transfer: Transfer) -> dict[str, object]:
        return {
            "id": transfer.id,
            "amount": cents_to_units(transfer.amount_cents),
            "description": transfer.description,
            "date": transfer.date.isoformat(),
            "category": transfer.category.value if transfer.category else None,
            "fromAccountId": transfer.from_account_id,
            "fromAccountName": transfer.from_account.display_name,
            "toAccountId": transfer.to_account_id,
            "toAccountName": transfer.to_account.display_name,
        }


class InvestmentService:
    INSUFFICIENT_FUNDS = (
        "Insufficient funds in investment account. Transfer money to this "
        "account first using the Transfer functionality."
    )

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: InvestmentIn) -> InvestmentHolding:
        account = self.session.scalar(
            select(Account).where(
                Account.id == data.investment_account_id,
                Account.user_id == self.user_id,
                Account.account_type == AccountType.investment,
            )
        )
        if not account:
            raise NotFound("Investment account not found")
        amount_cents = to_cents(data.total_amount())
        if amount_cents <= 0:
            raise ValueError("Amount must be greater than 0")
        holding = InvestmentHolding(
            user_id=self.user_id,
            account_id=account.id,
            name=data.investment_name.strip(),
            amount_cents=amount_cents,
            shares_micros=int(data.number_of_shares * 1_000_000)
            if data.number_of_shares is not None
            else None,
            price_per_unit_cents=to_cents(data.price_per_unit)
            if data.price_per_unit is not None
            else None,
            brokerage_fee_cents=to_cents(data.brokerage_fee),
            date=data.date or now_local().date(),
        )
        try:
            adjust_balance(
                self.session,
                account.id,
                -amount_cents,
                require_funds=True,
                message=self.INSUFFICIENT_FUNDS,
            )
            self.session.add(holding)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(holding)
        return holding

    def list(
        self, month: Optional[MonthKey] = None, limit: int = 100
    ) -> list[InvestmentHolding]:
        stmt = (
            select(InvestmentHolding)
            .options(joinedload(InvestmentHolding.account))
            .where(InvestmentHolding.user_id == self.user_id)
            .order_by(InvestmentHolding.date.desc(), InvestmentHolding.id.desc())
            .limit(limit)
        )
        if month:
            stmt = stmt.where(InvestmentHolding.date.between(month.start, month.end))
        return self.session.scalars(stmt).all()

    def delete(self, holding_id: int) -> None:
        holding = self.session.get(InvestmentHolding, holding_id)
        if not holding or holding.user_id != self.user_id:
            raise NotFound("Investment not found")
        adjust_balance(self.session, holding.account_id, holding.amount_cents)
        self.session.delete(holding)
        _commit(self.session)

    def total_for(self, month: MonthKey) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(InvestmentHolding.amount_cents), 0)).where(
                    InvestmentHolding.user_id == self.user_id,
                    InvestmentHolding.date.between(month.start, month.end),
                )
            ).scalar_one()
            or 0
        )

    @staticmethod
    def serialize(holding: InvestmentHolding) -> dict[str, object]:
        return {
            "id": holding.id,
            "name": holding.name,
            "amount": cents_to_units(holding.amount_cents),
            "numberOfShares": holding.shares_micros / 1_000_000
            if holding.shares_micros is not None
            else None,
            "pricePerUnit": cents_to_units(holding.price_per_unit_cents)
            if holding.price_per_unit_cents is not None
            else None,
            "brokerageFee": cents_to_units(holding.brokerage_fee_cents),
            "date": holding.date.isoformat(),
            "accountId": holding.account_id,
        }


class CategoryTransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: CategoryTransactionIn) -> CategoryTransaction:
        amount_cents = to_cents(data.amount)
        if amount_cents <= 0:
            raise ValueError("Amount must be greater than 0")
        transaction = CategoryTransaction(
            user_id=self.user_id,
            category=data.category,
            type=data.type,
            amount_cents=amount_cents,
            description=data.description or None,
            date=data.date,
            year=data.date.year,
            month=data.date.month,
        )
        self.session.add(transaction)
        _commit(self.session)
        self.session.refresh(transaction)
        return transaction

    def list(
        self,
        category: Optional[BudgetCategory] = None,
        month: Optional[MonthKey] = None,
        limit: int = 200,
    ) -> list[CategoryTransaction]:
        stmt = (
            select(CategoryTransaction)
            .where(CategoryTransaction.user_id == self.user_id)
            .order_by(CategoryTransaction.date.desc(), CategoryTransaction.id.desc())
            .limit(limit)
        )
        if category:
            stmt = stmt.where(CategoryTransaction.category == category)
        if month:
            stmt = stmt.where(
                CategoryTransaction.year == month.year,
                CategoryTransaction.month == month.month,
            )
        return self.session.scalars(stmt).all()

    def delete(self, transaction_id: int) -> None:
        transaction = self.session.get(CategoryTransaction, transaction_id)
        if not transaction or transaction.user_id != self.user_id:
            raise NotFound("Transaction not found")
        self.session.delete(transaction)
        _commit(self.session)

    @staticmethod
    def serialize(transaction: CategoryTransaction) -> dict[str, object]:
        return {
            "id": transaction.id,
            "category": transaction.category.value,
            "type": transaction.type.value,
            "amount": cents_to_units(transaction.amount_cents),
            "description": transaction.description,
            "date": transaction.date.isoformat(),
            "month": transaction.month,
            "year": transaction.year,
        }


class CategoryTrackingService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        savings_cap_mode: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.balances = CategoryBalanceService(
            session, self.user_id, savings_cap_mode=savings_cap_mode
        )
        self.expenses = ExpenseService(session, self.user_id)
        self.transfers = TransferService(session, self.user_id)
        self.investments = InvestmentService(session, self.user_id)

    def spent_for_month(self, month: MonthKey) -> dict[BudgetCategory, int]:
        spent = {category: 0 for category in ALLOCATION_ORDER}
        spent.update(self.expenses.spent_by_category(month))
        spent[BudgetCategory.investment] = self.investments.total_for(month)
        return spent

    def allocated_for_month(
        self, month: MonthKey, policy: AllocationPolicy
    ) -> dict[BudgetCategory, int]:
        """Cached rows for the current month; every other month is re-derived."""
        if month == current_month():
            cached = self.balances.balances_for_month(month)
            if all(category in cached for category in ALLOCATION_ORDER):
                return cached
        return self.balances.derive_month(month, policy).amounts

    def carryover(
        self, month: MonthKey, policy: AllocationPolicy
    ) -> dict[BudgetCategory, tuple[int, int]]:
        """(carryover, overspending) per category coming into ``month``."""
        previous = month.previous()
        allocated = self.balances.derive_month(previous, policy)
        spent = self.spent_for_month(previous)
        return {
            category: carryover_from(allocated[category], spent[category])
            for category in ALLOCATION_ORDER
        }

    def snapshots(
        self, month: Optional[MonthKey] = None
    ) -> dict[BudgetCategory, CategorySnapshot]:
        month = month or current_month()
        policy = FundAllocationService(self.session, self.user_id).policy()
        allocated = self.allocated_for_month(month, policy)
        spent = self.spent_for_month(month)
        transferred = self.transfers.transferred_by_category(month)
        carry = self.carryover(month, policy)

        out: dict[BudgetCategory, CategorySnapshot] = {}
        for category in ALLOCATION_ORDER:
            carryover, overspending = carry[category]
            out[category] = build_snapshot(
                category,
                allocated=allocated.get(category, 0),
                spent=spent[category],
                transferred=transferred.get(category, 0),
                carryover=carryover,
                overspending=overspending,
            )
        return out

    def tracking(self, month: Optional[MonthKey] = None) -> dict[str, object]:
        month = month or current_month()
        snapshots = self.snapshots(month)
        return {
            "tracking": {
                category.value: snapshot.as_dict()
                for category, snapshot in snapshots.items()
            },
            "month": month.month,
            "year": month.year,
        }


class HistoryService:
    """Trailing months re-derived from the ledgers, never from the cache."""

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        savings_cap_mode: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.tracking = CategoryTrackingService(
            session, self.user_id, savings_cap_mode=savings_cap_mode
        )

    def history(
        self, end: Optional[MonthKey] = None, months: Optional[int] = None
    ) -> dict[str, object]:
        end = end or current_month()
        months = months or get_settings().history_months
        history: dict[str, list[dict[str, object]]] = {
            category.value: [] for category in ALLOCATION_ORDER
        }
        row = FundAllocationService(self.session, self.user_id).get()
        if row is None:
            return {"history": history}
        policy = AllocationPolicy.from_row(row)

        for month in trailing_months(end, months):
            allocation = self.tracking.balances.derive_month(month, policy)
            spent = self.tracking.spent_for_month(month)
            for category in ALLOCATION_ORDER:
                history[category.value].append(
                    history_point(month.label, allocation[category], spent[category])
                )
        return {"history": history}
