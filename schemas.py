import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    AccountType,
    AllocationMode,
    BudgetCategory,
    CategoryTransactionType,
)


class AllocationRuleIn(BaseModel):
    mode: AllocationMode = AllocationMode.percentage
    # Percent for percentage mode, currency units for fixed mode.
    value: Decimal = Field(..., ge=0)
    cap: Optional[Decimal] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _percentage_in_range(self) -> "AllocationRuleIn":
        if self.mode == AllocationMode.percentage and self.value > 100:
            raise ValueError("Percentage allocation cannot exceed 100")
        return self


class FundAllocationIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fixed_costs: AllocationRuleIn = Field(alias="fixedCosts")
    savings: AllocationRuleIn
    investment: AllocationRuleIn
    guilt_free_spending: AllocationRuleIn = Field(alias="guiltFreeSpending")

    def rule_for(self, category: BudgetCategory) -> AllocationRuleIn:
        return getattr(self, category.name)


class AccountIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    bank_name: str = Field(..., min_length=1, max_length=100, alias="bankName")
    account_type: AccountType = Field(alias="accountType")
    starting_funds: Decimal = Field(default=Decimal("0"), ge=0, alias="startingFunds")
    is_default: bool = Field(default=False, alias="isDefault")


class IncomeIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    income: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[dt.date] = None
    period_start: Optional[dt.date] = Field(default=None, alias="periodStart")
    period_end: Optional[dt.date] = Field(default=None, alias="periodEnd")
    account_id: Optional[int] = Field(default=None, alias="accountId")
    allocate_to_budget: bool = Field(default=True, alias="allocateToBudget")


class ExpenseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: int = Field(alias="accountId")
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=200)
    category: Optional[BudgetCategory] = None
    expense_category: Optional[str] = Field(
        default=None, max_length=100, alias="expenseCategory"
    )
    date: dt.date


class TransferIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_account_id: int = Field(alias="fromAccountId")
    to_account_id: int = Field(alias="toAccountId")
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=200)
    category: Optional[BudgetCategory] = None
    date: Optional[dt.date] = None

    @model_validator(mode="after")
    def _distinct_accounts(self) -> "TransferIn":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Cannot transfer to the same account")
        return self


class InvestmentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    investment_account_id: int = Field(alias="investmentAccountId")
    investment_name: str = Field(..., min_length=1, max_length=120, alias="investmentName")
    amount: Optional[Decimal] = Field(default=None, gt=0)
    price_per_unit: Optional[Decimal] = Field(default=None, gt=0, alias="pricePerUnit")
    number_of_shares: Optional[Decimal] = Field(
        default=None, gt=0, alias="numberOfShares"
    )
    brokerage_fee: Decimal = Field(default=Decimal("0"), ge=0, alias="brokerageFee")
    date: Optional[dt.date] = None

    @model_validator(mode="after")
    def _amount_or_shares(self) -> "InvestmentIn":
        has_shares = self.price_per_unit is not None and self.number_of_shares is not None
        if not has_shares and self.amount is None:
            raise ValueError(
                "Either provide amount, or both number of shares and price per unit"
            )
        return self

    def total_amount(self) -> Decimal:
        if self.price_per_unit is not None and self.number_of_shares is not None:
            return self.number_of_shares * self.price_per_unit + self.brokerage_fee
        return self.amount


class CategoryTransactionIn(BaseModel):
    category: BudgetCategory
    type: CategoryTransactionType
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=200)
    date: dt.date
