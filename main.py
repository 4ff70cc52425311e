import logging
import tomllib
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from models import BudgetCategory
from periods import MonthKey, current_month
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    CategoryTransactionIn,
    ExpenseIn,
    FundAllocationIn,
    IncomeIn,
    InvestmentIn,
    TransferIn,
)
from services import (
    AccountService,
    CategoryBalanceService,
    CategoryTrackingService,
    CategoryTransactionService,
    ExpenseService,
    FundAllocationService,
    HistoryService,
    IncomeService,
    InvestmentService,
    NotFound,
    PolicyMissing,
    TransferService,
)

app = FastAPI(title="Budget Allocation")


def _load_app_version() -> str:
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, ValueError):
        return "unknown"


APP_VERSION = _load_app_version()

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    logging.info(f"app_startup: version={APP_VERSION}")
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logging.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def month_from_query(month: Optional[int], year: Optional[int]) -> MonthKey:
    if month is None and year is None:
        return current_month()
    today = current_month()
    try:
        return MonthKey(year or today.year, month or today.month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _raise_for(exc: ValueError) -> None:
    if isinstance(exc, (PolicyMissing, NotFound)):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/version")
def version():
    return {"version": APP_VERSION}


@app.get("/api/fund-allocation")
def get_fund_allocation(db: Session = Depends(get_db)):
    row = FundAllocationService(db).get_or_create_default()
    return FundAllocationService.serialize(row)


@app.put("/api/fund-allocation")
def update_fund_allocation(data: FundAllocationIn, db: Session = Depends(get_db)):
    try:
        row = FundAllocationService(db).update(data)
    except ValueError as exc:
        _raise_for(exc)
    return FundAllocationService.serialize(row)


@app.post("/api/calculate")
def calculate(data: IncomeIn, db: Session = Depends(get_db)):
    try:
        return IncomeService(db).record(data)
    except ValueError as exc:
        _raise_for(exc)


@app.get("/api/income-entries")
def list_income_entries(
    current_month_only: bool = Query(False, alias="currentMonth"),
    latest: bool = False,
    db: Session = Depends(get_db),
):
    service = IncomeService(db)
    if latest:
        return {"breakdown": service.latest_breakdown()}
    if current_month_only:
        entries = service.month_entries()
        return {
            "entries": [IncomeService.serialize(e) for e in entries],
            "summary": service.month_summary(),
        }
    return {"entries": [IncomeService.serialize(e) for e in service.recent()]}


@app.delete("/api/income-entries")
def reset_income_entries(db: Session = Depends(get_db)):
    return IncomeService(db).reset()


@app.delete("/api/income-entries/{entry_id}")
def delete_income_entry(entry_id: int, db: Session = Depends(get_db)):
    try:
        IncomeService(db).delete(entry_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": entry_id}


@app.get("/api/category-balances")
def list_category_balances(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    key = month_from_query(month, year)
    rows = CategoryBalanceService(db).list_rows(key)
    return {
        "balances": [CategoryBalanceService.serialize(row) for row in rows],
        "month": key.month,
        "year": key.year,
    }


@app.post("/api/sync-category-balances")
def sync_category_balances(db: Session = Depends(get_db)):
    service = CategoryBalanceService(db)
    key = current_month()
    try:
        service.sync_month(key)
    except ValueError as exc:
        _raise_for(exc)
    return {
        "balances": [
            CategoryBalanceService.serialize(row) for row in service.list_rows(key)
        ],
        "month": key.month,
        "year": key.year,
    }


@app.post("/api/monthly-reset")
def monthly_reset(db: Session = Depends(get_db)):
    key = current_month()
    rows = CategoryBalanceService(db).ensure_month(key)
    return {
        "balances": [CategoryBalanceService.serialize(row) for row in rows],
        "month": key.month,
        "year": key.year,
    }


@app.get("/api/category-tracking")
def category_tracking(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    key = month_from_query(month, year)
    try:
        return CategoryTrackingService(db).tracking(key)
    except ValueError as exc:
        _raise_for(exc)


@app.get("/api/category-tracking/history")
def category_history(db: Session = Depends(get_db)):
    return HistoryService(db).history()


@app.get("/api/category-transactions")
def list_category_transactions(
    category: Optional[BudgetCategory] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    key = month_from_query(month, year) if (month and year) else None
    transactions = CategoryTransactionService(db).list(category=category, month=key)
    return {
        "transactions": [
            CategoryTransactionService.serialize(t) for t in transactions
        ]
    }


@app.post("/api/category-transactions", status_code=201)
def create_category_transaction(
    data: CategoryTransactionIn, db: Session = Depends(get_db)
):
    try:
        transaction = CategoryTransactionService(db).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return {"transaction": CategoryTransactionService.serialize(transaction)}


@app.delete("/api/category-transactions/{transaction_id}")
def delete_category_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        CategoryTransactionService(db).delete(transaction_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": transaction_id}


@app.get("/api/accounts")
def list_accounts(db: Session = Depends(get_db)):
    return {
        "accounts": [AccountService.serialize(a) for a in AccountService(db).list_all()]
    }


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return AccountService.serialize(account)


@app.delete("/api/accounts/{account_id}")
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": account_id}


@app.get("/api/expenses")
def list_expenses(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    key = month_from_query(month, year) if (month or year) else None
    expenses = ExpenseService(db).list(month=key)
    return {"expenses": [ExpenseService.serialize(e) for e in expenses]}


@app.post("/api/expenses", status_code=201)
def create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return ExpenseService.serialize(expense)


@app.delete("/api/expenses/{expense_id}")
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete(expense_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": expense_id}


@app.get("/api/transfers")
def list_transfers(db: Session = Depends(get_db)):
    transfers = TransferService(db).list()
    return {"transfers": [TransferService.serialize(t) for t in transfers]}


@app.post("/api/transfers", status_code=201)
def create_transfer(data: TransferIn, db: Session = Depends(get_db)):
    try:
        transfer = TransferService(db).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return TransferService.serialize(transfer)


@app.delete("/api/transfers/{transfer_id}")
def delete_transfer(transfer_id: int, db: Session = Depends(get_db)):
    try:
        TransferService(db).delete(transfer_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": transfer_id}


@app.get("/api/investments")
def list_investments(db: Session = Depends(get_db)):
    holdings = InvestmentService(db).list()
    return {"investments": [InvestmentService.serialize(h) for h in holdings]}


@app.post("/api/investments", status_code=201)
def create_investment(data: InvestmentIn, db: Session = Depends(get_db)):
    try:
        holding = InvestmentService(db).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return InvestmentService.serialize(holding)


@app.delete("/api/investments/{holding_id}")
def delete_investment(holding_id: int, db: Session = Depends(get_db)):
    try:
        InvestmentService(db).delete(holding_id)
    except ValueError as exc:
        _raise_for(exc)
    return {"deleted": holding_id}


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
