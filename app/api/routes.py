from fastapi import APIRouter, HTTPException, Query
from loguru import logger

from app.core import parser, reports
from app.deps import budgets, insights, ledger, settings
from app.models.schemas import (
    Budget,
    ParseRequest,
    ParseResponse,
    ReportResponse,
    SetBudgetRequest,
    StoredExpense,
)

router = APIRouter()


@router.get("/health")
def health():
    return {
        "status": "healthy",
        "ai_enabled": insights.available,
        "recent_expenses": len(ledger.list_since(settings.lookup_window_days)),
    }


@router.post("/parse", response_model=ParseResponse)
def parse_message(request: ParseRequest):
    logger.info("Parsing message: {}", request.message)
    record = parser.parse(request.message)
    if record is None:
        return ParseResponse(parsed=None, message="Could not understand that expense.")
    return ParseResponse(parsed=record, message="Parsed expense.")


@router.get("/expenses", response_model=list[StoredExpense])
def list_expenses(days: int = Query(default=30, ge=1, le=365)):
    return ledger.list_since(days)


@router.get("/expenses/{row_id}", response_model=StoredExpense)
def get_expense(row_id: int):
    expense = ledger.get(row_id)
    if expense is None:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.delete("/expenses/{row_id}")
def delete_expense(row_id: int):
    if not ledger.delete_at(row_id):
        raise HTTPException(status_code=404, detail="Expense not found")
    logger.info("Deleted expense row #{}", row_id)
    return {"detail": "Expense deleted"}


@router.get("/report", response_model=ReportResponse)
def get_report(days: int = Query(default=30, ge=1, le=365)):
    records = [e.record for e in ledger.list_since(days)]
    stats = reports.calculate_stats(records)
    return ReportResponse(
        days=days,
        stats=stats,
        text=reports.format_report(stats, days, settings.currency_symbol),
    )


@router.get("/budgets", response_model=list[Budget])
def list_budgets():
    return budgets.get_all()


@router.put("/budgets", response_model=Budget)
def set_budget(request: SetBudgetRequest):
    if not request.category.strip():
        raise HTTPException(status_code=400, detail="Category must not be empty")
    budget = budgets.save(request.category.strip(), request.amount)
    logger.info("Budget for {} set to {}", budget.category, budget.amount)
    return budget
