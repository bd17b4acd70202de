from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

UNCATEGORIZED = "Uncategorized"
DEFAULT_CATEGORY = "Other"

EditableField = Literal["category", "amount", "date", "description"]
EDITABLE_FIELDS: tuple[str, ...] = ("category", "amount", "date", "description")


class ExpenseRecord(BaseModel):
    category: str = UNCATEGORIZED
    amount: float = Field(ge=0)
    date: str
    description: str = ""
    needs_categorization_help: bool = False
    timestamp: str = ""


class StoredExpense(BaseModel):
    row_id: int
    record: ExpenseRecord


class Budget(BaseModel):
    category: str
    amount: float
    updated_at: datetime = Field(default_factory=datetime.now)


# Pending multi-step operations, one variant per conversation state.


class _Pending(BaseModel):
    created_at: datetime
    expires_at: datetime


class DuplicateConfirm(_Pending):
    kind: Literal["duplicate_confirm"] = "duplicate_confirm"
    record: ExpenseRecord
    duplicate_of: ExpenseRecord


class DeleteSelect(_Pending):
    kind: Literal["delete_select"] = "delete_select"
    candidates: list[StoredExpense]


class DeleteConfirm(_Pending):
    kind: Literal["delete_confirm"] = "delete_confirm"
    target: StoredExpense


class EditSelect(_Pending):
    kind: Literal["edit_select"] = "edit_select"
    candidates: list[StoredExpense]


class EditFieldSelect(_Pending):
    kind: Literal["edit_field_select"] = "edit_field_select"
    target: StoredExpense


class EditValueCapture(_Pending):
    kind: Literal["edit_value_capture"] = "edit_value_capture"
    target: StoredExpense
    field: EditableField


PendingOperation = Annotated[
    Union[
        DuplicateConfirm,
        DeleteSelect,
        DeleteConfirm,
        EditSelect,
        EditFieldSelect,
        EditValueCapture,
    ],
    Field(discriminator="kind"),
]


# HTTP API payloads


class ParseRequest(BaseModel):
    message: str


class ParseResponse(BaseModel):
    parsed: ExpenseRecord | None = None
    message: str


class ExpenseStats(BaseModel):
    total: float = 0.0
    count: int = 0
    average: float = 0.0
    highest: ExpenseRecord | None = None
    lowest: ExpenseRecord | None = None
    by_category: dict[str, float] = {}


class ReportResponse(BaseModel):
    days: int
    stats: ExpenseStats
    text: str


class SetBudgetRequest(BaseModel):
    category: str
    amount: float = Field(gt=0)
