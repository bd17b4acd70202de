from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from loguru import logger
from tinydb import Query, TinyDB

from app.core import dates
from app.core.parser import parse_amount
from app.models.schemas import Budget, ExpenseRecord, StoredExpense

HEADER = ["Date", "Category", "Amount", "Description", "Timestamp"]


def row_to_record(cells: Sequence) -> ExpenseRecord | None:
    """Decode one sheet row; ``None`` when date, category or amount is unusable."""
    if len(cells) < 3:
        return None
    date_cell, category, amount_cell = (str(cell).strip() for cell in cells[:3])
    amount = parse_amount(amount_cell)
    if not category or amount is None or dates.parse_canonical_date(date_cell) is None:
        return None
    return ExpenseRecord(
        date=date_cell,
        category=category,
        amount=amount,
        description=str(cells[3]) if len(cells) > 3 else "",
        timestamp=str(cells[4]) if len(cells) > 4 else "",
    )


def record_to_row(record: ExpenseRecord) -> list:
    return [record.date, record.category, record.amount, record.description, record.timestamp]


class LedgerRepository:
    """Spreadsheet-shaped expense ledger on a TinyDB table.

    Each document holds one row of cells under ``values``; the first row is the
    header. TinyDB document ids serve as row handles and stay valid when other
    rows are deleted.
    """

    def __init__(
        self,
        db: TinyDB,
        sheet: str = "Sheet1",
        clock: Callable[[], datetime] = dates.now,
    ):
        self.db = db
        self.table = db.table(sheet)
        self._clock = clock

    def initialize(self) -> None:
        if len(self.table) == 0:
            self.table.insert({"values": list(HEADER)})
            logger.info("Ledger sheet initialized with headers")

    def _rows(self) -> list[StoredExpense]:
        docs = sorted(self.table.all(), key=lambda doc: doc.doc_id)
        rows = []
        for doc in docs:
            cells = doc.get("values", [])
            if list(cells[:3]) == HEADER[:3]:
                continue
            record = row_to_record(cells)
            if record is None:
                logger.debug("Skipping unreadable ledger row {}", doc.doc_id)
                continue
            rows.append(StoredExpense(row_id=doc.doc_id, record=record))
        return rows

    def append(self, record: ExpenseRecord) -> StoredExpense:
        stored = record.model_copy(
            update={
                "timestamp": record.timestamp or dates.current_timestamp(self._clock()),
                "needs_categorization_help": False,
            }
        )
        doc_id = self.table.insert({"values": record_to_row(stored)})
        logger.info("Appended ledger row {}: {} {}", doc_id, stored.category, stored.amount)
        return StoredExpense(row_id=doc_id, record=stored)

    def list_since(self, days: int) -> list[StoredExpense]:
        """Rows dated within the last ``days`` days, in sheet order."""
        threshold = self._clock().date() - timedelta(days=days)
        return [
            row
            for row in self._rows()
            if dates.parse_canonical_date(row.record.date) >= threshold
        ]

    def list_recent(self, limit: int, days: int = 30) -> list[StoredExpense]:
        if limit <= 0:
            return []
        return self.list_since(days)[-limit:]

    def get(self, row_id: int) -> StoredExpense | None:
        doc = self.table.get(doc_id=row_id)
        if doc is None:
            return None
        record = row_to_record(doc.get("values", []))
        if record is None:
            return None
        return StoredExpense(row_id=row_id, record=record)

    def update_at(self, row_id: int, record: ExpenseRecord) -> bool:
        if self.table.get(doc_id=row_id) is None:
            return False
        self.table.update({"values": record_to_row(record)}, doc_ids=[row_id])
        logger.info("Updated ledger row {}", row_id)
        return True

    def delete_at(self, row_id: int) -> bool:
        if self.table.get(doc_id=row_id) is None:
            return False
        self.table.remove(doc_ids=[row_id])
        logger.info("Deleted ledger row {}", row_id)
        return True


class BudgetRepository:
    def __init__(self, db: TinyDB):
        self.db = db
        self.table = db.table("budgets")

    def save(self, category: str, amount: float) -> Budget:
        budget = Budget(category=category.casefold(), amount=amount)
        B = Query()
        self.table.upsert(budget.model_dump(mode="json"), B.category == budget.category)
        return budget

    def get(self, category: str) -> Budget | None:
        B = Query()
        doc = self.table.get(B.category == category.casefold())
        if doc is None:
            return None
        return Budget(**doc)

    def get_all(self) -> list[Budget]:
        return [Budget(**doc) for doc in self.table.all()]
