from datetime import datetime

from app.core import dates
from app.models.schemas import ExpenseRecord, StoredExpense

AMOUNT_TOLERANCE = 0.01
DUPLICATE_AMOUNT_DELTA = 1.0
DUPLICATE_HOURS = 48


def find_matches(
    expenses: list[StoredExpense],
    category: str,
    amount: float,
    date: str | None = None,
) -> list[StoredExpense]:
    """Edit/delete lookup: case-insensitive category, amount within a cent, optional exact date."""
    wanted = category.strip().casefold()
    matches = []
    for expense in expenses:
        record = expense.record
        if record.category.strip().casefold() != wanted:
            continue
        if abs(record.amount - amount) >= AMOUNT_TOLERANCE:
            continue
        if date and record.date != date:
            continue
        matches.append(expense)
    return matches


def record_instant(record: ExpenseRecord, now: datetime | None = None) -> datetime | None:
    """When a record happened, as precisely as the row allows.

    A saved timestamp wins. An unsaved record dated today is taken to happen
    now; otherwise midnight of its date is used.
    """
    if record.timestamp:
        stamped = dates.parse_canonical_timestamp(record.timestamp)
        if stamped is not None:
            return stamped
    day = dates.parse_canonical_date(record.date)
    if day is None:
        return None
    if not record.timestamp and now is not None:
        current = dates.to_ledger_time(now)
        if day == current.date():
            return current
    return dates.start_of_day(day)


def is_probable_duplicate(
    candidate: ExpenseRecord, existing: ExpenseRecord, now: datetime | None = None
) -> bool:
    # Case-sensitive, unlike edit/delete lookups.
    if candidate.category != existing.category:
        return False
    if abs(candidate.amount - existing.amount) >= DUPLICATE_AMOUNT_DELTA:
        return False
    first = record_instant(candidate, now)
    second = record_instant(existing, now)
    if first is None or second is None:
        return False
    return abs((first - second).total_seconds()) < DUPLICATE_HOURS * 3600


def find_duplicate(
    candidate: ExpenseRecord,
    recent: list[StoredExpense],
    now: datetime | None = None,
) -> StoredExpense | None:
    for expense in recent:
        if is_probable_duplicate(candidate, expense.record, now):
            return expense
    return None
