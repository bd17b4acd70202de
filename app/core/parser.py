"""Free-text expense parsing.

Turns one chat line such as ``"Groceries $25.50 03/05/2025"`` into an
:class:`ExpenseRecord`. Two grammars are tried in order:

1. category + amount [+ date]
2. amount [+ date], which marks the record for AI categorization

Anything else yields ``None``. Date tokens are always read day-first.
"""

import math
import re
from datetime import date

from app.core import dates
from app.models.schemas import UNCATEGORIZED, ExpenseRecord

MENTION_RE = re.compile(r"<@!?\d+>|(?<![\w@])@[A-Za-z][A-Za-z0-9_]*")

# At most two fraction digits: "12.345" is not an amount token.
_AMOUNT = r"\$?(?P<amount>\d+(?:\.\d{1,2})?)(?!\.?\d)"
_DATE = (
    r"(?:(?P<dmy_slash>\d{1,2}/\d{1,2}/\d{2,4})"
    r"|(?P<dmy_dash>\d{1,2}-\d{1,2}-\d{2,4})"
    r"|(?P<ymd>\d{4}-\d{1,2}-\d{1,2}))(?!\d)"
)

CATEGORY_EXPENSE_RE = re.compile(
    rf"(?P<category>[A-Za-z][A-Za-z\s]*)\s+{_AMOUNT}\s*(?:{_DATE})?", re.IGNORECASE
)
AMOUNT_ONLY_RE = re.compile(rf"(?<![\w.]){_AMOUNT}\s*(?:{_DATE})?", re.IGNORECASE)
DATE_TOKEN_RE = re.compile(rf"^{_DATE}$")


def clean_message(text: str) -> str:
    return MENTION_RE.sub("", text or "").strip()


def _date_from_match(match: re.Match) -> date | None:
    token = match.group("dmy_slash") or match.group("dmy_dash")
    if token:
        day, month, year = (int(part) for part in re.split(r"[/-]", token))
    elif match.group("ymd"):
        year, month, day = (int(part) for part in match.group("ymd").split("-"))
    else:
        return None
    if year < 100:
        year += 2000
    return date(year, month, day)


def parse_date_token(token: str) -> str | None:
    """Canonicalize a standalone date token, or return ``None``."""
    match = DATE_TOKEN_RE.match(token.strip())
    if match is None:
        return None
    try:
        return dates.normalize(_date_from_match(match))
    except ValueError:
        return None


def parse_amount(text: str) -> float | None:
    """Read a user-typed amount, ignoring currency symbols and thousands separators."""
    cleaned = re.sub(r"[$,]", "", text or "").strip()
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


def parse(text: str) -> ExpenseRecord | None:
    cleaned = clean_message(text)
    if not cleaned:
        return None

    needs_help = False
    match = CATEGORY_EXPENSE_RE.search(cleaned)
    if match is None:
        match = AMOUNT_ONLY_RE.search(cleaned)
        if match is None:
            return None
        needs_help = True

    try:
        explicit_date = _date_from_match(match)
    except ValueError:
        # Day-first token that is not a real calendar date, e.g. 31/02/2025
        return None
    expense_date = dates.normalize(explicit_date) if explicit_date else dates.normalize()

    amount = round(float(match.group("amount")), 2)
    if needs_help:
        category = UNCATEGORIZED
        description = cleaned
    else:
        category = match.group("category").strip()
        description = category

    return ExpenseRecord(
        category=category,
        amount=amount,
        date=expense_date,
        description=description,
        needs_categorization_help=needs_help,
    )
