"""Fixed-offset calendar helpers.

Every stored date is rendered in UTC+05:30 no matter what timezone the host
runs in, so the same instant always produces the same ``DD/MM/YYYY`` string.
"""

from datetime import date, datetime, time, timedelta, timezone

LEDGER_TZ = timezone(timedelta(hours=5, minutes=30), name="IST")

DATE_FORMAT = "%d/%m/%Y"
TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"


def now() -> datetime:
    """Current instant as an aware datetime in the ledger offset."""
    return datetime.now(timezone.utc).astimezone(LEDGER_TZ)


def to_ledger_time(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC, never host-local.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(LEDGER_TZ)


def normalize(value: datetime | date | None = None) -> str:
    """Render an instant or calendar date as canonical ``DD/MM/YYYY``.

    Plain dates are already calendar values and are rendered as-is; datetimes
    are shifted into the ledger offset first. ``None`` means now.
    """
    if value is None:
        value = now()
    if isinstance(value, datetime):
        value = to_ledger_time(value).date()
    return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"


def current_timestamp(at: datetime | None = None) -> str:
    moment = to_ledger_time(at) if at is not None else now()
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_canonical_date(value: str) -> date | None:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except (ValueError, AttributeError):
        return None


def parse_canonical_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.strptime(value.strip(), TIMESTAMP_FORMAT)
    except (ValueError, AttributeError):
        pass
    else:
        return parsed.replace(tzinfo=LEDGER_TZ)
    # Older sheets carry ISO-8601 UTC timestamps
    try:
        return to_ledger_time(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except (ValueError, AttributeError):
        return None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=LEDGER_TZ)


def today() -> date:
    return now().date()
