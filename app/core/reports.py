"""Plain reductions over ledger records and their chat renderings."""

from datetime import date, timedelta

from app.core import dates
from app.models.schemas import ExpenseRecord, ExpenseStats

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


def format_amount(amount: float, symbol: str = "$") -> str:
    if amount == int(amount):
        return f"{symbol}{int(amount):,}"
    return f"{symbol}{amount:,.2f}"


def expense_line(record: ExpenseRecord, symbol: str = "$") -> str:
    """One-line label: 'Groceries - $25.50 - 03/05/2025 (weekly shop)'."""
    line = f"{record.category} - {format_amount(record.amount, symbol)} - {record.date}"
    if record.description and record.description != record.category:
        line += f" ({record.description})"
    return line


def numbered(records: list[ExpenseRecord], symbol: str = "$") -> str:
    return "\n".join(
        f"{i}. {expense_line(record, symbol)}" for i, record in enumerate(records, 1)
    )


def calculate_stats(records: list[ExpenseRecord]) -> ExpenseStats:
    stats = ExpenseStats(count=len(records))
    if not records:
        return stats

    by_category: dict[str, float] = {}
    for record in records:
        stats.total += record.amount
        by_category[record.category] = by_category.get(record.category, 0.0) + record.amount
        if stats.highest is None or record.amount > stats.highest.amount:
            stats.highest = record
        if stats.lowest is None or record.amount < stats.lowest.amount:
            stats.lowest = record

    stats.total = round(stats.total, 2)
    stats.average = round(stats.total / stats.count, 2)
    stats.by_category = {
        category: round(total, 2)
        for category, total in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    }
    return stats


def format_report(stats: ExpenseStats, days: int, symbol: str = "$") -> str:
    lines = [
        f"Expense Report - Last {days} Days",
        "",
        "Summary:",
        f"Total Spent: {symbol}{stats.total:,.2f}",
        f"Number of Expenses: {stats.count}",
        f"Average Expense: {symbol}{stats.average:,.2f}",
    ]
    if stats.highest is not None:
        lines += [
            "",
            "Highest Expense:",
            f"{symbol}{stats.highest.amount:,.2f} - {stats.highest.category} ({stats.highest.date})",
        ]
    lines += ["", "Spending by Category:"]
    lines += [f"- {category}: {symbol}{total:,.2f}" for category, total in stats.by_category.items()]
    return "\n".join(lines)


def split_periods(
    records: list[ExpenseRecord], days: int, today: date | None = None
) -> tuple[list[ExpenseRecord], list[ExpenseRecord]]:
    """Split records into the last ``days`` days and the ``days`` before that."""
    today = today or dates.today()
    current_start = today - timedelta(days=days)
    previous_start = current_start - timedelta(days=days)
    current, previous = [], []
    for record in records:
        day = dates.parse_canonical_date(record.date)
        if day is None:
            continue
        if day >= current_start:
            current.append(record)
        elif day >= previous_start:
            previous.append(record)
    return current, previous


def format_summary(
    period: str,
    current: list[ExpenseRecord],
    previous: list[ExpenseRecord],
    symbol: str = "$",
) -> str:
    now_stats = calculate_stats(current)
    before_stats = calculate_stats(previous)

    lines = [
        f"Expense Summary - This {period.capitalize()}",
        "",
        f"Total Spent: {symbol}{now_stats.total:,.2f} across {now_stats.count} expenses",
        f"Previous {period}: {symbol}{before_stats.total:,.2f}",
    ]
    if before_stats.total:
        change = (now_stats.total - before_stats.total) / before_stats.total * 100
        direction = "up" if change >= 0 else "down"
        lines.append(f"Change: {direction} {abs(change):.1f}%")

    if now_stats.by_category:
        lines += ["", "By Category:"]
        for category, total in now_stats.by_category.items():
            line = f"- {category}: {symbol}{total:,.2f}"
            earlier = before_stats.by_category.get(category)
            if earlier:
                line += f" (was {symbol}{earlier:,.2f})"
            lines.append(line)
    return "\n".join(lines)


def format_budget_analysis(
    category: str, budget: float, spent: float, symbol: str = "$"
) -> str:
    percent_used = (spent / budget) * 100 if budget else 0.0
    lines = [
        f"Budget Analysis: {category}",
        f"Monthly Budget: {symbol}{budget:,.2f}",
        f"Spent So Far: {symbol}{spent:,.2f}",
        f"Remaining: {symbol}{budget - spent:,.2f}",
        f"Budget Used: {percent_used:.1f}%",
        "",
    ]
    if percent_used >= 100:
        lines.append("⚠️ Budget Exceeded! You have spent more than your allocated budget.")
    elif percent_used >= 80:
        lines.append("⚠️ Warning! You are close to exceeding your budget.")
    else:
        lines.append("✅ You are within your budget limits.")
    return "\n".join(lines)
