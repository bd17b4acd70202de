"""Conversation workflow for a single chat user.

Every inbound message goes through :meth:`WorkflowOrchestrator.handle`. A user
with a pending operation gets that operation's step handler; anyone else gets
command routing or expense entry. Each step sends exactly one reply.
"""

import re
from collections.abc import Awaitable, Callable
from typing import Protocol

from loguru import logger

from app.config import Settings
from app.core import parser, reports
from app.core.matching import find_duplicate, find_matches
from app.core.state import ConversationStateStore
from app.db.repository import BudgetRepository, LedgerRepository
from app.llm.insights import InsightService
from app.models.schemas import (
    DEFAULT_CATEGORY,
    EDITABLE_FIELDS,
    UNCATEGORIZED,
    DeleteConfirm,
    DeleteSelect,
    DuplicateConfirm,
    EditFieldSelect,
    EditSelect,
    EditValueCapture,
    ExpenseRecord,
    PendingOperation,
    StoredExpense,
)

COMMAND_PREFIXES = ("/", "!")
# Seconds a duplicate confirmation outlives its reply wait
DUPLICATE_STATE_GRACE = 5.0
BARE_COMMANDS = {"edit", "delete", "cancel", "help"}

CATEGORY_LIST = [
    "Food",
    "Transportation",
    "Entertainment",
    "Utilities",
    "Housing",
    "Healthcare",
    "Personal",
    "Education",
    "Shopping",
    "Travel",
    "Dining",
    "Groceries",
    "Subscriptions",
    "Other",
]

LOOKUP_ARGS_RE = re.compile(
    r"^(?P<category>.+?)\s+(?P<amount>\$?[\d,]+(?:\.\d+)?)(?:\s+(?P<date>\S+))?$"
)

HELP_TEXT = """\
Expense Tracker Bot

Adding expenses:
Just send a message like "Groceries $45.50" or "Coffee $3.75 28/04/2025".
Dates are day/month/year. You can also send only an amount like "$25" and I'll categorize it for you.

Basic commands:
/help - Show this message
/categories - List expense categories
/recent [number] - Show your most recent expenses

Reporting:
/report [days] - Expense report for the last N days (default 30)
/summary [week|month|year] - Spending summary compared to the previous period
/trends - Monthly spending trends

Budgets:
/budget [category] [amount] - Set a budget for a category
/budget [category] - Check a budget against recent spending
/budgets - View all budgets

Managing expenses:
/edit [category] [amount] [date?] - Edit an expense from the last 30 days
/delete [category] [amount] [date?] - Delete an expense from the last 30 days
/cancel - Abandon an edit or delete in progress\
"""

PARSE_FAILURE_TEXT = (
    "Sorry, I couldn't understand your expense format. Please try again with a format "
    'like "Groceries $25.50" or "Coffee $3.75 28/04/2025". You can also just send an '
    'amount like "$45" and I\'ll try to categorize it for you.'
)
FIELD_PROMPT = (
    "Which field do you want to edit?\n- category\n- amount\n- date\n- description"
)
GENERIC_ERROR_TEXT = "Sorry, something went wrong while processing your request."


class Conversation(Protocol):
    """Chat-side handle for the user who sent the current message."""

    user_id: str

    async def reply(self, text: str) -> None: ...

    async def await_next_message(
        self, accept: Callable[[str], bool], timeout: float
    ) -> str | None: ...

    # Wakes a pending await_next_message for this user with None
    def cancel_wait(self) -> None: ...


def is_yes_no(text: str) -> bool:
    return text.strip().lower() in ("yes", "no")


def split_command(text: str) -> tuple[str | None, str]:
    """Return ``(command, args)`` for command messages, ``(None, text)`` otherwise."""
    if not text:
        return None, text
    head, _, rest = text.partition(" ")
    if head[0] in COMMAND_PREFIXES:
        # Telegram groups address commands as /edit@SomeBot
        name = head[1:].split("@", 1)[0].lower()
        return (name or None), rest.strip()
    if head.lower() in BARE_COMMANDS:
        return head.lower(), rest.strip()
    return None, text


def parse_selection(answer: str, count: int) -> int | None:
    """Zero-based index for a 1-based numeric reply, ``None`` when out of range."""
    answer = answer.strip()
    if not answer.isdigit():
        return None
    index = int(answer) - 1
    if index < 0 or index >= count:
        return None
    return index


class WorkflowOrchestrator:
    def __init__(
        self,
        ledger: LedgerRepository,
        budgets: BudgetRepository,
        insights: InsightService,
        state: ConversationStateStore,
        settings: Settings,
    ):
        self.ledger = ledger
        self.budgets = budgets
        self.insights = insights
        self.state = state
        self.settings = settings
        self._steps: dict[str, Callable[..., Awaitable[None]]] = {
            "duplicate_confirm": self._on_duplicate_confirm,
            "delete_select": self._on_delete_select,
            "delete_confirm": self._on_delete_confirm,
            "edit_select": self._on_edit_select,
            "edit_field_select": self._on_edit_field_select,
            "edit_value_capture": self._on_edit_value_capture,
        }
        self._commands: dict[str, Callable[[Conversation, str], Awaitable[None]]] = {
            "help": self._cmd_help,
            "start": self._cmd_help,
            "categories": self._cmd_categories,
            "recent": self._cmd_recent,
            "list": self._cmd_recent,
            "report": self._cmd_report,
            "summary": self._cmd_summary,
            "trends": self._cmd_trends,
            "budget": self._cmd_budget,
            "budgets": self._cmd_budgets,
            "edit": self._cmd_edit,
            "delete": self._cmd_delete,
            "cancel": self._cmd_cancel,
        }

    # -- helpers ---------------------------------------------------------

    def _money(self, amount: float) -> str:
        return reports.format_amount(amount, self.settings.currency_symbol)

    def _line(self, record: ExpenseRecord) -> str:
        return reports.expense_line(record, self.settings.currency_symbol)

    def _timestamps(self) -> dict:
        created, expires = self.state.deadline(self.settings.pending_operation_ttl)
        return {"created_at": created, "expires_at": expires}

    def _delete_prompt(self, record: ExpenseRecord) -> str:
        return (
            "Are you sure you want to delete this expense?\n"
            f"- Category: {record.category}\n"
            f"- Amount: {self._money(record.amount)}\n"
            f"- Date: {record.date}\n"
            "Reply with 'yes' to confirm or 'no' to cancel."
        )

    def _selection_prompt(self, candidates: list[StoredExpense]) -> str:
        listing = reports.numbered(
            [c.record for c in candidates], self.settings.currency_symbol
        )
        return (
            f"Found {len(candidates)} matching expenses. "
            f"Please select one by number:\n\n{listing}"
        )

    # -- entry point -----------------------------------------------------

    async def handle(self, conversation: Conversation, text: str) -> None:
        user_id = conversation.user_id
        try:
            pending = self.state.get(user_id)
            if pending is not None:
                await self._resume(conversation, pending, text)
                return

            cleaned = parser.clean_message(text)
            command, args = split_command(cleaned)
            if command is None:
                await self.record_expense(conversation, cleaned)
                return

            handler = self._commands.get(command)
            if handler is None:
                await conversation.reply("Unknown command. Type /help for a list of commands.")
                return
            await handler(conversation, args)
        except Exception:
            logger.exception("Failed to handle message from user {}", user_id)
            self.state.clear(user_id)
            await conversation.reply(GENERIC_ERROR_TEXT)

    async def _resume(
        self, conversation: Conversation, pending: PendingOperation, text: str
    ) -> None:
        answer = parser.clean_message(text)
        if answer.lower() in ("cancel", "/cancel", "!cancel"):
            self.state.clear(conversation.user_id)
            if pending.kind == "duplicate_confirm":
                conversation.cancel_wait()
                await conversation.reply("Expense recording canceled.")
            else:
                await conversation.reply("Operation canceled.")
            return
        logger.debug("User {} answering {}", conversation.user_id, pending.kind)
        await self._steps[pending.kind](conversation, pending, answer)

    # -- expense entry ---------------------------------------------------

    async def record_expense(self, conversation: Conversation, text: str) -> None:
        record = parser.parse(text)
        if record is None:
            await conversation.reply(PARSE_FAILURE_TEXT)
            return

        recent = self.ledger.list_since(self.settings.duplicate_window_days)
        duplicate = find_duplicate(record, recent, self.state.now())
        if duplicate is not None:
            logger.info("Possible duplicate of ledger row {}", duplicate.row_id)
            if not await self._confirm_duplicate(conversation, record, duplicate.record):
                return

        await self._persist(conversation, record)

    async def _confirm_duplicate(
        self, conversation: Conversation, record: ExpenseRecord, existing: ExpenseRecord
    ) -> bool:
        user_id = conversation.user_id
        timeout = self.settings.duplicate_confirm_timeout
        created, expires = self.state.deadline(timeout + DUPLICATE_STATE_GRACE)
        op = DuplicateConfirm(
            record=record, duplicate_of=existing, created_at=created, expires_at=expires
        )
        self.state.set(user_id, op)
        await conversation.reply(
            "⚠️ This looks similar to a recent expense:\n"
            f"Category: {existing.category}\n"
            f"Amount: {self._money(existing.amount)}\n"
            f"Date: {existing.date}\n\n"
            "Is this a different expense? Reply with 'yes' to confirm or 'no' to cancel."
        )
        # The wait starts only now; keep the state alive past it
        op.expires_at = self.state.deadline(timeout + DUPLICATE_STATE_GRACE)[1]

        try:
            answer = await conversation.await_next_message(is_yes_no, timeout)
        finally:
            still_waiting = self.state.discard(user_id, op)

        if not still_waiting:
            # Answered through the pending-step path or replaced by another operation
            return False
        if answer is None:
            await conversation.reply("No confirmation received. Expense recording canceled.")
            return False
        if answer.strip().lower() == "no":
            await conversation.reply("Expense recording canceled.")
            return False
        return True

    async def _categorize(self, record: ExpenseRecord) -> ExpenseRecord:
        updates = {}
        if record.needs_categorization_help or record.category == UNCATEGORIZED:
            try:
                updates["category"] = await self.insights.categorize(record.description)
            except Exception:
                logger.exception("Categorization failed, using default category")
                updates["category"] = DEFAULT_CATEGORY
            logger.info("Categorized '{}' as {}", record.description, updates["category"])

        if self.insights.available and record.description and len(record.description) < 10:
            try:
                enhanced = await self.insights.enhance_description(record.description)
            except Exception:
                logger.exception("Description enhancement failed")
                enhanced = None
            if enhanced and enhanced != record.description:
                updates["description"] = enhanced

        return record.model_copy(update=updates) if updates else record

    async def _persist(self, conversation: Conversation, record: ExpenseRecord) -> None:
        record = await self._categorize(record)
        stored = self.ledger.append(record).record

        message = (
            "✅ Expense recorded successfully!\n"
            f"Category: {stored.category}\n"
            f"Amount: {self._money(stored.amount)}\n"
            f"Date: {stored.date}"
        )
        if stored.description and stored.description != stored.category:
            message += f"\nDescription: {stored.description}"
        await conversation.reply(message)

    # -- pending steps ---------------------------------------------------

    async def _on_duplicate_confirm(
        self, conversation: Conversation, op: DuplicateConfirm, answer: str
    ) -> None:
        response = answer.lower()
        if response == "yes":
            self.state.clear(conversation.user_id)
            conversation.cancel_wait()
            await self._persist(conversation, op.record)
        elif response == "no":
            self.state.clear(conversation.user_id)
            conversation.cancel_wait()
            await conversation.reply("Expense recording canceled.")
        else:
            await conversation.reply(
                "Please reply with 'yes' to record the expense or 'no' to cancel it first."
            )

    async def _on_delete_select(
        self, conversation: Conversation, op: DeleteSelect, answer: str
    ) -> None:
        index = parse_selection(answer, len(op.candidates))
        if index is None:
            await conversation.reply(
                f"Invalid selection. Please enter a number from 1 to {len(op.candidates)}."
            )
            return
        target = op.candidates[index]
        self.state.set(conversation.user_id, DeleteConfirm(target=target, **self._timestamps()))
        await conversation.reply(self._delete_prompt(target.record))

    async def _on_delete_confirm(
        self, conversation: Conversation, op: DeleteConfirm, answer: str
    ) -> None:
        response = answer.lower()
        if response == "yes":
            self.state.clear(conversation.user_id)
            if self.ledger.delete_at(op.target.row_id):
                await conversation.reply("✅ Expense deleted successfully.")
            else:
                await conversation.reply("That expense no longer exists.")
        elif response == "no":
            self.state.clear(conversation.user_id)
            await conversation.reply("Deletion canceled.")
        else:
            await conversation.reply("I didn't understand that. Please reply with 'yes' or 'no'.")

    async def _on_edit_select(
        self, conversation: Conversation, op: EditSelect, answer: str
    ) -> None:
        index = parse_selection(answer, len(op.candidates))
        if index is None:
            await conversation.reply(
                f"Invalid selection. Please enter a number from 1 to {len(op.candidates)}."
            )
            return
        target = op.candidates[index]
        self.state.set(
            conversation.user_id, EditFieldSelect(target=target, **self._timestamps())
        )
        await conversation.reply(FIELD_PROMPT)

    async def _on_edit_field_select(
        self, conversation: Conversation, op: EditFieldSelect, answer: str
    ) -> None:
        field = answer.strip().lower()
        if field not in EDITABLE_FIELDS:
            await conversation.reply(
                "Invalid field. Please enter one of: category, amount, date, description"
            )
            return
        self.state.set(
            conversation.user_id,
            EditValueCapture(target=op.target, field=field, **self._timestamps()),
        )
        await conversation.reply(f"Please enter the new {field} value:")

    async def _on_edit_value_capture(
        self, conversation: Conversation, op: EditValueCapture, answer: str
    ) -> None:
        value = answer.strip()
        if op.field == "amount":
            amount = parser.parse_amount(value)
            if amount is None:
                await conversation.reply("Invalid amount. Please enter a numeric value.")
                return
            new_value = round(amount, 2)
        elif op.field == "date":
            new_value = parser.parse_date_token(value)
            if new_value is None:
                await conversation.reply(
                    "Invalid date. Please enter the date as DD/MM/YYYY, e.g. 28/04/2025."
                )
                return
        else:
            new_value = value

        updated = op.target.record.model_copy(update={op.field: new_value})
        self.state.clear(conversation.user_id)
        if not self.ledger.update_at(op.target.row_id, updated):
            await conversation.reply("That expense no longer exists.")
            return
        await conversation.reply(f"✅ Expense updated successfully.\n{self._line(updated)}")

    # -- commands --------------------------------------------------------

    async def _cmd_help(self, conversation: Conversation, args: str) -> None:
        await conversation.reply(HELP_TEXT)

    async def _cmd_categories(self, conversation: Conversation, args: str) -> None:
        listing = "\n".join(f"- {category}" for category in CATEGORY_LIST)
        await conversation.reply(
            f"Available Expense Categories:\n\n{listing}\n\n"
            "When adding expenses, you can use any of these categories or create your own."
        )

    async def _cmd_cancel(self, conversation: Conversation, args: str) -> None:
        await conversation.reply("Nothing to cancel.")

    async def _cmd_recent(self, conversation: Conversation, args: str) -> None:
        limit = self.settings.recent_default_limit
        tokens = args.split()
        if tokens and tokens[0].isdigit():
            limit = max(int(tokens[0]), 1)
        expenses = self.ledger.list_recent(limit, self.settings.lookup_window_days)
        if not expenses:
            await conversation.reply("No recent expenses found.")
            return
        listing = reports.numbered([e.record for e in expenses], self.settings.currency_symbol)
        await conversation.reply(
            f"{len(expenses)} Most Recent Expenses:\n\n{listing}\n\n"
            "To edit: /edit [category] [amount]\nTo delete: /delete [category] [amount]"
        )

    async def _cmd_report(self, conversation: Conversation, args: str) -> None:
        days = 30
        tokens = args.split()
        if tokens and tokens[0].lstrip("-").isdigit():
            days = int(tokens[0])
            if days <= 0:
                days = 30
            days = min(days, 365)

        records = [e.record for e in self.ledger.list_since(days)]
        if not records:
            await conversation.reply(f"No expenses found for the last {days} days.")
            return

        stats = reports.calculate_stats(records)
        text = reports.format_report(stats, days, self.settings.currency_symbol)
        insights = await self.insights.analyze_expenses(records)
        if insights:
            text += f"\n\nAI Insights:\n{insights}"
        await conversation.reply(text)

    async def _cmd_summary(self, conversation: Conversation, args: str) -> None:
        tokens = args.split()
        period = tokens[0].lower() if tokens else "month"
        if period not in reports.PERIOD_DAYS:
            await conversation.reply(
                "Please specify a valid period: week, month, or year. Example: /summary week"
            )
            return
        await self._send_summary(conversation, period)

    async def _cmd_trends(self, conversation: Conversation, args: str) -> None:
        await self._send_summary(conversation, "month")

    async def _send_summary(self, conversation: Conversation, period: str) -> None:
        days = reports.PERIOD_DAYS[period]
        records = [e.record for e in self.ledger.list_since(days * 2)]
        current, previous = reports.split_periods(records, days, self.state.now().date())
        if not current and not previous:
            await conversation.reply(f"No expenses found for the last {period}.")
            return

        text = reports.format_summary(period, current, previous, self.settings.currency_symbol)
        digest = await self.insights.monthly_digest(current, previous)
        if digest is not None:
            text += f"\n\nAI Insights:\n{digest.insights}"
            if digest.suggestions:
                text += "\n\nSuggestions:\n" + "\n".join(f"- {s}" for s in digest.suggestions)
        await conversation.reply(text)

    async def _cmd_budget(self, conversation: Conversation, args: str) -> None:
        tokens = args.split()
        if not tokens:
            await conversation.reply(
                "Please specify a category. Example: /budget Groceries to check a budget "
                "or /budget Groceries 200 to set one."
            )
            return

        amount = parser.parse_amount(tokens[-1]) if len(tokens) > 1 else None
        if amount is not None:
            category = " ".join(tokens[:-1])
            if amount <= 0:
                await conversation.reply(
                    "Please provide a category and a positive amount. Example: /budget Groceries 200"
                )
                return
            self.budgets.save(category, amount)
            logger.info("Budget for {} set to {}", category, amount)
        else:
            category = " ".join(tokens)
            saved = self.budgets.get(category)
            if saved is None:
                await conversation.reply(
                    f"No budget set for {category}. Use /budget {category} [amount] to set one."
                )
                return
            amount = saved.amount

        wanted = category.casefold()
        records = [
            e.record
            for e in self.ledger.list_since(self.settings.lookup_window_days)
            if e.record.category.casefold() == wanted
        ]
        if not records:
            await conversation.reply(
                f"No recent expenses found for the {category} category. "
                f"Budget set to {self._money(amount)}."
            )
            return

        spent = round(sum(r.amount for r in records), 2)
        text = reports.format_budget_analysis(
            category, amount, spent, self.settings.currency_symbol
        )
        recommendations = await self.insights.recommend_budget(category, amount, spent, records)
        if recommendations:
            text += f"\n\nAI Recommendations:\n{recommendations}"
        await conversation.reply(text)

    async def _cmd_budgets(self, conversation: Conversation, args: str) -> None:
        budgets = self.budgets.get_all()
        if not budgets:
            await conversation.reply(
                "No budgets have been set yet. Use /budget [category] [amount] to set a budget."
            )
            return
        lines = ["Your Current Budgets:", ""]
        lines += [
            f"{b.category.capitalize()}: {self.settings.currency_symbol}{b.amount:,.2f}"
            for b in budgets
        ]
        lines += ["", "Use /budget [category] to see detailed analysis for a specific category."]
        await conversation.reply("\n".join(lines))

    def _lookup(self, args: str) -> tuple[list[StoredExpense] | None, str | None]:
        """Resolve ``<category> <amount> [date]`` into matches, or an error reply."""
        match = LOOKUP_ARGS_RE.match(args.strip())
        if match is None:
            return None, None
        amount = parser.parse_amount(match.group("amount"))
        if amount is None:
            return None, "Invalid amount. Please provide a numeric value."
        date = match.group("date")
        if date:
            date = parser.parse_date_token(date) or date
        expenses = self.ledger.list_since(self.settings.lookup_window_days)
        return find_matches(expenses, match.group("category"), amount, date), None

    async def _cmd_delete(self, conversation: Conversation, args: str) -> None:
        matches, error = self._lookup(args)
        if matches is None:
            await conversation.reply(
                error
                or "Please provide the category and amount of the expense to delete. "
                "Example: /delete Groceries 25.50"
            )
            return
        if not matches:
            await conversation.reply("No matching expense found.")
            return

        if len(matches) == 1:
            target = matches[0]
            self.state.set(
                conversation.user_id, DeleteConfirm(target=target, **self._timestamps())
            )
            await conversation.reply(self._delete_prompt(target.record))
        else:
            self.state.set(
                conversation.user_id, DeleteSelect(candidates=matches, **self._timestamps())
            )
            await conversation.reply(self._selection_prompt(matches))

    async def _cmd_edit(self, conversation: Conversation, args: str) -> None:
        matches, error = self._lookup(args)
        if matches is None:
            await conversation.reply(
                error
                or "Please provide the category and amount of the expense to edit. "
                "Example: /edit Groceries 25.50"
            )
            return
        if not matches:
            await conversation.reply("No matching expense found.")
            return

        if len(matches) == 1:
            self.state.set(
                conversation.user_id,
                EditFieldSelect(target=matches[0], **self._timestamps()),
            )
            await conversation.reply(FIELD_PROMPT)
        else:
            self.state.set(
                conversation.user_id, EditSelect(candidates=matches, **self._timestamps())
            )
            await conversation.reply(self._selection_prompt(matches))
