"""Shared fixtures.

Tests never talk to Telegram, OpenRouter or a real ledger file: the
conversation and insight service are in-memory fakes, TinyDB runs on
``MemoryStorage`` and the clock is pinned so date defaults are predictable.
"""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

# app.deps builds its TinyDB at import time; keep it out of the working tree.
os.environ.setdefault("DB_PATH", str(Path(tempfile.gettempdir()) / "expense-ledger-tests.json"))
os.environ.setdefault("OPENROUTER_API_KEY", "")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")

from app.config import Settings  # noqa: E402
from app.core import dates  # noqa: E402
from app.core.state import ConversationStateStore  # noqa: E402
from app.core.workflow import WorkflowOrchestrator  # noqa: E402
from app.db.repository import BudgetRepository, LedgerRepository  # noqa: E402
from app.llm.insights import MonthlyDigest, NullInsights  # noqa: E402
from app.models.schemas import ExpenseRecord  # noqa: E402

FIXED_NOW = datetime(2025, 5, 10, 12, 0, 0, tzinfo=dates.LEDGER_TZ)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeConversation:
    """Records replies; answers the bounded wait from a script.

    ``answer`` may be a string, ``None`` (timeout) or an async callable
    receiving ``(accept, timeout)``.
    """

    def __init__(self, user_id: str = "user-1", answer=None):
        self.user_id = user_id
        self.replies: list[str] = []
        self.answer = answer
        self.waits: list[float] = []
        self.released = 0

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def await_next_message(self, accept, timeout):
        self.waits.append(timeout)
        if callable(self.answer):
            return await self.answer(accept, timeout)
        if self.answer is not None and not accept(self.answer):
            return None
        return self.answer

    def cancel_wait(self) -> None:
        self.released += 1

    @property
    def last(self) -> str:
        return self.replies[-1]


class StubInsights:
    """Available insight service with canned answers and call capture."""

    available = True

    def __init__(self, category: str = "Food", fail: bool = False):
        self.category = category
        self.fail = fail
        self.calls: list[tuple[str, object]] = []

    async def categorize(self, description: str) -> str:
        self.calls.append(("categorize", description))
        if self.fail:
            raise RuntimeError("insight backend down")
        return self.category

    async def enhance_description(self, description: str) -> str:
        self.calls.append(("enhance_description", description))
        return description

    async def analyze_expenses(self, records):
        self.calls.append(("analyze_expenses", len(records)))
        return "You spend a lot on coffee."

    async def recommend_budget(self, category, budget, spent, records):
        self.calls.append(("recommend_budget", category))
        return "Cook at home twice a week."

    async def monthly_digest(self, current, previous):
        self.calls.append(("monthly_digest", (len(current), len(previous))))
        return MonthlyDigest(insights="Spending is steady.", suggestions=["Keep it up"])


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(dates, "now", fake)
    return fake


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, openrouter_api_key="", telegram_bot_token="")


@pytest.fixture
def db():
    database = TinyDB(storage=MemoryStorage)
    yield database
    database.close()


@pytest.fixture
def ledger(db, clock) -> LedgerRepository:
    repo = LedgerRepository(db, clock=clock)
    repo.initialize()
    return repo


@pytest.fixture
def budgets(db) -> BudgetRepository:
    return BudgetRepository(db)


@pytest.fixture
def state(clock) -> ConversationStateStore:
    return ConversationStateStore(clock=clock)


@pytest.fixture
def insights():
    return NullInsights()


@pytest.fixture
def orchestrator(ledger, budgets, insights, state, settings) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(ledger, budgets, insights, state, settings)


@pytest.fixture
def conversation() -> FakeConversation:
    return FakeConversation()


@pytest.fixture
def seed(ledger):
    """Append ledger rows: ``seed("Coffee", 4.0, "08/05/2025", "08/05/2025 09:00:00")``."""

    def _seed(category, amount, date, timestamp="", description=None):
        return ledger.append(
            ExpenseRecord(
                category=category,
                amount=amount,
                date=date,
                description=category if description is None else description,
                timestamp=timestamp or f"{date} 09:00:00",
            )
        )

    return _seed
