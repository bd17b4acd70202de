"""
Live conversation scenario script.

Feeds real-world chat messages through the workflow with the OpenRouter
insight service switched on and prints the bot replies in a readable
chat-style format. The ledger lives in memory, so nothing is persisted.

Usage:
    uv run python -m tests.test_scenarios
"""

import asyncio
import sys
from pathlib import Path

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from app.config import get_settings
from app.core import parser
from app.core.state import ConversationStateStore
from app.core.workflow import WorkflowOrchestrator
from app.db.repository import BudgetRepository, LedgerRepository
from app.llm.insights import OpenRouterInsights

SEPARATOR = "=" * 60
LOG_FILE = Path(__file__).parent / "results.log"

SCENARIOS = [
    {
        "name": "Explicit category",
        "messages": ["Groceries $45.50"],
    },
    {
        "name": "Amount only - needs categorization",
        "messages": ["$12 uber to the airport"],
    },
    {
        "name": "Amount only - vague description",
        "messages": ["$8"],
    },
    {
        "name": "Backdated expense",
        "messages": ["Dinner $62.40 28/04/2025"],
    },
    {
        "name": "Duplicate within two days - confirmed",
        "messages": ["Coffee $3.75", "Coffee $3.50", "yes"],
    },
    {
        "name": "Edit amount",
        "messages": ["Taxi 18", "/edit Taxi 18", "amount", "21.50"],
    },
    {
        "name": "Delete with disambiguation",
        "messages": ["Lunch 12 08/05/2025", "Lunch 12 09/05/2025", "/delete lunch 12", "2", "yes"],
    },
    {
        "name": "Report with AI insights",
        "seed": ["Rent 800", "Groceries 120", "Dining 64", "Coffee 4.5", "Coffee 3.75"],
        "messages": ["/report 30"],
    },
    {
        "name": "Budget recommendations",
        "seed": ["Dining 40", "Dining 55.25", "Dining 72"],
        "messages": ["/budget Dining 180"],
    },
    {
        "name": "Monthly summary digest",
        "seed": ["Groceries 95", "Transportation 30", "Entertainment 45"],
        "messages": ["/summary month"],
    },
    {
        "name": "Off-topic message",
        "messages": ["Remind me to call mom tomorrow at 10am"],
    },
]


class ScriptedConversation:
    """Prints replies and answers duplicate prompts from the scenario queue."""

    def __init__(self, log, queue: list[str]):
        self.user_id = "scenario-user"
        self.log = log
        self.queue = queue

    async def reply(self, text: str) -> None:
        _print_and_log(f"\n  Bot: {text}", self.log)

    async def await_next_message(self, accept, timeout):
        if self.queue and accept(self.queue[0]):
            answer = self.queue.pop(0)
            _print_and_log(f"\n  User: {answer}", self.log)
            return answer
        return None

    def cancel_wait(self) -> None:
        pass


def _print_and_log(text: str, file):
    """Print to stdout and write to log file."""
    print(text)
    file.write(text + "\n")


def _build_orchestrator(insights: OpenRouterInsights) -> WorkflowOrchestrator:
    settings = get_settings()
    db = TinyDB(storage=MemoryStorage)
    ledger = LedgerRepository(db)
    ledger.initialize()
    return WorkflowOrchestrator(
        ledger, BudgetRepository(db), insights, ConversationStateStore(), settings
    )


async def run_scenario(insights: OpenRouterInsights, index: int, scenario: dict, log):
    """Run a single scenario against a fresh in-memory ledger."""
    _print_and_log(f"\n{SEPARATOR}", log)
    _print_and_log(f"SCENARIO {index}: {scenario['name']}", log)
    _print_and_log(SEPARATOR, log)

    orchestrator = _build_orchestrator(insights)
    for line in scenario.get("seed", []):
        record = parser.parse(line)
        if record is not None:
            orchestrator.ledger.append(record)

    queue = list(scenario["messages"])
    conversation = ScriptedConversation(log, queue)
    while queue:
        msg = queue.pop(0)
        _print_and_log(f"\n  User: {msg}", log)
        await orchestrator.handle(conversation, msg)


async def _run_all(insights: OpenRouterInsights, log):
    for i, scenario in enumerate(SCENARIOS, 1):
        await run_scenario(insights, i, scenario, log)


def main():
    settings = get_settings()

    if not settings.openrouter_api_key:
        print("ERROR: OPENROUTER_API_KEY not set. Add it to .env and retry.")
        sys.exit(1)

    insights = OpenRouterInsights(api_key=settings.openrouter_api_key, model=settings.llm_model)

    print(f"Model: {settings.llm_model}")
    print(f"Log:   {LOG_FILE}")

    with open(LOG_FILE, "w") as log:
        _print_and_log(f"Model: {settings.llm_model}", log)

        asyncio.run(_run_all(insights, log))

        _print_and_log(f"\n{SEPARATOR}", log)
        _print_and_log("Done. Review results above or in tests/results.log", log)
        _print_and_log(SEPARATOR, log)


if __name__ == "__main__":
    main()
