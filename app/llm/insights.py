"""Optional AI enrichment.

The bot works without an API key: :func:`build_insights` picks either the
OpenRouter-backed client or :class:`NullInsights` once at startup, and both
expose the same coroutine methods. Neither ever raises to the caller.
"""

import json
from typing import Protocol

from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from app.config import Settings
from app.llm.prompts import (
    ANALYZE_EXPENSES_PROMPT,
    BUDGET_RECOMMENDATIONS_PROMPT,
    CATEGORIES,
    CATEGORIZE_PROMPT,
    ENHANCE_DESCRIPTION_PROMPT,
    MONTHLY_DIGEST_PROMPT,
    SYSTEM_PROMPT,
)
from app.models.schemas import DEFAULT_CATEGORY, ExpenseRecord


class MonthlyDigest(BaseModel):
    insights: str
    suggestions: list[str] = []


class InsightService(Protocol):
    available: bool

    async def categorize(self, description: str) -> str: ...

    async def enhance_description(self, description: str) -> str: ...

    async def analyze_expenses(self, records: list[ExpenseRecord]) -> str | None: ...

    async def recommend_budget(
        self, category: str, budget: float, spent: float, records: list[ExpenseRecord]
    ) -> str | None: ...

    async def monthly_digest(
        self, current: list[ExpenseRecord], previous: list[ExpenseRecord]
    ) -> MonthlyDigest | None: ...


class NullInsights:
    """Stand-in used when no API key is configured."""

    available = False

    async def categorize(self, description: str) -> str:
        return DEFAULT_CATEGORY

    async def enhance_description(self, description: str) -> str:
        return description

    async def analyze_expenses(self, records: list[ExpenseRecord]) -> str | None:
        return None

    async def recommend_budget(
        self, category: str, budget: float, spent: float, records: list[ExpenseRecord]
    ) -> str | None:
        return None

    async def monthly_digest(
        self, current: list[ExpenseRecord], previous: list[ExpenseRecord]
    ) -> MonthlyDigest | None:
        return None


def _strip_fences(raw: str) -> str:
    if raw.startswith("```"):
        lines = raw.split("\n")
        lines = [l for l in lines if not l.startswith("```")]
        raw = "\n".join(lines)
    return raw.strip()


def _compact(records: list[ExpenseRecord]) -> list[dict]:
    return [{"date": r.date, "category": r.category, "amount": r.amount} for r in records]


class OpenRouterInsights:
    available = True

    def __init__(self, api_key: str, model: str, client: AsyncOpenAI | None = None):
        self.client = client or AsyncOpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
        )
        self.model = model

    async def _complete(self, prompt: str, temperature: float = 0.2) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
        )
        raw = (response.choices[0].message.content or "").strip()
        logger.debug("LLM raw response: {}", raw)
        return _strip_fences(raw)

    async def categorize(self, description: str) -> str:
        prompt = CATEGORIZE_PROMPT.format(
            categories="\n".join(f"- {c}" for c in CATEGORIES),
            description=description,
        )
        try:
            answer = await self._complete(prompt, temperature=0.0)
        except Exception as e:
            logger.error("Categorization request failed: {}", e)
            return DEFAULT_CATEGORY

        category = answer.strip().strip(".").strip()
        if not category:
            return DEFAULT_CATEGORY
        # Prefer the canonical spelling when the model answers in another case
        for known in CATEGORIES:
            if known.casefold() == category.casefold():
                return known
        return category

    async def enhance_description(self, description: str) -> str:
        try:
            enhanced = await self._complete(
                ENHANCE_DESCRIPTION_PROMPT.format(description=description)
            )
        except Exception as e:
            logger.error("Description enhancement failed: {}", e)
            return description
        return enhanced or description

    async def analyze_expenses(self, records: list[ExpenseRecord]) -> str | None:
        prompt = ANALYZE_EXPENSES_PROMPT.format(expenses_json=json.dumps(_compact(records)))
        try:
            return await self._complete(prompt) or None
        except Exception as e:
            logger.error("Expense analysis failed: {}", e)
            return None

    async def recommend_budget(
        self, category: str, budget: float, spent: float, records: list[ExpenseRecord]
    ) -> str | None:
        data = {
            "category": category,
            "budget": budget,
            "spent": spent,
            "percentUsed": (spent / budget) * 100 if budget else None,
            "expenses": _compact(records),
        }
        prompt = BUDGET_RECOMMENDATIONS_PROMPT.format(budget_json=json.dumps(data))
        try:
            return await self._complete(prompt) or None
        except Exception as e:
            logger.error("Budget recommendations failed: {}", e)
            return None

    async def monthly_digest(
        self, current: list[ExpenseRecord], previous: list[ExpenseRecord]
    ) -> MonthlyDigest | None:
        current_total = sum(r.amount for r in current)
        previous_total = sum(r.amount for r in previous)
        data = {
            "currentPeriod": {"expenses": _compact(current), "total": current_total},
            "previousPeriod": {"expenses": _compact(previous), "total": previous_total},
            "percentChange": (
                (current_total - previous_total) / previous_total * 100
                if previous_total
                else None
            ),
        }
        prompt = MONTHLY_DIGEST_PROMPT.format(digest_json=json.dumps(data))
        try:
            raw = await self._complete(prompt, temperature=0.1)
        except Exception as e:
            logger.error("Monthly digest request failed: {}", e)
            return None

        try:
            return MonthlyDigest.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Monthly digest was not valid JSON: {}", e)
            return MonthlyDigest(
                insights=raw[:300],
                suggestions=[
                    "Review your spending categories",
                    "Consider setting up a budget",
                ],
            )


def build_insights(settings: Settings) -> InsightService:
    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY not set, AI features are disabled")
        return NullInsights()
    logger.info("AI features enabled with model {}", settings.llm_model)
    return OpenRouterInsights(api_key=settings.openrouter_api_key, model=settings.llm_model)
