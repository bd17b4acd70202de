from types import SimpleNamespace

from app.config import Settings
from app.llm.insights import NullInsights, OpenRouterInsights, build_insights
from app.models.schemas import ExpenseRecord


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _service(content=None, error=None):
    completions = FakeCompletions(content, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenRouterInsights(api_key="test", model="test-model", client=client), completions


RECORDS = [ExpenseRecord(category="Coffee", amount=4.0, date="09/05/2025")]


async def test_categorize_prefers_known_spelling():
    service, completions = _service("transportation.")

    assert await service.categorize("uber to airport") == "Transportation"
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert "uber to airport" in request["messages"][1]["content"]


async def test_categorize_keeps_unknown_answers():
    service, _ = _service("Pets")

    assert await service.categorize("dog food") == "Pets"


async def test_categorize_falls_back_to_other():
    failing, _ = _service(error=RuntimeError("boom"))
    empty, _ = _service("   ")

    assert await failing.categorize("x") == "Other"
    assert await empty.categorize("x") == "Other"


async def test_enhance_description_falls_back_to_input():
    service, _ = _service(error=RuntimeError("boom"))

    assert await service.enhance_description("$12") == "$12"


async def test_analysis_failure_returns_none():
    service, _ = _service(error=RuntimeError("boom"))

    assert await service.analyze_expenses(RECORDS) is None
    assert await service.recommend_budget("Coffee", 50, 4, RECORDS) is None


async def test_monthly_digest_reads_fenced_json():
    raw = '```json\n{"insights": "Coffee is up.", "suggestions": ["Brew at home"]}\n```'
    service, _ = _service(raw)

    digest = await service.monthly_digest(RECORDS, [])

    assert digest.insights == "Coffee is up."
    assert digest.suggestions == ["Brew at home"]


async def test_monthly_digest_tolerates_prose():
    service, _ = _service("Spending looks fine this month.")

    digest = await service.monthly_digest(RECORDS, RECORDS)

    assert digest.insights == "Spending looks fine this month."
    assert len(digest.suggestions) == 2


async def test_null_insights():
    null = NullInsights()

    assert null.available is False
    assert await null.categorize("anything") == "Other"
    assert await null.enhance_description("$5") == "$5"
    assert await null.analyze_expenses(RECORDS) is None
    assert await null.monthly_digest(RECORDS, []) is None


def test_build_insights_depends_on_api_key():
    without = build_insights(Settings(_env_file=None, openrouter_api_key=""))
    with_key = build_insights(Settings(_env_file=None, openrouter_api_key="sk-test"))

    assert isinstance(without, NullInsights)
    assert isinstance(with_key, OpenRouterInsights)
