import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.llm.insights import NullInsights


@pytest.fixture
def client(ledger, budgets, monkeypatch):
    monkeypatch.setattr(routes, "ledger", ledger)
    monkeypatch.setattr(routes, "budgets", budgets)
    monkeypatch.setattr(routes, "insights", NullInsights())
    api = FastAPI()
    api.include_router(routes.router)
    return TestClient(api)


def test_parse(client, clock):
    response = client.post("/parse", json={"message": "Coffee $3.75 28/04/2025"})

    assert response.status_code == 200
    body = response.json()
    assert body["parsed"]["category"] == "Coffee"
    assert body["parsed"]["amount"] == 3.75
    assert body["parsed"]["date"] == "28/04/2025"


def test_parse_failure(client):
    response = client.post("/parse", json={"message": "hello there"})

    assert response.status_code == 200
    assert response.json()["parsed"] is None


def test_list_get_and_delete(client, seed):
    old = seed("Rent", 800.0, "01/03/2025")
    recent = seed("Coffee", 4.0, "09/05/2025")

    listed = client.get("/expenses", params={"days": 30}).json()
    assert [e["row_id"] for e in listed] == [recent.row_id]
    assert len(client.get("/expenses", params={"days": 365}).json()) == 2

    assert client.get(f"/expenses/{old.row_id}").json()["record"]["category"] == "Rent"

    assert client.delete(f"/expenses/{recent.row_id}").status_code == 200
    assert client.get(f"/expenses/{recent.row_id}").status_code == 404
    assert client.delete(f"/expenses/{recent.row_id}").status_code == 404


def test_days_are_bounded(client):
    assert client.get("/expenses", params={"days": 0}).status_code == 422
    assert client.get("/report", params={"days": 366}).status_code == 422


def test_report(client, seed):
    seed("Coffee", 4.0, "09/05/2025")
    seed("Rent", 800.0, "08/05/2025")

    body = client.get("/report", params={"days": 7}).json()

    assert body["days"] == 7
    assert body["stats"]["total"] == 804.0
    assert body["stats"]["by_category"] == {"Rent": 800.0, "Coffee": 4.0}
    assert body["text"].startswith("Expense Report - Last 7 Days")


def test_budgets(client):
    response = client.put("/budgets", json={"category": " Dining ", "amount": 150})
    assert response.status_code == 200
    assert response.json()["category"] == "dining"

    assert client.put("/budgets", json={"category": "  ", "amount": 10}).status_code == 400
    assert client.put("/budgets", json={"category": "Food", "amount": 0}).status_code == 422

    assert [b["category"] for b in client.get("/budgets").json()] == ["dining"]


def test_health(client, seed):
    seed("Coffee", 4.0, "09/05/2025")

    body = client.get("/health").json()

    assert body == {"status": "healthy", "ai_enabled": False, "recent_expenses": 1}
