from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from fintrack import models
from fintrack.seed import DEFAULT_CATEGORIES, ensure_demo_user, seed_default_categories
from fintrack.services.report_service import ReportService, month_bounds


def _txn(client, **overrides):
    payload = {
        "description": "Groceries",
        "amount": "42.10",
        "transaction_date": "2024-03-05",
        "transaction_type": "expense",
    }
    payload.update(overrides)
    res = client.post("/api/transactions", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_categories_include_defaults(client):
    res = client.get("/api/categories")
    assert res.status_code == 200
    names = [c["name"] for c in res.json()]
    assert "Utilities" in names
    # 수입 카테고리는 마지막
    assert names[-1] == "Income"


def test_transaction_crud(client):
    txn = _txn(client)
    assert txn["bill_id"] is None
    assert float(txn["amount"]) == 42.1

    res = client.patch(f"/api/transactions/{txn['id']}", json={"description": "Market", "notes": "weekly"})
    assert res.status_code == 200
    assert res.json()["description"] == "Market"
    assert res.json()["notes"] == "weekly"

    res = client.patch(f"/api/transactions/{txn['id']}", json={"amount": None})
    assert res.status_code == 400

    assert client.delete(f"/api/transactions/{txn['id']}").status_code == 204
    assert client.delete(f"/api/transactions/{txn['id']}").status_code == 404


def test_transaction_validation(client):
    res = client.post(
        "/api/transactions",
        json={"description": "x", "amount": 0, "transaction_date": "2024-03-05"},
    )
    assert res.status_code == 422
    res = client.post(
        "/api/transactions",
        json={"description": "  ", "amount": 3, "transaction_date": "2024-03-05"},
    )
    assert res.status_code == 422


def test_transaction_filters(client):
    _txn(client, description="Old", transaction_date="2024-01-10")
    _txn(client, description="Salary", transaction_date="2024-03-01", transaction_type="income", amount="3000")
    _txn(client, description="Coffee", transaction_date="2024-03-20", amount="4.50")

    rows = client.get("/api/transactions").json()
    assert [r["description"] for r in rows] == ["Coffee", "Salary", "Old"]

    march = client.get("/api/transactions", params={"start_date": "2024-03-01", "end_date": "2024-03-31"}).json()
    assert {r["description"] for r in march} == {"Coffee", "Salary"}

    income = client.get("/api/transactions", params={"transaction_type": "income"}).json()
    assert [r["description"] for r in income] == ["Salary"]

    assert len(client.get("/api/transactions", params={"limit": 1}).json()) == 1


def test_monthly_spending_groups_by_category(client, category):
    _txn(client, description="Power", amount="80", category_id=category.id)
    _txn(client, description="Water", amount="20", category_id=category.id)
    _txn(client, description="Gift", amount="150")
    _txn(client, description="Stale", amount="5", category_id="deleted-category")
    _txn(client, description="Salary", amount="3000", transaction_type="income")
    _txn(client, description="April", amount="999", transaction_date="2024-04-01")

    res = client.get("/api/reports/monthly-spending", params={"year": 2024, "month": 3})
    assert res.status_code == 200
    rows = res.json()
    assert [(r["category"], float(r["amount"])) for r in rows] == [
        ("Uncategorized", 155.0),
        ("Utilities", 100.0),
    ]
    assert rows[0]["category_id"] is None
    assert rows[0]["color"] == "#888888"
    assert rows[1]["color"] == category.color


def test_yearly_financials(db_session, demo_user, client):
    _txn(client, description="Salary", amount="3000", transaction_type="income", transaction_date="2024-02-01")
    _txn(client, description="Rent", amount="1200", transaction_date="2024-02-03")
    _txn(client, description="Rent", amount="1200", transaction_date="2023-12-03")

    report = ReportService(db_session, user_id=demo_user.id).yearly_financials(2024)
    assert len(report) == 12
    assert [r.label for r in report[:3]] == ["Jan", "Feb", "Mar"]
    feb = report[1]
    assert (feb.income, feb.expenses, feb.savings) == (Decimal("3000"), Decimal("1200"), Decimal("1800"))
    assert report[0].expenses == Decimal("0")

    res = client.get("/api/reports/yearly", params={"year": 2023})
    assert float(res.json()[11]["expenses"]) == 1200.0


def test_month_bounds_handles_leap_years():
    assert month_bounds(2024, 2)[1].day == 29
    assert month_bounds(2023, 2)[1].day == 28
    assert month_bounds(2024, 12)[1].day == 31


def test_budget_upsert_is_idempotent(client, category):
    payload = {"category_id": category.id, "amount": "200", "month": 3, "year": 2024}
    first = client.put("/api/budgets", json=payload)
    assert first.status_code == 200, first.text

    payload["amount"] = "250"
    second = client.put("/api/budgets", json=payload)
    assert second.json()["id"] == first.json()["id"]

    _txn(client, description="Power", amount="80", category_id=category.id)
    _txn(client, description="Fuel", amount="30")

    budgets = client.get("/api/budgets", params={"month": 3, "year": 2024}).json()
    assert len(budgets) == 1
    assert float(budgets[0]["amount"]) == 250.0
    assert float(budgets[0]["spent"]) == 80.0
    assert budgets[0]["category"]["name"] == "Utilities"

    assert client.get("/api/budgets", params={"month": 4, "year": 2024}).json() == []

    assert client.delete(f"/api/budgets/{first.json()['id']}").status_code == 204
    assert client.get("/api/budgets").json() == []


def test_budget_rejects_income_and_unknown_categories(client, db_session):
    income = db_session.query(models.Category).filter_by(name="Income").one()
    res = client.put("/api/budgets", json={"category_id": income.id, "amount": "10", "month": 1, "year": 2024})
    assert res.status_code == 400
    res = client.put("/api/budgets", json={"category_id": "nope", "amount": "10", "month": 1, "year": 2024})
    assert res.status_code == 400
    res = client.put("/api/budgets", json={"category_id": "nope", "amount": "10", "month": 13, "year": 2024})
    assert res.status_code == 422


def test_recurring_transactions_list_upcoming_dates(client):
    today = models.today_local()
    res = client.post(
        "/api/recurring-transactions",
        json={
            "description": "Streaming",
            "amount": "12.99",
            "frequency": "weekly",
            "start_date": (today - timedelta(days=14)).isoformat(),
        },
    )
    assert res.status_code == 201, res.text
    rule = res.json()
    assert rule["upcoming"] == [(today + timedelta(days=7 * i)).isoformat() for i in range(3)]

    ended = client.post(
        "/api/recurring-transactions",
        json={
            "description": "Gym trial",
            "amount": "5",
            "frequency": "weekly",
            "start_date": today.isoformat(),
            "end_date": (today + timedelta(days=8)).isoformat(),
        },
    ).json()
    assert len(ended["upcoming"]) == 2

    rows = client.get("/api/recurring-transactions").json()
    assert [r["description"] for r in rows] == ["Streaming", "Gym trial"]

    assert client.delete(f"/api/recurring-transactions/{rule['id']}").status_code == 204
    assert len(client.get("/api/recurring-transactions").json()) == 1


def test_recurring_transaction_window_validation(client):
    res = client.post(
        "/api/recurring-transactions",
        json={"description": "Bad", "amount": "1", "start_date": "2024-05-01", "end_date": "2024-04-01"},
    )
    assert res.status_code == 422


def test_seed_helpers_are_idempotent(db_session, demo_user):
    assert ensure_demo_user(db_session).id == demo_user.id
    before = db_session.query(models.Category).count()
    seed_default_categories(db_session)
    db_session.commit()
    assert db_session.query(models.Category).count() == before == len(DEFAULT_CATEGORIES)
    assert demo_user.profile.currency == "USD"
