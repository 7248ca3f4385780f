from __future__ import annotations

from datetime import date, timedelta

from fintrack.core.deps import get_current_user
from fintrack.errors import PersistenceFailure
from fintrack.main import app
from fintrack.services.gateway import TransactionMaterializer


def _create_bill(client, **overrides):
    payload = {
        "name": "Electricity",
        "amount": 100,
        "due_date": "2024-01-31",
        "recurring": False,
    }
    payload.update(overrides)
    res = client.post("/api/bills", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def test_create_and_get_bill(client, category):
    bill = _create_bill(client, recurring=True, frequency="monthly", category_id=category.id)
    assert bill["status"] == "pending"
    assert bill["frequency"] == "monthly"
    assert bill["category_name"] == "Utilities"
    assert bill["category_color"] == category.color

    res = client.get(f"/api/bills/{bill['id']}")
    assert res.status_code == 200
    assert res.json()["id"] == bill["id"]


def test_bill_with_unknown_category_reads_uncategorized(client):
    bill = _create_bill(client, category_id="no-such-category")
    assert bill["category_id"] == "no-such-category"
    assert bill["category_name"] == "Uncategorized"


def test_create_bill_validation(client):
    res = client.post("/api/bills", json={"name": "", "amount": 10, "due_date": "2024-01-01"})
    assert res.status_code == 422
    res = client.post("/api/bills", json={"name": "Rent", "amount": -1, "due_date": "2024-01-01"})
    assert res.status_code == 422
    res = client.post("/api/bills", json={"name": "Rent", "amount": 10, "due_date": "2024-02-30"})
    assert res.status_code == 422
    # recurring인데 frequency 없음 -> 서비스 검증(400)
    res = client.post("/api/bills", json={"name": "Rent", "amount": 10, "due_date": "2024-01-01", "recurring": True})
    assert res.status_code == 400
    assert "frequency" in res.json()["detail"]


def test_pay_recurring_bill_end_to_end(client, category):
    bill = _create_bill(client, recurring=True, frequency="monthly", category_id=category.id)

    res = client.post(f"/api/bills/{bill['id']}/pay")
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["warnings"] == []
    assert body["bill"]["status"] == "paid"
    assert body["bill"]["effective_status"] == "paid"
    assert body["transaction"]["description"] == "Bill payment: Electricity"
    assert float(body["transaction"]["amount"]) == 100.0
    assert body["transaction"]["category_id"] == category.id
    assert body["next_bill"]["due_date"] == "2024-02-29"
    assert body["next_bill"]["status"] == "pending"
    assert body["next_bill"]["previous_bill_id"] == bill["id"]

    txns = client.get("/api/transactions").json()
    assert len(txns) == 1
    assert txns[0]["bill_id"] == bill["id"]

    # 같은 청구서 재결제는 409
    again = client.post(f"/api/bills/{bill['id']}/pay")
    assert again.status_code == 409
    assert len(client.get("/api/bills").json()) == 2


def test_pay_unknown_bill_returns_404(client):
    res = client.post("/api/bills/missing/pay")
    assert res.status_code == 404
    assert client.get("/api/transactions").json() == []
    assert client.get("/api/bills").json() == []


def test_pay_reports_transaction_warning(client, monkeypatch):
    def _fail(self, fields):
        raise PersistenceFailure("ledger unavailable")

    monkeypatch.setattr(TransactionMaterializer, "create", _fail)
    bill = _create_bill(client, recurring=True, frequency="quarterly", due_date="2024-05-15")

    res = client.post(f"/api/bills/{bill['id']}/pay")
    assert res.status_code == 200
    body = res.json()
    assert [w["code"] for w in body["warnings"]] == ["transaction_not_recorded"]
    assert body["bill"]["status"] == "paid"
    assert body["transaction"] is None
    assert body["next_bill"]["due_date"] == "2024-08-15"


def test_list_bills_filters(client):
    today = date.today()
    past = _create_bill(client, name="Water", due_date=(today - timedelta(days=3)).isoformat())
    _create_bill(client, name="Internet", due_date=(today + timedelta(days=3)).isoformat())
    paid = _create_bill(client, name="Gym", due_date=(today - timedelta(days=10)).isoformat())
    client.post(f"/api/bills/{paid['id']}/pay")

    all_bills = client.get("/api/bills").json()
    assert [b["name"] for b in all_bills] == ["Gym", "Water", "Internet"]
    assert {b["name"]: b["effective_status"] for b in all_bills} == {
        "Gym": "paid",
        "Water": "overdue",
        "Internet": "pending",
    }

    overdue = client.get("/api/bills", params={"status": "overdue"}).json()
    assert [b["id"] for b in overdue] == [past["id"]]
    assert overdue[0]["status"] == "pending"

    pending = client.get("/api/bills", params={"status": "pending"}).json()
    assert {b["name"] for b in pending} == {"Water", "Internet"}

    ranged = client.get("/api/bills", params={"start_date": today.isoformat()}).json()
    assert [b["name"] for b in ranged] == ["Internet"]


def test_update_and_delete_bill(client):
    bill = _create_bill(client, recurring=True, frequency="monthly")

    res = client.patch(f"/api/bills/{bill['id']}", json={"recurring": False, "amount": "120.50"})
    assert res.status_code == 200
    body = res.json()
    assert body["recurring"] is False
    assert body["frequency"] is None
    assert float(body["amount"]) == 120.5

    res = client.patch(f"/api/bills/{bill['id']}", json={"status": "paid"})
    assert res.status_code == 400

    assert client.delete(f"/api/bills/{bill['id']}").status_code == 204
    assert client.get(f"/api/bills/{bill['id']}").status_code == 404
    assert client.delete(f"/api/bills/{bill['id']}").status_code == 404


def test_bills_are_scoped_to_current_user(client, make_user):
    bill = _create_bill(client)

    other = make_user("other@example.com")
    app.dependency_overrides[get_current_user] = lambda: other

    assert client.get("/api/bills").json() == []
    assert client.get(f"/api/bills/{bill['id']}").status_code == 404
    assert client.post(f"/api/bills/{bill['id']}/pay").status_code == 404


def test_patch_with_null_status_keeps_bill(client):
    bill = _create_bill(client)

    res = client.patch(f"/api/bills/{bill['id']}", json={"status": None, "name": "Power"})
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "pending"
    assert res.json()["name"] == "Power"


def test_bill_amounts_are_stored_in_cents(client):
    bill = _create_bill(client, amount="19.999")
    assert float(bill["amount"]) == 20.0

    res = client.post("/api/bills", json={"name": "Tiny", "amount": "0.004", "due_date": "2024-01-01"})
    assert res.status_code == 422
    assert client.post(f"/api/bills/{bill['id']}/pay").json()["warnings"] == []


def test_pay_bill_at_end_of_calendar(client):
    bill = _create_bill(client, recurring=True, frequency="monthly", due_date="9999-12-31")

    res = client.post(f"/api/bills/{bill['id']}/pay")
    assert res.status_code == 200
    body = res.json()
    assert [w["code"] for w in body["warnings"]] == ["next_bill_not_scheduled"]
    assert body["bill"]["status"] == "paid"
    assert body["transaction"] is not None
    assert body["next_bill"] is None
