"""Tests for the Flask JSON API."""

from datetime import date, datetime, timedelta

import pytest

from lend_ledger.config import LedgerConfig
from lend_ledger_web.app import create_app
from lend_ledger_web.ledger_store import LedgerStore


@pytest.fixture
def client(tmp_path):
    url = f"sqlite:///{tmp_path / 'web.sqlite3'}"
    app = create_app(LedgerConfig(database_url=url, secret_key="test"), store=LedgerStore(url))
    app.config["TESTING"] = True
    return app.test_client()


def create(client, **overrides):
    body = {"principal": "1000", "interest_rate_percent": "10", "periodicity": "MONTHLY", "client_name": "Maria"}
    body.update(overrides)
    response = client.post("/api/contracts", json=body)
    assert response.status_code == 201
    return response.get_json()


class TestContractsApi:
    """Tests for contract endpoints."""

    def test_create_and_fetch(self, client) -> None:
        contract = create(client)

        response = client.get(f"/api/contracts/{contract['id']}")

        assert response.status_code == 200
        data = response.get_json()
        assert data["open_principal"] == "1000.00"
        assert data["status"] == "OPEN"
        assert data["payments"] == []

    def test_list_filters_by_status(self, client) -> None:
        create(client)

        assert len(client.get("/api/contracts").get_json()) == 1
        assert client.get("/api/contracts?status=settled").get_json() == []

    def test_quote(self, client) -> None:
        contract = create(client)

        data = client.get(f"/api/contracts/{contract['id']}/quote").get_json()

        assert data["interest_due"] == "100.00"
        assert data["payoff_amount"] == "1100.00"
        assert data["currency"] == "BRL"
        assert data["display"]["payoff_amount"] == "R$ 1.100,00"

    def test_quote_uses_configured_currency(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'usd.sqlite3'}"
        app = create_app(LedgerConfig(database_url=url, secret_key="test", currency="USD"), store=LedgerStore(url))
        usd_client = app.test_client()
        contract = create(usd_client, periodicity="DAILY")

        data = usd_client.get(f"/api/contracts/{contract['id']}/quote").get_json()

        assert data["currency"] == "USD"
        assert data["interest_due"] == "100.00"
        assert data["display"]["payoff_amount"] == "$1,100.00"

    def test_unknown_contract(self, client) -> None:
        response = client.get("/api/contracts/missing")

        assert response.status_code == 404
        assert "error" in response.get_json()

    def test_invalid_principal(self, client) -> None:
        response = client.post("/api/contracts", json={"principal": "0", "interest_rate_percent": "10", "periodicity": "DAILY"})

        assert response.status_code == 400

    def test_contracts_are_scoped_per_session(self, client) -> None:
        contract = create(client)
        other = client.application.test_client()

        assert other.get(f"/api/contracts/{contract['id']}").status_code == 404

    def test_personal_collection(self, client) -> None:
        contract = create(client)

        data = client.post(f"/api/contracts/{contract['id']}/personal-collection").get_json()

        assert data["status"] == "PERSONAL_COLLECTION"


class TestPaymentsApi:
    """Tests for payment endpoints."""

    def test_record_payment(self, client) -> None:
        contract = create(client)

        response = client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "150.00", "note": "March"})

        assert response.status_code == 201
        data = response.get_json()
        assert data["payment"]["allocated_interest"] == "100.00"
        assert data["payment"]["allocated_principal"] == "50.00"
        assert data["payment"]["kind"] == "MIXED"
        assert data["contract"]["open_principal"] == "950.00"

    def test_overpayment_is_rejected(self, client) -> None:
        contract = create(client)

        response = client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "9999"})

        assert response.status_code == 400
        assert "exceeds" in response.get_json()["error"]

    def test_body_must_be_json_object(self, client) -> None:
        contract = create(client)

        response = client.post(f"/api/contracts/{contract['id']}/payments", data="amount=10")

        assert response.status_code == 400

    def test_pay_full(self, client) -> None:
        contract = create(client)

        data = client.post(f"/api/contracts/{contract['id']}/pay-full").get_json()

        assert data["payment"]["amount_paid"] == "1100.00"
        assert data["contract"]["status"] == "SETTLED"

    def test_pay_installments(self, client) -> None:
        contract = create(client, periodicity="DAILY")

        response = client.post(f"/api/contracts/{contract['id']}/installments/pay", json={"installments": [1, 2]})

        assert response.status_code == 201
        data = response.get_json()
        assert data["contract"]["open_principal"] == "900.00"
        assert [i["status"] for i in data["contract"]["installments"][:3]] == ["PAID", "PAID", "PENDING"]

    def test_free_payment_on_installment_contract(self, client) -> None:
        contract = create(client, periodicity="DAILY")

        data = client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "175.00"}).get_json()

        assert data["payment"]["allocated_interest"] == "100.00"
        assert data["payment"]["allocated_principal"] == "75.00"
        installments = data["contract"]["installments"]
        assert installments[0]["status"] == "PAID"
        assert (installments[1]["amount"], installments[1]["status"]) == ("25.00", "PENDING")

        response = client.post(f"/api/contracts/{contract['id']}/installments/pay", json={"installments": [2]})

        assert response.status_code == 201
        assert response.get_json()["payment"]["amount_paid"] == "25.00"

    def test_history(self, client) -> None:
        contract = create(client)
        client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "100", "note": "interest only"})
        client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "300", "note": "with principal"})

        data = client.get(f"/api/contracts/{contract['id']}/history").get_json()

        assert data["totals"]["count"] == 2
        assert data["totals"]["total_paid"] == "400.00"
        assert data["payments"][0]["balance_after"] == "800.00"
        assert data["payments"][-1]["balance_before"] == "1000.00"

        filtered = client.get(f"/api/contracts/{contract['id']}/history?kind=interest").get_json()
        assert [p["note"] for p in filtered["payments"]] == ["interest only"]


class TestDashboardApi:
    """Tests for schedule preview, summary and cash flow."""

    def test_schedule_preview(self, client) -> None:
        data = client.post(
            "/api/schedule/preview",
            json={"principal": "100", "periodicity": "WEEKLY", "start_date": "2024-03-01"},
        ).get_json()

        assert [i["due_date"] for i in data["installments"]] == [
            "2024-03-08",
            "2024-03-15",
            "2024-03-22",
            "2024-03-29",
        ]

    def test_allocation_preview(self, client) -> None:
        data = client.post(
            "/api/allocation/preview",
            json={"amount": "35", "open_principal": "100", "accrued_fee": "10", "interest_due": "20"},
        ).get_json()

        assert (data["fee_paid"], data["interest_paid"], data["principal_paid"]) == ("10.00", "20.00", "5.00")

    def test_summary(self, client) -> None:
        create(client)
        create(client, periodicity="DAILY")
        today = date.today()

        data = client.get(
            f"/api/summary?startDate={today.isoformat()}&endDate={(today + timedelta(days=40)).isoformat()}"
        ).get_json()

        assert data["total_lent"] == "2000.00"
        assert data["lent_by_periodicity"]["daily"] == "1000.00"
        assert data["expected"]["installments"] == "1100.00"
        assert data["expected"]["monthly"] == "100.00"
        assert data["active_contracts"] == 2

    def test_summary_requires_range(self, client) -> None:
        assert client.get("/api/summary").status_code == 400

    def test_cash_flow(self, client) -> None:
        contract = create(client)
        client.post(f"/api/contracts/{contract['id']}/payments", json={"amount": "100"})
        paid_on = datetime.utcnow().date()
        response = client.post(
            "/api/cash-entries",
            json={"description": "Rent", "amount": "30", "entry_date": paid_on.isoformat(), "flow": "OUT"},
        )
        assert response.status_code == 201

        data = client.get(
            f"/api/cash-flow?startDate={(paid_on - timedelta(days=1)).isoformat()}"
            f"&endDate={(paid_on + timedelta(days=1)).isoformat()}"
        ).get_json()

        assert data["total_in"] == "100.00"
        assert data["total_out"] == "30.00"
        assert data["balance"] == "70.00"
        assert data["contracts"]["monthly"] == "100.00"
        assert len(client.get("/api/cash-entries").get_json()) == 1
