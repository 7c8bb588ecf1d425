import logging
from datetime import date
from uuid import uuid4

from flask import Flask, jsonify, request, session

from lend_ledger.config import LedgerConfig
from lend_ledger.data_models import AllocationState, DateRange, PaymentKind, Periodicity
from lend_ledger.engine import allocate, generate_schedule, quote
from lend_ledger.exceptions import ContractNotFound
from lend_ledger.history import history_totals, payment_timeline
from lend_ledger.logging_config import setup_logging
from lend_ledger.records import (
    allocation_to_dict,
    balance_row_to_dict,
    cash_entry_from_dict,
    cash_entry_to_dict,
    cash_flow_to_dict,
    contract_to_dict,
    installment_to_dict,
    payment_to_dict,
    summary_to_dict,
)
from lend_ledger.summary import cash_flow_summary, summarize
from lend_ledger.utils import format_currency, parse_date, to_money
from lend_ledger_web.ledger_store import LedgerStore, create_store_from_env

logger = logging.getLogger(__name__)


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _date_range_from_args(args) -> DateRange:
    start = args.get("startDate") or args.get("start_date")
    end = args.get("endDate") or args.get("end_date")
    if not start or not end:
        raise ValueError("startDate and endDate are required")
    return DateRange(parse_date(start), parse_date(end))


def _quote_to_dict(values: dict, currency: str) -> dict:
    data = {key: str(value) for key, value in values.items()}
    data["currency"] = currency
    data["display"] = {key: format_currency(value, currency) for key, value in values.items()}
    return data


def create_app(config: LedgerConfig | None = None, store: LedgerStore | None = None) -> Flask:
    """Build the Flask application serving the ledger's JSON API."""
    config = config or LedgerConfig.from_env()
    app = Flask(__name__)
    app.secret_key = config.secret_key
    app.config["LEDGER_CURRENCY"] = config.currency
    ledger = store or create_store_from_env(config.database_url, config.late_fee_percent)

    @app.errorhandler(ContractNotFound)
    def handle_not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(ValueError)
    def handle_invalid(exc):
        # LendLedgerError is a ValueError; so are malformed dates and enums
        logger.warning("Rejected request to %s: %s", request.path, exc)
        return jsonify({"error": str(exc)}), 400

    @app.post("/api/schedule/preview")
    def preview_schedule():
        data = _payload()
        start = parse_date(data["start_date"]) if data.get("start_date") else date.today()
        installments = generate_schedule(
            to_money(data.get("principal", "")),
            Periodicity(data.get("periodicity", "")),
            start,
        )
        return jsonify({"installments": [installment_to_dict(i) for i in installments]})

    @app.post("/api/contracts")
    def create_contract():
        data = _payload()
        owner = _ensure_user_token()
        start = parse_date(data["start_date"]) if data.get("start_date") else date.today()
        contract = ledger.create_contract(
            owner,
            data.get("principal", ""),
            data.get("interest_rate_percent", ""),
            Periodicity(data.get("periodicity", "")),
            start,
            client_name=data.get("client_name", ""),
            notes=data.get("notes", ""),
        )
        return jsonify(contract_to_dict(contract)), 201

    @app.get("/api/contracts")
    def list_contracts():
        owner = _ensure_user_token()
        status = request.args.get("status")
        contracts = ledger.list_contracts(owner)
        if status:
            contracts = [c for c in contracts if c.status.value == status.upper()]
        return jsonify([contract_to_dict(c, include_payments=False) for c in contracts])

    @app.get("/api/contracts/<contract_id>")
    def get_contract(contract_id: str):
        contract = ledger.get_contract(_ensure_user_token(), contract_id)
        return jsonify(contract_to_dict(contract))

    @app.get("/api/contracts/<contract_id>/quote")
    def quote_contract(contract_id: str):
        contract = ledger.get_contract(_ensure_user_token(), contract_id)
        return jsonify(_quote_to_dict(quote(contract), app.config["LEDGER_CURRENCY"]))

    @app.post("/api/contracts/<contract_id>/payments")
    def create_payment(contract_id: str):
        data = _payload()
        kind = data.get("kind")
        payment, contract = ledger.record_payment(
            _ensure_user_token(),
            contract_id,
            data.get("amount", ""),
            kind=PaymentKind(kind) if kind else None,
            note=data.get("note", ""),
        )
        return jsonify({"payment": payment_to_dict(payment), "contract": contract_to_dict(contract)}), 201

    @app.post("/api/contracts/<contract_id>/pay-full")
    def pay_full(contract_id: str):
        data = request.get_json(silent=True) or {}
        payment, contract = ledger.pay_full(_ensure_user_token(), contract_id, note=data.get("note", ""))
        return jsonify({"payment": payment_to_dict(payment), "contract": contract_to_dict(contract)}), 201

    @app.post("/api/contracts/<contract_id>/installments/pay")
    def pay_installments(contract_id: str):
        data = _payload()
        numbers = data.get("installments") or []
        if not isinstance(numbers, list):
            raise ValueError("installments must be a list of installment numbers")
        payment, contract = ledger.pay_installments(
            _ensure_user_token(),
            contract_id,
            [int(n) for n in numbers],
            note=data.get("note", ""),
        )
        return jsonify({"payment": payment_to_dict(payment), "contract": contract_to_dict(contract)}), 201

    @app.post("/api/contracts/<contract_id>/personal-collection")
    def personal_collection(contract_id: str):
        contract = ledger.set_personal_collection(_ensure_user_token(), contract_id)
        return jsonify(contract_to_dict(contract))

    @app.get("/api/contracts/<contract_id>/history")
    def payment_history(contract_id: str):
        contract = ledger.get_contract(_ensure_user_token(), contract_id)
        kind = request.args.get("kind")
        rows = payment_timeline(
            contract.open_principal,
            contract.payments,
            PaymentKind(kind.upper()) if kind else None,
            request.args.get("search"),
        )
        totals = history_totals(r.payment for r in rows)
        return jsonify(
            {
                "totals": {k: (v if isinstance(v, int) else str(v)) for k, v in totals.items()},
                "payments": [balance_row_to_dict(r) for r in rows],
            }
        )

    @app.get("/api/summary")
    def dashboard_summary():
        owner = _ensure_user_token()
        date_range = _date_range_from_args(request.args)
        contracts = ledger.list_contracts(owner)
        payments = ledger.list_payments(owner, date_range)
        return jsonify(summary_to_dict(summarize(contracts, payments, date_range)))

    @app.get("/api/cash-entries")
    def list_cash_entries():
        entries = ledger.list_cash_entries(_ensure_user_token())
        return jsonify([cash_entry_to_dict(e) for e in entries])

    @app.post("/api/cash-entries")
    def add_cash_entry():
        entry = ledger.add_cash_entry(_ensure_user_token(), cash_entry_from_dict(_payload()))
        return jsonify(cash_entry_to_dict(entry)), 201

    @app.get("/api/cash-flow")
    def cash_flow():
        owner = _ensure_user_token()
        date_range = _date_range_from_args(request.args)
        summary = cash_flow_summary(
            ledger.list_cash_entries(owner),
            ledger.list_payments(owner),
            date_range,
        )
        return jsonify(cash_flow_to_dict(summary))

    @app.post("/api/allocation/preview")
    def preview_allocation():
        data = _payload()
        state = AllocationState(
            open_principal=to_money(data.get("open_principal", "0")),
            accrued_fee=to_money(data.get("accrued_fee", "0")),
            interest_due=to_money(data.get("interest_due", "0")),
        )
        return jsonify(allocation_to_dict(allocate(data.get("amount", ""), state)))

    return app


if __name__ == "__main__":
    settings = LedgerConfig.from_env()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Starting lending ledger web app...")
    create_app(settings).run(host="0.0.0.0", port=8710, debug=True)
