import io
import logging
import os
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Optional
from uuid import uuid4

import click
from flask import Blueprint, Flask, Response, abort, current_app, jsonify, request

from loan_plan.data_models import (
    PAYMENT_FREQUENCIES,
    AmortizationKind,
    ExtraRepayment,
    InterestKind,
    LoanContract,
    LoanDirection,
    LoanRecord,
    LoanStatus,
)
from loan_plan.engine import compute_schedule
from loan_plan.exceptions import InvalidContractError
from loan_plan.formatter import serialize_schedule
from loan_plan.main import OPTION_HINTS, build_contract_from_options, build_summary, write_schedule_csv
from loan_plan.reporting import (
    filter_schedule,
    outstanding_balance,
    period_totals,
    portfolio_status,
    repayment_progress,
)
from loan_plan.utils import configure_logging, decimal_from_str, parse_date
from loan_plan_web.loan_store import LoanStore, create_store_from_env

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

FIELD_BY_OPTION = {hint: name for name, hint in OPTION_HINTS.items()}
REQUIRED_FIELDS = ("principal", "interest_rate", "start_date", "end_date")


def _store() -> LoanStore:
    return current_app.extensions["loan_store"]


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _bool_field(payload: Dict[str, Any], name: str, default: Optional[bool]) -> Optional[bool]:
    if name not in payload:
        return default
    value = payload[name]
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a JSON boolean")
    return value


def _payload_to_contract(payload: Dict[str, Any]) -> LoanContract:
    """Build a contract from a JSON payload using the CLI's option parsing."""
    for name in REQUIRED_FIELDS:
        if payload.get(name) in (None, ""):
            raise InvalidContractError(name, f"Missing required field: {name}")

    interest_kind = str(payload.get("interest_kind") or InterestKind.PERCENT_PER_ANNUM.value)
    if interest_kind not in {k.value for k in InterestKind}:
        raise InvalidContractError("interest_kind", f"Unknown interest kind: {interest_kind}")
    amortization = str(payload.get("amortization_kind") or AmortizationKind.ANNUITY.value).lower()
    if amortization not in {k.value for k in AmortizationKind}:
        raise InvalidContractError("amortization_kind", f"Unknown amortization kind: {amortization}")
    frequency = str(payload.get("payment_frequency_months") or 1)
    if frequency not in {str(m) for m in PAYMENT_FREQUENCIES}:
        raise InvalidContractError(
            "payment_frequency_months",
            f"Payment frequency must be one of {PAYMENT_FREQUENCIES} months",
        )

    extras = []
    for item in payload.get("extra_repayments") or []:
        if not isinstance(item, dict):
            raise InvalidContractError("extra_repayments", "Extra repayments must be objects")
        extras.append(f"{item.get('date')}:{item.get('amount')}")

    try:
        return build_contract_from_options(
            str(payload["principal"]),
            str(payload["interest_rate"]),
            interest_kind,
            amortization,
            frequency,
            str(payload["start_date"]),
            str(payload["end_date"]),
            tuple(extras),
        )
    except click.BadParameter as exc:
        field = FIELD_BY_OPTION.get(exc.param_hint, "contract")
        raise InvalidContractError(field, exc.message) from exc


def _as_of_arg() -> date:
    value = request.args.get("as_of")
    return parse_date(value) if value else date.today()


def _get_record_or_404(loan_id: str) -> LoanRecord:
    record = _store().get_loan(loan_id)
    if record is None:
        abort(404, description=f"Unknown loan: {loan_id}")
    return record


def _record_to_dict(record: LoanRecord) -> Dict[str, Any]:
    contract = record.contract
    return {
        "id": record.id,
        "direction": record.direction.value,
        "counterparty": record.counterparty,
        "contract_info": record.contract_info,
        "status": record.status.value,
        "auto_payment": record.auto_payment,
        "principal": float(contract.principal),
        "interest_rate": float(contract.interest_rate),
        "interest_kind": contract.interest_kind.value,
        "amortization_kind": contract.amortization_kind.value,
        "payment_frequency_months": contract.payment_frequency_months,
        "start_date": contract.start_date.isoformat(),
        "end_date": contract.end_date.isoformat(),
        "extra_repayments": [
            {"date": extra.date.isoformat(), "amount": float(extra.amount)}
            for extra in contract.extra_repayments
        ],
    }


def _record_detail(record: LoanRecord, as_of: date) -> Dict[str, Any]:
    schedule = compute_schedule(record.contract)
    balance = outstanding_balance(record.contract, as_of, auto_payment=record.auto_payment, schedule=schedule)
    data = _record_to_dict(record)
    data.update(
        {
            "as_of": as_of.isoformat(),
            "outstanding_balance": float(balance),
            "progress": float(repayment_progress(record.contract, balance)),
            "summary": build_summary(record.contract, schedule),
            "schedule": serialize_schedule(schedule),
        }
    )
    return data


@api.post("/schedule")
def schedule_preview():
    contract = _payload_to_contract(_json_body())
    schedule = compute_schedule(contract)
    return jsonify({"summary": build_summary(contract, schedule), "schedule": serialize_schedule(schedule)})


@api.get("/loans")
def list_loans():
    return jsonify({"loans": [_record_to_dict(r) for r in _store().list_loans()]})


@api.post("/loans")
def create_loan():
    payload = _json_body()
    counterparty = str(payload.get("counterparty") or "").strip()
    if not counterparty:
        raise ValueError("Missing required field: counterparty")
    contract = _payload_to_contract(payload)
    # Reject contracts the engine cannot amortize before they are stored.
    compute_schedule(contract)
    record = LoanRecord(
        id=uuid4().hex,
        direction=LoanDirection(payload.get("direction") or LoanDirection.TAKEN.value),
        counterparty=counterparty,
        contract=contract,
        contract_info=payload.get("contract_info") or None,
        status=LoanStatus(payload.get("status") or LoanStatus.ACTIVE.value),
        auto_payment=_bool_field(payload, "auto_payment", True),
    )
    record = _store().add_loan(record)
    logger.info("Registered loan id=%s counterparty=%s", record.id, record.counterparty)
    return jsonify(_record_detail(record, _as_of_arg())), 201


@api.get("/loans/<loan_id>")
def get_loan(loan_id: str):
    return jsonify(_record_detail(_get_record_or_404(loan_id), _as_of_arg()))


@api.patch("/loans/<loan_id>")
def update_loan(loan_id: str):
    payload = _json_body()
    _get_record_or_404(loan_id)
    status = LoanStatus(payload["status"]) if payload.get("status") else None
    auto_payment = _bool_field(payload, "auto_payment", None)
    record = _store().update_loan(loan_id, status=status, auto_payment=auto_payment)
    if record is None:
        abort(404, description=f"Unknown loan: {loan_id}")
    return jsonify(_record_to_dict(record))


@api.delete("/loans/<loan_id>")
def remove_loan(loan_id: str):
    if not _store().remove_loan(loan_id):
        abort(404, description=f"Unknown loan: {loan_id}")
    logger.info("Removed loan id=%s", loan_id)
    return "", 204


@api.post("/loans/<loan_id>/repayments")
def add_repayment(loan_id: str):
    payload = _json_body()
    record = _get_record_or_404(loan_id)
    try:
        when = parse_date(str(payload.get("date") or ""))
    except ValueError as exc:
        raise InvalidContractError("extra_repayments", str(exc)) from exc
    try:
        amount = decimal_from_str(str(payload.get("amount")))
    except ValueError as exc:
        raise InvalidContractError("extra_repayments", str(exc)) from exc
    repayment = ExtraRepayment(date=when, amount=amount)
    # Validate the contract with the new repayment before recording it.
    updated = replace(
        record.contract,
        extra_repayments=record.contract.extra_repayments + (repayment,),
    )
    compute_schedule(updated)
    record = _store().add_repayment(loan_id, repayment, note=payload.get("note") or None)
    if record is None:
        abort(404, description=f"Unknown loan: {loan_id}")
    logger.info("Recorded extra repayment loan=%s date=%s", loan_id, when.isoformat())
    return jsonify(_record_detail(record, _as_of_arg())), 201


@api.get("/loans/<loan_id>/schedule")
def loan_schedule(loan_id: str):
    record = _get_record_or_404(loan_id)
    date_from = request.args.get("from")
    date_to = request.args.get("to")
    lines = filter_schedule(
        compute_schedule(record.contract),
        parse_date(date_from) if date_from else None,
        parse_date(date_to) if date_to else None,
    )
    if request.args.get("format") == "csv":
        buffer = io.StringIO()
        write_schedule_csv(buffer, lines)
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=schedule_{record.id}.csv"},
        )
    totals = {key: float(value) for key, value in period_totals(lines).items()}
    return jsonify({"schedule": serialize_schedule(lines), "totals": totals})


@api.get("/portfolio")
def portfolio():
    return jsonify(portfolio_status(_store().list_loans(), _as_of_arg()))


@api.errorhandler(InvalidContractError)
def handle_invalid_contract(exc: InvalidContractError):
    logger.warning("Rejected loan contract field=%s: %s", exc.field, exc)
    return jsonify({"error": str(exc), "field": exc.field}), 400


@api.errorhandler(ValueError)
def handle_value_error(exc: ValueError):
    return jsonify({"error": str(exc)}), 400


def create_app(store: Optional[LoanStore] = None) -> Flask:
    """Create the Flask application.

    Without an explicit ``store`` the loan register opens the database named
    by ``LOAN_PLAN_DATABASE_URL``.
    """
    app = Flask(__name__)
    app.extensions["loan_store"] = store or create_store_from_env(os.environ.get("LOAN_PLAN_DATABASE_URL"))
    app.register_blueprint(api)

    @app.errorhandler(404)
    def not_found(exc):
        return jsonify({"error": exc.description}), 404

    return app


def main() -> None:
    configure_logging()
    port = int(os.environ.get("PORT", "8710"))
    logger.info("Starting loan plan service on port %d", port)
    create_app().run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
