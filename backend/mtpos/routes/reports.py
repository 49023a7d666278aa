from flask import Blueprint, jsonify, request, g

from ..decorators import require_principal
from ..errors import TransactionError
from ..responses import error_response
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/vat")
@require_principal
def vat_report():
    try:
        report = reporting_service.vat_report(g.tenant_id, request.args.get("period"))
        return jsonify(report), 200
    except TransactionError as exc:
        return error_response(exc)


@reports_bp.get("/trial-balance")
@require_principal
def trial_balance_report():
    try:
        report = reporting_service.trial_balance(g.tenant_id, as_of=request.args.get("as_of"))
        return jsonify(report), 200
    except TransactionError as exc:
        return error_response(exc)


@reports_bp.get("/balance-sheet")
@require_principal
def balance_sheet_report():
    try:
        report = reporting_service.balance_sheet(g.tenant_id, as_of=request.args.get("as_of"))
        return jsonify(report), 200
    except TransactionError as exc:
        return error_response(exc)


@reports_bp.get("/ledger")
@require_principal
def ledger_report():
    """?account_id=N or ?account=Cash"""
    limit = min(request.args.get("limit", 200, type=int), 1000)
    try:
        report = reporting_service.account_ledger(
            g.tenant_id,
            account_id=request.args.get("account_id", type=int),
            account_name=request.args.get("account"),
            limit=limit,
        )
        return jsonify(report), 200
    except TransactionError as exc:
        return error_response(exc)


@reports_bp.get("/daybook")
@require_principal
def daybook_report():
    limit = min(request.args.get("limit", 500, type=int), 2000)
    try:
        report = reporting_service.daybook(
            g.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=limit,
        )
        return jsonify(report), 200
    except TransactionError as exc:
        return error_response(exc)
