# Overview: Error taxonomy for the sales pipeline; each error carries a stable code.

from __future__ import annotations


class TransactionError(Exception):
    """
    Base class for pipeline failures.

    code:    stable machine-readable variant (e.g. "INVALID_COUPON")
    message: human message, safe to show to the caller
    details: structured context (offending product id, limits, ...)
    """
    kind = "internal"
    http_status = 500

    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "details": self.details}


class TransactionValidationError(TransactionError):
    """Caller's fault: bad input or a business rule refused the request."""
    kind = "validation"
    http_status = 400


class TransactionNotFoundError(TransactionError):
    kind = "not_found"
    http_status = 404


class AccountingConfigError(TransactionError):
    """Tenant setup is incomplete (missing COA account, missing rule)."""
    kind = "config"
    http_status = 500


class TransactionConflictError(TransactionError):
    """A concurrent request won a race for the same resource."""
    kind = "conflict"
    http_status = 409


class StoreError(TransactionError):
    """Row-store failure; never shown verbatim to the caller."""
    kind = "internal"
    http_status = 500

    def __init__(self, cause: Exception | None = None, message: str = "Storage failure"):
        super().__init__("STORE_ERROR", message, {})
        self.cause = cause


def coa_missing(name: str) -> AccountingConfigError:
    return AccountingConfigError("COA_MISSING", f"Chart of accounts is missing '{name}'", {"account": name})
