# Overview: JSON error bodies shared by the API blueprints.

from __future__ import annotations

import uuid

from flask import current_app, jsonify

from .errors import StoreError, TransactionError


def error_response(exc: TransactionError):
    """Map a pipeline error to its JSON body and HTTP status."""
    if isinstance(exc, StoreError):
        return internal_error("Storage failure", exc)
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(context: str, exc: Exception | None = None):
    """
    Log the full exception under a correlation id and return a generic body.

    Internal details never leave the server; the log_id ties the response to
    the log line.
    """
    log_id = uuid.uuid4().hex[:12]
    current_app.logger.exception("%s [log_id=%s]", context, log_id, exc_info=exc or True)
    return jsonify({"error": "Internal server error", "log_id": log_id}), 500
