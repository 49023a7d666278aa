# Overview: Request decorators for API routes.

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import request, jsonify, g


@dataclass(frozen=True)
class Principal:
    id: int
    tenant_id: int
    role: str | None
    full_name: str | None


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name, "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def require_principal(f):
    """
    Establish the authenticated principal and tenant context.

    Authentication happens upstream; the gateway forwards the principal in
    X-Principal-Id / X-Tenant-Id / X-Principal-Role / X-Principal-Name.

    Sets:
    - g.principal: Principal
    - g.tenant_id: tenant scope for every query in the request

    Returns 401 if the principal or its tenant is missing. Identity fields
    in the request body are never consulted.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal_id = _header_int("X-Principal-Id")
        tenant_id = _header_int("X-Tenant-Id")

        if principal_id is None:
            return jsonify({"error": "UNAUTHENTICATED", "message": "Authentication required"}), 401
        if tenant_id is None:
            return jsonify({"error": "UNAUTHENTICATED", "message": "Missing tenant context"}), 401

        g.principal = Principal(
            id=principal_id,
            tenant_id=tenant_id,
            role=request.headers.get("X-Principal-Role"),
            full_name=request.headers.get("X-Principal-Name"),
        )
        g.tenant_id = tenant_id

        return f(*args, **kwargs)

    return decorated_function
