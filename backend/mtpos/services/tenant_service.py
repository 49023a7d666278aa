"""
Tenant Service: tenant bootstrap and lookup

WHY: A tenant is usable for sales only once it has a document counter and a
chart of accounts. create_tenant sets up all three in one transaction so a
half-bootstrapped tenant never exists.

USAGE:
    from mtpos.services.tenant_service import create_tenant, require_tenant

    tenant = create_tenant(name="Corner Shop", code="CORNER")
    require_tenant(g.tenant_id)
"""

from __future__ import annotations

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import Tenant
from .coa_service import seed_default_coa
from .concurrency import run_transaction
from .document_service import ensure_counter


def create_tenant(*, name: str, code: str | None = None, business_name: str | None = None) -> Tenant:
    name = (name or "").strip()
    if not name:
        raise TransactionValidationError("INVALID_FIELD", "name is required", {"field": "name"})

    def _op() -> Tenant:
        if code and db.session.query(Tenant.id).filter_by(code=code).first():
            raise TransactionValidationError(
                "INVALID_FIELD", f"Tenant with code '{code}' already exists", {"field": "code"}
            )
        tenant = Tenant(name=name, code=code, business_name=business_name, is_active=True)
        db.session.add(tenant)
        db.session.flush()
        ensure_counter(tenant.id)
        seed_default_coa(tenant.id)
        return tenant

    return run_transaction(_op)


def require_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id, is_active=True).first()
    if tenant is None:
        raise TransactionNotFoundError("TENANT_NOT_FOUND", "Tenant not found", {"tenant_id": tenant_id})
    return tenant


def business_name_for(tenant_id: int, default: str) -> str:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        return default
    return tenant.business_name or tenant.name or default
