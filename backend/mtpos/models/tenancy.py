from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every data row belongs to exactly one tenant.

    DESIGN:
    - All business tables carry tenant_id
    - All queries must be scoped by tenant_id
    - No data may cross tenant boundaries
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    business_name = db.Column(db.String(255), nullable=True)  # Printed on receipts

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "business_name": self.business_name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TenantCounter(db.Model):
    """
    Per-tenant document sequences.

    sales_seq / purchase_seq hold the LAST issued number. Allocation is a
    single UPDATE ... SET seq = seq + 1, so two requests never read the same
    value.
    """
    __tablename__ = "tenant_counters"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", name="uq_tenant_counters_tenant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sales_seq = db.Column(db.Integer, nullable=False, default=0)
    purchase_seq = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
