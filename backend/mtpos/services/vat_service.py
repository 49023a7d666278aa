# Overview: Monthly VAT roll-up keyed by (tenant, YYYY-MM).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import VatReport
from ..money import ZERO, q2
from ..time_utils import vat_period
from .concurrency import insert_or_ignore


# event -> (total_sales, sales_vat, total_purchases, purchase_vat) signs
EVENT_SIGNS = {
    "sale": (1, 1, 0, 0),
    "sales_return": (-1, -1, 0, 0),
    "purchase": (0, 0, 1, 1),
    "purchase_return": (0, 0, -1, -1),
}


def _ensure_period_row(tenant_id: int, period: str) -> None:
    insert_or_ignore(
        VatReport,
        {
            "tenant_id": tenant_id,
            "period": period,
            "total_sales": ZERO,
            "sales_vat": ZERO,
            "total_purchases": ZERO,
            "purchase_vat": ZERO,
            "vat_payable": ZERO,
        },
        ["tenant_id", "period"],
    )


def apply_vat_event(*, tenant_id: int, event: str, net, tax, occurred_at=None) -> str:
    """
    Upsert the period row, then apply the deltas in one UPDATE statement.

    vat_payable is recomputed in the same statement from the incremented
    columns, so concurrent events never lose an update. Returns the period.
    """
    s_sales, s_svat, s_purch, s_pvat = EVENT_SIGNS[event]
    net = q2(net)
    tax = q2(tax)
    period = vat_period(occurred_at)

    _ensure_period_row(tenant_id, period)

    d_sales = net * s_sales
    d_svat = tax * s_svat
    d_purch = net * s_purch
    d_pvat = tax * s_pvat

    db.session.execute(
        update(VatReport)
        .where(VatReport.tenant_id == tenant_id, VatReport.period == period)
        .values(
            total_sales=VatReport.total_sales + d_sales,
            sales_vat=VatReport.sales_vat + d_svat,
            total_purchases=VatReport.total_purchases + d_purch,
            purchase_vat=VatReport.purchase_vat + d_pvat,
            vat_payable=(VatReport.sales_vat + d_svat) - (VatReport.purchase_vat + d_pvat),
        )
        .execution_options(synchronize_session=False)
    )
    return period


def get_period(tenant_id: int, period: str) -> VatReport | None:
    row = db.session.query(VatReport).filter_by(tenant_id=tenant_id, period=period).first()
    if row is not None:
        db.session.refresh(row)
    return row
