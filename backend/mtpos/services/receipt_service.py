# Overview: Serialized thermal-receipt record and its hand-off to an external renderer.

from __future__ import annotations

import os

from flask import current_app

from ..extensions import db
from ..models import Invoice, InvoiceItem
from ..money import as_float
from ..time_utils import to_utc_z
from .tenant_service import business_name_for


def receipt_filename(invoice_number: str) -> str:
    return f"invoice-{invoice_number}.pdf"


def pdf_url_for(invoice_number: str) -> str:
    base = current_app.config.get("PUBLIC_BASE_URL", "").rstrip("/")
    return f"{base}/invoices/{receipt_filename(invoice_number)}"


def pdf_path_for(invoice_number: str) -> str:
    return os.path.join(current_app.config.get("INVOICE_PDF_DIR", "invoices"), receipt_filename(invoice_number))


def build_receipt_record(invoice: Invoice, items: list[InvoiceItem] | None = None) -> dict:
    """
    Data for an 80 mm receipt: business name, number, date,
    `qty x name / total` lines, total, payment method, thank-you line.
    """
    if items is None:
        items = (
            db.session.query(InvoiceItem)
            .filter_by(tenant_id=invoice.tenant_id, invoice_id=invoice.id)
            .order_by(InvoiceItem.id.asc())
            .all()
        )
    business_name = business_name_for(invoice.tenant_id, current_app.config.get("DEFAULT_BUSINESS_NAME"))

    return {
        "business_name": business_name,
        "invoice_number": invoice.invoice_number,
        "date": to_utc_z(invoice.created_at),
        "lines": [
            {
                "label": f"{item.quantity} x {item.product.name if item.product else item.product_id}",
                "quantity": item.quantity,
                "name": item.product.name if item.product else None,
                "price": as_float(item.price),
                "total": as_float(item.total),
            }
            for item in items
        ],
        "total": as_float(invoice.final_amount),
        "payment_method": invoice.payment_method,
        "footer": "Thank you for shopping!",
        "width_mm": 80,
    }


def render_receipt(invoice: Invoice) -> bool:
    """
    Pass the record to the renderer registered as
    app.extensions["receipt_renderer"] (callable(record, path)).
    Returns False when no renderer is configured.
    """
    renderer = current_app.extensions.get("receipt_renderer")
    if renderer is None:
        current_app.logger.info("No receipt renderer configured; skipping invoice %s", invoice.id)
        return False

    path = pdf_path_for(invoice.invoice_number)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    renderer(build_receipt_record(invoice), path)
    return True
