# backend/mtpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite for local development; point DATABASE_URL at Postgres in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///mtpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Receipt output
    INVOICE_PDF_DIR = os.environ.get("INVOICE_PDF_DIR", "invoices")
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")
    DEFAULT_BUSINESS_NAME = os.environ.get("DEFAULT_BUSINESS_NAME", "SUPERMART")

    # Post-commit accounting/VAT/receipt work: "thread" or "inline"
    DEFERRED_TAIL_MODE = os.environ.get("DEFERRED_TAIL_MODE", "thread")
    DEFERRED_TAIL_WORKERS = int(os.environ.get("DEFERRED_TAIL_WORKERS", "2"))

    # When true, a staff purchase on a tenant with no active staff rule is refused
    STAFF_DISCOUNT_RULE_REQUIRED = os.environ.get("STAFF_DISCOUNT_RULE_REQUIRED", "0") == "1"
