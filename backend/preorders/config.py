# backend/preorders/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/preorders.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///preorders.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Ledger policy
    # "warn": advances above an item's value are recorded and flagged.
    # "strict": such payments are rejected with OverpaymentError.
    LEDGER_OVERPAYMENT_POLICY = os.environ.get("LEDGER_OVERPAYMENT_POLICY", "warn")
    LEDGER_OVERPAYMENT_TOLERANCE_CENTS = int(os.environ.get("LEDGER_OVERPAYMENT_TOLERANCE_CENTS", "0"))
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_CURRENCY = os.environ.get("LEDGER_CURRENCY", "PKR")
