# backend/invoiceflow/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # SQLite DB stored in backend/instance/invoiceflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///invoiceflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Company-wide defaults, read by the service layer only when a caller
    # does not pass explicit rates. Percentages, not fractions.
    TAX_RATE_PERCENT = os.environ.get("INVOICEFLOW_TAX_RATE_PERCENT", "10")
    VAT_RATE_PERCENT = os.environ.get("INVOICEFLOW_VAT_RATE_PERCENT", "5")

    # Strict: balance invariant violations raise. Off: log and clamp.
    STRICT_INVARIANTS = _env_flag("INVOICEFLOW_STRICT_INVARIANTS", False)
    BALANCE_TOLERANCE = os.environ.get("INVOICEFLOW_BALANCE_TOLERANCE", "0.000000001")

    LOG_LEVEL = os.environ.get("INVOICEFLOW_LOG_LEVEL", "INFO")
