# backend/regcore/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/regcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///regcore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Card processing fee passed through to sponsors: rate * base + fixed
    PROCESSING_FEE_RATE = Decimal(os.environ.get("PROCESSING_FEE_RATE", "0.029"))
    PROCESSING_FEE_FIXED_CENTS = int(os.environ.get("PROCESSING_FEE_FIXED_CENTS", "30"))

    CURRENCY = os.environ.get("CURRENCY", "usd")

    # Inventory holds taken at checkout expire after this many minutes
    RESERVATION_TTL_MINUTES = int(os.environ.get("RESERVATION_TTL_MINUTES", "60"))

    # Unpaid pending orders older than this are swept by maintenance cleanup-orders
    ABANDONED_ORDER_HOURS = int(os.environ.get("ABANDONED_ORDER_HOURS", "24"))

    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))

    # Products of type "other" whose name contains this keyword count as team slots
    TEAM_PRODUCT_KEYWORD = os.environ.get("TEAM_PRODUCT_KEYWORD", "team")
