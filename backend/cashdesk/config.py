# backend/cashdesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cashdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Durable store keys (whole collection / engine settings / receipt counter)
    DEFICIT_STORE_KEY = "station_shorts_data"
    SETTINGS_STORE_KEY = "station_settings"
    RECEIPT_SEQUENCE_KEY = "station_receipt_sequence"

    # Engine defaults, only used until settings are saved through the API
    MANAGER_PIN = os.environ.get("MANAGER_PIN", "1234")
    DUE_DATE_GRACE_DAYS = int(os.environ.get("DUE_DATE_GRACE_DAYS", "5"))
    MONTHLY_SALARY = os.environ.get("MONTHLY_SALARY", "15000.00")

    # bcrypt cost factor for the manager PIN hash
    PIN_HASH_ROUNDS = int(os.environ.get("PIN_HASH_ROUNDS", "12"))

    # Default document sink writes plain-text receipts here
    RECEIPT_OUTPUT_DIR = os.environ.get("RECEIPT_OUTPUT_DIR", "receipts")
