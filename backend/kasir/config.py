from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kasir.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kasir.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock-in pricing: suggested price is rounded UP to this step
    PRICE_ROUNDING_STEP = int(os.environ.get("PRICE_ROUNDING_STEP", "500"))
    # Used when a product's category has no default_margin
    DEFAULT_CATEGORY_MARGIN = os.environ.get("DEFAULT_CATEGORY_MARGIN", "0.20")

    # Allowed gap between server-computed and client-declared totals
    TOTAL_TOLERANCE = int(os.environ.get("TOTAL_TOLERANCE", "2"))
    VOID_REASON_MIN_LENGTH = int(os.environ.get("VOID_REASON_MIN_LENGTH", "5"))

    LOW_STOCK_DEFAULT_THRESHOLD = int(os.environ.get("LOW_STOCK_DEFAULT_THRESHOLD", "10"))

    # Guard against runaway parent chains in the variant graph
    MAX_UNIT_DEPTH = int(os.environ.get("MAX_UNIT_DEPTH", "8"))
