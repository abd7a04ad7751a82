# investment_manager/config.py
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _to_bool(env_name: str, default: str = "false") -> bool:
    return (os.getenv(env_name, default) or "").strip().lower() in ("1", "true", "yes", "y")


def _csv(env_name: str, default: str) -> list:
    return [p.strip() for p in (os.getenv(env_name, default) or "").split(",") if p.strip()]


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")

    # ---- JWT (identity provider) ----
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_HOURS", "24")))
    JWT_TOKEN_LOCATION = ["headers"]

    # ---- Database ----
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///investment_manager.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ALLOWED_ORIGINS = _csv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:5001")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # local directory for structure banners (upload itself is handled elsewhere)
    UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", "")

    # Optional Root account seeded on first boot
    DEFAULT_ROOT_EMAIL = os.getenv("DEFAULT_ROOT_EMAIL", "")
    DEFAULT_ROOT_PASSWORD = os.getenv("DEFAULT_ROOT_PASSWORD", "")

    # ---- Domain policy ----
    # may be lowered from the environment, never raised past five levels
    MAX_HIERARCHY_DEPTH = min(int(os.getenv("MAX_HIERARCHY_DEPTH", "5")), 5)

    # Terms applied when a structure is created without them
    STRUCTURE_DEFAULTS = {
        "status": "Active",
        "management_fee": 2.0,
        "carried_interest": 20.0,
        "hurdle_rate": 8.0,
        "waterfall_type": "American",
        "term_years": 10,
        "extension_years": 2,
        "base_currency": "USD",
    }

    # Capability flags applied to a new StructureAdmin grant when the caller omits them
    GRANT_DEFAULTS = {
        "can_edit": _to_bool("GRANT_DEFAULT_CAN_EDIT", "true"),
        "can_delete": _to_bool("GRANT_DEFAULT_CAN_DELETE", "false"),
        "can_manage_investors": _to_bool("GRANT_DEFAULT_CAN_MANAGE_INVESTORS", "true"),
        "can_manage_documents": _to_bool("GRANT_DEFAULT_CAN_MANAGE_DOCUMENTS", "true"),
    }


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    SECRET_KEY = "test-secret"
    DEFAULT_ROOT_EMAIL = ""
    LOG_LEVEL = "DEBUG"
