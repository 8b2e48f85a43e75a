# hospital_billing/core/config.py
import os
from typing import List, Optional
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Hospital Billing")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")
    PORTAL_URL: str = os.getenv("PORTAL_URL", "http://localhost:3000")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "hospital_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "hospital_billing")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # explicit URL wins over the MYSQL_* parts
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or (
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}?charset=utf8mb4")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")
    BILLING_ROLES: List[str] = _split_csv(
        os.getenv("BILLING_ROLES", "admin,billing,accountant"))

    # ---------- Hospital identity (printed on documents) ----------
    HOSPITAL_NAME: str = os.getenv("HOSPITAL_NAME", "Ashwini General Hospital")
    HOSPITAL_ADDRESS: str = os.getenv("HOSPITAL_ADDRESS", "")
    HOSPITAL_PHONE: str = os.getenv("HOSPITAL_PHONE", "")
    HOSPITAL_EMAIL: str = os.getenv("HOSPITAL_EMAIL", "")
    HOSPITAL_EMERGENCY_INFO: str = os.getenv(
        "HOSPITAL_EMERGENCY_INFO", "24 Hours Emergency & Ambulance Service")
    HOSPITAL_LOGO_PATH: Optional[str] = os.getenv("HOSPITAL_LOGO_PATH") or None

    # ---------- Billing ----------
    BILLING_DEFAULT_TAX_RATE: float = float(
        os.getenv("BILLING_DEFAULT_TAX_RATE", "18") or 18.0)
    INVOICE_NUMBER_PREFIX: str = os.getenv("INVOICE_NUMBER_PREFIX", "INV-")
    INVOICE_NUMBER_PADDING: int = int(os.getenv("INVOICE_NUMBER_PADDING", "6"))
    BILLING_PAGE_LIMIT_MAX: int = int(os.getenv("BILLING_PAGE_LIMIT_MAX", "50"))

    # ---------- Email ----------
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.office365.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", "")
    SMTP_TLS: bool = _flag("SMTP_TLS", "true")

    # ---------- Object storage (S3 compatible, e.g. Cloudflare R2) ----------
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "")
    STORAGE_ENDPOINT_URL: Optional[str] = os.getenv("STORAGE_ENDPOINT_URL") or None
    STORAGE_ACCESS_KEY_ID: str = os.getenv("STORAGE_ACCESS_KEY_ID", "")
    STORAGE_SECRET_ACCESS_KEY: str = os.getenv("STORAGE_SECRET_ACCESS_KEY", "")
    STORAGE_REGION: str = os.getenv("STORAGE_REGION", "auto")
    STORAGE_PUBLIC_BASE_URL: str = os.getenv("STORAGE_PUBLIC_BASE_URL", "")
    STORAGE_SIGNED_URL_TTL: int = int(os.getenv("STORAGE_SIGNED_URL_TTL", "3600"))

    # ---------- Lab report merge ----------
    REPORT_FETCH_TIMEOUT: float = float(os.getenv("REPORT_FETCH_TIMEOUT", "20"))
    REPORT_FETCH_WORKERS: int = int(os.getenv("REPORT_FETCH_WORKERS", "4"))


settings = Settings()
