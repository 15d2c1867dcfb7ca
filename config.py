import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    # When unset, mutating endpoints are open
    api_key: Optional[str] = os.getenv("API_KEY") or None
    cors_origins: List[str] = field(
        default_factory=lambda: [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
    )

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Loan rules
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    max_open_loans: int = int(os.getenv("MAX_OPEN_LOANS", "3"))
    daily_fine_rate: Decimal = Decimal(os.getenv("DAILY_FINE_RATE", "2.00"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Loans API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Pagination
    default_page_size: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
    max_page_size: int = int(os.getenv("MAX_PAGE_SIZE", "100"))


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the root logging configuration once per process."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
