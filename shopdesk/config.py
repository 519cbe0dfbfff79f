import os
import logging
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv
from typing import List

# Load environment variables
load_dotenv()

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration settings for the admin panel and order services"""

    # Bot settings
    TELEGRAM_TOKEN: str = os.getenv("TELEGRAM_TOKEN", "")

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_POOL_MIN: int = int(os.getenv("DB_POOL_MIN", "2"))
    DB_POOL_MAX: int = int(os.getenv("DB_POOL_MAX", "10"))

    # Admin settings
    ADMIN_IDS: List[int] = [
        int(id_) for id_ in os.getenv("ADMIN_IDS", "").split(",")
        if id_.strip().isdigit()
    ]

    # Order lifecycle
    HOME_COUNTRY: str = os.getenv("HOME_COUNTRY", "India")
    DOMESTIC_CARRIER: str = os.getenv("DOMESTIC_CARRIER", "IndiaPost")
    INTERNATIONAL_CARRIER: str = os.getenv("INTERNATIONAL_CARRIER", "DHL")
    STRICT_TRANSITIONS: bool = _env_flag("STRICT_TRANSITIONS")
    INVENTORY_RESTORE_GUARD: bool = _env_flag("INVENTORY_RESTORE_GUARD")
    BULK_LIMIT: int = int(os.getenv("BULK_LIMIT", "50"))
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.18"))

    # Other settings
    TIMEZONE: str = os.getenv("TZ", "Asia/Kolkata")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Paths
    LOG_DIR = BASE_DIR / "logs"

    @classmethod
    def validate(cls):
        """Fail fast when settings required by the bot are missing"""
        if not cls.TELEGRAM_TOKEN:
            raise ValueError("No TELEGRAM_TOKEN set in environment")
        if not cls.DATABASE_URL:
            raise ValueError("No DATABASE_URL set in environment")


def setup_logging():
    """Configure logging settings"""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    Config.LOG_DIR.mkdir(exist_ok=True)
    log_file = Config.LOG_DIR / "shopdesk.log"

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
