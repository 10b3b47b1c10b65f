"""
Django settings for ledger_project.

Values come from the environment (optionally a .env file beside manage.py).
Only the posting engine app is installed; request handling, authentication
and presentation live in the services that call into it.
"""
import os
import sys
from decimal import Decimal
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

from .logging_config import get_logging_config

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "changeme")
DEBUG = os.getenv("DJANGO_DEBUG", "False") == "True"
ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

TESTING = (
    "PYTEST_CURRENT_TEST" in os.environ
    or "pytest" in sys.argv
    or "test" in sys.argv
)

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "ledger_core.apps.LedgerCoreConfig",
]

MIDDLEWARE = []

DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = False
USE_TZ = True

# =============================================================================
# Posting engine
# =============================================================================
# Debit/credit totals must agree to within this amount (one cent)
LEDGER_BALANCE_TOLERANCE = Decimal(os.getenv("LEDGER_BALANCE_TOLERANCE", "0.01"))
LEDGER_ENTRY_NUMBER_PREFIX = os.getenv("LEDGER_ENTRY_NUMBER_PREFIX", "JE")
LEDGER_RETURN_PREFIX = os.getenv("LEDGER_RETURN_PREFIX", "DEV")
LEDGER_PAYROLL_PREFIX = os.getenv("LEDGER_PAYROLL_PREFIX", "NOM")
LEDGER_SUBSCRIPTION_PREFIX = os.getenv("LEDGER_SUBSCRIPTION_PREFIX", "SUB")
LEDGER_ADVANCE_PREFIX = os.getenv("LEDGER_ADVANCE_PREFIX", "ANT")

# =============================================================================
# Celery (recurring billing sweep)
# =============================================================================
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND") or None
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TIME_LIMIT = 30 * 60
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "False") == "True" or TESTING
CELERY_TASK_EAGER_PROPAGATES = True

# =============================================================================
# Structured logging
# =============================================================================
LOGGING = get_logging_config(DEBUG)
