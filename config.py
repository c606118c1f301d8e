import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

APP_NAME = "WorkerTimeClock"
APP_VERSION = "1.0.0"


# Backend
API_URL = os.getenv("TIMECLOCK_API_URL", "http://localhost:8000").rstrip("/")
BASE_URL = f"{API_URL}/api"

# Service token endpoint (OAuth2 password form)
TOKEN_URL = f"{BASE_URL}/token"

# Time records
TIME_RECORDS_URL = f"{BASE_URL}/time-records/"
CURRENT_STATUS_URL = f"{BASE_URL}/time-records/current-status"
WORKER_HISTORY_URL = f"{BASE_URL}/time-records/worker/history"
PAUSE_TYPES_URL = f"{BASE_URL}/pause-types/available"

# Workers
WORKER_COMPANIES_URL = f"{BASE_URL}/workers/my-companies"
CHANGE_PASSWORD_URL = f"{BASE_URL}/workers/change-password"
FORGOT_PASSWORD_URL = f"{BASE_URL}/workers/forgot-password"
RESET_PASSWORD_URL = f"{BASE_URL}/workers/reset-password"

# Incidents and change requests
INCIDENTS_URL = f"{BASE_URL}/incidents/"
CHANGE_REQUESTS_URL = f"{BASE_URL}/change-requests/"
PENDING_CHANGE_REQUEST_URL = f"{BASE_URL}/change-requests/pending/check"

# Default headers sent with every backend call (explicit headers win)
DEFAULT_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "user-agent": f"{APP_NAME}/{APP_VERSION}",
}

# Networking
REQUEST_TIMEOUT_SECONDS = float(os.getenv("TIMECLOCK_REQUEST_TIMEOUT", "30"))

# Change requests
MIN_CHANGE_REASON_LENGTH = 10

# Data / logging
DATA_DIR = os.getenv("TIMECLOCK_DATA_DIR", os.path.join(os.path.expanduser("~"), ".worker-timeclock"))
LOG_FILE = os.path.join(DATA_DIR, "app.log")
LOG_LEVEL = os.getenv("TIMECLOCK_LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True, slots=True)
class ServiceCredential:
    """Service-level account used only to obtain the bearer token."""

    username: str
    password: str

    def is_complete(self) -> bool:
        return bool(self.username and self.password)


def load_service_credential() -> Optional[ServiceCredential]:
    # Read at call time so a missing .env surfaces as ConfigurationError on authenticate()
    username = (os.getenv("TIMECLOCK_API_USERNAME") or "").strip()
    password = os.getenv("TIMECLOCK_API_PASSWORD") or ""
    if not username and not password:
        return None
    return ServiceCredential(username=username, password=password)
