from datetime import date
from typing import List, Optional

from api.session_api import SessionManager, call_backend, parse_model, parse_models
from config import (
    CURRENT_STATUS_URL,
    PAUSE_TYPES_URL,
    TIME_RECORDS_URL,
    WORKER_COMPANIES_URL,
    WORKER_HISTORY_URL,
)
from core.models import Company, PauseType, RecordAction, TimeRecord, WorkerIdentity, WorkerStatus
from utils.datetime_conversion import timezone_name
from utils.logger import logger


class TimeClockAPI:
    """Shift actions and the lookups needed to offer them (status, pause catalog, companies)."""

    def __init__(self, session: SessionManager):
        self.session = session

    def create_time_record(
        self,
        worker: WorkerIdentity,
        company_id: str,
        action: RecordAction,
        tz,
        pause_type_id: Optional[str] = None,
    ) -> TimeRecord:
        payload = {
            **worker.as_payload(),
            "company_id": company_id,
            "action": action.value,
            "timezone": timezone_name(tz),
        }
        if pause_type_id is not None:
            payload["pause_type_id"] = pause_type_id

        logger.info("Recording %s for company %s", action.value, company_id)
        data = call_backend(
            self.session,
            "POST",
            TIME_RECORDS_URL,
            {
                400: "Bad request. Please check your input.",
                401: "Invalid worker credentials.",
                404: "Worker not found.",
            },
            "An unexpected error occurred.",
            json=payload,
        )
        return parse_model(data, TimeRecord.from_payload)

    def get_current_status(self, worker: WorkerIdentity, company_id: str, tz) -> WorkerStatus:
        payload = {**worker.as_payload(), "company_id": company_id, "timezone": timezone_name(tz)}
        data = call_backend(
            self.session,
            "POST",
            CURRENT_STATUS_URL,
            {401: "Invalid credentials.", 404: "Worker not found."},
            "Error loading current status.",
            json=payload,
        )
        return parse_model(data, WorkerStatus.from_payload)

    def get_available_pause_types(self, worker: WorkerIdentity, company_id: str) -> List[PauseType]:
        data = call_backend(
            self.session,
            "POST",
            PAUSE_TYPES_URL,
            {401: "Invalid credentials."},
            "Error loading pause types.",
            json={**worker.as_payload(), "company_id": company_id},
        )
        return parse_models(data, PauseType.from_payload)

    def get_worker_companies(self, worker: WorkerIdentity) -> List[Company]:
        """Companies the worker belongs to. Also how worker credentials get validated at login."""
        data = call_backend(
            self.session,
            "POST",
            WORKER_COMPANIES_URL,
            {401: "Invalid credentials."},
            "Error loading companies.",
            json=worker.as_payload(),
        )
        return parse_models(data, Company.from_payload)

    def get_worker_day_records(self, worker: WorkerIdentity, day: date, company_id: str) -> List[TimeRecord]:
        day_iso = day.isoformat()
        data = call_backend(
            self.session,
            "POST",
            WORKER_HISTORY_URL,
            {401: "Invalid credentials.", 404: "Worker or company not found."},
            "Error loading the day's records.",
            json={
                **worker.as_payload(),
                "company_id": company_id,
                "start_date": day_iso,
                "end_date": day_iso,
            },
        )
        return parse_models(data, TimeRecord.from_payload)
