from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import TYPE_CHECKING

from config import MIN_CHANGE_REASON_LENGTH
from core.errors import ActionInProgress, InvalidInput, TimeClockError
from core.models import ChangeRequest, Company, Incident, PauseType, RecordAction, TimeRecord, WorkerIdentity, WorkerStatus
from core.time_state import TimeStateResolver
from utils.datetime_conversion import from_local_editable_field, to_local_editable_field
from utils.logger import logger

if TYPE_CHECKING:
    from api.timeclock_api import TimeClockAPI
    from api.worker_api import WorkerAPI

# Only these can be targeted by a change request
CHANGEABLE_RECORD_TYPES = (RecordAction.ENTRY, RecordAction.EXIT)


class ClockSession:
    """
    One worker, one viewer timezone, one selected company.

    Validates every action locally before it reaches the network, keeps a
    loading flag per action so the same action can't be submitted twice, and
    reloads the status only after the backend acknowledged the action.
    """

    def __init__(
        self,
        timeclock_api: TimeClockAPI,
        worker_api: WorkerAPI,
        worker: WorkerIdentity,
        tz,
        resolver: TimeStateResolver | None = None,
    ) -> None:
        self.timeclock_api = timeclock_api
        self.worker_api = worker_api
        self.worker = worker
        self.tz = tz
        self.resolver = resolver or TimeStateResolver()

        self.companies: list[Company] = []
        self.company_id: str | None = None
        self.status: WorkerStatus | None = None
        self.pause_types: list[PauseType] = []

        self._loading: set[RecordAction] = set()
        self._loading_lock = threading.Lock()

    # Company / status loading
    def load_companies(self) -> list[Company]:
        self.companies = self.timeclock_api.get_worker_companies(self.worker)
        if self.company_id is None and self.companies:
            self.company_id = self.companies[0].id
        return self.companies

    def select_company(self, company_id: str) -> WorkerStatus:
        self.company_id = company_id
        self.status = None
        self.pause_types = []
        status = self.reload_status()
        self.reload_pause_types()
        return status

    def reload_status(self) -> WorkerStatus:
        company_id = self._require_company()
        self.status = self.timeclock_api.get_current_status(self.worker, company_id, self.tz)
        logger.debug("Status for %s: %s", self.worker.display_name, self.status.state.value)
        return self.status

    def reload_pause_types(self) -> list[PauseType]:
        company_id = self._require_company()
        try:
            self.pause_types = self.timeclock_api.get_available_pause_types(self.worker, company_id)
        except TimeClockError as exc:
            # Pausing just becomes unavailable; entry/exit keep working
            logger.warning("Could not load pause types for company %s: %s", company_id, exc)
            self.pause_types = []
        return self.pause_types

    # Actions
    def legal_actions(self) -> frozenset[RecordAction]:
        if self.status is None:
            return frozenset()
        return self.resolver.legal_actions(self.status, self.pause_types)

    def is_loading(self, action: RecordAction) -> bool:
        with self._loading_lock:
            return action in self._loading

    def perform(self, action: RecordAction, pause_type_id: str | None = None) -> TimeRecord:
        company_id = self._require_company()
        if self.status is None:
            self.reload_status()

        self.resolver.validate_action(self.status, action, pause_type_id, self.pause_types)

        with self._in_flight(action):
            record = self.timeclock_api.create_time_record(
                self.worker, company_id, action, self.tz, pause_type_id=pause_type_id
            )
            # Only after the backend acknowledged the action
            try:
                self.reload_status()
            except TimeClockError as exc:
                # The action is recorded; the next perform() reloads before validating
                logger.warning("%s recorded but status reload failed: %s", action.value, exc)
                self.status = None
        return record

    def clock_in(self) -> TimeRecord:
        return self.perform(RecordAction.ENTRY)

    def clock_out(self) -> TimeRecord:
        return self.perform(RecordAction.EXIT)

    def start_pause(self, pause_type_id: str) -> TimeRecord:
        return self.perform(RecordAction.PAUSE_START, pause_type_id)

    def end_pause(self) -> TimeRecord:
        return self.perform(RecordAction.PAUSE_END)

    def summary(self, now: datetime | None = None) -> dict:
        """Display figures for the current status."""
        status = self.status
        if status is None:
            return {}
        data = {
            "worker": status.worker_name or self.worker.display_name,
            "company": status.company_name,
            "state": status.state.value,
            "entry_time": self.resolver.format_entry_time(status, self.tz),
            "worked": self.resolver.format_worked(status, now),
            "actions": sorted(action.value for action in self.legal_actions()),
        }
        if status.pause_type_id is not None:
            data["pause"] = status.pause_type_name or status.pause_type_id
            data["pause_counts_as_work"] = bool(status.pause_counts_as_work)
            data["pause_started_at"] = self.resolver.format_pause_start(status, self.tz)
            data["pause_duration"] = self.resolver.format_pause(status, now)
        return data

    # Change requests
    def day_records(self, day: date) -> list[TimeRecord]:
        company_id = self._require_company()
        records = self.timeclock_api.get_worker_day_records(self.worker, day, company_id)
        return [record for record in records if record.record_type in CHANGEABLE_RECORD_TYPES]

    def editable_value(self, record: TimeRecord) -> str:
        return to_local_editable_field(record.timestamp, self.tz)

    def request_change(self, record: TimeRecord, new_local_value: str, reason: str, day: date | None = None) -> ChangeRequest:
        company_id = self._require_company()
        if record.record_type not in CHANGEABLE_RECORD_TYPES:
            raise InvalidInput("Only entry and exit records can be changed")
        reason = (reason or "").strip()
        if len(reason) < MIN_CHANGE_REASON_LENGTH:
            raise InvalidInput(f"The reason must be at least {MIN_CHANGE_REASON_LENGTH} characters long")
        if not new_local_value:
            raise InvalidInput("Enter the new date and time")

        new_instant = from_local_editable_field(new_local_value, self.tz)
        if new_instant == record.timestamp:
            raise InvalidInput("The new date and time must differ from the current one")

        day = day or record.timestamp.astimezone(self.tz).date()
        return self.worker_api.create_change_request(
            self.worker, day, company_id, record.id, new_instant, reason
        )

    def has_pending_change_request(self) -> bool:
        return self.worker_api.check_pending_change_request(self.worker).has_pending

    # Incidents
    def file_incident(self, description: str) -> Incident:
        if not description or not description.strip():
            raise InvalidInput("Describe the incident")
        return self.worker_api.create_incident(self.worker, description)

    def logout(self) -> None:
        self.status = None
        self.pause_types = []
        self.companies = []
        self.company_id = None
        self.timeclock_api.session.reset()
        logger.info("%s logged out", self.worker.display_name)

    # Internals
    def _require_company(self) -> str:
        if not self.company_id:
            raise InvalidInput("Select a company")
        return self.company_id

    @contextmanager
    def _in_flight(self, action: RecordAction):
        with self._loading_lock:
            if action in self._loading:
                raise ActionInProgress(f"{action.value} is already being processed")
            self._loading.add(action)
        try:
            yield
        finally:
            with self._loading_lock:
                self._loading.discard(action)
