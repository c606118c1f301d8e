from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from utils.datetime_conversion import parse_utc_instant


class WorkerState(Enum):
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"
    ON_PAUSE = "on_pause"


class RecordAction(Enum):
    ENTRY = "entry"
    EXIT = "exit"
    PAUSE_START = "pause_start"
    PAUSE_END = "pause_end"


INSIDE_SHIFT = "inside_shift"
OUTSIDE_SHIFT = "outside_shift"


def _instant(data: dict, key: str) -> datetime | None:
    value = data.get(key)
    if value in (None, ""):
        return None
    return parse_utc_instant(value)


def _minutes(data: dict, key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True, slots=True)
class WorkerIdentity:
    """Worker email + password, sent in the body of every domain call."""

    email: str
    password: str = field(repr=False)

    @property
    def display_name(self) -> str:
        # Display convenience only: "ana.garcia_lopez@x.com" -> "ana garcia lopez"
        local_part = self.email.split("@", 1)[0]
        return re.sub(r"[._]", " ", local_part)

    def as_payload(self) -> dict[str, str]:
        return {"email": self.email, "password": self.password}


@dataclass(frozen=True, slots=True)
class Company:
    id: str
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Company:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            created_at=_instant(data, "created_at"),
            updated_at=_instant(data, "updated_at"),
        )


@dataclass(frozen=True, slots=True)
class PauseType:
    """
    Pause catalog entry.

    Attributes:
        classification: "inside_shift" (counts as worked time) or "outside_shift".
    """

    id: str
    name: str
    classification: str
    description: str = ""

    @property
    def counts_as_work(self) -> bool:
        return self.classification == INSIDE_SHIFT

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> PauseType:
        classification = data.get("type") or data.get("classification")
        if classification not in (INSIDE_SHIFT, OUTSIDE_SHIFT):
            raise ValueError(f"Unknown pause classification: {classification!r}")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            classification=classification,
            description=data.get("description") or "",
        )


@dataclass(frozen=True, slots=True)
class WorkerStatus:
    worker_id: str
    worker_name: str
    company_id: str
    company_name: str
    state: WorkerState
    entry_time: datetime | None = None
    time_worked_minutes: float | None = None
    pause_type_id: str | None = None
    pause_type_name: str | None = None
    pause_counts_as_work: bool | None = None
    pause_started_at: datetime | None = None
    pause_duration_minutes: float | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> WorkerStatus:
        state = WorkerState(data["status"])
        pause_type_id = data.get("pause_type_id")
        return cls(
            worker_id=str(data.get("worker_id") or ""),
            worker_name=data.get("worker_name") or "",
            company_id=str(data.get("company_id") or ""),
            company_name=data.get("company_name") or "",
            state=state,
            entry_time=_instant(data, "entry_time"),
            time_worked_minutes=_minutes(data, "time_worked_minutes"),
            pause_type_id=str(pause_type_id) if pause_type_id is not None else None,
            pause_type_name=data.get("pause_type_name"),
            pause_counts_as_work=data.get("pause_counts_as_work"),
            pause_started_at=_instant(data, "pause_started_at"),
            pause_duration_minutes=_minutes(data, "pause_duration_minutes"),
        )


@dataclass(frozen=True, slots=True)
class TimeRecord:
    id: str
    worker_id: str
    record_type: RecordAction
    timestamp: datetime
    duration_minutes: float | None = None
    recorded_by: str = ""
    company_id: str | None = None
    company_name: str | None = None
    pause_type_id: str | None = None
    pause_type_name: str | None = None
    pause_counts_as_work: bool | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TimeRecord:
        company_id = data.get("company_id")
        pause_type_id = data.get("pause_type_id")
        return cls(
            id=str(data["id"]),
            worker_id=str(data.get("worker_id") or ""),
            record_type=RecordAction(data["record_type"]),
            timestamp=parse_utc_instant(data["timestamp"]),
            duration_minutes=_minutes(data, "duration_minutes"),
            recorded_by=data.get("recorded_by") or "",
            company_id=str(company_id) if company_id is not None else None,
            company_name=data.get("company_name"),
            pause_type_id=str(pause_type_id) if pause_type_id is not None else None,
            pause_type_name=data.get("pause_type_name"),
            pause_counts_as_work=data.get("pause_counts_as_work"),
        )


@dataclass(frozen=True, slots=True)
class Incident:
    id: str
    worker_id: str
    description: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    worker_email: str = ""
    worker_name: str = ""
    resolved_at: datetime | None = None
    admin_notes: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Incident:
        return cls(
            id=str(data["id"]),
            worker_id=str(data.get("worker_id") or ""),
            description=data.get("description") or "",
            status=data.get("status") or "pending",
            created_at=_instant(data, "created_at"),
            updated_at=_instant(data, "updated_at"),
            worker_email=data.get("worker_email") or "",
            worker_name=data.get("worker_name") or "",
            resolved_at=_instant(data, "resolved_at"),
            admin_notes=data.get("admin_notes"),
        )


@dataclass(frozen=True, slots=True)
class ChangeRequest:
    """A pending-approval proposal to move a recorded entry/exit. Never a direct mutation."""

    id: str
    time_record_id: str
    company_id: str
    date: str
    original_type: RecordAction
    original_timestamp: datetime | None
    new_timestamp: datetime
    reason: str
    status: str
    company_name: str = ""
    created_at: datetime | None = None
    reviewed_at: datetime | None = None
    admin_public_comment: str | None = None
    validation_errors: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ChangeRequest:
        return cls(
            id=str(data["id"]),
            time_record_id=str(data.get("time_record_id") or ""),
            company_id=str(data.get("company_id") or ""),
            date=data.get("date") or "",
            original_type=RecordAction(data["original_type"]),
            original_timestamp=_instant(data, "original_timestamp"),
            new_timestamp=parse_utc_instant(data["new_timestamp"]),
            reason=data.get("reason") or "",
            status=data.get("status") or "pending",
            company_name=data.get("company_name") or "",
            created_at=_instant(data, "created_at"),
            reviewed_at=_instant(data, "reviewed_at"),
            admin_public_comment=data.get("admin_public_comment"),
            validation_errors=tuple(data.get("validation_errors") or ()),
        )


@dataclass(frozen=True, slots=True)
class PendingCheck:
    has_pending: bool
    pending_request_id: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> PendingCheck:
        return cls(
            has_pending=bool(data.get("has_pending")),
            pending_request_id=data.get("pending_request_id"),
        )
