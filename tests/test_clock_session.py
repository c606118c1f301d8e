from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from core.clock_session import ClockSession
from core.errors import ActionInProgress, ApiError, InvalidDatetime, InvalidInput, InvalidTransition, TransportError
from core.models import (
    INSIDE_SHIFT,
    ChangeRequest,
    Company,
    Incident,
    PauseType,
    PendingCheck,
    RecordAction,
    TimeRecord,
    WorkerIdentity,
    WorkerState,
    WorkerStatus,
)
from core.time_state import TRANSITIONS

MADRID = ZoneInfo("Europe/Madrid")
WORKER = WorkerIdentity(email="ana.garcia@example.com", password="worker-pw")
ENTRY_AT = datetime(2025, 12, 5, 7, 58, tzinfo=timezone.utc)


class FakeSession:
    def __init__(self):
        self.resets = 0

    def reset(self):
        self.resets += 1


class FakeTimeClockAPI:
    """In-memory backend: applies actions to a single worker state."""

    def __init__(self, state=WorkerState.LOGGED_OUT):
        self.session = FakeSession()
        self.state = state
        self.companies = [Company(id="c-1", name="Acme"), Company(id="c-2", name="Globex")]
        self.pause_types = [PauseType(id="p-1", name="Coffee", classification=INSIDE_SHIFT)]
        self.pause_types_error = None
        self.status_error = None
        self.records = []
        self.created = []
        self.status_calls = 0
        self.on_create = None

    def create_time_record(self, worker, company_id, action, tz, pause_type_id=None):
        self.created.append((company_id, action, pause_type_id))
        if self.on_create:
            self.on_create()
        if action not in TRANSITIONS[self.state]:
            raise ApiError(f"Cannot {action.value}", 400)
        self.state = TRANSITIONS[self.state][action]
        return TimeRecord(id=f"r-{len(self.created)}", worker_id="w-1", record_type=action, timestamp=ENTRY_AT)

    def get_current_status(self, worker, company_id, tz):
        self.status_calls += 1
        if self.status_error:
            raise self.status_error
        return WorkerStatus(
            worker_id="w-1",
            worker_name="Ana Garcia",
            company_id=company_id,
            company_name="Acme",
            state=self.state,
            entry_time=None if self.state is WorkerState.LOGGED_OUT else ENTRY_AT,
        )

    def get_available_pause_types(self, worker, company_id):
        if self.pause_types_error:
            raise self.pause_types_error
        return list(self.pause_types)

    def get_worker_companies(self, worker):
        return list(self.companies)

    def get_worker_day_records(self, worker, day, company_id):
        return list(self.records)


class FakeWorkerAPI:
    def __init__(self):
        self.change_requests = []
        self.incidents = []

    def create_change_request(self, worker, day, company_id, time_record_id, new_timestamp, reason):
        self.change_requests.append((day, company_id, time_record_id, new_timestamp, reason))
        return ChangeRequest(
            id="cr-1",
            time_record_id=time_record_id,
            company_id=company_id,
            date=day.isoformat(),
            original_type=RecordAction.ENTRY,
            original_timestamp=ENTRY_AT,
            new_timestamp=new_timestamp,
            reason=reason,
            status="pending",
        )

    def check_pending_change_request(self, worker):
        return PendingCheck(has_pending=bool(self.change_requests), pending_request_id=None)

    def create_incident(self, worker, description):
        self.incidents.append(description)
        return Incident(id="i-1", worker_id="w-1", description=description, status="pending")


@pytest.fixture
def backend():
    return FakeTimeClockAPI()


@pytest.fixture
def worker_api():
    return FakeWorkerAPI()


@pytest.fixture
def clock(backend, worker_api):
    clock = ClockSession(backend, worker_api, WORKER, MADRID)
    clock.load_companies()
    clock.select_company("c-1")
    return clock


def record(record_type=RecordAction.ENTRY, timestamp=ENTRY_AT):
    return TimeRecord(id="r-1", worker_id="w-1", record_type=record_type, timestamp=timestamp)


def test_first_company_is_selected_by_default(backend, worker_api) -> None:
    clock = ClockSession(backend, worker_api, WORKER, MADRID)

    clock.load_companies()

    assert clock.company_id == "c-1"


def test_actions_require_a_company(backend, worker_api) -> None:
    clock = ClockSession(backend, worker_api, WORKER, MADRID)

    with pytest.raises(InvalidInput):
        clock.clock_in()
    assert backend.created == []


def test_full_shift(clock, backend) -> None:
    clock.clock_in()
    assert clock.status.state is WorkerState.LOGGED_IN
    clock.start_pause("p-1")
    assert clock.status.state is WorkerState.ON_PAUSE
    clock.end_pause()
    clock.clock_out()

    assert clock.status.state is WorkerState.LOGGED_OUT
    assert [action for _, action, _ in backend.created] == [
        RecordAction.ENTRY,
        RecordAction.PAUSE_START,
        RecordAction.PAUSE_END,
        RecordAction.EXIT,
    ]


def test_status_is_reloaded_after_each_action(clock, backend) -> None:
    before = backend.status_calls

    clock.clock_in()

    assert backend.status_calls == before + 1


def test_second_pause_start_is_rejected_locally(clock, backend) -> None:
    clock.clock_in()
    clock.start_pause("p-1")

    with pytest.raises(InvalidTransition):
        clock.start_pause("p-1")

    assert [action for _, action, _ in backend.created].count(RecordAction.PAUSE_START) == 1


def test_unknown_pause_type_never_reaches_the_backend(clock, backend) -> None:
    clock.clock_in()

    with pytest.raises(InvalidInput):
        clock.start_pause("p-404")

    assert len(backend.created) == 1


def test_legal_actions_follow_status(clock) -> None:
    assert clock.legal_actions() == {RecordAction.ENTRY}
    clock.clock_in()
    assert clock.legal_actions() == {RecordAction.PAUSE_START, RecordAction.EXIT}


def test_pause_types_failure_disables_pausing_only(backend, worker_api) -> None:
    backend.pause_types_error = TransportError("down", 503)
    clock = ClockSession(backend, worker_api, WORKER, MADRID)
    clock.load_companies()

    clock.select_company("c-1")
    clock.clock_in()

    assert clock.pause_types == []
    assert clock.legal_actions() == {RecordAction.EXIT}


def test_same_action_cannot_be_submitted_twice(clock, backend) -> None:
    seen = []

    def reenter():
        seen.append(clock.is_loading(RecordAction.ENTRY))
        with pytest.raises(ActionInProgress):
            with clock._in_flight(RecordAction.ENTRY):
                pass

    backend.on_create = reenter

    clock.clock_in()

    assert seen == [True]
    assert clock.is_loading(RecordAction.ENTRY) is False


def test_loading_flag_cleared_after_backend_error(clock, backend) -> None:
    def fail():
        raise TransportError("timeout")

    backend.on_create = fail

    with pytest.raises(TransportError):
        clock.clock_in()

    assert clock.is_loading(RecordAction.ENTRY) is False
    assert clock.status.state is WorkerState.LOGGED_OUT


def test_recorded_action_survives_failed_status_reload(clock, backend) -> None:
    backend.status_error = TransportError("status timeout")

    entry = clock.clock_in()

    assert entry.record_type is RecordAction.ENTRY
    assert clock.status is None
    assert clock.is_loading(RecordAction.ENTRY) is False

    backend.status_error = None
    # Fresh status says logged_in, so a second entry is refused locally
    with pytest.raises(InvalidTransition):
        clock.clock_in()

    assert [action for _, action, _ in backend.created] == [RecordAction.ENTRY]
    assert clock.status.state is WorkerState.LOGGED_IN


def test_summary(clock) -> None:
    clock.clock_in()

    data = clock.summary(now=datetime(2025, 12, 5, 10, 28, tzinfo=timezone.utc))

    assert data["worker"] == "Ana Garcia"
    assert data["state"] == "logged_in"
    assert data["entry_time"] == "05/12/2025, 08:58"
    assert data["worked"] == "2h 30m"
    assert data["actions"] == ["exit", "pause_start"]
    assert "pause" not in data


def test_day_records_only_keep_entry_and_exit(clock, backend) -> None:
    backend.records = [
        record(RecordAction.ENTRY),
        record(RecordAction.PAUSE_START),
        record(RecordAction.PAUSE_END),
        record(RecordAction.EXIT),
    ]

    kinds = [r.record_type for r in clock.day_records(date(2025, 12, 5))]

    assert kinds == [RecordAction.ENTRY, RecordAction.EXIT]


def test_editable_value_is_local(clock) -> None:
    assert clock.editable_value(record()) == "2025-12-05T08:58"


def test_request_change_converts_local_value_to_utc(clock, worker_api) -> None:
    request = clock.request_change(record(), "2025-12-05T08:30", "Arrived earlier than recorded")

    day, company_id, record_id, new_instant, reason = worker_api.change_requests[0]
    assert day == date(2025, 12, 5)
    assert company_id == "c-1"
    assert record_id == "r-1"
    assert new_instant == datetime(2025, 12, 5, 7, 30, tzinfo=timezone.utc)
    assert reason == "Arrived earlier than recorded"
    assert request.status == "pending"
    assert clock.has_pending_change_request() is True


@pytest.mark.parametrize(
    "target, value, reason, error",
    [
        (record(RecordAction.PAUSE_START), "2025-12-05T08:30", "Arrived earlier than recorded", InvalidInput),
        (record(), "2025-12-05T08:30", "too short", InvalidInput),
        (record(), "2025-12-05T08:30", "          padded   ", InvalidInput),
        (record(), "", "Arrived earlier than recorded", InvalidInput),
        (record(), "2025-12-05T08:58", "Arrived earlier than recorded", InvalidInput),
        (record(), "05/12/2025 08:30", "Arrived earlier than recorded", InvalidDatetime),
    ],
)
def test_request_change_validation(clock, worker_api, target, value, reason, error) -> None:
    with pytest.raises(error):
        clock.request_change(target, value, reason)

    assert worker_api.change_requests == []


def test_file_incident(clock, worker_api) -> None:
    with pytest.raises(InvalidInput):
        clock.file_incident("   ")

    incident = clock.file_incident("Badge reader down")

    assert incident.id == "i-1"
    assert worker_api.incidents == ["Badge reader down"]


def test_logout_clears_state_and_resets_session(clock, backend) -> None:
    clock.logout()

    assert clock.company_id is None
    assert clock.status is None
    assert clock.legal_actions() == frozenset()
    assert backend.session.resets == 1
