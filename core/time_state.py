from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable

from core.errors import InvalidInput, InvalidTransition
from core.models import PauseType, RecordAction, WorkerState, WorkerStatus
from utils.datetime_conversion import elapsed_minutes, to_local_display, to_local_short_time, utc_now

# state -> {action: next state}
TRANSITIONS: dict[WorkerState, dict[RecordAction, WorkerState]] = {
    WorkerState.LOGGED_OUT: {RecordAction.ENTRY: WorkerState.LOGGED_IN},
    WorkerState.LOGGED_IN: {
        RecordAction.PAUSE_START: WorkerState.ON_PAUSE,
        RecordAction.EXIT: WorkerState.LOGGED_OUT,
    },
    WorkerState.ON_PAUSE: {RecordAction.PAUSE_END: WorkerState.LOGGED_IN},
}


def _state_of(status) -> WorkerState:
    if isinstance(status, WorkerStatus):
        return status.state
    if isinstance(status, WorkerState):
        return status
    try:
        return WorkerState(status)
    except ValueError as exc:
        raise InvalidInput(f"Unknown worker state: {status!r}") from exc


def _action_of(action) -> RecordAction:
    if isinstance(action, RecordAction):
        return action
    try:
        return RecordAction(action)
    except ValueError as exc:
        raise InvalidInput(f"Unknown action: {action!r}") from exc


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TimeStateResolver:
    """
    Client-side mirror of the backend's shift rules.

    It only exists for responsive feedback: illegal actions are rejected
    before any request is made, but the backend stays the source of truth and
    may still refuse an action this class allowed.
    """

    def legal_actions(self, status, catalog: Iterable[PauseType] | None = None) -> frozenset[RecordAction]:
        actions = set(TRANSITIONS[_state_of(status)])
        # No pause type to choose from means no pause can be started
        if catalog is not None and not list(catalog):
            actions.discard(RecordAction.PAUSE_START)
        return frozenset(actions)

    def next_state(self, status, action) -> WorkerState:
        state = _state_of(status)
        action = _action_of(action)
        try:
            return TRANSITIONS[state][action]
        except KeyError:
            raise InvalidTransition(f"Cannot {action.value} while {state.value}") from None

    def validate_action(
        self,
        status,
        action,
        pause_type_id: str | None = None,
        catalog: Iterable[PauseType] = (),
    ) -> PauseType | None:
        """
        Check an action before it is sent.

        Returns the resolved PauseType for pause_start, None otherwise.
        """
        action = _action_of(action)
        self.next_state(status, action)

        if action is not RecordAction.PAUSE_START:
            if pause_type_id is not None:
                raise InvalidInput(f"A pause type only applies to {RecordAction.PAUSE_START.value}")
            return None

        if not pause_type_id:
            raise InvalidInput("Select a pause type")
        for pause_type in catalog:
            if pause_type.id == pause_type_id:
                return pause_type
        raise InvalidInput(f"Pause type {pause_type_id} is not available for this company")

    # Durations
    @staticmethod
    def format_duration(minutes) -> str:
        if not minutes or minutes <= 0:
            return "0h 0m"
        hours = math.floor(minutes / 60)
        mins = _round_half_up(minutes % 60)
        return f"{hours}h {mins}m"

    def worked_minutes(self, status: WorkerStatus, now: datetime | None = None) -> float:
        """Backend figure when present, otherwise derived from the UTC entry instant."""
        if status.state is WorkerState.LOGGED_OUT:
            return 0
        if status.time_worked_minutes is not None:
            return status.time_worked_minutes
        if status.entry_time is None:
            return 0
        return max(0.0, elapsed_minutes(status.entry_time, now or utc_now()))

    def pause_minutes(self, status: WorkerStatus, now: datetime | None = None) -> float:
        if status.state is not WorkerState.ON_PAUSE:
            return 0
        if status.pause_duration_minutes is not None:
            return status.pause_duration_minutes
        if status.pause_started_at is None:
            return 0
        return max(0.0, elapsed_minutes(status.pause_started_at, now or utc_now()))

    def format_worked(self, status: WorkerStatus, now: datetime | None = None) -> str:
        return self.format_duration(self.worked_minutes(status, now))

    def format_pause(self, status: WorkerStatus, now: datetime | None = None) -> str:
        return self.format_duration(self.pause_minutes(status, now))

    # Timestamps
    @staticmethod
    def format_entry_time(status: WorkerStatus, tz) -> str:
        return to_local_display(status.entry_time, tz)

    @staticmethod
    def format_pause_start(status: WorkerStatus, tz) -> str:
        return to_local_short_time(status.pause_started_at, tz)

    @staticmethod
    def describe_pause(pause_type: PauseType) -> str:
        kind = "counts as work" if pause_type.counts_as_work else "outside shift"
        return f"{pause_type.name} ({kind})"
