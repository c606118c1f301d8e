from __future__ import annotations


class TimeClockError(Exception):
    """Base class for every error this client raises on purpose."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class ConfigurationError(TimeClockError):
    """Service credential missing or unusable. Fatal, never retried."""


class AuthFailure(TimeClockError):
    """The backend rejected our credentials, or the sticky auth flag is already tripped."""

    def __init__(self, message: str, status_code: int | None = 401, response=None) -> None:
        super().__init__(message, status_code)
        self.response = response


class TransportError(TimeClockError):
    """Network failure or a 5xx from the backend."""


class ApiError(TimeClockError):
    """The backend answered but refused the request (bad request, not found, ...)."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message, status_code)
        self.detail = detail


class InvalidTransition(TimeClockError):
    """Action not allowed from the worker's current state."""


class InvalidInput(TimeClockError):
    """Client-side validation failed before any request was made."""


class ActionInProgress(TimeClockError):
    """The same action is still waiting for a backend response."""


class InvalidDatetime(TimeClockError, ValueError):
    """A datetime value could not be parsed. Never coerced."""
