import threading
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from config import DEFAULT_HEADERS, REQUEST_TIMEOUT_SECONDS, TOKEN_URL, ServiceCredential, load_service_credential
from core.errors import ApiError, AuthFailure, ConfigurationError, TimeClockError, TransportError
from utils.logger import logger

STICKY_AUTH_MESSAGE = "Unable to connect to API. Please contact the administrator."
SERVER_ERROR_MESSAGE = "Server error. Please try again later."


class RetryDecision(Enum):
    PROCEED = "proceed"
    REAUTHENTICATE_THEN_RETRY = "reauthenticate_then_retry"
    FAIL = "fail"


def decide_on_response(
    status_code: int,
    *,
    already_retried: bool,
    authentication_failed: bool,
    is_auth_endpoint: bool,
) -> RetryDecision:
    """
    What to do with a response before anything else sees it.

    Only a 401 can trigger a re-authentication, and only once per originating
    request, never for the token endpoint itself and never while the sticky
    failure flag is set.
    """
    if status_code != 401:
        return RetryDecision.PROCEED
    if already_retried or authentication_failed or is_auth_endpoint:
        return RetryDecision.FAIL
    return RetryDecision.REAUTHENTICATE_THEN_RETRY


def safe_json(resp: requests.Response):
    try:
        return resp.json()
    except ValueError:
        return {"message": resp.text}


def response_detail(resp: requests.Response) -> Optional[str]:
    """Backend error text ("detail" for the API, "message" as fallback), if any."""
    data = safe_json(resp)
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if isinstance(detail, list):
            # Validation errors come back as a list of {"msg": ...}
            parts = [item.get("msg", str(item)) if isinstance(item, dict) else str(item) for item in detail]
            detail = "; ".join(parts)
        if detail:
            return str(detail)
    return None


def check_response(resp: requests.Response, messages: Dict[int, str], default: str):
    """
    Return the decoded body of a successful response, or raise the matching error.

    A backend "detail" is surfaced verbatim; otherwise ``messages`` maps the
    status code to user-facing text.
    """
    if resp.ok:
        return safe_json(resp)
    status = resp.status_code
    detail = response_detail(resp)
    if status >= 500:
        raise TransportError(detail or messages.get(status) or SERVER_ERROR_MESSAGE, status)
    message = detail or messages.get(status) or default
    # authorized_request() raises on 401 itself; this covers responses obtained elsewhere
    if status == 401:
        raise AuthFailure(message, status, resp)
    raise ApiError(message, status, detail)


def call_backend(
    session: "SessionManager",
    method: str,
    url: str,
    messages: Dict[int, str],
    default: str,
    **kwargs: Any,
):
    """authorized_request() plus status mapping, shared by the domain API classes."""
    try:
        resp = session.authorized_request(method, url, **kwargs)
    except AuthFailure as exc:
        # A 401 that survived re-authentication is about the worker, not the service token
        if exc.response is not None and not session.authentication_failed:
            message = response_detail(exc.response) or messages.get(401) or "Invalid credentials."
            raise AuthFailure(message, 401, exc.response) from exc
        raise
    return check_response(resp, messages, default)


def parse_model(data, factory):
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        logger.error("Unexpected response payload: %s", exc)
        raise ApiError("Unexpected response from server.") from exc


def parse_models(data, factory) -> list:
    if not isinstance(data, list):
        raise ApiError("Unexpected response from server.")
    return [parse_model(item, factory) for item in data]


class SessionManager:
    """
    Holds the single service bearer token and performs authorized requests.

    One instance is created at start-up and passed to every API class; nothing
    else stores a token. The "authentication failed" flag is a circuit breaker:
    once a (re-)authentication fails, 401s are no longer retried until reset().
    """

    def __init__(
        self,
        credential: Optional[ServiceCredential],
        http: Optional[requests.Session] = None,
        token_url: str = TOKEN_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.credential = credential
        self.http = http or requests.Session()
        self.token_url = token_url
        self.timeout = timeout
        self._token: Optional[str] = None
        self._authentication_failed = False
        # Serializes authenticate(); callers that needed a token wait here instead of starting another call
        self._auth_lock = threading.Lock()

    @classmethod
    def from_config(cls, http: Optional[requests.Session] = None) -> "SessionManager":
        return cls(load_service_credential(), http=http)

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def has_token(self) -> bool:
        return self._token is not None

    @property
    def authentication_failed(self) -> bool:
        return self._authentication_failed

    def authenticate(self) -> None:
        """Exchange the service credential for a new token, replacing the held one."""
        with self._auth_lock:
            self._authenticate_locked()

    def reset(self) -> None:
        with self._auth_lock:
            self._token = None
            self._authentication_failed = False
        logger.info("Session reset")

    def get_auth_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    def authorized_request(self, method: str, url: str, retry_on_401: bool = True, **kwargs: Any) -> requests.Response:
        """
        Perform ``method url`` with the bearer token attached.

        Authenticates first when no token is held. A 401 leads to exactly one
        re-authentication and one retry; any further 401 raises AuthFailure.
        Other statuses are returned to the caller untouched.
        """
        headers = dict(DEFAULT_HEADERS)
        headers.update(kwargs.pop("headers", None) or {})
        kwargs.setdefault("timeout", self.timeout)

        is_auth_endpoint = self._is_auth_endpoint(url)
        token = None if is_auth_endpoint else self._ensure_token()
        already_retried = not retry_on_401

        while True:
            resp = self._send(method, url, headers, token, kwargs)
            decision = decide_on_response(
                resp.status_code,
                already_retried=already_retried,
                authentication_failed=self._authentication_failed,
                is_auth_endpoint=is_auth_endpoint,
            )
            if decision is RetryDecision.PROCEED:
                return resp
            if decision is RetryDecision.FAIL:
                if self._authentication_failed:
                    raise AuthFailure(STICKY_AUTH_MESSAGE, resp.status_code, resp)
                raise AuthFailure(response_detail(resp) or "Request unauthorized (HTTP 401)", resp.status_code, resp)

            logger.info("401 from %s %s, re-authenticating once", method.upper(), urlparse(url).path)
            token = self._reauthenticate(token)
            already_retried = True

    # Internals
    def _send(self, method: str, url: str, headers: Dict[str, str], token: Optional[str], kwargs: Dict[str, Any]):
        attempt_headers = dict(headers)
        if token:
            attempt_headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self.http.request(method, url, headers=attempt_headers, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise TransportError("Request timed out. Please check your connection and try again.") from exc
        except requests.exceptions.ConnectionError as exc:
            raise TransportError("Connection error: unable to reach the server.") from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Network error: {exc}") from exc
        logger.debug("%s %s -> HTTP %s", method.upper(), urlparse(url).path, resp.status_code)
        return resp

    def _ensure_token(self) -> str:
        token = self._token
        if token:
            return token
        with self._auth_lock:
            # Someone else may have finished authenticating while we waited
            if self._token is None:
                self._authenticate_locked()
            return self._token

    def _reauthenticate(self, stale_token: Optional[str]) -> str:
        with self._auth_lock:
            if self._authentication_failed:
                raise AuthFailure(STICKY_AUTH_MESSAGE)
            if self._token is not None and self._token != stale_token:
                # Refreshed by a concurrent caller while we waited on the lock
                return self._token
            try:
                self._authenticate_locked()
            except TimeClockError:
                self._authentication_failed = True
                raise
            return self._token

    def _authenticate_locked(self) -> None:
        credential = self.credential
        if credential is None or not credential.is_complete():
            raise ConfigurationError(
                "API credentials not configured. Set TIMECLOCK_API_USERNAME and TIMECLOCK_API_PASSWORD."
            )

        payload = {"username": credential.username, "password": credential.password}
        try:
            resp = self.http.post(self.token_url, data=payload, headers=dict(DEFAULT_HEADERS), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            self._authentication_failed = True
            logger.error("Authentication request failed: %s", exc)
            raise TransportError(f"Unable to reach the authentication server: {exc}") from exc

        if resp.status_code == 401:
            self._authentication_failed = True
            logger.error("Service credential rejected (HTTP 401)")
            raise AuthFailure(
                "API authentication failed. Check TIMECLOCK_API_USERNAME and TIMECLOCK_API_PASSWORD.",
                401,
                resp,
            )
        if resp.status_code >= 500:
            self._authentication_failed = True
            logger.error("Authentication server error (HTTP %s)", resp.status_code)
            raise TransportError(f"Authentication server error (HTTP {resp.status_code})", resp.status_code)
        if not resp.ok:
            self._authentication_failed = True
            detail = response_detail(resp)
            logger.error("Authentication refused (HTTP %s): %s", resp.status_code, detail)
            message = f"API authentication failed: {detail}" if detail else f"API authentication failed (HTTP {resp.status_code})"
            raise AuthFailure(message, resp.status_code, resp)

        data = safe_json(resp)
        access = data.get("access_token") if isinstance(data, dict) else None
        if not access:
            self._authentication_failed = True
            raise AuthFailure("No access token in authentication response", resp.status_code, resp)

        self._token = access
        self._authentication_failed = False
        logger.info("Service token acquired")

    def _is_auth_endpoint(self, url: str) -> bool:
        return urlparse(url).path.rstrip("/") == urlparse(self.token_url).path.rstrip("/")
