import json
import threading
from urllib.parse import urlparse

import pytest
import requests

import config
from api.session_api import SessionManager
from config import ServiceCredential


def path_of(url: str) -> str:
    return urlparse(url).path


TOKEN_PATH = path_of(config.TOKEN_URL)


def make_response(status_code: int, payload=None, url: str = "http://backend.test/") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp.encoding = "utf-8"
    if payload is not None:
        resp._content = json.dumps(payload).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = b""
    return resp


class Call:
    def __init__(self, method, url, headers, kwargs):
        self.method = method
        self.url = url
        self.path = path_of(url)
        self.headers = headers
        self.kwargs = kwargs

    @property
    def bearer(self):
        return self.headers.get("Authorization")


class FakeHttp:
    """Stands in for requests.Session: scripted responses per URL path, every call recorded."""

    def __init__(self):
        self.calls = []
        self._routes = {}
        self._lock = threading.Lock()

    def queue(self, path, *items):
        """
        Queue responses for ``path``. Each item is (status, payload), a Response,
        an exception instance, or a callable returning one of those. The last
        item keeps being served once the others are used up.
        """
        self._routes.setdefault(path, []).extend(items)

    def queue_token(self, *tokens):
        self.queue(TOKEN_PATH, *[(200, {"access_token": token, "token_type": "bearer"}) for token in tokens])

    def request(self, method, url, headers=None, **kwargs):
        call = Call(method.upper(), url, dict(headers or {}), kwargs)
        with self._lock:
            self.calls.append(call)
            items = self._routes.get(call.path)
            if not items:
                raise AssertionError(f"Unexpected request {call.method} {call.path}")
            item = items.pop(0) if len(items) > 1 else items[0]
        if callable(item):
            item = item(call)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, requests.Response):
            return item
        status, payload = item
        return make_response(status, payload, url)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def calls_to(self, path):
        return [call for call in self.calls if call.path == path]

    @property
    def token_calls(self):
        return self.calls_to(TOKEN_PATH)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def credential():
    return ServiceCredential(username="svc-user", password="svc-secret")


@pytest.fixture
def session(http, credential):
    return SessionManager(credential, http=http)
