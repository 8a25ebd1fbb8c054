"""Shared fixtures: a scripted HTTP transport and a logged-in session."""
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field

import orjson
import pytest
import requests

from smartsched.config import Settings
from smartsched.forms import build_job_request
from smartsched.session import SessionManager
from smartsched.storage import MemoryCredentialStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_response(status: int, body=None, url: str = "") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if body is None:
        resp._content = b""
    elif isinstance(body, bytes):
        resp._content = body
    else:
        resp._content = orjson.dumps(body)
    resp.headers["Content-Type"] = "application/json"
    resp.encoding = "utf-8"
    resp.url = url
    return resp


class Held:
    """A reply the transport keeps back until the test releases it."""

    def __init__(self, status: int, body=None):
        self.reply = (status, body)
        self.arrived = threading.Event()
        self.release = threading.Event()


@dataclass
class Call:
    method: str
    path: str
    headers: dict = field(default_factory=dict)
    json: object = None


class ScriptedHttp:
    """Stands in for requests.Session; replies are consumed in order and the
    last one for a route repeats."""

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[Call] = []
        self.lock = threading.Lock()

    def on(self, method: str, path: str, *replies):
        self.routes.setdefault((method, path), []).extend(replies)
        return self

    def request(self, method, url, headers=None, json=None, timeout=None):
        path = url.split("/api", 1)[1]
        with self.lock:
            self.calls.append(Call(method, path, dict(headers or {}), json))
            queue = self.routes.get((method, path))
            if not queue:
                raise AssertionError(f"unexpected call {method} {path}")
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Held):
            reply.arrived.set()
            reply.release.wait(5)
            reply = reply.reply
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        return make_response(status, body, url)

    def paths(self, method: str | None = None) -> list[str]:
        with self.lock:
            return [c.path for c in self.calls if method is None or c.method == method]


async def wait_until(predicate, timeout: float = 3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def stored_session(username: str = "maria", role: str = "ROLE_SCHEDULER", token: str = "tok-1") -> dict:
    return {"token": token, "user": {"username": username, "role": role}}


@pytest.fixture
def config():
    return Settings(
        API_BASE_URL="http://solver.test",
        POLL_INTERVAL_SECONDS=0.01,
        SETTLE_DELAY_SECONDS=0.01,
        LOG_DIR=None,
    )


@pytest.fixture
def http():
    return ScriptedHttp()


@pytest.fixture
def store():
    return MemoryCredentialStore(stored_session())


@pytest.fixture
def sessions(store, http, config):
    return SessionManager(store=store, http=http, config=config)


@pytest.fixture
def job_request():
    return build_job_request("S1", [
        {"subjectCode": "CS101", "subjectName": "Intro to Programming", "teacherId": "", "weeklyHours": 3, "isMajor": True},
    ])
