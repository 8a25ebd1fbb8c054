"""
Session manager: owns the current credential and is the only way to reach
authenticated backend endpoints.

All state changes happen on the event loop thread; the blocking HTTP call
itself runs in a worker thread through ``asyncio.to_thread``. Mutation is
still serialized with a lock so the session cell is never seen half
written.
"""
from __future__ import annotations
import asyncio
import threading
from typing import Any, Callable, Optional

import requests

from .config import Settings, settings
from .errors import (
    CredentialSuperseded,
    InvalidCredentials,
    NetworkUnavailable,
    SessionExpired,
    UnexpectedResponse,
    UsernameTaken,
    WeakCredential,
)
from .logging_config import logger
from .models import Identity, Role, Session
from .storage import TOKEN_KEY, USER_KEY, FileCredentialStore

AUTH_FAILURE_CODES = (401, 403)
MIN_PASSWORD_LENGTH = 8

ExpiryListener = Callable[[SessionExpired], None]


def response_message(resp: requests.Response, default: str) -> str:
    """Pull the human readable error out of a backend response."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    text = (resp.text or "").strip()
    return text[:500] if text else default


def json_body(resp: requests.Response) -> dict:
    try:
        body = resp.json()
    except ValueError as e:
        raise UnexpectedResponse(f"Backend returned a non-JSON body: {e}", resp.status_code) from e
    if not isinstance(body, dict):
        raise UnexpectedResponse("Backend returned an unexpected body", resp.status_code)
    return body


class SessionManager:
    def __init__(self, store=None, http=None, config: Optional[Settings] = None):
        self.config = config or settings
        self.store = store if store is not None else FileCredentialStore(self.config.CREDENTIAL_STORE_PATH)
        self.http = http if http is not None else requests.Session()
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._listeners: list[ExpiryListener] = []
        self._restore()

    # --- state -------------------------------------------------------------

    def _restore(self) -> None:
        try:
            token = self.store.get(TOKEN_KEY)
            user = self.store.get(USER_KEY)
        except ValueError as e:
            logger.warning(f"Discarding unreadable stored session: {e}")
            self.store.clear()
            return
        if token is None and user is None:
            return
        try:
            session = Session.from_dict({"token": token, "user": user})
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupt stored session: {e!r}")
            self.store.clear()
            return
        with self._lock:
            self._session = session
        logger.info(f"Restored session for {session.identity.name} ({session.identity.role.value})")

    def current_session(self) -> Optional[Session]:
        return self._session

    def _set_session(self, session: Session) -> None:
        with self._lock:
            data = session.to_dict()
            self.store.update({TOKEN_KEY: data["token"], USER_KEY: data["user"]})
            self._session = session

    def _drop_session(self, expected: Optional[Session] = None) -> Optional[Session]:
        with self._lock:
            current = self._session
            if current is None or (expected is not None and current is not expected):
                return None
            self._session = None
            self.store.clear()
            return current

    def add_listener(self, listener: ExpiryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ExpiryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _signal(self, error: SessionExpired) -> None:
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception(f"Session listener {listener!r} failed")

    # --- transport ---------------------------------------------------------

    def url(self, path: str) -> str:
        return f"{self.config.API_BASE_URL}/{path.lstrip('/')}"

    async def _send(self, method: str, path: str, json: Any = None, headers: Optional[dict] = None) -> requests.Response:
        url = self.url(path)
        kwargs: dict[str, Any] = {"headers": headers or {}}
        if json is not None:
            kwargs["json"] = json
        if self.config.REQUEST_TIMEOUT_SECONDS is not None:
            kwargs["timeout"] = self.config.REQUEST_TIMEOUT_SECONDS
        logger.info(f"[API Request] {method} {url}")
        try:
            resp = await asyncio.to_thread(self.http.request, method, url, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Network error - could not reach API at {url}: {e}")
            raise NetworkUnavailable(f"Cannot connect to server: {e}") from e
        logger.info(f"[API Response] {method} {url} - Status: {resp.status_code}")
        return resp

    async def authorized_call(self, method: str, path: str, json: Any = None, headers: Optional[dict] = None) -> requests.Response:
        session = self._session
        if session is None:
            raise SessionExpired("No active session. Please log in.")
        merged = dict(headers or {})
        merged["Authorization"] = f"Bearer {session.credential}"
        resp = await self._send(method, path, json=json, headers=merged)
        if resp.status_code in AUTH_FAILURE_CODES:
            logger.error(f"Authentication error ({resp.status_code}) on {method} {path}. Logging out.")
            error = SessionExpired(
                response_message(resp, "Your session has expired. Please log in again."),
                resp.status_code,
            )
            # a rejection of an older credential must not end a newer session
            if self._drop_session(expected=session) is not None:
                self._signal(error)
            elif self._session is not None:
                logger.info(f"Rejected credential on {method} {path} was already replaced by a new login")
                raise CredentialSuperseded(
                    "Your previous session expired while a request was running. Please retry.",
                    resp.status_code,
                ) from error
            raise error
        return resp

    # --- public operations -------------------------------------------------

    async def login(self, username: str, password: str) -> Session:
        resp = await self._send("POST", "/auth/login", json={"username": username, "password": password})
        if resp.status_code >= 500:
            raise NetworkUnavailable(response_message(resp, "Server unavailable"), resp.status_code)
        if resp.status_code >= 400:
            raise InvalidCredentials(
                response_message(resp, "Login failed. Please check your username and password."),
                resp.status_code,
            )
        body = json_body(resp)
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise UnexpectedResponse("Backend did not return a token.", resp.status_code)
        try:
            role = Role.parse(body.get("role", ""))
        except ValueError as e:
            raise UnexpectedResponse(f"Backend returned an unknown role: {body.get('role')!r}", resp.status_code) from e
        session = Session(credential=token, identity=Identity(name=username, role=role))
        self._set_session(session)
        logger.info(f"Logged in as {username} ({role.value})")
        return session

    async def register(self, username: str, password: str) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise WeakCredential(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        resp = await self._send("POST", "/auth/register", json={"username": username, "password": password})
        if resp.status_code >= 500:
            raise NetworkUnavailable(response_message(resp, "Server unavailable"), resp.status_code)
        if resp.status_code >= 400:
            message = response_message(resp, "Registration failed. Please try again.")
            lowered = message.lower()
            if resp.status_code == 409 or "taken" in lowered or "exist" in lowered:
                raise UsernameTaken(message, resp.status_code)
            raise WeakCredential(message, resp.status_code)
        logger.info(f"Registered user {username}")

    def logout(self) -> None:
        dropped = self._drop_session()
        if dropped is None:
            return
        logger.info(f"Logged out {dropped.identity.name}")
        self._signal(SessionExpired("Logged out."))
