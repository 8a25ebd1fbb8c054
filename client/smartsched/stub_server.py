"""
Local stand-in for the solver backend. Implements the auth and scheduling
endpoints the client talks to so the client can be exercised offline.

    uvicorn smartsched.stub_server:app --port 8080
"""
from __future__ import annotations
import secrets
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings
from .logging_config import logger
from .models import Role
from .worker import JobBoard

MIN_PASSWORD_LENGTH = 8
MAX_SUBJECTS = 10


@dataclass
class StubUser:
    username: str
    password: str
    role: Role


class UserDirectory:
    def __init__(self):
        self.users: dict[str, StubUser] = {}
        self.tokens: dict[str, str] = {}
        self.lock = threading.Lock()

    def register(self, username: str, password: str) -> StubUser:
        with self.lock:
            if username in self.users:
                raise HTTPException(409, "Username is already taken")
            # first account administers the rest
            role = Role.ADMIN if not self.users else Role.SCHEDULER
            user = StubUser(username=username, password=password, role=role)
            self.users[username] = user
            return user

    def issue_token(self, username: str, password: str) -> tuple[str, StubUser]:
        with self.lock:
            user = self.users.get(username)
            if user is None or not secrets.compare_digest(user.password, password):
                raise HTTPException(401, "Invalid username or password")
            token = secrets.token_urlsafe(32)
            self.tokens[token] = username
            return token, user

    def revoke(self, token: str) -> None:
        with self.lock:
            self.tokens.pop(token, None)

    def resolve(self, token: str) -> Optional[StubUser]:
        with self.lock:
            username = self.tokens.get(token)
            return self.users.get(username) if username else None


def _check_items(body: list) -> None:
    if not body:
        raise HTTPException(400, "At least one subject is required")
    if len(body) > MAX_SUBJECTS:
        raise HTTPException(400, f"At most {MAX_SUBJECTS} subjects are allowed")
    sections = {str(item.get("sectionId") or "") for item in body}
    if len(sections) != 1 or "" in sections:
        raise HTTPException(400, "All subjects must belong to one section")
    for item in body:
        if not item.get("subjectCode") or not item.get("subjectName"):
            raise HTTPException(400, "Subject Code and Name are required for all subjects")
        hours = item.get("classHoursPerWeek")
        if isinstance(hours, bool) or not isinstance(hours, int) or hours <= 0:
            raise HTTPException(400, f"Invalid classHoursPerWeek for {item.get('subjectCode')}")


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    users = UserDirectory()
    board = JobBoard(ticks_per_phase=config.STUB_TICKS_PER_PHASE, ttl_minutes=config.STUB_JOB_TTL_MINUTES)

    app = FastAPI(title="SmartSched Stub Solver", default_response_class=ORJSONResponse)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.users = users
    app.state.board = board

    def current_user(authorization: Optional[str] = Header(default=None)) -> StubUser:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(401, "Missing bearer token")
        user = users.resolve(authorization[len("Bearer "):])
        if user is None:
            raise HTTPException(401, "Token expired or revoked")
        return user

    @app.on_event("startup")
    async def on_startup():
        logger.info("Starting SmartSched stub solver")
        logger.info(f"STUB_TICKS_PER_PHASE: {config.STUB_TICKS_PER_PHASE}")
        logger.info(f"STUB_JOB_TTL_MINUTES: {config.STUB_JOB_TTL_MINUTES}")
        board.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        board.stop()

    @app.get("/api/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "version": "0.1.0", "python": sys.executable}

    @app.post("/api/auth/register")
    async def register(body: dict):
        username = str(body.get("username") or "").strip()
        password = str(body.get("password") or "")
        if not username:
            raise HTTPException(400, "Username is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        user = users.register(username, password)
        logger.info(f"Registered {username} as {user.role.value}")
        return {"message": "User registered successfully"}

    @app.post("/api/auth/login")
    async def login(body: dict):
        username = body.get("username")
        password = body.get("password")
        if not username or not password:
            raise HTTPException(400, "Username and password are required")
        token, user = users.issue_token(str(username), str(password))
        logger.info(f"Login {username}")
        return {"token": token, "role": user.role.value}

    @app.post("/api/schedules/solve")
    async def solve(body: list[dict], user: StubUser = Depends(current_user)):
        _check_items(body)
        job = board.create(user.username, body)
        return {"problemId": job.problem_id, "message": "Schedule generation started"}

    @app.get("/api/schedules/status/{problem_id}")
    async def status(problem_id: str, user: StubUser = Depends(current_user)):
        job = board.poll(problem_id)
        if job is None:
            raise HTTPException(404, "job not found")
        return {"status": job.status.value}

    return app


app = create_app()
