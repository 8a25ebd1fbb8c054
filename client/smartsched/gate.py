"""
Request gate for protected operations: only lets a caller through when a
session exists and its role is allowed.
"""
from __future__ import annotations
from typing import Iterable, Optional

from .errors import AccessDenied, NotAuthenticated
from .logging_config import logger
from .models import Role, Session
from .session import SessionManager

SCHEDULING_ROLES = frozenset({Role.ADMIN, Role.SCHEDULER})
ADMIN_ROLES = frozenset({Role.ADMIN})


class RequestGate:
    def __init__(self, sessions: SessionManager, allowed_roles: Optional[Iterable[Role]] = None):
        self.sessions = sessions
        self.allowed_roles = frozenset(allowed_roles) if allowed_roles is not None else None

    def require(self) -> Session:
        session = self.sessions.current_session()
        if session is None:
            raise NotAuthenticated("Please log in to continue.")
        if self.allowed_roles is not None and session.identity.role not in self.allowed_roles:
            logger.warning(f"Access denied for {session.identity.name} ({session.identity.role.value})")
            raise AccessDenied("Access Denied")
        return session
