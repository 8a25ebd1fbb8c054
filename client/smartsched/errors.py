"""
Error taxonomy shared by the session manager, the job orchestrator and the
request gate. Every failure surfaced to a caller is one of these.
"""
from __future__ import annotations

from typing import Optional


class SmartSchedError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidCredentials(SmartSchedError):
    pass


class UsernameTaken(SmartSchedError):
    pass


class WeakCredential(SmartSchedError):
    pass


class SessionExpired(SmartSchedError):
    """Authorization failure on an authenticated call. Never retried."""


class CredentialSuperseded(SessionExpired):
    """A credential was rejected after a newer login had already replaced it."""


class NetworkUnavailable(SmartSchedError):
    pass


class ValidationRejected(SmartSchedError):
    pass


class UnexpectedStatus(SmartSchedError):
    def __init__(self, status: object):
        super().__init__(f"Solver finished with unexpected status: {status}")
        self.status = status


class UnexpectedResponse(SmartSchedError):
    pass


class OrchestrationCancelled(SmartSchedError):
    pass


class InvalidJobRequest(SmartSchedError):
    pass


class NotAuthenticated(SmartSchedError):
    pass


class AccessDenied(SmartSchedError):
    pass
