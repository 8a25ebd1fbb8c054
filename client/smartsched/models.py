from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from datetime import datetime
from typing import Optional


class Role(str, Enum):
    ADMIN = "ROLE_ADMIN"
    SCHEDULER = "ROLE_SCHEDULER"

    @classmethod
    def parse(cls, raw: str) -> "Role":
        # backend sends ROLE_ADMIN; accept the short form too
        value = str(raw).strip().upper()
        if not value.startswith("ROLE_"):
            value = f"ROLE_{value}"
        return cls(value)


@dataclass(frozen=True)
class Identity:
    name: str
    role: Role


@dataclass(frozen=True)
class Session:
    credential: str
    identity: Identity

    def to_dict(self) -> dict:
        return {"token": self.credential, "user": {"username": self.identity.name, "role": self.identity.role.value}}

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        token = data["token"]
        user = data["user"]
        if not isinstance(token, str) or not token:
            raise ValueError("empty credential")
        return cls(credential=token, identity=Identity(name=str(user["username"]), role=Role.parse(user["role"])))


@dataclass(frozen=True)
class SubjectAssignment:
    subject_code: str
    subject_name: str
    weekly_hours: int
    section_id: str
    teacher_id: Optional[str] = None
    is_major: bool = False

    def to_payload(self) -> dict:
        return {
            "subjectCode": self.subject_code,
            "subjectName": self.subject_name,
            "teacherId": self.teacher_id,
            "classHoursPerWeek": self.weekly_hours,
            "isMajor": self.is_major,
            "sectionId": self.section_id,
        }


@dataclass(frozen=True)
class JobRequest:
    assignments: tuple[SubjectAssignment, ...]

    @property
    def section_id(self) -> str:
        return self.assignments[0].section_id

    def to_payload(self) -> list[dict]:
        return [a.to_payload() for a in self.assignments]


class JobStatus(str, Enum):
    QUEUED = "SOLVING_SCHEDULED"
    ACTIVE = "SOLVING_ACTIVE"
    DONE = "NOT_SOLVING"


class OrchestratorState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUBMIT_FAILED = "submit_failed"
    POLLING = "polling"
    POLL_FAILED = "poll_failed"
    UNEXPECTED_STATUS = "unexpected_status"
    COMPLETED = "completed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def active(self) -> bool:
        return self in (OrchestratorState.SUBMITTING, OrchestratorState.POLLING)


TERMINAL_STATES = frozenset({
    OrchestratorState.SUBMIT_FAILED,
    OrchestratorState.POLL_FAILED,
    OrchestratorState.UNEXPECTED_STATUS,
    OrchestratorState.COMPLETED,
})


@dataclass
class JobHandle:
    problem_id: str
    generation: int
    correlation_key: str
    submitted_at: datetime
    message: str = ""
    polls: int = 0
    last_status: Optional[str] = None


@dataclass
class Transition:
    state: OrchestratorState
    at: datetime
    detail: str = ""


