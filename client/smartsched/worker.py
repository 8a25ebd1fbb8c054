from __future__ import annotations
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from .logging_config import logger
from .models import JobStatus

PHASES = (JobStatus.QUEUED, JobStatus.ACTIVE, JobStatus.DONE)


@dataclass
class StubJob:
    problem_id: str
    owner: str
    section_id: str
    created_at: datetime
    items: list = field(default_factory=list)
    polls: int = 0
    status: JobStatus = JobStatus.QUEUED
    finished_at: Optional[datetime] = None


class JobBoard:
    """In-memory stand-in for the remote solver's job registry."""

    def __init__(self, ticks_per_phase: int = 1, ttl_minutes: int = 120):
        self.ticks_per_phase = ticks_per_phase
        self.ttl_minutes = ttl_minutes
        self.jobs: Dict[str, StubJob] = {}
        self.lock = threading.Lock()
        self.stop_event = threading.Event()
        self.gc_thread = threading.Thread(target=self._gc_loop, daemon=True)

    def start(self):
        if not self.gc_thread.is_alive():
            self.gc_thread.start()

    def stop(self):
        self.stop_event.set()

    def create(self, owner: str, items: list) -> StubJob:
        job = StubJob(
            problem_id=str(uuid.uuid4()),
            owner=owner,
            section_id=str(items[0].get("sectionId")),
            created_at=datetime.utcnow(),
            items=list(items),
        )
        if self.ticks_per_phase <= 0:
            job.status = JobStatus.DONE
            job.finished_at = job.created_at
        with self.lock:
            self.jobs[job.problem_id] = job
        logger.info(f"Job {job.problem_id} created for {owner} ({len(items)} subjects)")
        return job

    def poll(self, problem_id: str) -> StubJob | None:
        """Report the job status, moving it one step closer to done."""
        with self.lock:
            job = self.jobs.get(problem_id)
            if job is None:
                return None
            if job.status is not JobStatus.DONE:
                job.status = PHASES[min(job.polls // self.ticks_per_phase, len(PHASES) - 1)]
                job.polls += 1
                if job.status is JobStatus.DONE:
                    job.finished_at = datetime.utcnow()
            return job

    def _gc_loop(self):
        while not self.stop_event.is_set():
            ttl = timedelta(minutes=self.ttl_minutes)
            cutoff = datetime.utcnow() - ttl
            with self.lock:
                old_ids = [pid for pid, j in self.jobs.items() if j.finished_at and j.finished_at < cutoff]
                for pid in old_ids:
                    self.jobs.pop(pid, None)
            if old_ids:
                logger.info(f"Dropped {len(old_ids)} finished job(s)")
            self.stop_event.wait(60)
