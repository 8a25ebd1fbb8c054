"""
Job orchestrator: submits a schedule generation job and tracks it until the
remote solver is done.

One orchestrator owns at most one run at a time. Every run gets a new
generation number; any response, tick or delayed signal tagged with an
older generation is dropped on arrival. The poll timer is a one-shot
``call_later`` handle that is re-armed only after the previous status query
has resolved, so two queries for the same run are never in flight together.
"""
from __future__ import annotations
import asyncio
import inspect
from datetime import datetime
from typing import Any, Callable, Optional

from .config import Settings
from .errors import (
    NetworkUnavailable,
    OrchestrationCancelled,
    SessionExpired,
    UnexpectedResponse,
    UnexpectedStatus,
    ValidationRejected,
)
from .logging_config import logger
from .models import JobHandle, JobRequest, JobStatus, OrchestratorState, Transition
from .session import SessionManager, json_body, response_message

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache", "Expires": "0"}

STATUS_MESSAGES = {
    JobStatus.QUEUED: "AI solver is starting up... Please wait.",
    JobStatus.ACTIVE: "AI is actively solving your schedule... Please wait.",
    JobStatus.DONE: "AI has finished processing! Preparing your schedule...",
}


def schedule_path(section_id: str) -> str:
    """Where the navigation layer finds the generated schedule."""
    return f"/schedule/section/{section_id}"


class JobOrchestrator:
    def __init__(
        self,
        sessions: SessionManager,
        config: Optional[Settings] = None,
        on_complete: Optional[Callable[[str], Any]] = None,
        on_error: Optional[Callable[[OrchestratorState, Exception], Any]] = None,
        on_progress: Optional[Callable[[JobHandle, str, str], Any]] = None,
    ):
        self.sessions = sessions
        self.config = config or sessions.config
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_progress = on_progress

        self.state = OrchestratorState.IDLE
        self.handle: Optional[JobHandle] = None
        self.error: Optional[Exception] = None
        self.history: list[Transition] = []
        self.timers_armed = 0

        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Future] = set()
        self._finished: Optional[asyncio.Event] = None

        sessions.add_listener(self._on_session_expired)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def timer_active(self) -> bool:
        return self._timer is not None

    # --- public operations -------------------------------------------------

    async def submit(self, request: JobRequest, correlation_key: Optional[str] = None) -> JobHandle:
        # never two pollers for one orchestrator
        self.cancel()
        self._generation += 1
        gen = self._generation
        key = correlation_key if correlation_key is not None else request.section_id

        self.handle = None
        self.error = None
        self.history = []
        self._finished = asyncio.Event()
        self._transition(OrchestratorState.SUBMITTING, f"{len(request.assignments)} assignment(s)")

        try:
            resp = await self.sessions.authorized_call("POST", "/schedules/solve", json=request.to_payload())
            problem_id, message = self._parse_submission(resp)
        except Exception as e:
            if gen == self._generation:
                self._fail(OrchestratorState.SUBMIT_FAILED, e)
            raise

        if gen != self._generation:
            logger.info(f"Submission {problem_id} was superseded before polling started")
            raise OrchestrationCancelled(f"Run for problem {problem_id} was cancelled")

        self.handle = JobHandle(
            problem_id=problem_id,
            generation=gen,
            correlation_key=key,
            submitted_at=datetime.utcnow(),
            message=message,
        )
        logger.info(f"Job {problem_id} submitted (generation {gen}): {message}")
        self._transition(OrchestratorState.POLLING, message)
        # first check right away, then every interval
        self._arm(0, self._fire_tick, gen)
        return self.handle

    def cancel(self) -> None:
        if self._timer is None and not self.state.active:
            return
        settling = self._timer is not None and self.state is OrchestratorState.COMPLETED
        self._stop_timer()
        self._generation += 1
        if self.handle is not None:
            logger.info(f"Stopped tracking job {self.handle.problem_id}")
        self.handle = None
        if self.state.active:
            self._transition(OrchestratorState.IDLE, "cancelled")
        elif settling:
            self._transition(OrchestratorState.COMPLETED, "signal suppressed")
        self._finish()

    async def wait(self) -> OrchestratorState:
        """Block until the current run has ended or was cancelled."""
        if self._finished is not None:
            await self._finished.wait()
        return self.state

    async def run(self, request: JobRequest, correlation_key: Optional[str] = None) -> OrchestratorState:
        await self.submit(request, correlation_key)
        return await self.wait()

    async def drain(self) -> None:
        """Wait for every dispatched status query, stale ones included."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self.cancel()
        self.sessions.remove_listener(self._on_session_expired)

    # --- state machine -----------------------------------------------------

    def _transition(self, state: OrchestratorState, detail: str = "") -> None:
        self.state = state
        self.history.append(Transition(state=state, at=datetime.utcnow(), detail=detail))
        logger.debug(f"Orchestrator -> {state.value} {detail}")

    def _arm(self, delay: float, callback: Callable[[int], None], gen: int) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, callback, gen)
        self.timers_armed += 1

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _finish(self) -> None:
        if self._finished is not None:
            self._finished.set()

    def _fail(self, state: OrchestratorState, error: Exception) -> None:
        self._stop_timer()
        self._generation += 1
        self.error = error
        self._transition(state, str(error))
        problem = self.handle.problem_id if self.handle else "-"
        logger.error(f"Job {problem} ended in {state.value}: {error}")
        self._notify(self.on_error, state, error)
        self._finish()

    def _fire_tick(self, gen: int) -> None:
        self._timer = None
        if gen != self._generation or self.state is not OrchestratorState.POLLING:
            return
        task = asyncio.get_running_loop().create_task(self._tick(gen, self.handle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _tick(self, gen: int, handle: JobHandle) -> None:
        try:
            resp = await self.sessions.authorized_call(
                "GET", f"/schedules/status/{handle.problem_id}", headers=NO_CACHE_HEADERS
            )
            raw = self._parse_status(resp)
        except Exception as e:
            if gen != self._generation:
                logger.debug(f"Ignoring failure of stale poll for {handle.problem_id}: {e}")
                return
            self._fail(OrchestratorState.POLL_FAILED, e)
            return

        if gen != self._generation:
            logger.debug(f"Discarding stale status {raw} for {handle.problem_id}")
            return

        handle.polls += 1
        handle.last_status = raw
        logger.info(f"Current status for {handle.problem_id}: {raw}")
        try:
            status = JobStatus(raw)
        except ValueError:
            self._fail(OrchestratorState.UNEXPECTED_STATUS, UnexpectedStatus(raw))
            return

        self._notify(self.on_progress, handle, raw, STATUS_MESSAGES[status])
        if status is JobStatus.DONE:
            self._stop_timer()
            self._transition(OrchestratorState.COMPLETED, handle.problem_id)
            self._arm(self.config.SETTLE_DELAY_SECONDS, self._emit_success, gen)
            return

        self._transition(OrchestratorState.POLLING, raw)
        self._arm(self.config.POLL_INTERVAL_SECONDS, self._fire_tick, gen)

    def _emit_success(self, gen: int) -> None:
        self._timer = None
        if gen != self._generation or self.handle is None:
            return
        logger.info(f"Schedule ready for {self.handle.correlation_key}")
        self._notify(self.on_complete, self.handle.correlation_key)
        self._finish()

    def _on_session_expired(self, error: SessionExpired) -> None:
        if self.state is OrchestratorState.SUBMITTING:
            self._fail(OrchestratorState.SUBMIT_FAILED, error)
        elif self.state is OrchestratorState.POLLING:
            self._fail(OrchestratorState.POLL_FAILED, error)
        else:
            self.cancel()

    def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
        except Exception:
            logger.exception(f"Callback {callback!r} failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(self._report_callback_failure)

    @staticmethod
    def _report_callback_failure(task: asyncio.Future) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(f"Callback task failed: {error!r}", exc_info=error)

    # --- wire --------------------------------------------------------------

    @staticmethod
    def _parse_submission(resp) -> tuple[str, str]:
        if resp.status_code >= 500:
            raise NetworkUnavailable(response_message(resp, "Server unavailable"), resp.status_code)
        if resp.status_code >= 400:
            raise ValidationRejected(response_message(resp, "Failed to start generation."), resp.status_code)
        body = json_body(resp)
        problem_id = body.get("problemId")
        if problem_id in (None, ""):
            raise UnexpectedResponse("Backend did not return a problemId.", resp.status_code)
        return str(problem_id), str(body.get("message") or "AI scheduling process started...")

    @staticmethod
    def _parse_status(resp) -> str:
        if resp.status_code >= 500:
            raise NetworkUnavailable(response_message(resp, "Server unavailable"), resp.status_code)
        if resp.status_code >= 400:
            raise UnexpectedResponse(
                f"Failed to check solver status. {response_message(resp, 'HTTP ' + str(resp.status_code))}",
                resp.status_code,
            )
        body = json_body(resp)
        if "status" not in body:
            raise UnexpectedResponse("Backend did not return a status.", resp.status_code)
        return str(body["status"])
