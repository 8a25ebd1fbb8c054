"""
Command-line front end: log in, submit a schedule generation job and wait
for it, check connectivity, or run the local stub solver.
"""
from __future__ import annotations
import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from typing import Optional

from .config import Settings, settings
from .diagnostics import run_connection_test
from .errors import AccessDenied, NotAuthenticated, SmartSchedError
from .forms import load_job_request
from .gate import SCHEDULING_ROLES, RequestGate
from .logging_config import logger, setup_logging
from .models import OrchestratorState
from .orchestrator import JobOrchestrator, schedule_path
from .session import SessionManager

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FORBIDDEN = 2


def _password(args) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


async def _login(args, sessions: SessionManager) -> int:
    session = await sessions.login(args.username, _password(args))
    print(f"Logged in as {session.identity.name} ({session.identity.role.value})")
    return EXIT_OK


async def _register(args, sessions: SessionManager) -> int:
    await sessions.register(args.username, _password(args))
    print("Registration successful. You can now log in.")
    return EXIT_OK


async def _logout(args, sessions: SessionManager) -> int:
    sessions.logout()
    print("Logged out.")
    return EXIT_OK


async def _whoami(args, sessions: SessionManager) -> int:
    session = RequestGate(sessions).require()
    print(f"{session.identity.name} ({session.identity.role.value})")
    return EXIT_OK


async def _generate(args, sessions: SessionManager) -> int:
    RequestGate(sessions, SCHEDULING_ROLES).require()
    request = load_job_request(Path(args.file), args.section)

    def progress(handle, status, message):
        print(message)

    orchestrator = JobOrchestrator(sessions, on_progress=progress)
    try:
        handle = await orchestrator.submit(request)
        print(handle.message)
        state = await orchestrator.wait()
    finally:
        orchestrator.close()

    if state is OrchestratorState.COMPLETED:
        print(f"Schedule generation complete! View it at {schedule_path(request.section_id)}")
        return EXIT_OK
    if orchestrator.error is not None:
        raise orchestrator.error
    print(f"Generation stopped ({state.value})")
    return EXIT_ERROR


def _diagnose(args, config: Settings) -> int:
    report = run_connection_test(config)
    print(f"API_BASE_URL: {report.api_url}")
    for check in report.checks:
        line = f"[{check.status.upper()}] {check.name}: {check.message}"
        if check.details:
            line += f" ({check.details})"
        print(line)
    return EXIT_OK if report.ok else EXIT_ERROR


def _serve_stub(args, config: Settings) -> int:
    import uvicorn

    from .stub_server import create_app

    uvicorn.run(create_app(config), host=args.host or config.STUB_HOST, port=args.port or config.STUB_PORT)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="smartsched", description="SmartSched schedule generation client")
    ap.add_argument("--api", help="Backend base URL (overrides SMARTSCHED_API_BASE_URL)")
    sub = ap.add_subparsers(dest="command", required=True)

    for name in ("login", "register"):
        p = sub.add_parser(name)
        p.add_argument("username")
        p.add_argument("--password")
    sub.add_parser("logout")
    sub.add_parser("whoami")

    p = sub.add_parser("generate", help="Submit subjects for a section and wait for the schedule")
    p.add_argument("--section", required=True, help="Section id")
    p.add_argument("file", help=".xlsx or .json file with the subjects")

    sub.add_parser("diagnose", help="Check connectivity to the backend")

    p = sub.add_parser("serve-stub", help="Run the local stub solver")
    p.add_argument("--host")
    p.add_argument("--port", type=int)
    return ap


COMMANDS = {
    "login": _login,
    "register": _register,
    "logout": _logout,
    "whoami": _whoami,
    "generate": _generate,
}


def main(argv: Optional[list[str]] = None, sessions: Optional[SessionManager] = None) -> int:
    args = build_parser().parse_args(argv)
    config = settings
    if args.api:
        config = Settings(**{**settings.model_dump(), "API_BASE_URL": args.api})
    setup_logging(config.LOG_DIR, config.LOG_LEVEL)

    if args.command == "diagnose":
        return _diagnose(args, config)
    if args.command == "serve-stub":
        return _serve_stub(args, config)

    sessions = sessions or SessionManager(config=config)
    try:
        return asyncio.run(COMMANDS[args.command](args, sessions))
    except (NotAuthenticated, AccessDenied) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FORBIDDEN
    except SmartSchedError as e:
        logger.debug(f"{args.command} failed: {e!r}")
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
