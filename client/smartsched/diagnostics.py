"""
Connection diagnostics against the configured backend.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from .config import Settings, settings
from .logging_config import logger

DIAGNOSTIC_TIMEOUT = 5


@dataclass
class CheckResult:
    name: str
    status: str  # success | warning | error
    message: str
    details: Optional[str] = None
    data: Any = None


@dataclass
class ConnectionReport:
    api_url: str
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.status != "error" for c in self.checks)


def run_connection_test(config: Optional[Settings] = None, http=None) -> ConnectionReport:
    config = config or settings
    http = http if http is not None else requests.Session()
    report = ConnectionReport(api_url=config.API_BASE_URL)

    # 1. Health check
    health_url = f"{config.root_url}/api/health"
    logger.info(f"Testing health endpoint: {health_url}")
    try:
        resp = http.request("GET", health_url, timeout=DIAGNOSTIC_TIMEOUT)
        if resp.status_code >= 400:
            report.checks.append(CheckResult("health", "error", "Health check failed", f"HTTP {resp.status_code}"))
        else:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text
            report.checks.append(CheckResult("health", "success", "Health check passed", data=data))
    except requests.RequestException as e:
        report.checks.append(CheckResult("health", "error", str(e), "Network error - API may be down"))

    # 2. Preflight, a failure here is only a warning
    auth_url = f"{config.API_BASE_URL}/auth/login"
    logger.info(f"Testing CORS: {auth_url}")
    try:
        resp = http.request("OPTIONS", auth_url, timeout=DIAGNOSTIC_TIMEOUT)
        if resp.status_code >= 400:
            report.checks.append(CheckResult("cors", "warning", "CORS preflight may have issues", f"HTTP {resp.status_code}"))
        else:
            report.checks.append(CheckResult("cors", "success", "CORS is configured correctly"))
    except requests.RequestException as e:
        report.checks.append(CheckResult("cors", "warning", "CORS preflight may have issues", str(e)))

    # 3. Auth endpoint: any HTTP answer means it is reachable
    logger.info(f"Testing auth endpoint: {auth_url}")
    try:
        resp = http.request("POST", auth_url, json={}, timeout=DIAGNOSTIC_TIMEOUT)
        report.checks.append(CheckResult(
            "auth", "success", "Auth endpoint is reachable", f"Auth endpoint returned: {resp.status_code}",
        ))
    except requests.RequestException as e:
        report.checks.append(CheckResult(
            "auth", "error", "Cannot reach auth endpoint - Network error", str(e),
        ))

    return report
