"""Post-deployment health checks.

Probes are plain callables returning a HealthCheckResult. The engine runs the
selected probes concurrently on daemon threads and waits for each one at most
`probe_timeout` seconds; a probe that raises or times out becomes a critical
result and a timed-out thread is left to finish in the background.
"""

import asyncio
import shutil
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import psutil

from vtexdeploy.clients.vtex import PlatformClient
from vtexdeploy.core.async_utils import gather_settled, in_daemon_thread
from vtexdeploy.core.exceptions import HealthCheckError
from vtexdeploy.core.logging import get_logger
from vtexdeploy.deploy.models import (
    Environment,
    HealthCheckResult,
    HealthCheckSummary,
    HealthStatus,
)

if TYPE_CHECKING:
    from vtexdeploy.config import ProfileConfig

logger = get_logger(__name__)

Probe = Callable[[], HealthCheckResult]

CRITICAL_RESOURCE_PERCENT = 95.0


def aggregate(results: list[HealthCheckResult]) -> HealthStatus:
    """Critical if any critical, else warning if any warning, else healthy."""
    statuses = {r.status for r in results}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.WARNING in statuses:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def recommendations_for(result: HealthCheckResult) -> list[str]:
    """Remediation hints for one probe result."""
    if result.status == HealthStatus.HEALTHY:
        return []

    service = result.service
    if service == "workspace":
        if result.status == HealthStatus.CRITICAL:
            return [
                "Check CLI installation and account configuration",
                "Verify network connectivity to platform services",
            ]
        return ["Wait for the workspace to become active or recreate it"]
    if service == "apps":
        return ["Reinstall failing apps or roll back to the previous version"]
    if service == "system":
        hints = []
        if result.details.get("memory_high"):
            hints.append("Consider closing unnecessary applications to free memory")
        if result.details.get("disk_high"):
            hints.append("Free up disk space before running deployments")
        return hints
    if service == "network":
        return ["Check internet connection and firewall settings", "Verify DNS configuration"]
    if service == "platform_api":
        return ["Check platform status page and API credentials"]
    return []


def build_recommendations(results: list[HealthCheckResult]) -> list[str]:
    """Recommendations across all results, duplicates removed, order kept."""
    seen: set[str] = set()
    ordered: list[str] = []
    for result in results:
        for hint in recommendations_for(result):
            if hint not in seen:
                seen.add(hint)
                ordered.append(hint)
    return ordered


class HealthCheckEngine:
    """Runs registered probes and keeps the latest result per probe."""

    def __init__(self, probe_timeout: float = 30.0):
        self.probe_timeout = probe_timeout
        self._probes: dict[str, Probe] = {}
        self._last_results: dict[str, HealthCheckResult] = {}
        self._lock = threading.Lock()

    def register(self, name: str, probe: Probe) -> None:
        """Register (or replace) a probe under a service name."""
        self._probes[name] = probe

    @property
    def services(self) -> list[str]:
        return list(self._probes)

    def last_results(self) -> dict[str, HealthCheckResult]:
        """Copy of the most recent result per probe."""
        with self._lock:
            return dict(self._last_results)

    async def _run_probe(self, name: str, probe: Probe) -> HealthCheckResult:
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                in_daemon_thread(probe, name=f"health-{name}"), timeout=self.probe_timeout
            )
        except asyncio.TimeoutError:
            raise HealthCheckError(
                f"health check timed out after {self.probe_timeout}s", service=name
            )
        result.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    async def run(self, services: list[str] | set[str] | None = None) -> HealthCheckSummary:
        """Run the selected probes (all when ``services`` is None)."""
        if services is None:
            selected = list(self._probes)
        else:
            selected = list(dict.fromkeys(services))

        results: list[HealthCheckResult] = []
        runnable: list[str] = []
        for name in selected:
            if name in self._probes:
                runnable.append(name)
            else:
                results.append(
                    HealthCheckResult(
                        service=name,
                        status=HealthStatus.CRITICAL,
                        message=f"unknown health check: {name}",
                    )
                )

        outcomes = await gather_settled(*[self._run_probe(n, self._probes[n]) for n in runnable])
        for name, outcome in zip(runnable, outcomes):
            if outcome.ok:
                results.append(outcome.value)
            else:
                logger.warning(f"Health check '{name}' raised: {outcome.error}")
                message = getattr(outcome.error, "message", None) or str(outcome.error)
                results.append(
                    HealthCheckResult(
                        service=name,
                        status=HealthStatus.CRITICAL,
                        message=message or type(outcome.error).__name__,
                        details={"error_type": type(outcome.error).__name__},
                    )
                )

        order = {name: i for i, name in enumerate(selected)}
        results.sort(key=lambda r: order.get(r.service, len(order)))

        recovered: list[str] = []
        with self._lock:
            for result in results:
                previous = self._last_results.get(result.service)
                if previous is not None and not previous.is_healthy and result.is_healthy:
                    recovered.append(result.service)
                self._last_results[result.service] = result

        summary = HealthCheckSummary(
            overall=aggregate(results),
            results=results,
            recommendations=build_recommendations(results),
            recovered=recovered,
        )
        logger.info(
            f"Health check finished: overall={summary.overall.value} "
            f"critical={len(summary.critical)} warnings={len(summary.warnings)}"
        )
        return summary

    @classmethod
    def with_default_probes(
        cls,
        platform: PlatformClient,
        profile: "ProfileConfig",
        environment: Environment,
    ) -> "HealthCheckEngine":
        """Engine with the built-in probes enabled by ``health.services``."""
        health = profile.health
        engine = cls(probe_timeout=health.probe_timeout)

        factories: dict[str, Callable[[], Probe]] = {
            "workspace": lambda: workspace_probe(platform, environment),
            "apps": lambda: apps_probe(platform, environment),
            "system": lambda: system_probe(health.memory_threshold, health.disk_threshold),
            "network": lambda: network_probe(
                health.endpoints, health.response_time_threshold, health.probe_timeout
            ),
            "platform_api": lambda: platform_api_probe(profile.vtex.api_url, health.probe_timeout),
        }
        for name in health.services:
            factory = factories.get(name)
            if factory is None:
                logger.warning(f"Ignoring unknown health check in config: {name}")
                continue
            engine.register(name, factory())
        return engine


def workspace_probe(platform: PlatformClient, environment: Environment) -> Probe:
    def probe() -> HealthCheckResult:
        status = platform.get_workspace_status(environment)
        details = {"workspace": status.workspace, "status": status.status}
        if status.status == "active":
            return HealthCheckResult(
                "workspace", HealthStatus.HEALTHY, f"Workspace {status.workspace} is active", details
            )
        state = status.status or "in an unknown state"
        return HealthCheckResult(
            "workspace",
            HealthStatus.CRITICAL,
            f"Workspace {status.workspace} is {state}",
            details,
        )

    return probe


def apps_probe(platform: PlatformClient, environment: Environment) -> Probe:
    def probe() -> HealthCheckResult:
        status = platform.get_workspace_status(environment)
        if not status.apps:
            return HealthCheckResult(
                "apps", HealthStatus.WARNING, f"No apps installed in {status.workspace}"
            )

        failing = [app for app in status.apps if app.status != "installed"]
        details = {"apps": [a.to_dict() for a in status.apps]}
        if failing:
            names = ", ".join(f"{a.name}@{a.version} ({a.status})" for a in failing)
            return HealthCheckResult(
                "apps", HealthStatus.CRITICAL, f"Apps not installed: {names}", details
            )
        return HealthCheckResult(
            "apps", HealthStatus.HEALTHY, f"{len(status.apps)} app(s) installed", details
        )

    return probe


def system_probe(memory_threshold: float, disk_threshold: float, path: str | Path = "/") -> Probe:
    def probe() -> HealthCheckResult:
        memory_percent = psutil.virtual_memory().percent
        usage = shutil.disk_usage(path)
        disk_percent = round(usage.used / usage.total * 100, 1) if usage.total else 0.0

        details = {
            "memory_percent": memory_percent,
            "disk_percent": disk_percent,
            "memory_high": memory_percent > memory_threshold,
            "disk_high": disk_percent > disk_threshold,
        }
        message = f"Memory {memory_percent:.0f}%, disk {disk_percent:.0f}%"

        if max(memory_percent, disk_percent) >= CRITICAL_RESOURCE_PERCENT:
            return HealthCheckResult("system", HealthStatus.CRITICAL, message, details)
        if details["memory_high"] or details["disk_high"]:
            return HealthCheckResult("system", HealthStatus.WARNING, message, details)
        return HealthCheckResult("system", HealthStatus.HEALTHY, message, details)

    return probe


def network_probe(endpoints: list[str], slow_ms: int, timeout: float) -> Probe:
    def probe() -> HealthCheckResult:
        if not endpoints:
            return HealthCheckResult("network", HealthStatus.HEALTHY, "No endpoints configured")

        checks: dict[str, dict[str, object]] = {}
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            for url in endpoints:
                started = time.monotonic()
                try:
                    response = client.get(url)
                    elapsed = int((time.monotonic() - started) * 1000)
                    checks[url] = {
                        "ok": response.status_code < 500,
                        "status_code": response.status_code,
                        "response_ms": elapsed,
                    }
                except httpx.HTTPError as e:
                    checks[url] = {"ok": False, "error": str(e)}

        failed = [url for url, c in checks.items() if not c["ok"]]
        slow = [url for url, c in checks.items() if c["ok"] and c.get("response_ms", 0) > slow_ms]
        details = {"endpoints": checks}

        if len(failed) == len(checks):
            return HealthCheckResult(
                "network", HealthStatus.CRITICAL, "No network endpoints reachable", details
            )
        if failed:
            return HealthCheckResult(
                "network", HealthStatus.WARNING, f"Unreachable: {', '.join(failed)}", details
            )
        if slow:
            return HealthCheckResult(
                "network", HealthStatus.WARNING, f"Slow response from: {', '.join(slow)}", details
            )
        return HealthCheckResult("network", HealthStatus.HEALTHY, "All endpoints reachable", details)

    return probe


def platform_api_probe(api_url: str, timeout: float) -> Probe:
    def probe() -> HealthCheckResult:
        started = time.monotonic()
        try:
            response = httpx.get(api_url, timeout=timeout, follow_redirects=True)
        except httpx.HTTPError as e:
            return HealthCheckResult(
                "platform_api", HealthStatus.CRITICAL, f"Platform API unreachable: {e}", {"url": api_url}
            )

        details = {
            "url": api_url,
            "status_code": response.status_code,
            "response_ms": int((time.monotonic() - started) * 1000),
        }
        if response.status_code >= 500:
            return HealthCheckResult(
                "platform_api",
                HealthStatus.CRITICAL,
                f"Platform API returned HTTP {response.status_code}",
                details,
            )
        return HealthCheckResult("platform_api", HealthStatus.HEALTHY, "Platform API reachable", details)

    return probe
