"""
Health checks for the request path and its configuration.
"""

import os
import time
from collections.abc import Mapping
from typing import Literal

from loguru import logger
from pydantic import BaseModel

from mgmtcore.api.projects import ProjectsApi
from mgmtcore.auth import mask_token, resolve_token
from mgmtcore.services.client import RequestOrchestrator
from mgmtcore.settings import RECOGNISED_ENV_VARS

CheckStatus = Literal["pass", "warning", "error"]


class HealthCheck(BaseModel):
    """Result of a single diagnostic check."""

    name: str
    status: CheckStatus
    value: str
    message: str | None = None


async def run_health_checks(
    orchestrator: RequestOrchestrator,
    environ: Mapping[str, str] | None = None,
) -> list[HealthCheck]:
    """
    Check token, API connectivity, cache, retry and circuit breaker state.

    Never raises for a failed check; failures are reported as checks with
    status "error".
    """
    environ = os.environ if environ is None else environ
    checks: list[HealthCheck] = []

    token = await resolve_token(orchestrator.token_provider)
    checks.append(
        HealthCheck(
            name="Access Token",
            status="pass" if token else "error",
            value=mask_token(token) if token else "Not set",
            message=None if token else "Set SUPABASE_ACCESS_TOKEN",
        )
    )

    if token:
        checks.extend(await _check_connectivity(orchestrator))
    else:
        checks.append(
            HealthCheck(
                name="API Connectivity",
                status="error",
                value="Not tested",
                message="No access token available",
            )
        )

    cache = orchestrator.cache
    checks.append(
        HealthCheck(
            name="Cache System",
            status="pass",
            value="Enabled" if cache.enabled else "Disabled",
        )
    )
    if cache.enabled:
        checks.append(
            HealthCheck(
                name="Cache Stats",
                status="pass",
                value=f"{orchestrator.cache_size()} items",
            )
        )

    retry_handler = orchestrator.retry_handler
    checks.append(
        HealthCheck(
            name="Retry Logic",
            status="pass",
            value="Enabled" if retry_handler.policy.enabled else "Disabled",
        )
    )
    if retry_handler.policy.enabled:
        circuit_open = orchestrator.is_circuit_open()
        checks.append(
            HealthCheck(
                name="Circuit Breaker",
                status="warning" if circuit_open else "pass",
                value="Open (service degraded)" if circuit_open else "Closed (healthy)",
                message=(
                    "Too many failures detected, circuit breaker activated"
                    if circuit_open
                    else None
                ),
            )
        )
        checks.append(
            HealthCheck(
                name="Retry Attempts",
                status="pass",
                value=f"Max {orchestrator.get_max_attempts()} attempts",
            )
        )

    set_vars = [name for name in RECOGNISED_ENV_VARS if environ.get(name)]
    checks.append(
        HealthCheck(
            name="Environment Variables",
            status="pass",
            value=f"{len(set_vars)}/{len(RECOGNISED_ENV_VARS)} set",
        )
    )

    failed = [check.name for check in checks if check.status == "error"]
    if failed:
        logger.warning(f"Health check failures: {', '.join(failed)}")
    return checks


async def _check_connectivity(orchestrator: RequestOrchestrator) -> list[HealthCheck]:
    started = time.perf_counter()
    try:
        projects = await ProjectsApi(orchestrator).list_projects()
    except Exception as e:
        logger.debug(f"Connectivity check failed: {e}")
        return [
            HealthCheck(
                name="API Connectivity",
                status="error",
                value="Failed",
                message=str(e),
            )
        ]

    duration_ms = int((time.perf_counter() - started) * 1000)
    count = len(projects)
    return [
        HealthCheck(
            name="API Connectivity",
            status="pass",
            value=f"Connected ({duration_ms}ms)",
        ),
        HealthCheck(
            name="Projects Accessible",
            status="pass" if count else "warning",
            value=f"{count} project{'' if count == 1 else 's'}",
            message=None if count else "No projects found",
        ),
    ]
