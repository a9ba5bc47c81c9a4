"""
mgmtcore entry point
Runs the health checks against the management API and prints the report
"""

import asyncio
import sys

from loguru import logger

from mgmtcore.diagnostics import run_health_checks
from mgmtcore.services.client import create_orchestrator
from mgmtcore.settings import load_settings

STATUS_ICONS = {"pass": "✓", "warning": "!", "error": "✗"}


async def main() -> int:
    """Main function"""
    settings = load_settings()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if settings.debug else "INFO")

    logger.info("Running diagnostic checks...")

    async with create_orchestrator(settings) as orchestrator:
        checks = await run_health_checks(orchestrator)

    for check in checks:
        line = f"{STATUS_ICONS[check.status]} {check.name}: {check.value}"
        if check.message:
            line += f" ({check.message})"
        print(line)

    return 1 if any(check.status == "error" for check in checks) else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
