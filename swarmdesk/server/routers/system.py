"""External CLI availability check."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from swarmdesk.server.deps import Owner, Runner
from swarmdesk.server.execution.spawner import SpawnError
from swarmdesk.server.models.api import CliCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["system"])


@router.post("/check", response_model=CliCheckResponse)
async def handle_cli_check(_owner: Owner, runner: Runner) -> CliCheckResponse:
    """Run ``<cli> --version``; a missing executable is reported, not raised."""
    try:
        result = await runner.run_cli(["--version"])
    except SpawnError as exc:
        logger.warning("CLI check failed to start: %s", exc.message)
        installed = False
        version = "unknown"
    else:
        installed = result.exit_code == 0
        version = result.stdout.strip() or "unknown"

    cli = runner.settings.cli_name
    return CliCheckResponse(
        success=True,
        installed=installed,
        version=version,
        message=f"{cli} is available" if installed else f"{cli} not found",
    )
