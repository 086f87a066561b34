# src/costverify/cli/controllers.py
"""
Implements the `controllers` command: checks that pods attributed to a
controller kind agree between the allocation API and Prometheus.
"""

import asyncio
import logging
from typing import List, Optional

import typer
from typing_extensions import Annotated

from ..core.exceptions import CostVerifyError
from ..reporters.console_reporter import ConsoleReporter
from ..validation.controller_consistency import CONTROLLER_KINDS, validate_controller_consistency

logger = logging.getLogger(__name__)


def controllers(
    kind: Annotated[
        Optional[List[str]], typer.Option("--kind", "-k", help=f"Controller kind: {', '.join(CONTROLLER_KINDS)}.")
    ] = None,
    window: Annotated[Optional[List[str]], typer.Option("--window", "-w", help="Window(s) to check, e.g. 1h.")] = None,
):
    """
    Runs the check for each kind and window and exits with code 1 if any fails.
    """
    kinds = kind or list(CONTROLLER_KINDS)
    by_name = {k.lower(): k for k in CONTROLLER_KINDS}
    unknown = [k for k in kinds if k.lower() not in by_name]
    if unknown:
        logger.error("Unknown controller kind(s): %s. Choose from: %s", ", ".join(unknown), ", ".join(CONTROLLER_KINDS))
        raise typer.Exit(code=2)

    try:
        results = asyncio.run(
            validate_controller_consistency(
                windows=window or ["24h"], controller_kinds=[by_name[k.lower()] for k in kinds]
            )
        )
    except CostVerifyError as e:
        logger.error("Controller consistency check failed to run: %s", e)
        raise typer.Exit(code=1)

    ConsoleReporter().report_controllers(results)

    if any(not r.passed for r in results):
        raise typer.Exit(code=1)
