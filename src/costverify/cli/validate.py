# src/costverify/cli/validate.py
"""
Implements the `validate` command: compares allocation API quantities with
values rebuilt from Prometheus for one resource kind.
"""

import asyncio
import logging
from typing import List, Optional

import typer
from typing_extensions import Annotated

from ..core.config import config
from ..core.exceptions import CostVerifyError
from ..reporters.console_reporter import ConsoleReporter
from ..validation.resource_costs import PROFILES, validate_resource_costs
from ..validation.volume_costs import RESOURCE as PV_RESOURCE
from ..validation.volume_costs import validate_pv_costs

logger = logging.getLogger(__name__)

RESOURCES = (*PROFILES, PV_RESOURCE)


def validate(
    resource: Annotated[str, typer.Argument(help=f"Resource kind: {', '.join(RESOURCES)}.")],
    window: Annotated[str, typer.Option(help="Window to compare, e.g. 24h.")] = "24h",
    namespace: Annotated[
        Optional[List[str]], typer.Option("--namespace", "-n", help="Only compare these namespaces.")
    ] = None,
    tolerance: Annotated[Optional[float], typer.Option(help="Allowed relative difference (0.07 == 7%).")] = None,
    show_diff: Annotated[
        Optional[bool], typer.Option("--show-diff/--failures-only", help="List passing checks too.")
    ] = None,
    include_unmounted: Annotated[
        bool, typer.Option("--include-unmounted", help="pv only: count claims no pod mounted.")
    ] = False,
):
    """
    Runs the comparison and exits with code 1 if any check fails.
    """
    resource = resource.lower()
    if resource not in RESOURCES:
        logger.error("Unknown resource '%s'. Choose one of: %s", resource, ", ".join(RESOURCES))
        raise typer.Exit(code=2)

    logger.info("Validating %s allocations over %s...", resource, window)
    if resource == PV_RESOURCE:
        run = validate_pv_costs(
            window=window, tolerance=tolerance, include_unmounted=include_unmounted, namespaces=namespace
        )
    else:
        run = validate_resource_costs(resource, window=window, tolerance=tolerance, namespaces=namespace)

    try:
        results = asyncio.run(run)
    except (CostVerifyError, ValueError) as e:
        logger.error("Validation of %s failed to run: %s", resource, e)
        raise typer.Exit(code=1)

    ConsoleReporter().report(results, show_diff=config.SHOW_DIFF if show_diff is None else show_diff)

    if any(not r.passed for r in results):
        raise typer.Exit(code=1)
