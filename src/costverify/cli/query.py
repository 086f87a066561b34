# src/costverify/cli/query.py
"""
Implements the `query` command: renders a PromQL query and optionally runs it.
"""

import asyncio
import logging
from typing import List, Optional

import typer
from typing_extensions import Annotated

from ..collectors.prometheus_client import PrometheusClient
from ..core.exceptions import CostVerifyError
from ..core.query_builder import build_query, build_query_url
from ..models.prometheus import QuerySpec

logger = logging.getLogger(__name__)


def _parse_pairs(values: Optional[List[str]], option: str) -> List[tuple]:
    pairs = []
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Invalid {option} '{raw}'. Use label=value.")
        pairs.append((key, value))
    return pairs


def query(
    metric: Annotated[str, typer.Argument(help="Metric name, e.g. container_cpu_allocation.")],
    filters: Annotated[
        Optional[List[str]], typer.Option("--filter", "-f", help="label=value equality filter.")
    ] = None,
    ignore: Annotated[Optional[List[str]], typer.Option("--ignore", "-i", help="label=value to exclude.")] = None,
    function: Annotated[
        Optional[List[str]], typer.Option("--function", help="Wrapping function, innermost first.")
    ] = None,
    group_by: Annotated[Optional[List[str]], typer.Option("--by", help="Group-by label.")] = None,
    window: Annotated[Optional[str], typer.Option(help="Range window, e.g. 1h.")] = None,
    resolution: Annotated[Optional[str], typer.Option(help="Subquery resolution, e.g. 1m.")] = None,
    not_equal_to: Annotated[Optional[str], typer.Option("--not-equal-to", help="Drop samples equal to v.")] = None,
    time: Annotated[Optional[int], typer.Option("--time", help="Evaluation time (unix seconds).")] = None,
    url: Annotated[bool, typer.Option("--url", help="Print the full query URL.")] = False,
    run: Annotated[bool, typer.Option("--run", help="Run the query and print the series.")] = False,
):
    """
    Builds a query from command-line parts. Prints the PromQL by default.
    """
    ignore_filters = {}
    for key, value in _parse_pairs(ignore, "--ignore"):
        ignore_filters.setdefault(key, []).append(value)

    try:
        spec = QuerySpec(
            metric=metric,
            filters=dict(_parse_pairs(filters, "--filter")),
            ignore_filters=ignore_filters,
            functions=function or [],
            group_by=group_by or [],
            window=window,
            resolution=resolution,
            not_equal_to=not_equal_to,
            eval_time=time,
        )
        prometheus = PrometheusClient()
        typer.echo(build_query_url(prometheus.base_url, spec) if url else build_query(spec))
    except CostVerifyError as e:
        logger.error("Could not build query: %s", e)
        raise typer.Exit(code=1)

    if not run:
        return

    async def _run():
        async with prometheus:
            return await prometheus.run_query(spec)

    try:
        response = asyncio.run(_run())
    except CostVerifyError as e:
        logger.error("Query failed: %s", e)
        raise typer.Exit(code=1)

    for series in response.result:
        typer.echo(f"{series.metric} {series.value}")
