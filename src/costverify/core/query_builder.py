# src/costverify/core/query_builder.py
"""
Compiles a QuerySpec into a PromQL string and an /api/v1/query URL.

Rendering order:
    metric{filters, ignore-filters}[window:resolution] offset <d> != <v>
    wrapped by each function (innermost first), then ` by (...)` on the
    outermost call, then an optional `[aggregate_window:aggregate_resolution]`.

Filter clauses are sorted so that equal specs always render byte-identical
strings regardless of dict insertion order.
"""

from typing import List, Optional
from urllib.parse import urlencode

from ..models.prometheus import QuerySpec
from .exceptions import InvalidSpec


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _range_suffix(window: Optional[str], resolution: Optional[str]) -> str:
    if not window:
        return ""
    if resolution:
        return f"[{window}:{resolution}]"
    return f"[{window}]"


def validate_spec(spec: QuerySpec) -> None:
    """Raises InvalidSpec when `spec` cannot be rendered."""
    if not spec.metric or not spec.metric.strip():
        raise InvalidSpec("metric must not be empty")
    if spec.resolution and not spec.window:
        raise InvalidSpec("resolution requires a window")
    if spec.aggregate_resolution and not spec.aggregate_window:
        raise InvalidSpec("aggregate_resolution requires an aggregate_window")
    if spec.not_equal_to and spec.equal_to:
        raise InvalidSpec("equal_to and not_equal_to are mutually exclusive")
    if any(not fn for fn in spec.functions):
        raise InvalidSpec("function names must not be empty")
    if any(not label for label in spec.group_by):
        raise InvalidSpec("group_by labels must not be empty")


def render_selector(spec: QuerySpec) -> str:
    """Renders `metric{...}` with equality clauses first, then inequality clauses."""
    clauses: List[str] = [
        f'{key}="{_escape_label_value(spec.filters[key])}"' for key in sorted(spec.filters)
    ]
    for key in sorted(spec.ignore_filters):
        for value in sorted(spec.ignore_filters[key]):
            clauses.append(f'{key}!="{_escape_label_value(value)}"')
    return f"{spec.metric}{{{', '.join(clauses)}}}"


def build_query(spec: QuerySpec) -> str:
    """
    Renders the PromQL expression for `spec`.

    Raises:
        InvalidSpec: if `spec` is missing a metric or has inconsistent windows.
    """
    validate_spec(spec)

    query = render_selector(spec) + _range_suffix(spec.window, spec.resolution)

    if spec.offset:
        query = f"{query} offset {spec.offset}"

    # an empty comparison value is treated as unset
    if spec.not_equal_to:
        query = f"{query} != {spec.not_equal_to}"
    elif spec.equal_to:
        query = f"{query} == {spec.equal_to}"

    for fn in spec.functions:
        query = f"{fn}({query})"

    if spec.group_by:
        query = f"{query} by ({', '.join(spec.group_by)})"

    return query + _range_suffix(spec.aggregate_window, spec.aggregate_resolution)


def build_query_url(base_url: str, spec: QuerySpec) -> str:
    """
    Builds `<base>/api/v1/query?query=<escaped>[&time=<unix>]`.
    The query is percent-encoded exactly once; time is appended unescaped.
    """
    query = build_query(spec)
    url = f"{base_url.rstrip('/')}/api/v1/query?{urlencode({'query': query})}"
    if spec.eval_time is not None:
        url = f"{url}&time={int(spec.eval_time)}"
    return url
