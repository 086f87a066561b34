# src/costverify/models/prometheus.py
"""
Pydantic models for Prometheus queries and the samples they return.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.exceptions import MalformedSample

logger = logging.getLogger(__name__)


class QuerySpec(BaseModel):
    """
    Declarative description of one PromQL query.
    Rendering rules live in costverify.core.query_builder.
    """

    metric: str = Field(..., description="Time-series name")
    filters: Dict[str, str] = Field(default_factory=dict, description="label == value clauses")
    ignore_filters: Dict[str, List[str]] = Field(default_factory=dict, description="label != value clauses")
    not_equal_to: Optional[str] = Field(None, description="Value the raw metric must differ from")
    equal_to: Optional[str] = Field(None, description="Value the raw metric must equal")
    functions: List[str] = Field(default_factory=list, description="Functions applied innermost first")
    group_by: List[str] = Field(default_factory=list, description="Labels of the by (...) clause")
    window: Optional[str] = None
    resolution: Optional[str] = None
    offset: Optional[str] = None
    aggregate_window: Optional[str] = None
    aggregate_resolution: Optional[str] = None
    eval_time: Optional[int] = Field(None, description="Unix seconds sent as the time= parameter")


class DataPoint(BaseModel):
    """A single (timestamp, value) sample."""

    timestamp: float
    value: float


def parse_sample_value(raw: Any) -> float:
    """
    Parses a Prometheus sample value (a decimal string) into a float.

    Raises MalformedSample for anything that is not a finite number;
    NaN and Inf poison averages so they are rejected as well.
    """
    if raw is None or isinstance(raw, bool):
        raise MalformedSample(f"sample value is missing or not numeric: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise MalformedSample(f"could not parse sample value {raw!r}") from e
    if not math.isfinite(value):
        raise MalformedSample(f"sample value is not finite: {raw!r}")
    return value


def _parse_point(pair: Any) -> DataPoint:
    if not isinstance(pair, (list, tuple)) or not pair:
        raise MalformedSample(f"expected [timestamp, value], got {pair!r}")
    if len(pair) < 2:
        raise MalformedSample(f"sample has no value: {pair!r}")
    try:
        timestamp = float(pair[0])
    except (TypeError, ValueError) as e:
        raise MalformedSample(f"could not parse sample timestamp {pair[0]!r}") from e
    if not math.isfinite(timestamp):
        raise MalformedSample(f"sample timestamp is not finite: {pair[0]!r}")
    value = parse_sample_value(pair[1])
    return DataPoint(timestamp=timestamp, value=value)


class SampleSeries(BaseModel):
    """
    One labelled series from a vector or matrix result.
    """

    metric: Dict[str, str] = Field(default_factory=dict, description="Raw label set")
    namespace: str = ""
    pod: str = ""
    uid: str = ""
    container: str = ""
    node: str = ""
    instance: str = ""
    labels: Dict[str, str] = Field(default_factory=dict, description="label_* keys, prefix stripped")
    annotations: Dict[str, str] = Field(default_factory=dict, description="annotation_* keys, prefix stripped")
    points: List[DataPoint] = Field(default_factory=list)
    malformed_count: int = 0

    def label(self, key: str, default: str = "") -> str:
        return self.metric.get(key, default)

    @property
    def value(self) -> Optional[float]:
        """The value of the last valid sample, or None when every sample was malformed."""
        if not self.points:
            return None
        return self.points[-1].value

    def mean(self) -> Optional[float]:
        if not self.points:
            return None
        return sum(p.value for p in self.points) / len(self.points)

    @classmethod
    def from_result(cls, item: Dict[str, Any]) -> "SampleSeries":
        """
        Builds a series from one entry of data.result.

        Malformed samples are skipped and counted; a warning is logged so that
        dropped samples never disappear without trace.
        """
        raw_metric = item.get("metric") or {}
        metric: Dict[str, str] = {}
        labels: Dict[str, str] = {}
        annotations: Dict[str, str] = {}
        for key, val in raw_metric.items():
            if not isinstance(val, str):
                logger.warning("Value for label '%s' is not a string (%r), skipping.", key, val)
                continue
            metric[key] = val
            if key.startswith("label_"):
                labels[key[len("label_") :]] = val
            elif key.startswith("annotation_"):
                annotations[key[len("annotation_") :]] = val

        raw_points: List[Any] = []
        if item.get("values") is not None:
            raw_points = list(item["values"])
        elif item.get("value") is not None:
            raw_points = [item["value"]]

        points = []
        malformed = 0
        for pair in raw_points:
            try:
                points.append(_parse_point(pair))
            except MalformedSample as e:
                malformed += 1
                logger.warning("Skipping malformed sample for %s: %s", metric, e)

        return cls(
            metric=metric,
            namespace=metric.get("namespace", ""),
            pod=metric.get("pod", ""),
            uid=metric.get("uid", ""),
            container=metric.get("container", ""),
            node=metric.get("node", ""),
            instance=metric.get("instance", ""),
            labels=labels,
            annotations=annotations,
            points=points,
            malformed_count=malformed,
        )


class PrometheusResponse(BaseModel):
    """
    The /api/v1/query envelope with its results parsed into SampleSeries.
    """

    status: str
    result_type: str = ""
    result: List[SampleSeries] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "PrometheusResponse":
        data = payload.get("data") or {}
        return cls(
            status=payload.get("status", ""),
            result_type=data.get("resultType", ""),
            result=[SampleSeries.from_result(item) for item in data.get("result", [])],
            error=payload.get("error"),
        )
