# src/costverify/core/intervals.py
"""
Reconstructs resource lifetimes from sampled time series.

Start and end for a range vector are the timestamps of the first and last
samples. Querying e.g. avg(kube_pod_container_status_running{}) by (pod)[1h:1m]
with time=01:00:00 returns, for a pod running the whole hour, 61 samples from
00:00:00 to 01:00:00, so no offsetting is required.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple

from ..models.prometheus import DataPoint
from ..models.resources import ResourceInterval
from ..utils.date_utils import ensure_utc, from_unix

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^(\d+)([smhdw])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_duration(value: str) -> timedelta:
    """Parses a Prometheus-style duration ('30s', '5m', '24h', '7d', '1w')."""
    match = _DURATION_RE.match(value.strip().lower()) if value else None
    if not match:
        raise ValueError(f"Invalid duration '{value}'. Use a format like '30s', '5m', '24h', '7d' or '1w'.")
    amount, unit = int(match.group(1)), match.group(2)
    return timedelta(seconds=amount * _UNIT_SECONDS[unit])


def get_offset_adjusted_query_window(window: str, resolution: str) -> str:
    """
    Expresses `window` as a whole number of `resolution` steps, in the
    resolution's unit, so a subquery [window:resolution] lands on step
    boundaries. ('24h', '1m') -> '1440m'.
    """
    window_delta = parse_duration(window)
    match = _DURATION_RE.match(resolution.strip().lower())
    if not match:
        raise ValueError(f"Invalid resolution '{resolution}'.")
    step_amount, unit = int(match.group(1)), match.group(2)
    step_seconds = step_amount * _UNIT_SECONDS[unit]
    if step_seconds == 0:
        raise ValueError("resolution must be positive")

    steps = int(window_delta.total_seconds() // step_seconds)
    if steps == 0:
        logger.warning("Window %s is shorter than resolution %s; using one step.", window, resolution)
        steps = 1
    return f"{steps * step_amount}{unit}"


def query_window(window: str, now: Optional[datetime] = None) -> ResourceInterval:
    """
    The window a comparison covers: ending at the top of the next hour and
    reaching back `window`.
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    end = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return ResourceInterval(start=end - parse_duration(window), end=end)


def calculate_start_and_end(
    points: Sequence[DataPoint],
    resolution: timedelta,
    window: ResourceInterval,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Returns the (start, end) during which a unit was observed.

    A single sample still represents one resolution's worth of existence, so
    it is widened by half a resolution on each side. The result is clamped to
    the window and never ends in the future; if clamping inverts it, the
    interval collapses to zero length at the boundary.

    Raises:
        ValueError: if `points` is empty.
    """
    if not points:
        raise ValueError("cannot calculate an interval from zero samples")

    start = from_unix(points[0].timestamp)
    end = from_unix(points[-1].timestamp)

    if start == end:
        start = start - resolution / 2
        end = end + resolution / 2

    if start < window.start:
        start = window.start
    if end > window.end:
        end = window.end

    # prevent end times in the future
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    if end > now:
        end = now

    if start > end:
        if end >= window.start:
            start = end
        else:
            end = start

    return start, end


def calculate_interval(
    points: Sequence[DataPoint],
    resolution: timedelta,
    window: ResourceInterval,
    now: Optional[datetime] = None,
) -> ResourceInterval:
    start, end = calculate_start_and_end(points, resolution, window, now=now)
    return ResourceInterval(start=start, end=end)
