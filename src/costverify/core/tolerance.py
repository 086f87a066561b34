# src/costverify/core/tolerance.py
"""
Tolerance-based comparison helpers.

Independently sampled metrics and a continuously aggregating cost engine
never agree bit-for-bit, so values are compared within a relative tolerance.
"""

import logging
from typing import Optional, Tuple

from .config import config

logger = logging.getLogger(__name__)


def are_within_percentage(num1: float, num2: float, tolerance: float) -> Tuple[bool, float]:
    """
    Checks whether two numbers are within `tolerance` (a fraction, 0.07 == 7%)
    of the larger magnitude. Returns (within, difference in percent).
    """
    if num1 == 0 and num2 == 0:
        return True, 0.0

    tolerance = abs(tolerance)
    diff = abs(num1 - num2)
    reference = max(abs(num1), abs(num2))

    diff_percent = (diff / reference) * 100
    return diff <= reference * tolerance, diff_percent


def error_pct(exp: float, act: float) -> float:
    """Difference between exp and act as a fraction of exp. exp=5, act=4 -> 0.2"""
    if exp == 0.0:
        return 0.0 if act == 0.0 else 1.0
    return abs(exp - act) / abs(exp)


def is_approximately_with_threshold(exp: float, act: float, threshold: float) -> bool:
    """True if act is within `threshold` of exp (0.01 == within 1% of exp)."""
    delta = abs(exp) * threshold
    if delta < 0.00001:
        delta = 0.00001
    return abs(exp - act) < delta


def is_approximately(exp: float, act: float) -> bool:
    return is_approximately_with_threshold(exp, act, config.APPROX_THRESHOLD)


def assert_approximately(exp: float, act: float, msg: str, threshold: Optional[float] = None) -> None:
    """
    Raises AssertionError reporting both values and the percentage error when
    exp !~= act.
    """
    if threshold is None:
        within = is_approximately(exp, act)
    else:
        within = is_approximately_with_threshold(exp, act, threshold)
    if not within:
        raise AssertionError(f"{msg}: exp {exp:f} !~= {act:f} act ({error_pct(exp, act) * 100:.2f}% error)")


def convert_to_hours(minutes: float) -> float:
    return minutes / 60
