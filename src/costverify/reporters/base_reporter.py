# src/costverify/reporters/base_reporter.py
"""
Defines the abstract base class for all reporters.
"""
from abc import ABC, abstractmethod
from typing import List

from ..models.comparison import ComparisonResult


class BaseReporter(ABC):
    @abstractmethod
    def report(self, results: List[ComparisonResult], show_diff: bool = False) -> None:
        """Presents comparison results in a specific format."""
