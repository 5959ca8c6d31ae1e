"""
Stability Aggregator
====================

Accepts an OCR value only when it was read repeatedly within one cycle.

A single OCR observation is easily wrong on glare, motion blur or a
half-lit segment. Every region of every buffered frame contributes one
observation; observations that agree on a value form a group, and the
best group wins only if it was seen at least ``threshold`` times.

Ranking:
    1. occurrence count, descending
    2. average confidence, descending

Design Rules:
    - Observations without a value are ignored
    - A group below the threshold is never returned, however confident
    - The aggregator holds no per-cycle state; counters are for metrics only
"""

import logging
from typing import Dict, Iterable, List, Optional

from counter_scan.models.readings import OcrObservation, StabilityGroup, StableReading


logger = logging.getLogger(__name__)


class StabilityAggregator:
    """
    Groups per-cycle observations and picks a stable value.

    Attributes:
        threshold: Minimum agreeing observations for acceptance

    Example:
        aggregator = StabilityAggregator(threshold=2)
        stable = aggregator.aggregate(observations)
        if stable is not None:
            print(stable.value, stable.confidence)
    """

    def __init__(self, threshold: int = 2) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")

        self.threshold = threshold

        self._cycle_count: int = 0
        self._stable_count: int = 0
        self._unstable_count: int = 0

        logger.info(f"StabilityAggregator initialized: threshold={threshold}")

    def group(self, observations: Iterable[OcrObservation]) -> List[StabilityGroup]:
        """
        Group observations by value, best group first.

        Args:
            observations: Observations of one cycle

        Returns:
            Groups sorted by (occurrence count, average confidence), descending
        """
        buckets: Dict[int, List[OcrObservation]] = {}
        for observation in observations:
            if observation.value is None:
                continue
            buckets.setdefault(observation.value, []).append(observation)

        groups = [
            StabilityGroup(value=value, observations=tuple(items))
            for value, items in buckets.items()
        ]
        groups.sort(
            key=lambda g: (g.occurrence_count, g.average_confidence),
            reverse=True,
        )
        return groups

    def aggregate(self, observations: Iterable[OcrObservation]) -> Optional[StableReading]:
        """
        Pick the stable value of a cycle.

        Args:
            observations: Observations of one cycle

        Returns:
            StableReading, or None if no group reaches the threshold
        """
        observations = list(observations)
        self._cycle_count += 1

        groups = self.group(observations)
        if not groups or groups[0].occurrence_count < self.threshold:
            self._unstable_count += 1
            logger.debug(
                f"No stable value: groups={groups[:3]}, threshold={self.threshold}"
            )
            return None

        winner = groups[0]
        self._stable_count += 1
        stable = StableReading(
            group=winner,
            best=winner.best(),
            total_observations=len(observations),
        )
        logger.debug(f"Stable value: {stable.to_dict()}")
        return stable

    def get_metrics(self) -> dict:
        """Get aggregator metrics for observability."""
        return {
            "threshold": self.threshold,
            "cycles": self._cycle_count,
            "stable": self._stable_count,
            "unstable": self._unstable_count,
        }
