"""
Signals Module
==============

Temporal consolidation of per-frame OCR observations.

Components:
    - StabilityAggregator: Accepts a value only after repeated agreement
"""

from counter_scan.signals.stability import StabilityAggregator

__all__ = [
    "StabilityAggregator",
]
