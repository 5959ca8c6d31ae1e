"""
Reason Codes
============

Fixed set of machine-readable reason codes for scan outcomes.

Every outcome carries exactly ONE reason code, so callers can tell
"nothing this cycle" apart from "a reading with low confidence" without
inspecting values.
"""

from enum import Enum


class ReasonCode(str, Enum):
    """
    Machine-readable outcome explanation codes.

    Attributes:
        COUNTER_READ: A counter value was fused (from ocr, vision or code)
        CODE_ONLY: A code was decoded but no counter value was trusted
        NO_SIGNAL: Neither a code nor a stable counter was found
        COOLDOWN_ACTIVE: Trigger declined, target is inside its cooldown
        CYCLE_IN_FLIGHT: Trigger declined, another cycle is running
        SCANNER_STOPPED: Trigger declined, orchestrator was stopped
    """

    # Completed cycles
    COUNTER_READ = "COUNTER_READ"
    CODE_ONLY = "CODE_ONLY"

    # Completed cycle, nothing trusted
    NO_SIGNAL = "NO_SIGNAL"

    # Declined triggers
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    CYCLE_IN_FLIGHT = "CYCLE_IN_FLIGHT"
    SCANNER_STOPPED = "SCANNER_STOPPED"
