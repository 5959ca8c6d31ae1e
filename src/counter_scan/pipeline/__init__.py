"""
Pipeline Module
===============

Orchestration of one recognition cycle.

Components:
    - ScanOrchestrator: Admission control, cooldowns, lifecycle
    - ScanCycleGraph: LangGraph state machine for the cycle
    - FusionPolicy: Deterministic counter source selection
"""

from counter_scan.pipeline.fusion import FusionDecision, FusionPolicy
from counter_scan.pipeline.graph import ScanCycleGraph, ScanCycleState
from counter_scan.pipeline.orchestrator import ScanOrchestrator

__all__ = [
    "ScanOrchestrator",
    "ScanCycleGraph",
    "ScanCycleState",
    "FusionPolicy",
    "FusionDecision",
]
