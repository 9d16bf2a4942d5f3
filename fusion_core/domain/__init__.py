"""
Domain Module: Orchestration of the fusion core.

Key classes:
- LocationEngine: Lifecycle, input multiplexing, timers, output channels
- EngineStatus: Lifecycle status
- EngineMetrics: Diagnostic snapshot
"""

from .location_engine import EngineMetrics, EngineStatus, LocationEngine

__all__ = [
    'EngineMetrics',
    'EngineStatus',
    'LocationEngine',
]
