"""
Coordinator package.

Runs fetch units concurrently under a shared deadline and collects their
outcomes.
"""

from finfetch.coordinator.orchestrator import Orchestrator, RunStats

__all__ = [
    "Orchestrator",
    "RunStats",
]
