"""
CryptoVIX Orchestration Module

Periodic worker that runs aggregation cycles and stores readings.
"""

from cryptovix.orchestration.worker import CycleReport, IndexWorker, build_worker

__all__ = ["CycleReport", "IndexWorker", "build_worker"]
