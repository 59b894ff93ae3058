"""Background credit analysis agent.

Consumes queued analysis jobs from SQLite and runs them through the pipeline.
"""

from __future__ import annotations

from typing import Any


def __getattr__(name: str) -> Any:
    if name == "AnalysisQueueWorker":
        from .worker import AnalysisQueueWorker as loaded_worker

        return loaded_worker
    raise AttributeError(name)


__all__ = ["AnalysisQueueWorker"]
