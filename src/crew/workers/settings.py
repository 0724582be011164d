"""arq worker settings module.

Import path for arq CLI: arq crew.workers.settings.WorkerSettings
"""

from __future__ import annotations

from crew.crew_score.worker import CrewScoreWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
