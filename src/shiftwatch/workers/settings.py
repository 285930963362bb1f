"""arq worker settings module.

Import path for arq CLI: arq shiftwatch.workers.settings.WorkerSettings
"""

from __future__ import annotations

from shiftwatch.workers.outbox_worker import OutboxWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
