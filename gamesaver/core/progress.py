"""Backup progress events and their in-process subscriber registry."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from loguru import logger


class ProgressStage(StrEnum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BackupProgress:
    """One progress update for a running backup."""

    stage: ProgressStage
    game_id: str
    reason: str
    total_files: int
    completed_files: int
    total_bytes: int
    copied_bytes: int
    snapshot_id: str | None = None
    error: str = ""

    @property
    def percent(self) -> int:
        if self.total_bytes > 0:
            return min(100, round(self.copied_bytes * 100 / self.total_bytes))
        if self.total_files > 0:
            return min(100, round(self.completed_files * 100 / self.total_files))
        return 0


ProgressListener = Callable[[BackupProgress], None]


class ProgressHub:
    """
    Synchronous publish/subscribe channel for backup progress.

    Listeners run on the emitting thread and must return quickly;
    there is no buffering or back-pressure.
    """

    def __init__(self) -> None:
        self._listeners: list[ProgressListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: BackupProgress) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Progress listener failed on {event.stage} event")
