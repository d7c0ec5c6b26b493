"""Session lifecycle types: states, statistics snapshots and cancellation."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class InvalidStateError(RuntimeError):
    """Raised when a lifecycle operation is not allowed in the current state."""


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED, SessionState.FAILED)


@dataclass
class TrainingStatistics:
    """Running statistics; callers only ever see copies."""

    current_generation: int = 0
    total_generations: int = 0
    scenarios_completed: int = 0
    total_scenarios: int = 0
    current_score: float = 0.0
    best_score: float = 0.0
    improvement: float = 0.0
    elapsed_time: timedelta = timedelta(0)
    estimated_remaining: timedelta = timedelta(0)
    consecutive_failures: int = 0
    consecutive_improvements: int = 0

    @property
    def generation_progress(self) -> float:
        if self.total_scenarios <= 0:
            return 0.0
        return min(1.0, self.scenarios_completed / self.total_scenarios)

    @property
    def overall_progress(self) -> float:
        if self.total_generations <= 0:
            return 0.0
        completed = max(0, self.current_generation - 1) + self.generation_progress
        return min(1.0, completed / self.total_generations)

    def snapshot(self) -> TrainingStatistics:
        return replace(self)


@dataclass
class TrainingSession:
    session_id: str = ""
    state: SessionState = SessionState.NOT_STARTED
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    paused_at: Optional[float] = None
    paused_total: timedelta = timedelta(0)
    abort_reason: Optional[str] = None
    error_message: Optional[str] = None
    statistics: Optional[TrainingStatistics] = None

    def snapshot(self) -> TrainingSession:
        copy = replace(self)
        if self.statistics is not None:
            copy.statistics = self.statistics.snapshot()
        return copy


class CancellationScope:
    """Cooperative cancellation linked to an optional caller-owned event.

    The scope reports cancellation when either it was cancelled directly (by
    ``abort``) or the caller's event has been set.
    """

    def __init__(self, parent: Optional[threading.Event] = None, *, poll_interval: float = 0.05):
        self._own = threading.Event()
        self._parent = parent
        self._poll_interval = poll_interval

    @property
    def cancelled(self) -> bool:
        return self._own.is_set() or (self._parent is not None and self._parent.is_set())

    def cancel(self) -> None:
        self._own.set()

    def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancellation cut the wait short."""

        deadline = time.monotonic() + max(0.0, seconds)
        while True:
            if self.cancelled:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._own.wait(min(remaining, self._poll_interval))
