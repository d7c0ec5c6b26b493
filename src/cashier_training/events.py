"""Typed training events and a synchronous listener registry."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, DefaultDict, List, Optional, Type

from rich.console import Console


@dataclass(frozen=True)
class ProgressUpdated:
    generation: int
    scenario_index: int
    total_scenarios: int
    progress_fraction: float
    elapsed: timedelta
    estimated_remaining: timedelta
    current_score: float = 0.0
    best_score: float = 0.0


@dataclass(frozen=True)
class ScenarioTested:
    generation: int
    scenario_id: str
    input: str
    response: str
    score: float
    success: bool
    duration: float
    error: Optional[str] = None


@dataclass(frozen=True)
class GenerationComplete:
    generation: int
    score: float
    improvement: float
    is_new_best: bool
    best_score: float
    duration: timedelta = timedelta(0)
    change_summary: str = ""


@dataclass(frozen=True)
class TrainingComplete:
    """Emitted exactly once per session when it reaches a terminal state."""

    session_id: str
    final_state: str
    final_score: float
    best_score: float
    duration: timedelta
    generations_completed: int = 0
    total_improvement: float = 0.0
    abort_reason: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error_message or self.abort_reason


Handler = Callable[[Any], None]


class EventBus:
    """Delivers events to subscribers in subscription order on the publishing thread."""

    def __init__(self, *, console: Optional[Console] = None):
        self.console = console or Console()
        self._handlers: DefaultDict[type, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Any], handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``; returns a callable that unsubscribes it."""

        with self._lock:
            self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:  # noqa: BLE001
                self.console.log(
                    f"[red]Event handler for {type(event).__name__} raised: {exc}"
                )
