"""Core data types shared by the training loop components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .utils import utc_now


class ScenarioType(str, Enum):
    SIMPLE = "simple"
    MULTI_ITEM = "multi_item"
    PAYMENT = "payment"


class TransactionState(str, Enum):
    """State of the customer transaction the agent is expected to reach."""

    BUILDING = "building"
    ITEMS_PENDING = "items_pending"
    READY_FOR_PAYMENT = "ready_for_payment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Product:
    """Catalog product used to phrase realistic orders."""

    sku: str
    name: str
    price: Decimal
    category: str = ""


@dataclass
class ExpectedToolCall:
    tool_name: str
    expected_parameters: Dict[str, Any] = field(default_factory=dict)
    is_required: bool = True


@dataclass
class Interaction:
    """One scripted customer turn."""

    customer_input: str
    expected_tool_calls: List[ExpectedToolCall] = field(default_factory=list)
    expected_state: TransactionState = TransactionState.ITEMS_PENDING

    @property
    def is_required(self) -> bool:
        return any(call.is_required for call in self.expected_tool_calls)


@dataclass
class ExpectedLineItem:
    product_name: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class SuccessCriterion:
    criterion_type: str
    description: str
    is_critical: bool = True


@dataclass
class ExpectedOutcome:
    final_state: TransactionState = TransactionState.COMPLETED
    expected_items: List[ExpectedLineItem] = field(default_factory=list)
    expected_total: Decimal = Decimal("0")
    currency: str = "SGD"
    success_criteria: List[SuccessCriterion] = field(default_factory=list)

    @property
    def product_names(self) -> List[str]:
        return [item.product_name for item in self.expected_items]


@dataclass
class Scenario:
    """A scripted multi-turn customer interaction with its expected outcome."""

    scenario_id: str
    description: str
    scenario_type: ScenarioType
    interactions: List[Interaction]
    expected_outcome: ExpectedOutcome = field(default_factory=ExpectedOutcome)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InteractionResult:
    input: str
    response: str
    success: bool
    elapsed: float
    error: Optional[str] = None


@dataclass
class CompletionOutcome:
    """What happened when the customer signalled they were done."""

    attempted: bool = False
    completed: bool = False
    failed: bool = False
    payment_method: Optional[str] = None
    total: Optional[Decimal] = None
    phrases_tried: List[str] = field(default_factory=list)
    responses: List[str] = field(default_factory=list)


@dataclass
class ScenarioResult:
    scenario: Scenario
    interactions: List[InteractionResult] = field(default_factory=list)
    completion: CompletionOutcome = field(default_factory=CompletionOutcome)
    duration: float = 0.0
    stopped_early: bool = False
    timed_out: bool = False
    error: Optional[str] = None
    score: float = 0.0
    success: bool = False
    quality_metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def scenario_id(self) -> str:
        return self.scenario.scenario_id

    @property
    def last_input(self) -> str:
        return self.interactions[-1].input if self.interactions else ""

    @property
    def last_response(self) -> str:
        return self.interactions[-1].response if self.interactions else (self.error or "")

    def to_serializable(self) -> Dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "scenario_type": self.scenario.scenario_type.value,
            "description": self.scenario.description,
            "score": self.score,
            "success": self.success,
            "duration": self.duration,
            "stopped_early": self.stopped_early,
            "timed_out": self.timed_out,
            "error": self.error,
            "completion": {
                "attempted": self.completion.attempted,
                "completed": self.completion.completed,
                "failed": self.completion.failed,
                "payment_method": self.completion.payment_method,
                "total": str(self.completion.total) if self.completion.total is not None else None,
            },
            "interactions": [
                {
                    "input": item.input,
                    "response": item.response,
                    "success": item.success,
                    "elapsed": item.elapsed,
                    "error": item.error,
                }
                for item in self.interactions
            ],
            "quality_metrics": dict(self.quality_metrics),
        }


@dataclass
class GenerationResult:
    generation: int
    score: float
    improvement: float
    is_new_best: bool
    scenario_results: List[ScenarioResult]
    duration: timedelta
    prompt_variant: str
    change_summary: str = ""
    quality_metrics: Dict[str, float] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_serializable(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "timestamp": self.timestamp.isoformat(),
            "score": self.score,
            "improvement": self.improvement,
            "is_new_best": self.is_new_best,
            "duration_seconds": self.duration.total_seconds(),
            "change_summary": self.change_summary,
            "prompt_variant": self.prompt_variant,
            "quality_metrics": dict(self.quality_metrics),
            "scenarios": [result.to_serializable() for result in self.scenario_results],
        }


@dataclass
class TrainingResults:
    """Final aggregate of a training session."""

    session_id: str
    start_time: datetime
    end_time: datetime
    final_state: str
    generations_completed: int
    final_score: float
    best_score: float
    total_improvement: float
    optimized_prompt: str
    generation_history: List[GenerationResult] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)
    abort_reason: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def to_serializable(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_seconds": self.duration.total_seconds(),
            "final_state": self.final_state,
            "generations_completed": self.generations_completed,
            "final_score": self.final_score,
            "best_score": self.best_score,
            "total_improvement": self.total_improvement,
            "optimized_prompt": self.optimized_prompt,
            "metrics": dict(self.metrics),
            "abort_reason": self.abort_reason,
            "error_message": self.error_message,
            "generations": [
                {
                    "generation": item.generation,
                    "score": item.score,
                    "improvement": item.improvement,
                    "is_new_best": item.is_new_best,
                    "change_summary": item.change_summary,
                }
                for item in self.generation_history
            ],
        }


@dataclass
class OptimizationRecord:
    """History entry written whenever an improved prompt is persisted."""

    personality: str
    prompt_type: str
    original_prompt: str
    optimized_prompt: str
    score: float
    session_id: str
    timestamp: datetime = field(default_factory=utc_now)
    quality_metrics: Dict[str, float] = field(default_factory=dict)
    notes: Optional[str] = None
    record_id: str = field(default_factory=lambda: str(uuid4()))

    def to_serializable(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "personality": self.personality,
            "prompt_type": self.prompt_type,
            "original_prompt": self.original_prompt,
            "optimized_prompt": self.optimized_prompt,
            "score": self.score,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "quality_metrics": dict(self.quality_metrics),
            "notes": self.notes,
        }

    @classmethod
    def from_serializable(cls, data: Dict[str, Any]) -> OptimizationRecord:
        return cls(
            personality=data["personality"],
            prompt_type=data["prompt_type"],
            original_prompt=data.get("original_prompt", ""),
            optimized_prompt=data.get("optimized_prompt", ""),
            score=float(data.get("score", 0.0)),
            session_id=data.get("session_id", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            quality_metrics=dict(data.get("quality_metrics") or {}),
            notes=data.get("notes"),
            record_id=data.get("id") or str(uuid4()),
        )
