"""Classify what went wrong in a generation's failed scenarios."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .config import AnalysisConfig, IndicatorConfig
from .types import Interaction, InteractionResult, ScenarioResult
from .utils import contains_any, contains_word


class FailureCategory(str, Enum):
    TOOL_CALL_ERRORS = "tool_call_errors"
    CONVERSATION_FLOW = "conversation_flow"
    ITEM_MISMATCH = "item_mismatch"
    PAYMENT_FLOW = "payment_flow"


@dataclass
class FailurePatterns:
    """Detected categories, each with a few representative examples."""

    max_examples: int = 3
    examples: Dict[FailureCategory, List[str]] = field(default_factory=dict)
    failed_scenarios: int = 0

    def add(self, category: FailureCategory, example: str) -> None:
        bucket = self.examples.setdefault(category, [])
        if len(bucket) < self.max_examples:
            bucket.append(example)

    def has(self, category: FailureCategory) -> bool:
        return bool(self.examples.get(category))

    @property
    def categories(self) -> List[FailureCategory]:
        return [category for category in FailureCategory if self.has(category)]

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def summary(self) -> str:
        if self.is_empty:
            return "no failure patterns detected"
        parts = [f"{category.value} ({len(self.examples[category])})" for category in self.categories]
        return ", ".join(parts)


class FailureAnalyzer:
    def __init__(
        self,
        analysis: Optional[AnalysisConfig] = None,
        indicators: Optional[IndicatorConfig] = None,
    ):
        self.analysis = analysis or AnalysisConfig()
        self.indicators = indicators or IndicatorConfig()

    def analyze(self, results: Iterable[ScenarioResult]) -> FailurePatterns:
        patterns = FailurePatterns(max_examples=self.analysis.max_examples)
        for result in results:
            if result.success:
                continue
            patterns.failed_scenarios += 1
            scripted = result.scenario.interactions
            for index, outcome in enumerate(result.interactions):
                interaction = scripted[index] if index < len(scripted) else None
                self._classify(patterns, result.scenario_id, interaction, outcome)
            if result.completion.failed:
                tried = ", ".join(result.completion.phrases_tried) or "no phrases"
                patterns.add(
                    FailureCategory.PAYMENT_FLOW,
                    f"{result.scenario_id}: checkout not completed after '{tried}'",
                )
        return patterns

    def _classify(
        self,
        patterns: FailurePatterns,
        scenario_id: str,
        interaction: Optional[Interaction],
        outcome: InteractionResult,
    ) -> None:
        example = f"{scenario_id}: '{outcome.input}' -> '{outcome.response[:160]}'"
        expects_tool = bool(interaction and interaction.expected_tool_calls)

        if expects_tool and contains_any(outcome.response, self.indicators.tool_failure):
            patterns.add(FailureCategory.TOOL_CALL_ERRORS, example)
        if not outcome.success:
            patterns.add(FailureCategory.CONVERSATION_FLOW, example)
        if self._is_item_mismatch(interaction, outcome):
            patterns.add(FailureCategory.ITEM_MISMATCH, example)
        if not outcome.success and contains_any(outcome.input, self.indicators.payment_input):
            patterns.add(FailureCategory.PAYMENT_FLOW, example)

    def _is_item_mismatch(self, interaction: Optional[Interaction], outcome: InteractionResult) -> bool:
        requested = [outcome.input]
        if interaction is not None:
            for call in interaction.expected_tool_calls:
                description = call.expected_parameters.get("item_description")
                if description:
                    requested.append(str(description))
        requested_text = " ".join(requested)

        for left, right in self.analysis.confusable_pairs:
            for wanted, confused in ((left, right), (right, left)):
                if (
                    contains_word(requested_text, wanted)
                    and not contains_word(requested_text, confused)
                    and contains_word(outcome.response, confused)
                ):
                    return True
        return False
