"""Heuristic scoring of scenario transcripts."""

from __future__ import annotations

from statistics import fmean
from typing import Dict, Iterable, List, Optional, Tuple

from .config import FocusWeightsConfig, IndicatorConfig, ScoringConfig
from .types import ScenarioResult
from .utils import clamp, contains_any

# focus weight -> per-scenario metric it emphasises
FOCUS_METRICS = {
    "tool_selection_accuracy": "interaction_success",
    "information_completeness": "item_match",
    "payment_flow_completion": "completion",
    "contextual_appropriateness": "item_added",
    "personality_authenticity": "error_free",
}


class ResponseScorer:
    """Scores scenarios from response text, expected items and the probe outcome.

    A scenario earns ``response_credit`` for any non-empty reply, a share of
    ``product_match_credit`` proportional to the expected products it names,
    ``item_added_credit`` for add-to-order language and ``completion_bonus``
    when checkout succeeded. An explicitly failed checkout costs
    ``completion_penalty`` and error or apology language costs
    ``error_penalty``. The total is clamped to [0, 1].
    """

    def __init__(
        self,
        scoring: Optional[ScoringConfig] = None,
        indicators: Optional[IndicatorConfig] = None,
    ):
        self.scoring = scoring or ScoringConfig()
        self.indicators = indicators or IndicatorConfig()

    def score_scenario(self, result: ScenarioResult) -> float:
        """Score ``result`` in place and return the score."""

        metrics = self._scenario_metrics(result)
        result.quality_metrics = metrics

        if result.timed_out:
            result.score = 0.0
            result.success = False
            return result.score

        cfg = self.scoring
        score = 0.0
        if metrics["responded"]:
            score += cfg.response_credit
        score += cfg.product_match_credit * metrics["item_match"]
        if metrics["item_added"]:
            score += cfg.item_added_credit
        if result.completion.completed:
            score += cfg.completion_bonus
        elif result.completion.failed:
            score -= cfg.completion_penalty
        if not metrics["error_free"]:
            score -= cfg.error_penalty

        result.score = clamp(score)
        result.success = result.score > cfg.success_threshold
        return result.score

    def _scenario_metrics(self, result: ScenarioResult) -> Dict[str, float]:
        responses = [item.response for item in result.interactions]
        text = "\n".join(responses).lower()
        expected = result.scenario.expected_outcome.product_names
        matched = sum(1 for name in expected if name.lower() in text)
        total_turns = len(result.interactions)
        successful_turns = sum(1 for item in result.interactions if item.success)

        return {
            "responded": 1.0 if any(response.strip() for response in responses) else 0.0,
            "item_match": matched / len(expected) if expected else 0.0,
            "item_added": 1.0 if contains_any(text, self.indicators.item_added) else 0.0,
            "completion": 1.0 if result.completion.completed else 0.0,
            "error_free": 0.0 if contains_any(text, self.indicators.error_language) else 1.0,
            "interaction_success": successful_turns / total_turns if total_turns else 0.0,
        }

    def score_generation(
        self,
        results: Iterable[ScenarioResult],
        focus_weights: Optional[FocusWeightsConfig] = None,
    ) -> Tuple[float, Dict[str, float]]:
        """Return the mean scenario score and aggregate quality metrics."""

        results = list(results)
        if not results:
            return 0.0, {}

        scores: List[float] = [result.score for result in results]
        metrics: Dict[str, float] = {
            "success_rate": fmean(1.0 if result.success else 0.0 for result in results),
            "completion_rate": fmean(1.0 if result.completion.completed else 0.0 for result in results),
            "timeout_rate": fmean(1.0 if result.timed_out else 0.0 for result in results),
            "average_duration": fmean(result.duration for result in results),
        }
        for key in ("item_match", "item_added", "error_free", "interaction_success"):
            metrics[key] = fmean(result.quality_metrics.get(key, 0.0) for result in results)
        metrics["completion"] = metrics["completion_rate"]

        weights = (focus_weights or FocusWeightsConfig()).as_dict()
        weight_total = sum(weights.values())
        if weight_total > 0:
            metrics["focus_weighted"] = sum(
                weights[name] * metrics[metric] for name, metric in FOCUS_METRICS.items()
            ) / weight_total
        return fmean(scores), metrics
