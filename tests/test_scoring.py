"""Tests for response scoring."""

from __future__ import annotations

from decimal import Decimal

import pytest

from cashier_training.config import FocusWeightsConfig, ScoringConfig
from cashier_training.scoring import ResponseScorer
from cashier_training.types import (
    CompletionOutcome,
    ExpectedLineItem,
    ExpectedOutcome,
    InteractionResult,
    Scenario,
    ScenarioResult,
    ScenarioType,
)

SCORING = ScoringConfig()


def _result(*responses: str, completion: CompletionOutcome = None, products=("Kopi C",)) -> ScenarioResult:
    scenario = Scenario(
        scenario_id="s-1",
        description="test",
        scenario_type=ScenarioType.SIMPLE,
        interactions=[],
        expected_outcome=ExpectedOutcome(
            expected_items=[ExpectedLineItem(name, 1, Decimal("1.40")) for name in products]
        ),
    )
    return ScenarioResult(
        scenario=scenario,
        interactions=[InteractionResult(f"in-{i}", text, True, 0.1) for i, text in enumerate(responses)],
        completion=completion or CompletionOutcome(),
    )


def test_product_name_and_added_language_both_earn_credit() -> None:
    scorer = ResponseScorer(SCORING)
    result = _result("OK lah, I've added KOPI C to your order.")

    score = scorer.score_scenario(result)

    expected = SCORING.response_credit + SCORING.product_match_credit + SCORING.item_added_credit
    assert score == pytest.approx(expected)
    assert result.quality_metrics["item_match"] == 1.0
    assert result.quality_metrics["item_added"] == 1.0


def test_product_credit_is_proportional_to_expected_items_mentioned() -> None:
    scorer = ResponseScorer(SCORING)
    result = _result("Kopi C coming", products=("Kopi C", "Kaya Toast"))

    score = scorer.score_scenario(result)

    assert score == pytest.approx(SCORING.response_credit + SCORING.product_match_credit / 2)


def test_exhausted_probe_costs_exactly_the_completion_penalty() -> None:
    scorer = ResponseScorer(SCORING)
    untried = _result("Ok, anything else?")
    exhausted = _result(
        "Ok, anything else?",
        completion=CompletionOutcome(attempted=True, completed=False, failed=True),
    )

    baseline = scorer.score_scenario(untried)
    penalised = scorer.score_scenario(exhausted)

    assert baseline - penalised == pytest.approx(SCORING.completion_penalty)
    assert penalised == pytest.approx(SCORING.response_credit - SCORING.completion_penalty)


def test_completed_checkout_passes_success_threshold() -> None:
    scorer = ResponseScorer(SCORING)
    result = _result(
        "I've added Kopi C",
        completion=CompletionOutcome(attempted=True, completed=True, payment_method="cash"),
    )

    score = scorer.score_scenario(result)

    assert score == pytest.approx(1.0)
    assert result.success is True


def test_error_language_is_penalised_and_score_is_clamped() -> None:
    scorer = ResponseScorer(SCORING)
    result = _result(
        "Sorry, I don't know that item",
        completion=CompletionOutcome(attempted=True, failed=True),
    )

    score = scorer.score_scenario(result)

    assert score == 0.0
    assert result.quality_metrics["error_free"] == 0.0
    assert result.success is False


def test_timed_out_scenario_scores_zero() -> None:
    scorer = ResponseScorer(SCORING)
    result = _result("I've added Kopi C")
    result.timed_out = True

    assert scorer.score_scenario(result) == 0.0
    assert result.success is False


def test_success_requires_score_strictly_above_threshold() -> None:
    scoring = ScoringConfig(
        response_credit=0.5,
        product_match_credit=0.25,
        item_added_credit=0.0,
        success_threshold=0.75,
    )
    scorer = ResponseScorer(scoring)
    result = _result("I've added Kopi C")

    score = scorer.score_scenario(result)

    assert score == 0.75
    assert result.success is False


def test_generation_score_is_mean_with_focus_weighted_metric() -> None:
    scorer = ResponseScorer(SCORING)
    results = [
        _result("I've added Kopi C", completion=CompletionOutcome(attempted=True, completed=True)),
        _result(""),
    ]
    for result in results:
        scorer.score_scenario(result)

    score, metrics = scorer.score_generation(results, FocusWeightsConfig())

    assert score == pytest.approx(0.5)
    assert metrics["completion_rate"] == pytest.approx(0.5)
    assert metrics["success_rate"] == pytest.approx(0.5)
    assert 0.0 < metrics["focus_weighted"] < 1.0


def test_empty_generation_scores_zero() -> None:
    assert ResponseScorer(SCORING).score_generation([]) == (0.0, {})
