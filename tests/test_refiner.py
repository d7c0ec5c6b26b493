"""Tests for in-place prompt refinement."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from cashier_training.analysis import FailureCategory, FailurePatterns
from cashier_training.config import FocusWeightsConfig
from cashier_training.refiner import (
    DISAMBIGUATION,
    NO_CHANGES,
    PromptRefiner,
    RefinementRule,
)

SAMPLE_PROMPT = (
    Path(__file__).resolve().parents[1] / "prompts" / "SingaporeanKopitiamUncle" / "ordering.md"
).read_text(encoding="utf-8")


def _patterns(*categories: FailureCategory) -> FailurePatterns:
    patterns = FailurePatterns()
    for category in categories:
        patterns.add(category, f"example for {category.value}")
    return patterns


def _refiner() -> PromptRefiner:
    return PromptRefiner(console=Console(quiet=True))


def test_tool_failures_strengthen_tool_line_in_place() -> None:
    refinement = _refiner().refine(SAMPLE_PROMPT, _patterns(FailureCategory.TOOL_CALL_ERRORS), generation=2)

    assert refinement.changed
    assert refinement.categories == [FailureCategory.TOOL_CALL_ERRORS]
    assert "tool_usage" in refinement.summary
    tool_line = next(line for line in refinement.template.splitlines() if "add_item_to_transaction" in line)
    assert "Call the tool first" in tool_line
    assert "Never say an item was added unless the tool call succeeded." in tool_line
    assert len(refinement.template.splitlines()) == len(SAMPLE_PROMPT.splitlines())


def test_refinement_is_idempotent_for_same_failures() -> None:
    refiner = _refiner()
    patterns = _patterns(FailureCategory.TOOL_CALL_ERRORS)

    once = refiner.refine(SAMPLE_PROMPT, patterns, generation=2)
    twice = refiner.refine(once.template, patterns, generation=3)

    assert twice.template == once.template
    assert not twice.changed
    assert twice.summary == NO_CHANGES


def test_cold_start_applies_one_generic_step_per_generation() -> None:
    refiner = _refiner()

    gen2 = refiner.refine(SAMPLE_PROMPT, FailurePatterns(), generation=2)
    gen3 = refiner.refine(gen2.template, FailurePatterns(), generation=3)
    gen4 = refiner.refine(gen3.template, None, generation=4)

    assert gen2.summary.startswith("tool_usage:")
    assert gen3.summary.startswith("acknowledgement:")
    assert gen4.summary.startswith("payment_prompt:")
    assert "ask how they would like to pay" in gen4.template
    assert len(gen4.template.splitlines()) == len(SAMPLE_PROMPT.splitlines())


def test_unmatched_template_reports_no_changes() -> None:
    refinement = _refiner().refine("Hello there.", FailurePatterns(), generation=2)

    assert refinement.template == "Hello there."
    assert refinement.summary == NO_CHANGES
    assert not refinement.used_fallback


def test_zero_focus_weight_skips_category() -> None:
    weights = FocusWeightsConfig(tool_selection_accuracy=0.0)
    patterns = _patterns(FailureCategory.TOOL_CALL_ERRORS, FailureCategory.PAYMENT_FLOW)

    refinement = _refiner().refine(SAMPLE_PROMPT, patterns, generation=2, focus_weights=weights)

    assert refinement.categories == [FailureCategory.PAYMENT_FLOW]
    assert "Call the tool first" not in refinement.template
    assert "state the total and ask how they would like to pay" in refinement.template


def test_categories_are_ordered_by_focus_weight() -> None:
    weights = FocusWeightsConfig(information_completeness=0.3, payment_flow_completion=0.9)
    patterns = _patterns(FailureCategory.ITEM_MISMATCH, FailureCategory.PAYMENT_FLOW)

    refinement = _refiner().refine(SAMPLE_PROMPT, patterns, generation=2, focus_weights=weights)

    assert refinement.categories == [FailureCategory.PAYMENT_FLOW, FailureCategory.ITEM_MISMATCH]
    assert refinement.summary.startswith("payment_prompt:")


def test_rule_hardens_soft_wording() -> None:
    rewritten, matched = DISAMBIGUATION.apply("If unsure, you should try to ask a question")

    assert matched == "If unsure, you should try to ask a question"
    assert rewritten.startswith("If unsure, you must ask a question. When several products could match")


def test_rule_failure_falls_back_to_focus_note(monkeypatch) -> None:
    def _boom(self, template):
        raise RuntimeError("bad rule")

    monkeypatch.setattr(RefinementRule, "apply", _boom)

    refinement = _refiner().refine(SAMPLE_PROMPT, _patterns(FailureCategory.PAYMENT_FLOW), generation=5)

    assert refinement.used_fallback
    assert refinement.template.startswith(SAMPLE_PROMPT.rstrip())
    assert "## TRAINING FOCUS (generation 5)" in refinement.template
    assert "- Focus on: payment_flow" in refinement.template
