"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cashier_training.config import (
    ProbeConfig,
    ScenarioMixConfig,
    TrainingConfiguration,
    TrainingRunConfig,
    load_config,
)


def test_scenario_mix_must_sum_to_one() -> None:
    with pytest.raises(ValidationError):
        ScenarioMixConfig(simple=0.5, multi_item=0.5, payment=0.5)

    mix = ScenarioMixConfig(simple=0.3334, multi_item=0.3333, payment=0.3333)
    assert mix.as_dict()["simple"] == pytest.approx(0.3334)


def test_training_configuration_is_immutable() -> None:
    config = TrainingConfiguration()

    with pytest.raises(ValidationError):
        config.max_generations = 10


def test_training_configuration_rejects_out_of_range_focus_weight() -> None:
    with pytest.raises(ValidationError):
        TrainingConfiguration(focus_weights={"tool_selection_accuracy": 1.5})


def test_warnings_flag_budget_below_early_stop_minimum() -> None:
    config = TrainingConfiguration(max_generations=2, improvement_threshold=0.001)

    notes = config.warnings()

    assert any("early stopping can never trigger" in note for note in notes)
    assert any("improvement threshold" in note for note in notes)


def test_probe_requires_phrases() -> None:
    with pytest.raises(ValidationError):
        ProbeConfig(completion_phrases=["  "])


def test_run_config_rejects_two_agent_sources() -> None:
    with pytest.raises(ValidationError):
        TrainingRunConfig(
            run_name="x",
            agent={"model": "m"},
            agent_factory="some.module:factory",
        )


def test_load_config_expands_agent_preset(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text(
        "\n".join(
            [
                "run_name: demo",
                "training:",
                "  max_generations: 3",
                "  scenario_count: 2",
                "  scenario_mix: {simple: 0.5, multi_item: 0.25, payment: 0.25}",
                "agent_presets:",
                "  small:",
                "    model: tiny-model",
                "    temperature: 0.1",
                "    request_overrides: {top_p: 0.9}",
                "agent:",
                "  preset: small",
                "  temperature: 0.5",
                "  request_overrides: {seed: 3}",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.training.max_generations == 3
    assert config.training.scenario_mix.payment == pytest.approx(0.25)
    assert config.agent is not None
    assert config.agent.model == "tiny-model"
    assert config.agent.temperature == pytest.approx(0.5)
    assert config.agent.request_overrides == {"top_p": 0.9, "seed": 3}


def test_load_config_unknown_preset_fails(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text("run_name: demo\nagent:\n  preset: missing\n", encoding="utf-8")

    with pytest.raises(ValueError, match="unknown preset"):
        load_config(path)
