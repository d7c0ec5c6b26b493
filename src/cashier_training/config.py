"""Configuration models for cashier prompt-training runs."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import deep_merge_dict

MIX_TOLERANCE = 0.001


class ScenarioMixConfig(BaseModel):
    """Proportions of each scenario type in a generation's batch."""

    model_config = ConfigDict(frozen=True)

    simple: float = Field(0.4, ge=0.0, le=1.0, description="Share of single-item orders.")
    multi_item: float = Field(0.3, ge=0.0, le=1.0, description="Share of multi-item orders.")
    payment: float = Field(0.3, ge=0.0, le=1.0, description="Share of payment-flow scenarios.")

    @model_validator(mode="after")
    def _check_total(self) -> ScenarioMixConfig:
        total = self.simple + self.multi_item + self.payment
        if abs(total - 1.0) > MIX_TOLERANCE:
            raise ValueError(f"Scenario mix proportions must sum to 1.0 (got {total:.3f}).")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {"simple": self.simple, "multi_item": self.multi_item, "payment": self.payment}


class FocusWeightsConfig(BaseModel):
    """Relative importance of each behaviour the refiner targets."""

    model_config = ConfigDict(frozen=True)

    tool_selection_accuracy: float = Field(1.0, ge=0.0, le=1.0)
    personality_authenticity: float = Field(0.8, ge=0.0, le=1.0)
    contextual_appropriateness: float = Field(0.9, ge=0.0, le=1.0)
    information_completeness: float = Field(0.85, ge=0.0, le=1.0)
    payment_flow_completion: float = Field(1.0, ge=0.0, le=1.0)

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump()


class TrainingConfiguration(BaseModel):
    """Knobs for the generation loop. Frozen so a running session cannot be altered."""

    model_config = ConfigDict(frozen=True)

    max_generations: int = Field(5, ge=1, le=1000, description="Generation budget.")
    scenario_count: int = Field(10, ge=1, le=10_000, description="Scenarios per generation.")
    improvement_threshold: float = Field(
        0.02,
        ge=0.0,
        le=1.0,
        description="Cumulative improvement over the baseline required for early stop.",
    )
    scenario_timeout_seconds: int = Field(
        60, gt=0, description="Upper bound on one scenario including the completion probe."
    )
    scenario_mix: ScenarioMixConfig = ScenarioMixConfig()
    focus_weights: FocusWeightsConfig = FocusWeightsConfig()
    convergence_score: float = Field(
        0.85,
        ge=0.0,
        le=1.0,
        description="Best score that must be exceeded before the loop may stop early.",
    )
    min_generations_before_stop: int = Field(3, ge=1)
    inter_scenario_delay_seconds: float = Field(
        0.2, ge=0.0, description="Pause between scenarios to rate-limit the agent backend."
    )
    pause_poll_interval_seconds: float = Field(
        0.1, gt=0.0, description="Upper bound on a single wait while the session is paused."
    )
    seed: Optional[int] = Field(None, description="Seed for reproducible scenario sampling.")

    def warnings(self) -> List[str]:
        """Return non-fatal observations about questionable settings."""

        notes: List[str] = []
        if self.max_generations > 50:
            notes.append("High generation count may lead to long training times.")
        if self.scenario_count > 1000:
            notes.append("Large scenario count will increase training duration significantly.")
        if self.improvement_threshold < 0.01:
            notes.append("Very small improvement threshold may keep training running to the budget.")
        if self.max_generations < self.min_generations_before_stop:
            notes.append(
                "Generation budget is below the early-stop minimum; early stopping can never trigger."
            )
        return notes


class IndicatorConfig(BaseModel):
    """Substring indicator lists, keyed by the category they classify."""

    payment_request: List[str] = Field(
        default_factory=lambda: [
            "payment method",
            "how to pay",
            "how would you like to pay",
            "how you want to pay",
            "cash or card",
            "paynow",
            "nets",
            "pay by",
        ]
    )
    payment_success: List[str] = Field(
        default_factory=lambda: ["payment processed", "receipt", "change", "thank you", "paid"]
    )
    item_added: List[str] = Field(default_factory=lambda: ["i've added", "added", "adding:"])
    error_language: List[str] = Field(
        default_factory=lambda: ["error", "sorry", "i don't", "failed"],
        description="Apology or error phrasing penalised by the scorer.",
    )
    tool_failure: List[str] = Field(
        default_factory=lambda: ["error", "failed", "unable to", "cannot", "can't", "not found"],
        description="Failure phrasing that marks a tool-call error during analysis.",
    )
    agent_error: List[str] = Field(
        default_factory=lambda: ["error:", "[no response]"],
        description="Prefixes of error-shaped responses that mark an interaction as failed.",
    )
    payment_input: List[str] = Field(
        default_factory=lambda: ["pay", "payment", "cash", "card", "paynow", "nets"],
        description="Customer phrasing that marks an interaction as payment related.",
    )


class ProbeConfig(BaseModel):
    """Phrases used by the completion probe after the scripted interactions."""

    completion_phrases: List[str] = Field(
        default_factory=lambda: ["that's all", "that's it, I'm done", "habis", "sudah, finish already"]
    )
    payment_methods: List[str] = Field(default_factory=lambda: ["cash", "card", "paynow", "nets"])

    @field_validator("completion_phrases", "payment_methods")
    @classmethod
    def _validate_non_empty(cls, values: List[str]) -> List[str]:
        cleaned = [value for value in values if value and value.strip()]
        if not cleaned:
            raise ValueError("Probe phrase lists require at least one entry.")
        return cleaned


class ScoringConfig(BaseModel):
    """Credits and penalties composing a scenario score."""

    response_credit: float = Field(0.2, ge=0.0, le=1.0)
    product_match_credit: float = Field(0.25, ge=0.0, le=1.0)
    item_added_credit: float = Field(0.15, ge=0.0, le=1.0)
    completion_bonus: float = Field(0.4, ge=0.0, le=1.0)
    completion_penalty: float = Field(0.1, ge=0.0, le=1.0)
    error_penalty: float = Field(0.2, ge=0.0, le=1.0)
    success_threshold: float = Field(0.6, ge=0.0, le=1.0)


class AnalysisConfig(BaseModel):
    """Failure-analysis settings."""

    max_examples: int = Field(3, ge=1, description="Examples kept per failure category.")
    confusable_pairs: List[List[str]] = Field(
        default_factory=lambda: [
            ["roti kaya", "roti john"],
            ["kaya toast", "roti john"],
            ["kopi o", "kopi c"],
            ["teh o", "teh c"],
            ["teh", "kopi"],
        ],
        description="Product terms the agent is known to confuse with each other.",
    )

    @field_validator("confusable_pairs")
    @classmethod
    def _validate_pairs(cls, pairs: List[List[str]]) -> List[List[str]]:
        for pair in pairs:
            if len(pair) != 2:
                raise ValueError(f"Confusable pair {pair!r} must contain exactly two terms.")
        return [[left.lower(), right.lower()] for left, right in pairs]


class PromptStoreConfig(BaseModel):
    """Location and identity of the prompt under optimization."""

    root_dir: Path = Field(Path("prompts"), description="Directory holding personality prompt folders.")
    personality: str = Field("SingaporeanKopitiamUncle")
    prompt_type: str = Field("ordering")
    keep_backups: bool = True


class AgentEndpointConfig(BaseModel):
    """Chat-completions endpoint driving the cashier agent."""

    name: str = Field("default", description="Identifier used in log messages.")
    provider: str = Field("openai", description="API provider identifier.")
    model: str = Field(..., description="Model name or deployment identifier.")
    api_key_env: str = Field("CASHIER_AGENT_API_KEY", description="Environment variable with the API key.")
    base_url: Optional[str] = None
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    max_output_tokens: int = Field(512, gt=0)
    request_timeout: float = Field(30.0, gt=0.0)
    retry_attempts: int = Field(3, ge=0)
    completion_path: str = "/chat/completions"
    request_overrides: Dict[str, Any] = Field(default_factory=dict)
    extra_headers: Dict[str, str] = Field(default_factory=dict)


class OutputConfig(BaseModel):
    """Where per-generation results are written."""

    base_dir: Path = Field(Path("data/training_runs"))
    format: str = Field("jsonl", description="Output format: jsonl or parquet.")
    shard_size: int = Field(50, gt=0)
    save_intermediate_results: bool = True

    @field_validator("format")
    @classmethod
    def _validate_format(cls, value: str) -> str:
        allowed = {"jsonl", "parquet"}
        if value not in allowed:
            raise ValueError(f"Unsupported output format '{value}', choose {allowed}.")
        return value


class TrainingRunConfig(BaseModel):
    """Top-level configuration for a training run."""

    run_name: str = Field(..., description="Human readable identifier for this run.")
    training: TrainingConfiguration = TrainingConfiguration()
    indicators: IndicatorConfig = IndicatorConfig()
    probe: ProbeConfig = ProbeConfig()
    scoring: ScoringConfig = ScoringConfig()
    analysis: AnalysisConfig = AnalysisConfig()
    prompt_store: PromptStoreConfig = PromptStoreConfig()
    output: OutputConfig = OutputConfig()
    agent: Optional[AgentEndpointConfig] = None
    agent_factory: Optional[str] = Field(
        None,
        description="Python path 'module:attr' to a callable building an agent from a prompt template.",
    )
    catalog_path: Optional[Path] = Field(None, description="Optional YAML/JSONL product catalog.")
    builder_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Scenario type -> 'module:attr' builder class replacing the bundled builder.",
    )
    agent_presets: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Reusable agent endpoint snippets referenced via the 'preset' key.",
    )

    @model_validator(mode="after")
    def _check_agent_source(self) -> TrainingRunConfig:
        if self.agent is not None and self.agent_factory is not None:
            raise ValueError("Configure either 'agent' or 'agent_factory', not both.")
        return self

    @field_validator("builder_overrides")
    @classmethod
    def _validate_overrides(cls, overrides: Dict[str, str]) -> Dict[str, str]:
        known = {"simple", "multi_item", "payment"}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown scenario types in builder_overrides: {sorted(unknown)}.")
        return overrides


def load_config(path: Path | str) -> TrainingRunConfig:
    """Load configuration from a YAML file."""

    config_path = Path(path)
    with config_path.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp)
    processed = _apply_agent_presets(raw)
    return TrainingRunConfig.model_validate(processed)


def _apply_agent_presets(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Expand a preset reference inside the agent endpoint block."""

    if not isinstance(raw, dict):
        return raw

    agent = raw.get("agent")
    if not isinstance(agent, dict):
        return raw

    agent_data = dict(agent)
    preset_name = agent_data.pop("preset", None)
    if not preset_name:
        return raw

    presets = raw.get("agent_presets") or {}
    preset = presets.get(preset_name)
    if preset is None:
        raise ValueError(f"Agent configuration references unknown preset '{preset_name}'.")
    raw["agent"] = deep_merge_dict(preset, agent_data)
    return raw
