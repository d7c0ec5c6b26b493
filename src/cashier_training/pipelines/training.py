"""Training session controller: lifecycle state machine and the generation loop."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from statistics import fmean
from typing import Dict, List, Optional
from uuid import uuid4

from rich.console import Console

from ..agent import AgentFactory, chat_completion_agent_factory
from ..analysis import FailureAnalyzer, FailurePatterns
from ..catalog import Catalog, default_catalog, load_catalog
from ..config import (
    AnalysisConfig,
    IndicatorConfig,
    OutputConfig,
    ProbeConfig,
    ScoringConfig,
    TrainingConfiguration,
    TrainingRunConfig,
)
from ..events import EventBus, GenerationComplete, ProgressUpdated, ScenarioTested, TrainingComplete
from ..executor import ScenarioExecutor
from ..generators import ScenarioGenerator
from ..prompt_store import (
    FilePromptStore,
    PromptContext,
    PromptStore,
    inject_context,
    strip_context_sections,
)
from ..refiner import PromptRefiner
from ..scoring import ResponseScorer
from ..session import (
    CancellationScope,
    InvalidStateError,
    SessionState,
    TrainingSession,
    TrainingStatistics,
)
from ..storage import ResultsWriter
from ..types import GenerationResult, ScenarioResult, TrainingResults
from ..utils import import_from_path, utc_now


class _SessionCancelled(Exception):
    """Internal signal raised at a checkpoint once the session is cancelled."""


class TrainingSessionController:
    """Runs one prompt-optimization session for a personality/prompt type.

    ``start`` blocks the calling thread until the session reaches a terminal
    state. ``pause``, ``resume`` and ``abort`` may be called from any other
    thread (or from event handlers). Every terminal state publishes exactly one
    :class:`TrainingComplete` event.
    """

    def __init__(
        self,
        *,
        prompt_store: PromptStore,
        personality: str,
        prompt_type: str,
        agent_factory: Optional[AgentFactory] = None,
        catalog: Optional[Catalog] = None,
        indicators: Optional[IndicatorConfig] = None,
        probe: Optional[ProbeConfig] = None,
        scoring: Optional[ScoringConfig] = None,
        analysis: Optional[AnalysisConfig] = None,
        generator: Optional[ScenarioGenerator] = None,
        executor: Optional[ScenarioExecutor] = None,
        scorer: Optional[ResponseScorer] = None,
        analyzer: Optional[FailureAnalyzer] = None,
        refiner: Optional[PromptRefiner] = None,
        output: Optional[OutputConfig] = None,
        context: Optional[PromptContext] = None,
        builder_overrides: Optional[Dict[str, str]] = None,
        console: Optional[Console] = None,
    ):
        if agent_factory is None and executor is None:
            raise ValueError("Either an agent factory or a scenario executor is required.")

        self.prompt_store = prompt_store
        self.personality = personality
        self.prompt_type = prompt_type
        self.agent_factory = agent_factory
        self.catalog = catalog
        self.indicators = indicators or IndicatorConfig()
        self.probe = probe or ProbeConfig()
        self.output = output
        self.context = context
        self.builder_overrides = dict(builder_overrides or {})
        self.console = console or Console()
        self.events = EventBus(console=self.console)

        self.scorer = scorer or ResponseScorer(scoring, self.indicators)
        self.analyzer = analyzer or FailureAnalyzer(analysis, self.indicators)
        self.refiner = refiner or PromptRefiner(console=self.console)
        self._generator = generator
        self._executor = executor

        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._session = TrainingSession()
        self._stats = TrainingStatistics()
        self._scope: Optional[CancellationScope] = None
        self._config: Optional[TrainingConfiguration] = None
        self._started_monotonic: Optional[float] = None
        self._ended_monotonic: Optional[float] = None

        self._history: List[GenerationResult] = []
        self._best_score = 0.0
        self._best_prompt = ""
        self._baseline_score = 0.0
        self._last_score = 0.0
        self._total_improvement = 0.0
        self._prompts_persisted = 0
        self._last_patterns: Optional[FailurePatterns] = None

    @classmethod
    def from_config(
        cls,
        config: TrainingRunConfig,
        *,
        agent_factory: Optional[AgentFactory] = None,
        catalog: Optional[Catalog] = None,
        context: Optional[PromptContext] = None,
        console: Optional[Console] = None,
    ) -> TrainingSessionController:
        """Wire the bundled collaborators from a loaded run configuration."""

        if agent_factory is None:
            if config.agent_factory:
                agent_factory = import_from_path(config.agent_factory)
            elif config.agent is not None:
                agent_factory = chat_completion_agent_factory(config.agent)
            else:
                raise ValueError("Configure 'agent' or 'agent_factory' to build cashier agents.")
        if catalog is None:
            catalog = load_catalog(config.catalog_path) if config.catalog_path else default_catalog()

        store = FilePromptStore(config.prompt_store.root_dir, keep_backups=config.prompt_store.keep_backups)
        return cls(
            prompt_store=store,
            personality=config.prompt_store.personality,
            prompt_type=config.prompt_store.prompt_type,
            agent_factory=agent_factory,
            catalog=catalog,
            indicators=config.indicators,
            probe=config.probe,
            scoring=config.scoring,
            analysis=config.analysis,
            output=config.output,
            builder_overrides=config.builder_overrides,
            context=context,
            console=console,
        )

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._session.state

    @property
    def session(self) -> TrainingSession:
        with self._lock:
            snapshot = self._session.snapshot()
            snapshot.statistics = self._statistics_locked()
            return snapshot

    @property
    def statistics(self) -> TrainingStatistics:
        with self._lock:
            return self._statistics_locked()

    def _statistics_locked(self) -> TrainingStatistics:
        stats = self._stats.snapshot()
        stats.elapsed_time = self._elapsed_locked()
        return stats

    def _elapsed_locked(self) -> timedelta:
        if self._started_monotonic is None:
            return timedelta(0)
        end = self._ended_monotonic if self._ended_monotonic is not None else time.monotonic()
        paused = self._session.paused_total.total_seconds()
        if self._session.paused_at is not None:
            paused += end - self._session.paused_at
        return timedelta(seconds=max(0.0, end - self._started_monotonic - paused))

    def start(
        self, config: TrainingConfiguration, cancel_event: Optional[threading.Event] = None
    ) -> TrainingResults:
        """Run the session to completion on the calling thread.

        Returns the results for completed and aborted sessions. A failed
        session publishes its completion event and re-raises the error.
        """

        if not isinstance(config, TrainingConfiguration):
            raise TypeError("start() requires a TrainingConfiguration.")

        with self._lock:
            if self._session.state is not SessionState.NOT_STARTED:
                raise InvalidStateError(
                    f"Cannot start a session that is {self._session.state.value}; "
                    "create a new controller for another run."
                )
            self._session.state = SessionState.INITIALIZING
            self._session.session_id = uuid4().hex[:8].upper()
            self._session.started_at = utc_now()
            self._started_monotonic = time.monotonic()
            self._scope = CancellationScope(cancel_event)
            self._config = config
            self._stats = TrainingStatistics(total_generations=config.max_generations)
            session_id = self._session.session_id

        self.console.log(
            f"Starting training session {session_id} for {self.personality}/{self.prompt_type}: "
            f"{config.max_generations} generation(s) x {config.scenario_count} scenario(s)."
        )
        for warning in config.warnings():
            self.console.log(f"[yellow]{warning}")

        writer = self._build_writer(session_id)
        try:
            try:
                results = self._run(config, writer)
            except _SessionCancelled:
                results = self._finish_aborted("Training cancelled before completion.")
            except Exception as exc:
                results = self._finish_failed(exc)
                if writer is not None:
                    writer.write_summary(results)
                raise
            if writer is not None:
                writer.write_summary(results)
            return results
        finally:
            if writer is not None:
                writer.finalize()

    def pause(self) -> None:
        with self._lock:
            if self._session.state is not SessionState.RUNNING:
                raise InvalidStateError(f"Cannot pause a session that is {self._session.state.value}.")
            self._session.state = SessionState.PAUSED
            self._session.paused_at = time.monotonic()
        self.console.log("[yellow]Training paused.")

    def resume(self) -> None:
        with self._state_changed:
            if self._session.state is not SessionState.PAUSED:
                raise InvalidStateError(f"Cannot resume a session that is {self._session.state.value}.")
            self._fold_pause_locked()
            self._session.state = SessionState.RUNNING
            self._state_changed.notify_all()
        self.console.log("Training resumed.")

    def abort(self, reason: Optional[str] = None) -> None:
        """Cancel the session. Calling it on a finished session does nothing."""

        reason = reason or "Training aborted by user."
        with self._state_changed:
            if self._session.state.is_terminal:
                return
            event = self._terminate_locked(SessionState.ABORTED, abort_reason=reason)
            if self._scope is not None:
                self._scope.cancel()
            self._state_changed.notify_all()
        self.console.log(f"[yellow]Training aborted: {reason}")
        self.events.publish(event)

    def _fold_pause_locked(self) -> None:
        if self._session.paused_at is not None:
            paused_for = time.monotonic() - self._session.paused_at
            self._session.paused_total += timedelta(seconds=paused_for)
            self._session.paused_at = None

    def _terminate_locked(
        self,
        state: SessionState,
        *,
        abort_reason: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> TrainingComplete:
        self._fold_pause_locked()
        self._session.state = state
        self._session.ended_at = utc_now()
        self._ended_monotonic = time.monotonic()
        self._session.abort_reason = abort_reason
        self._session.error_message = error_message
        started = self._session.started_at or self._session.ended_at
        return TrainingComplete(
            session_id=self._session.session_id,
            final_state=state.value,
            final_score=self._last_score,
            best_score=self._best_score,
            duration=self._session.ended_at - started,
            generations_completed=len(self._history),
            total_improvement=self._total_improvement,
            abort_reason=abort_reason,
            error_message=error_message,
        )

    def _finish_aborted(self, reason: str) -> TrainingResults:
        event = None
        with self._lock:
            if not self._session.state.is_terminal:
                event = self._terminate_locked(SessionState.ABORTED, abort_reason=reason)
            results = self._results_locked()
        if event is not None:
            self.console.log(f"[yellow]Training aborted: {reason}")
            self.events.publish(event)
        return results

    def _finish_failed(self, exc: Exception) -> TrainingResults:
        message = str(exc) or type(exc).__name__
        event = None
        with self._lock:
            if not self._session.state.is_terminal:
                event = self._terminate_locked(SessionState.FAILED, error_message=message)
            results = self._results_locked()
        if event is not None:
            self.console.log(f"[red]Training failed: {message}")
            self.events.publish(event)
        return results

    def _finish_completed(self) -> TrainingResults:
        event = None
        with self._lock:
            if not self._session.state.is_terminal:
                event = self._terminate_locked(SessionState.COMPLETED)
            results = self._results_locked()
        if event is not None:
            self.console.log(
                f"[green]Training complete: best score {self._best_score:.3f} "
                f"(+{self._total_improvement:.3f} over baseline)."
            )
            self.events.publish(event)
        return results

    def _results_locked(self) -> TrainingResults:
        ended = self._session.ended_at or utc_now()
        return TrainingResults(
            session_id=self._session.session_id,
            start_time=self._session.started_at or ended,
            end_time=ended,
            final_state=self._session.state.value,
            generations_completed=len(self._history),
            final_score=self._last_score,
            best_score=self._best_score,
            total_improvement=self._total_improvement,
            optimized_prompt=self._best_prompt,
            generation_history=list(self._history),
            metrics=self._summary_metrics_locked(),
            abort_reason=self._session.abort_reason,
            error_message=self._session.error_message,
        )

    def _summary_metrics_locked(self) -> Dict[str, float]:
        scenarios = [result for generation in self._history for result in generation.scenario_results]
        metrics: Dict[str, float] = {
            "generations_completed": float(len(self._history)),
            "scenarios_evaluated": float(len(scenarios)),
            "prompts_persisted": float(self._prompts_persisted),
            "baseline_score": self._baseline_score,
            "paused_seconds": self._session.paused_total.total_seconds(),
        }
        if scenarios:
            metrics["completion_rate"] = fmean(1.0 if item.completion.completed else 0.0 for item in scenarios)
            metrics["success_rate"] = fmean(1.0 if item.success else 0.0 for item in scenarios)
            metrics["timeouts"] = float(sum(1 for item in scenarios if item.timed_out))
            metrics["average_scenario_seconds"] = fmean(item.duration for item in scenarios)
        if self._history:
            metrics["average_generation_seconds"] = fmean(
                item.duration.total_seconds() for item in self._history
            )
        return metrics

    def _build_writer(self, session_id: str) -> Optional[ResultsWriter]:
        if self.output is None or not self.output.save_intermediate_results:
            return None
        return ResultsWriter(
            base_dir=self.output.base_dir / session_id,
            format=self.output.format,
            shard_size=self.output.shard_size,
        )

    def _checkpoint(self) -> None:
        """Block while paused; raise once the session has been cancelled."""

        assert self._scope is not None and self._config is not None
        with self._state_changed:
            while self._session.state is SessionState.PAUSED and not self._scope.cancelled:
                self._state_changed.wait(timeout=self._config.pause_poll_interval_seconds)
            if self._scope.cancelled or self._session.state.is_terminal:
                raise _SessionCancelled()

    def _raise_if_cancelled(self) -> None:
        assert self._scope is not None
        if self._scope.cancelled:
            raise _SessionCancelled()

    def _run(self, config: TrainingConfiguration, writer: Optional[ResultsWriter]) -> TrainingResults:
        generator = self._generator or ScenarioGenerator(
            catalog=self.catalog, seed=config.seed, overrides=self.builder_overrides
        )
        executor = self._executor or ScenarioExecutor(
            self.agent_factory,
            indicators=self.indicators,
            probe=self.probe,
            seed=config.seed,
            console=self.console,
        )

        current = self.prompt_store.get_current(self.personality, self.prompt_type, self.context)
        baseline = strip_context_sections(current)
        with self._lock:
            if self._session.state is not SessionState.INITIALIZING:
                raise _SessionCancelled()
            self._best_prompt = baseline
            self._session.state = SessionState.RUNNING

        for generation in range(1, config.max_generations + 1):
            self._checkpoint()
            result = self._run_generation(generation, config, generator, executor)
            if writer is not None:
                writer.write_generation(result)
            self._raise_if_cancelled()
            self.events.publish(
                GenerationComplete(
                    generation=generation,
                    score=result.score,
                    improvement=result.improvement,
                    is_new_best=result.is_new_best,
                    best_score=self._best_score,
                    duration=result.duration,
                    change_summary=result.change_summary,
                )
            )
            if self._should_stop_early(generation, config):
                self.console.log(
                    f"[green]Converged after generation {generation}: best {self._best_score:.3f}, "
                    f"improvement {self._total_improvement:.3f}."
                )
                break

        return self._finish_completed()

    def _run_generation(
        self,
        generation: int,
        config: TrainingConfiguration,
        generator: ScenarioGenerator,
        executor: ScenarioExecutor,
    ) -> GenerationResult:
        started = time.monotonic()
        if generation == 1:
            variant = self._best_prompt
            change_summary = "baseline measurement of the production prompt"
        else:
            refinement = self.refiner.refine(
                self._best_prompt, self._last_patterns, generation, config.focus_weights
            )
            variant = refinement.template
            change_summary = refinement.summary
        self.console.log(f"Generation {generation}/{config.max_generations}: {change_summary}")
        # the agent sees the runtime context; refinement and storage work on the bare template
        rendered = inject_context(variant, self.context)

        scenarios = generator.generate_batch(config.scenario_count, config.scenario_mix, generation)
        with self._lock:
            self._stats.current_generation = generation
            self._stats.scenarios_completed = 0
            self._stats.total_scenarios = len(scenarios)

        results: List[ScenarioResult] = []
        for index, scenario in enumerate(scenarios):
            self._checkpoint()
            result = executor.execute(scenario, rendered, timeout_seconds=config.scenario_timeout_seconds)
            self._raise_if_cancelled()
            self.scorer.score_scenario(result)
            results.append(result)
            with self._lock:
                self._stats.scenarios_completed = index + 1
                self._stats.current_score = fmean(item.score for item in results)

            self.events.publish(
                ScenarioTested(
                    generation=generation,
                    scenario_id=scenario.scenario_id,
                    input=result.last_input,
                    response=result.last_response,
                    score=result.score,
                    success=result.success,
                    duration=result.duration,
                    error=result.error,
                )
            )
            self._publish_progress(generation, index + 1, len(scenarios), config)
            is_last = index == len(scenarios) - 1
            if not is_last and config.inter_scenario_delay_seconds > 0:
                assert self._scope is not None
                if self._scope.sleep(config.inter_scenario_delay_seconds):
                    raise _SessionCancelled()

        score, metrics = self.scorer.score_generation(results, config.focus_weights)
        patterns = self.analyzer.analyze(results)
        if not patterns.is_empty:
            self.console.log(f"Failure patterns: {patterns.summary()}")
        self._checkpoint()

        with self._lock:
            # an abort landing after the checkpoint must not persist the variant
            if (self._scope is not None and self._scope.cancelled) or self._session.state.is_terminal:
                raise _SessionCancelled()
            is_new_best = score > self._best_score
            improvement = score - self._best_score if is_new_best and generation > 1 else 0.0
            if is_new_best:
                self.prompt_store.save_optimized(
                    self.personality,
                    self.prompt_type,
                    variant,
                    score,
                    self._session.session_id,
                    change_summary,
                )

            self._last_score = score
            self._last_patterns = patterns
            if generation == 1:
                self._baseline_score = score
            if is_new_best:
                self._best_score = score
                self._best_prompt = variant
                self._prompts_persisted += 1
            self._total_improvement = max(0.0, self._best_score - self._baseline_score)
            self._stats.best_score = self._best_score
            self._stats.improvement = self._total_improvement
            if generation > 1 and is_new_best:
                self._stats.consecutive_improvements += 1
                self._stats.consecutive_failures = 0
            elif generation > 1:
                self._stats.consecutive_failures += 1
                self._stats.consecutive_improvements = 0

            result = GenerationResult(
                generation=generation,
                score=score,
                improvement=improvement,
                is_new_best=is_new_best,
                scenario_results=results,
                duration=timedelta(seconds=time.monotonic() - started),
                prompt_variant=variant,
                change_summary=change_summary,
                quality_metrics=metrics,
            )
            self._history.append(result)

        marker = " [green]new best" if is_new_best else ""
        self.console.log(
            f"Generation {generation} scored {score:.3f} (best {self._best_score:.3f}){marker}"
        )
        return result

    def _publish_progress(
        self, generation: int, scenario_index: int, total: int, config: TrainingConfiguration
    ) -> None:
        with self._lock:
            fraction = ((generation - 1) + scenario_index / max(1, total)) / config.max_generations
            elapsed = self._elapsed_locked()
            if fraction > 0:
                remaining = timedelta(seconds=elapsed.total_seconds() * (1.0 - fraction) / fraction)
            else:
                remaining = timedelta(0)
            self._stats.elapsed_time = elapsed
            self._stats.estimated_remaining = remaining
            event = ProgressUpdated(
                generation=generation,
                scenario_index=scenario_index,
                total_scenarios=total,
                progress_fraction=min(1.0, fraction),
                elapsed=elapsed,
                estimated_remaining=remaining,
                current_score=self._stats.current_score,
                best_score=self._best_score,
            )
        self.events.publish(event)

    def _should_stop_early(self, generation: int, config: TrainingConfiguration) -> bool:
        minimum = max(config.min_generations_before_stop, config.max_generations / 2)
        return (
            self._total_improvement >= config.improvement_threshold
            and generation >= minimum
            and self._best_score > config.convergence_score
        )
