"""Drive one scenario through a fresh agent, including the checkout probe."""

from __future__ import annotations

import random
import threading
import time
from typing import Any, Callable, Dict, Optional

from rich.console import Console

from .agent import Agent, AgentFactory
from .config import IndicatorConfig, ProbeConfig
from .types import CompletionOutcome, Interaction, InteractionResult, Scenario, ScenarioResult
from .utils import contains_any, extract_leading_amount, truncate


class ScenarioTimeout(Exception):
    """The scenario's deadline passed while waiting on the agent."""


class ScenarioExecutor:
    """Runs scenarios sequentially against agents built by ``agent_factory``.

    All agent calls of one scenario (construction, scripted turns and the
    completion probe) share a single deadline. Each call runs on a daemon
    thread; a call still running at the deadline is abandoned, so a hung agent
    blocks neither the caller nor interpreter exit.
    """

    def __init__(
        self,
        agent_factory: AgentFactory,
        *,
        indicators: Optional[IndicatorConfig] = None,
        probe: Optional[ProbeConfig] = None,
        seed: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.agent_factory = agent_factory
        self.indicators = indicators or IndicatorConfig()
        self.probe = probe or ProbeConfig()
        self.random = random.Random(seed)
        self.console = console or Console()

    def execute(self, scenario: Scenario, prompt_template: str, *, timeout_seconds: float) -> ScenarioResult:
        result = ScenarioResult(scenario=scenario)
        started = time.monotonic()
        deadline = started + timeout_seconds
        agent: Optional[Agent] = None
        try:
            agent = self._call(deadline, self.agent_factory, prompt_template)
            for interaction in scenario.interactions:
                outcome = self._run_interaction(deadline, agent, interaction)
                result.interactions.append(outcome)
                if not outcome.success and interaction.is_required:
                    result.stopped_early = True
                    self.console.log(
                        f"[yellow]Scenario {scenario.scenario_id}: required step "
                        f"'{interaction.customer_input}' failed, skipping the rest."
                    )
                    break
            if not result.stopped_early:
                result.completion = self._run_completion_probe(deadline, agent)
        except ScenarioTimeout:
            result.timed_out = True
            result.error = f"Scenario '{scenario.scenario_id}' timed out after {timeout_seconds}s."
            self.console.log(f"[yellow]{result.error}")
        except Exception as exc:  # noqa: BLE001
            result.error = f"Scenario '{scenario.scenario_id}' failed: {exc}"
            self.console.log(f"[red]{result.error}")
        finally:
            try:
                _close_agent(agent)
            except Exception as exc:  # noqa: BLE001
                self.console.log(f"[yellow]Closing agent for {scenario.scenario_id} failed: {exc}")
            result.duration = time.monotonic() - started
        return result

    def _call(self, deadline: float, fn: Callable[..., Any], *args: Any) -> Any:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ScenarioTimeout()
        outcome: Dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["value"] = fn(*args)
            except Exception as exc:  # noqa: BLE001
                outcome["error"] = exc

        thread = threading.Thread(target=_target, name="agent-call", daemon=True)
        thread.start()
        thread.join(remaining)
        if thread.is_alive():
            raise ScenarioTimeout()
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def _run_interaction(
        self, deadline: float, agent: Agent, interaction: Interaction
    ) -> InteractionResult:
        text = interaction.customer_input
        started = time.monotonic()
        try:
            response = self._call(deadline, agent.process, text)
        except ScenarioTimeout:
            raise
        except Exception as exc:  # noqa: BLE001
            return InteractionResult(
                input=text,
                response=f"ERROR: {exc}",
                success=False,
                elapsed=time.monotonic() - started,
                error=str(exc),
            )

        response = response if isinstance(response, str) else str(response or "")
        error = None
        if not response.strip():
            error = "Empty response from agent."
        elif contains_any(response, self.indicators.agent_error):
            error = truncate(response, 300)
        return InteractionResult(
            input=text,
            response=response,
            success=error is None,
            elapsed=time.monotonic() - started,
            error=error,
        )

    def _run_completion_probe(self, deadline: float, agent: Agent) -> CompletionOutcome:
        """Say "I'm done" until the agent asks how to pay, then pay."""

        outcome = CompletionOutcome(attempted=True)
        for phrase in self.probe.completion_phrases:
            outcome.phrases_tried.append(phrase)
            response = self._probe_call(deadline, agent, phrase)
            outcome.responses.append(response)
            if not contains_any(response, self.indicators.payment_request):
                continue

            outcome.total = extract_leading_amount(response)
            method = self.random.choice(self.probe.payment_methods)
            outcome.payment_method = method
            payment_response = self._probe_call(deadline, agent, method)
            outcome.responses.append(payment_response)
            outcome.completed = contains_any(payment_response, self.indicators.payment_success)
            outcome.failed = not outcome.completed
            return outcome

        outcome.failed = True
        return outcome

    def _probe_call(self, deadline: float, agent: Agent, text: str) -> str:
        try:
            response = self._call(deadline, agent.process, text)
        except ScenarioTimeout:
            raise
        except Exception as exc:  # noqa: BLE001
            return f"ERROR: {exc}"
        return response if isinstance(response, str) else str(response or "")


def _close_agent(agent: Optional[Agent]) -> None:
    close = getattr(agent, "close", None)
    if callable(close):
        close()
