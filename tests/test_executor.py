"""Tests for scenario execution and the completion probe."""

from __future__ import annotations

import os
import subprocess
import sys
import textwrap
import time
from decimal import Decimal
from pathlib import Path

from rich.console import Console

from cashier_training.config import ProbeConfig
from cashier_training.executor import ScenarioExecutor
from cashier_training.generators.base import order_interaction
from cashier_training.types import (
    ExpectedLineItem,
    ExpectedOutcome,
    ExpectedToolCall,
    Interaction,
    Scenario,
    ScenarioType,
)

PROBE = ProbeConfig(completion_phrases=["that's all", "habis"], payment_methods=["cash"])


class _CashierAgent:
    """Adds whatever is ordered and checks out on the first completion phrase."""

    instances = 0

    def __init__(self, prompt: str):
        type(self).instances += 1
        self.prompt = prompt
        self.inputs = []
        self.closed = False

    def process(self, text: str) -> str:
        self.inputs.append(text)
        if text in PROBE.completion_phrases:
            return "Total 3.40. How would you like to pay? Cash or card?"
        if text in PROBE.payment_methods:
            return "Payment processed, here is your receipt. Thank you!"
        return f"Ok, I've added {text}."

    def close(self) -> None:
        self.closed = True


class _ForgetfulAgent:
    """Never recognises that the customer is done."""

    def __init__(self, prompt: str):
        self.inputs = []

    def process(self, text: str) -> str:
        self.inputs.append(text)
        return "Ok, anything else?"


class _LateSpeakerAgent:
    """Only asks for payment when the customer says 'habis'."""

    def __init__(self, prompt: str):
        pass

    def process(self, text: str) -> str:
        if text == "habis":
            return "Ok boss, S$4.20. Payment method?"
        if text == "cash":
            return "Sorry, cannot take that."
        return "Ok, I've added it."


class _SlowAgent:
    def __init__(self, prompt: str):
        pass

    def process(self, text: str) -> str:
        time.sleep(1.0)
        return "too late"


class _BrokenAgent:
    def __init__(self, prompt: str):
        pass

    def process(self, text: str) -> str:
        raise RuntimeError("backend exploded")


def _scenario(*interactions: Interaction) -> Scenario:
    return Scenario(
        scenario_id="simple-g1-001",
        description="test",
        scenario_type=ScenarioType.SIMPLE,
        interactions=list(interactions),
        expected_outcome=ExpectedOutcome(expected_items=[ExpectedLineItem("Kopi C", 1, Decimal("1.40"))]),
    )


def _executor(factory) -> ScenarioExecutor:
    return ScenarioExecutor(factory, probe=PROBE, seed=1, console=Console(quiet=True))


def test_successful_checkout_records_method_and_total() -> None:
    agents = []

    def factory(prompt: str) -> _CashierAgent:
        agent = _CashierAgent(prompt)
        agents.append(agent)
        return agent

    result = _executor(factory).execute(_scenario(order_interaction("kopi c", "Kopi C")), "PROMPT", timeout_seconds=5)

    assert [item.success for item in result.interactions] == [True]
    assert result.completion.attempted
    assert result.completion.completed
    assert not result.completion.failed
    assert result.completion.payment_method == "cash"
    assert result.completion.total == Decimal("3.40")
    assert result.completion.phrases_tried == ["that's all"]
    assert agents[0].prompt == "PROMPT"
    assert agents[0].inputs == ["kopi c", "that's all", "cash"]
    assert agents[0].closed


def test_each_scenario_gets_a_fresh_agent() -> None:
    _CashierAgent.instances = 0
    executor = _executor(_CashierAgent)

    executor.execute(_scenario(order_interaction("kopi c", "Kopi C")), "P", timeout_seconds=5)
    executor.execute(_scenario(order_interaction("teh", "Teh")), "P", timeout_seconds=5)

    assert _CashierAgent.instances == 2


def test_probe_exhaustion_marks_completion_failed() -> None:
    result = _executor(_ForgetfulAgent).execute(
        _scenario(order_interaction("kopi c", "Kopi C")), "P", timeout_seconds=5
    )

    assert result.completion.attempted
    assert result.completion.completed is False
    assert result.completion.failed is True
    assert result.completion.phrases_tried == ["that's all", "habis"]
    assert result.completion.payment_method is None


def test_probe_tries_later_phrases_and_classifies_failed_payment() -> None:
    result = _executor(_LateSpeakerAgent).execute(
        _scenario(order_interaction("kopi c", "Kopi C")), "P", timeout_seconds=5
    )

    assert result.completion.phrases_tried == ["that's all", "habis"]
    assert result.completion.total == Decimal("4.20")
    assert result.completion.payment_method == "cash"
    assert result.completion.completed is False
    assert result.completion.failed is True


def test_timeout_yields_failed_result_instead_of_raising() -> None:
    started = time.monotonic()

    result = _executor(_SlowAgent).execute(
        _scenario(order_interaction("kopi c", "Kopi C")), "P", timeout_seconds=0.2
    )

    assert time.monotonic() - started < 0.9
    assert result.timed_out
    assert "timed out" in (result.error or "")


HANGING_RUN = textwrap.dedent(
    """
    import threading

    from rich.console import Console

    from cashier_training.executor import ScenarioExecutor
    from cashier_training.generators.base import order_interaction
    from cashier_training.types import ExpectedOutcome, Scenario, ScenarioType


    class HangingAgent:
        def __init__(self, prompt):
            pass

        def process(self, text):
            threading.Event().wait()


    scenario = Scenario(
        scenario_id="simple-g1-001",
        description="hang",
        scenario_type=ScenarioType.SIMPLE,
        interactions=[order_interaction("kopi c", "Kopi C")],
        expected_outcome=ExpectedOutcome(),
    )
    executor = ScenarioExecutor(HangingAgent, console=Console(quiet=True))
    result = executor.execute(scenario, "P", timeout_seconds=0.5)
    print("timed_out", result.timed_out)
    """
)


def test_hung_agent_does_not_keep_the_process_alive() -> None:
    env = dict(os.environ)
    src = str(Path(__file__).resolve().parents[1] / "src")
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [src, env.get("PYTHONPATH")]))

    completed = subprocess.run(
        [sys.executable, "-c", HANGING_RUN],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )

    assert completed.returncode == 0, completed.stderr
    assert "timed_out True" in completed.stdout


def test_failed_required_interaction_stops_early_without_probe() -> None:
    scenario = _scenario(
        order_interaction("kopi c", "Kopi C"),
        order_interaction("kaya toast", "Kaya Toast"),
    )

    result = _executor(_BrokenAgent).execute(scenario, "P", timeout_seconds=5)

    assert result.stopped_early
    assert len(result.interactions) == 1
    assert result.interactions[0].success is False
    assert "backend exploded" in (result.interactions[0].error or "")
    assert result.completion.attempted is False
    assert result.completion.failed is False


def test_optional_interaction_failure_continues() -> None:
    scenario = _scenario(
        Interaction("what payment methods you accept?", [ExpectedToolCall("load_payment_methods_context", is_required=False)]),
        order_interaction("kopi c", "Kopi C"),
    )

    class _PickyAgent(_CashierAgent):
        def process(self, text: str) -> str:
            if "payment methods" in text:
                return "ERROR: payment context unavailable"
            return super().process(text)

    result = _executor(_PickyAgent).execute(scenario, "P", timeout_seconds=5)

    assert [item.success for item in result.interactions] == [False, True]
    assert not result.stopped_early
    assert result.completion.completed


def test_agent_factory_failure_is_captured() -> None:
    def factory(prompt: str):
        raise ValueError("no agent for you")

    result = _executor(factory).execute(_scenario(order_interaction("kopi c", "Kopi C")), "P", timeout_seconds=5)

    assert "no agent for you" in (result.error or "")
    assert result.interactions == []
    assert not result.timed_out
