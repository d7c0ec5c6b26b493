"""Scenario builders produce scripted customer interactions with expected outcomes."""

from .base import PhrasePool, ScenarioBuilder
from .batch import ScenarioGenerator, plan_counts
from .multi_item import MultiItemScenarioBuilder
from .payment_flow import PaymentFlowScenarioBuilder
from .simple_order import SimpleOrderScenarioBuilder

__all__ = [
    "PhrasePool",
    "ScenarioBuilder",
    "ScenarioGenerator",
    "plan_counts",
    "MultiItemScenarioBuilder",
    "PaymentFlowScenarioBuilder",
    "SimpleOrderScenarioBuilder",
]
