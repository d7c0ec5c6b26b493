"""Scenarios where the customer asks about payment before checking out."""

from __future__ import annotations

from decimal import Decimal
from typing import List

from ..types import (
    ExpectedLineItem,
    ExpectedOutcome,
    ExpectedToolCall,
    Interaction,
    Scenario,
    ScenarioType,
    SuccessCriterion,
    TransactionState,
)
from .base import (
    PAYMENT_METHODS_TOOL,
    PhrasePool,
    ScenarioBuilder,
    completion_criteria,
    order_interaction,
    order_total,
)

BEVERAGE_POOLS: List[PhrasePool] = [
    PhrasePool(
        "Milo Peng",
        ["milo peng", "iced milo", "one milo peng", "cold chocolate drink"],
        Decimal("2.20"),
    ),
    PhrasePool(
        "Bandung",
        ["bandung", "rose syrup with milk", "one bandung please"],
        Decimal("2.00"),
    ),
    PhrasePool(
        "Teh O",
        ["teh o", "tea no milk", "one teh o"],
        Decimal("1.20"),
    ),
]

PAYMENT_QUESTIONS = [
    "what payment methods you accept?",
    "can I pay by card?",
    "how can I pay?",
    "do you take paynow?",
    "cash only or can use card?",
]


class PaymentFlowScenarioBuilder(ScenarioBuilder):
    def build(self, scenario_id: str, generation: int) -> Scenario:
        beverage, phrase = self._pick(BEVERAGE_POOLS)
        question = self.random.choice(PAYMENT_QUESTIONS)

        items = [ExpectedLineItem(beverage.product, 1, beverage.price)]
        criteria = completion_criteria(items)
        criteria.insert(
            len(criteria) - 1,
            SuccessCriterion("payment_methods_listed", "Agent explains accepted payment methods", False),
        )
        return Scenario(
            scenario_id=scenario_id,
            description=f"Payment flow: {phrase} then '{question}'",
            scenario_type=ScenarioType.PAYMENT,
            interactions=[
                order_interaction(phrase, beverage.product),
                Interaction(
                    customer_input=question,
                    expected_tool_calls=[ExpectedToolCall(PAYMENT_METHODS_TOOL, is_required=False)],
                    expected_state=TransactionState.READY_FOR_PAYMENT,
                ),
            ],
            expected_outcome=ExpectedOutcome(
                expected_items=items,
                expected_total=order_total(items),
                success_criteria=criteria,
            ),
            metadata={"generation": generation, "phrases": [phrase, question]},
        )
