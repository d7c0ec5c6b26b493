"""Base classes and helper utilities for scenario builders."""

from __future__ import annotations

import abc
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from ..catalog import Catalog
from ..types import (
    ExpectedLineItem,
    ExpectedToolCall,
    Interaction,
    Scenario,
    SuccessCriterion,
    TransactionState,
)

ADD_ITEM_TOOL = "add_item_to_transaction"
PAYMENT_METHODS_TOOL = "load_payment_methods_context"


@dataclass
class PhrasePool:
    """Equivalent ways a customer asks for the same product."""

    product: str
    phrasings: List[str]
    price: Decimal = Decimal("0")


class ScenarioBuilder(abc.ABC):
    """Abstract base class for one family of customer scenarios."""

    def __init__(
        self,
        *,
        seed: Optional[int] = None,
        catalog: Optional[Catalog] = None,
        **params: Any,
    ):
        self.random = random.Random(seed)
        self.catalog = catalog
        self.params = params

    @abc.abstractmethod
    def build(self, scenario_id: str, generation: int) -> Scenario:
        """Build a single scenario instance."""

    def _pick(self, pools: List[PhrasePool]) -> tuple[PhrasePool, str]:
        pool = self.random.choice(pools)
        return pool, self.random.choice(pool.phrasings)


def order_interaction(
    phrase: str,
    product: str,
    quantity: int = 1,
    *,
    expected_state: TransactionState = TransactionState.ITEMS_PENDING,
) -> Interaction:
    return Interaction(
        customer_input=phrase,
        expected_tool_calls=[
            ExpectedToolCall(
                ADD_ITEM_TOOL,
                {"item_description": product, "quantity": quantity},
                is_required=True,
            )
        ],
        expected_state=expected_state,
    )


def completion_criteria(items: List[ExpectedLineItem]) -> List[SuccessCriterion]:
    criteria = [
        SuccessCriterion(
            "item_added",
            f"Agent confirms {item.quantity} x {item.product_name}",
            is_critical=True,
        )
        for item in items
    ]
    criteria.append(
        SuccessCriterion("payment_completed", "Transaction reaches payment and completes", is_critical=True)
    )
    return criteria


def order_total(items: List[ExpectedLineItem]) -> Decimal:
    return sum((item.total for item in items), Decimal("0"))
