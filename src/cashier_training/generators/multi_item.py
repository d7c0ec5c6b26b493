"""Orders combining a drink with a quantity of food."""

from __future__ import annotations

from decimal import Decimal
from typing import List

from ..types import ExpectedLineItem, ExpectedOutcome, Scenario, ScenarioType
from .base import PhrasePool, ScenarioBuilder, completion_criteria, order_interaction, order_total

DRINK_POOLS: List[PhrasePool] = [
    PhrasePool(
        "Kopi C",
        ["kopi c", "kopi si", "coffee with milk", "one coffee with milk"],
        Decimal("1.40"),
    ),
    PhrasePool(
        "Teh C",
        ["teh c", "teh si", "tea with evaporated milk"],
        Decimal("1.40"),
    ),
    PhrasePool(
        "Kopi Peng",
        ["kopi peng", "iced coffee", "one kopi peng"],
        Decimal("1.80"),
    ),
]

FOOD_POOLS: List[PhrasePool] = [
    PhrasePool(
        "Kaya Toast",
        ["roti kaya", "kaya toast", "toast with kaya", "bread with coconut jam"],
        Decimal("1.80"),
    ),
    PhrasePool(
        "Soft Boiled Eggs",
        ["soft boiled eggs", "half boiled eggs set", "eggs"],
        Decimal("1.50"),
    ),
]

QUANTITY_PHRASINGS = {
    2: ["{food} two pieces", "two {food}", "give me two {food}", "I want 2 {food}"],
    3: ["three {food}", "{food} x3", "3 {food} please"],
}


class MultiItemScenarioBuilder(ScenarioBuilder):
    """Two turns: a drink, then a food item ordered with a quantity."""

    def build(self, scenario_id: str, generation: int) -> Scenario:
        drink, drink_phrase = self._pick(DRINK_POOLS)
        food, food_name = self._pick(FOOD_POOLS)
        quantity = self.random.choice(sorted(QUANTITY_PHRASINGS))
        food_phrase = self.random.choice(QUANTITY_PHRASINGS[quantity]).format(food=food_name)

        items = [
            ExpectedLineItem(drink.product, 1, drink.price),
            ExpectedLineItem(food.product, quantity, food.price),
        ]
        return Scenario(
            scenario_id=scenario_id,
            description=f"Multi-item order: {drink_phrase} + {food_phrase}",
            scenario_type=ScenarioType.MULTI_ITEM,
            interactions=[
                order_interaction(drink_phrase, drink.product),
                order_interaction(food_phrase, food.product, quantity),
            ],
            expected_outcome=ExpectedOutcome(
                expected_items=items,
                expected_total=order_total(items),
                success_criteria=completion_criteria(items),
            ),
            metadata={"generation": generation, "phrases": [drink_phrase, food_phrase]},
        )
