"""Single-item order scenarios."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional

from ..catalog import Catalog
from ..types import ExpectedLineItem, ExpectedOutcome, Scenario, ScenarioType
from .base import PhrasePool, ScenarioBuilder, completion_criteria, order_interaction, order_total

SIMPLE_ORDER_POOLS: List[PhrasePool] = [
    PhrasePool(
        "Kopi C",
        [
            "kopi c",
            "one kopi c please",
            "coffee with evaporated milk",
            "can I have kopi c",
            "kopi si",
            "I want a kopi c",
        ],
        Decimal("1.40"),
    ),
    PhrasePool(
        "Teh",
        ["teh", "one teh please", "tea with milk", "can I get teh", "teh satu"],
        Decimal("1.40"),
    ),
    PhrasePool(
        "Kopi O",
        ["kopi o", "black coffee with sugar", "one kopi o", "kopi o kosong"],
        Decimal("1.20"),
    ),
    PhrasePool(
        "Kaya Toast",
        ["kaya toast", "roti kaya", "one kaya toast please", "toast with kaya"],
        Decimal("1.80"),
    ),
]

CATALOG_TEMPLATES = [
    "I'd like a {name}",
    "Can I get {lower}?",
    "{name} please",
    "Do you have {lower}?",
]


class SimpleOrderScenarioBuilder(ScenarioBuilder):
    """One product, one turn; the completion probe handles checkout."""

    def __init__(
        self,
        *,
        seed: Optional[int] = None,
        catalog: Optional[Catalog] = None,
        catalog_sample: int = 10,
        **params: Any,
    ):
        super().__init__(seed=seed, catalog=catalog, **params)
        self.pools = list(SIMPLE_ORDER_POOLS)
        if catalog is not None:
            self.pools.extend(self._catalog_pools(catalog, catalog_sample))

    @staticmethod
    def _catalog_pools(catalog: Catalog, limit: int) -> List[PhrasePool]:
        pools = []
        for product in catalog.search("", limit):
            phrasings = [
                template.format(name=product.name, lower=product.name.lower())
                for template in CATALOG_TEMPLATES
            ]
            pools.append(PhrasePool(product.name, phrasings, product.price))
        return pools

    def build(self, scenario_id: str, generation: int) -> Scenario:
        pool, phrase = self._pick(self.pools)
        items = [ExpectedLineItem(pool.product, 1, pool.price)]
        return Scenario(
            scenario_id=scenario_id,
            description=f"Simple order: {phrase}",
            scenario_type=ScenarioType.SIMPLE,
            interactions=[order_interaction(phrase, pool.product)],
            expected_outcome=ExpectedOutcome(
                expected_items=items,
                expected_total=order_total(items),
                success_criteria=completion_criteria(items),
            ),
            metadata={"generation": generation, "phrase": phrase},
        )
