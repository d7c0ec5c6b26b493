"""Compose a generation's scenario batch from the configured type mix."""

from __future__ import annotations

import math
from typing import Dict, List, Mapping, Optional, Type

from ..catalog import Catalog
from ..config import ScenarioMixConfig
from ..types import Scenario, ScenarioType
from ..utils import import_from_path
from .base import ScenarioBuilder
from .multi_item import MultiItemScenarioBuilder
from .payment_flow import PaymentFlowScenarioBuilder
from .simple_order import SimpleOrderScenarioBuilder

DEFAULT_BUILDERS: Dict[ScenarioType, Type[ScenarioBuilder]] = {
    ScenarioType.SIMPLE: SimpleOrderScenarioBuilder,
    ScenarioType.MULTI_ITEM: MultiItemScenarioBuilder,
    ScenarioType.PAYMENT: PaymentFlowScenarioBuilder,
}


def plan_counts(scenario_count: int, mix: ScenarioMixConfig) -> Dict[ScenarioType, int]:
    """Per-type counts, each rounded up so the batch covers ``scenario_count``."""

    proportions = mix.as_dict()
    # round() first so 10 * 0.3 does not ceil to 4
    return {
        scenario_type: math.ceil(round(scenario_count * proportions[scenario_type.value], 6))
        for scenario_type in ScenarioType
    }


class ScenarioGenerator:
    """Builds batches by delegating each scenario type to its builder."""

    def __init__(
        self,
        *,
        catalog: Optional[Catalog] = None,
        seed: Optional[int] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ):
        self.catalog = catalog
        self.builders: Dict[ScenarioType, ScenarioBuilder] = {}
        for index, scenario_type in enumerate(ScenarioType):
            factory = DEFAULT_BUILDERS[scenario_type]
            override = (overrides or {}).get(scenario_type.value)
            if override:
                factory = import_from_path(override)
            builder_seed = seed + index if seed is not None else None
            self.builders[scenario_type] = factory(seed=builder_seed, catalog=catalog)

    def generate_batch(
        self, scenario_count: int, mix: ScenarioMixConfig, generation: int
    ) -> List[Scenario]:
        batch: List[Scenario] = []
        for scenario_type, count in plan_counts(scenario_count, mix).items():
            builder = self.builders[scenario_type]
            for index in range(count):
                scenario_id = f"{scenario_type.value}-g{generation}-{index + 1:03d}"
                batch.append(builder.build(scenario_id, generation))
        return batch
