"""Tests for scenario batch generation."""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal

from cashier_training.catalog import StaticCatalog
from cashier_training.config import ScenarioMixConfig
from cashier_training.generators import ScenarioGenerator, SimpleOrderScenarioBuilder, plan_counts
from cashier_training.generators.base import PhrasePool
from cashier_training.types import Product, ScenarioType


def test_plan_counts_rounds_each_type_up() -> None:
    assert plan_counts(10, ScenarioMixConfig()) == {
        ScenarioType.SIMPLE: 4,
        ScenarioType.MULTI_ITEM: 3,
        ScenarioType.PAYMENT: 3,
    }

    counts = plan_counts(5, ScenarioMixConfig(simple=0.5, multi_item=0.25, payment=0.25))
    assert counts == {ScenarioType.SIMPLE: 3, ScenarioType.MULTI_ITEM: 2, ScenarioType.PAYMENT: 2}
    assert sum(counts.values()) >= 5


def test_generate_batch_covers_configured_count_with_unique_ids() -> None:
    generator = ScenarioGenerator(seed=3)

    batch = generator.generate_batch(10, ScenarioMixConfig(), generation=2)

    assert len(batch) == 10
    assert len({scenario.scenario_id for scenario in batch}) == 10
    assert all("-g2-" in scenario.scenario_id for scenario in batch)
    types = [scenario.scenario_type for scenario in batch]
    assert types.count(ScenarioType.SIMPLE) == 4
    assert types.count(ScenarioType.PAYMENT) == 3


def test_scenarios_carry_expected_items_and_required_tool_calls() -> None:
    generator = ScenarioGenerator(seed=11)

    batch = generator.generate_batch(3, ScenarioMixConfig(simple=0.0, multi_item=1.0, payment=0.0), 1)

    for scenario in batch:
        assert len(scenario.interactions) == 2
        assert all(interaction.is_required for interaction in scenario.interactions)
        items = scenario.expected_outcome.expected_items
        assert len(items) == 2
        assert scenario.expected_outcome.expected_total == sum(
            (item.unit_price * item.quantity for item in items), Decimal("0")
        )


def test_payment_scenarios_ask_about_payment_without_requiring_a_tool() -> None:
    generator = ScenarioGenerator(seed=5)

    batch = generator.generate_batch(2, ScenarioMixConfig(simple=0.0, multi_item=0.0, payment=1.0), 1)

    for scenario in batch:
        question = scenario.interactions[-1]
        assert not question.is_required
        assert any(word in question.customer_input.lower() for word in ("pay", "card", "cash"))


def test_repeated_batches_vary_phrasing() -> None:
    generator = ScenarioGenerator(seed=1)
    mix = ScenarioMixConfig(simple=1.0, multi_item=0.0, payment=0.0)

    inputs = {
        scenario.interactions[0].customer_input
        for generation in range(1, 6)
        for scenario in generator.generate_batch(6, mix, generation)
    }

    assert len(inputs) > 3


def test_catalog_products_extend_simple_order_pool() -> None:
    catalog = StaticCatalog([Product("NL001", "Nasi Lemak", Decimal("3.50"), "food")])

    builder = SimpleOrderScenarioBuilder(seed=1, catalog=catalog)

    pool = next(pool for pool in builder.pools if pool.product == "Nasi Lemak")
    assert "Nasi Lemak please" in pool.phrasings
    assert "Do you have nasi lemak?" in pool.phrasings
    assert pool.price == Decimal("3.50")


def test_builder_override_by_import_path() -> None:
    generator = ScenarioGenerator(
        seed=2,
        overrides={"simple": "cashier_training.generators.payment_flow:PaymentFlowScenarioBuilder"},
    )

    batch = generator.generate_batch(2, ScenarioMixConfig(simple=1.0, multi_item=0.0, payment=0.0), 1)

    assert all(scenario.scenario_type is ScenarioType.PAYMENT for scenario in batch)
    assert batch[0].scenario_id.startswith("simple-")


def test_phrase_pool_fields_are_all_used_by_builders() -> None:
    assert [item.name for item in fields(PhrasePool)] == ["product", "phrasings", "price"]

    builder = SimpleOrderScenarioBuilder(seed=4)
    scenario = builder.build("simple-g1-001", 1)

    pool = next(pool for pool in builder.pools if pool.product == scenario.expected_outcome.product_names[0])
    assert scenario.interactions[0].customer_input in pool.phrasings
    assert scenario.expected_outcome.expected_items[0].unit_price == pool.price
