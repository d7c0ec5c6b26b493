"""Tests for the product catalog, the event bus and cancellation scopes."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from decimal import Decimal

import pytest
from rich.console import Console

from cashier_training.catalog import default_catalog, load_catalog
from cashier_training.events import EventBus, GenerationComplete, TrainingComplete
from cashier_training.session import CancellationScope, TrainingStatistics


def test_default_catalog_search_by_name_and_category() -> None:
    catalog = default_catalog()

    assert [product.name for product in catalog.search("roti", 5)] == ["Roti John"]
    assert len(catalog.search("beverage", 3)) == 3
    assert len(catalog.search("", 100)) == len(catalog)


def test_load_catalog_from_yaml(tmp_path) -> None:
    path = tmp_path / "menu.yaml"
    path.write_text(
        "products:\n"
        "  - {sku: NL1, name: Nasi Lemak, price: 3.50, category: food}\n"
        "  - {name: Teh Halia, price: '1.80'}\n",
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    nasi, teh = catalog.search("", 10)
    assert nasi.price == Decimal("3.50")
    assert teh.sku == "ITEM0001"
    assert teh.price == Decimal("1.80")


def test_load_catalog_from_jsonl_rejects_nameless_records(tmp_path) -> None:
    path = tmp_path / "menu.jsonl"
    path.write_text('{"name": "Milo", "price": 2}\n\n{"price": 1}\n', encoding="utf-8")

    with pytest.raises(ValueError, match="no product name"):
        load_catalog(path)


def test_load_catalog_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_catalog(tmp_path / "nothing.yaml")


def _complete(reason: str) -> TrainingComplete:
    return TrainingComplete(
        session_id="S1",
        final_state="aborted",
        final_score=0.0,
        best_score=0.0,
        duration=timedelta(0),
        generations_completed=0,
        total_improvement=0.0,
        abort_reason=reason,
    )


def test_event_bus_routes_by_type_and_unsubscribes() -> None:
    bus = EventBus(console=Console(quiet=True))
    received = []
    unsubscribe = bus.subscribe(TrainingComplete, received.append)
    bus.subscribe(GenerationComplete, lambda event: received.append("wrong type"))

    bus.publish(_complete("first"))
    unsubscribe()
    bus.publish(_complete("second"))

    assert [event.reason for event in received] == ["first"]


def test_failing_handler_does_not_block_others() -> None:
    bus = EventBus(console=Console(quiet=True))
    received = []

    def _broken(event) -> None:
        raise RuntimeError("handler bug")

    bus.subscribe(TrainingComplete, _broken)
    bus.subscribe(TrainingComplete, received.append)

    bus.publish(_complete("done"))

    assert len(received) == 1


def test_cancellation_scope_follows_parent_event() -> None:
    parent = threading.Event()
    scope = CancellationScope(parent)
    assert not scope.cancelled

    threading.Timer(0.05, parent.set).start()
    started = time.monotonic()
    interrupted = scope.sleep(2.0)

    assert interrupted
    assert time.monotonic() - started < 1.0
    assert scope.cancelled


def test_cancellation_scope_sleep_runs_to_completion() -> None:
    scope = CancellationScope()

    assert scope.sleep(0.01) is False
    scope.cancel()
    assert scope.sleep(1.0) is True


def test_statistics_progress_fractions() -> None:
    stats = TrainingStatistics(
        current_generation=2, total_generations=4, scenarios_completed=5, total_scenarios=10
    )

    assert stats.generation_progress == pytest.approx(0.5)
    assert stats.overall_progress == pytest.approx(0.375)
