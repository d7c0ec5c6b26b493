"""Product catalog access used to phrase realistic customer orders."""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol

import yaml

from .types import Product

KOPITIAM_PRODUCTS: List[Product] = [
    Product("KOPI001", "Kopi", Decimal("1.40"), "beverage"),
    Product("KOPI002", "Kopi O", Decimal("1.20"), "beverage"),
    Product("KOPI003", "Kopi C", Decimal("1.40"), "beverage"),
    Product("TEH001", "Teh", Decimal("1.40"), "beverage"),
    Product("TEH002", "Teh O", Decimal("1.20"), "beverage"),
    Product("TEH003", "Teh C", Decimal("1.40"), "beverage"),
    Product("KOPI010", "Kopi Peng", Decimal("1.80"), "beverage"),
    Product("MILO001", "Milo Peng", Decimal("2.20"), "beverage"),
    Product("BAND001", "Bandung", Decimal("2.00"), "beverage"),
    Product("TOAST001", "Kaya Toast", Decimal("1.80"), "food"),
    Product("TOAST002", "Butter Sugar Toast", Decimal("1.60"), "food"),
    Product("TOAST003", "French Toast", Decimal("2.50"), "food"),
    Product("EGG001", "Soft Boiled Eggs", Decimal("1.50"), "food"),
    Product("EGG002", "Half Boiled Eggs", Decimal("1.50"), "food"),
    Product("NOOD001", "Mee Goreng", Decimal("4.50"), "food"),
    Product("ROTI001", "Roti John", Decimal("4.00"), "food"),
]


class Catalog(Protocol):
    def search(self, term: str, max_results: int) -> List[Product]:
        ...


class StaticCatalog:
    """In-memory catalog searched by substring over name, SKU and category."""

    def __init__(self, products: Iterable[Product]):
        self._products = list(products)

    def __len__(self) -> int:
        return len(self._products)

    def search(self, term: str, max_results: int) -> List[Product]:
        needle = (term or "").strip().lower()
        matches = [
            product
            for product in self._products
            if not needle
            or needle in product.name.lower()
            or needle in product.sku.lower()
            or needle in product.category.lower()
        ]
        return matches[: max(0, max_results)]


def default_catalog() -> StaticCatalog:
    return StaticCatalog(KOPITIAM_PRODUCTS)


def load_catalog(path: Path | str) -> StaticCatalog:
    """Load products from a YAML list or a JSONL file."""

    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog not found at {catalog_path}")

    if catalog_path.suffix in {".yaml", ".yml"}:
        with catalog_path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or []
        if isinstance(raw, dict):
            raw = raw.get("products", [])
        records = list(raw)
    else:
        records = []
        with catalog_path.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if not line:
                    continue
                records.append(json.loads(line))

    products = [_product_from_record(record, index) for index, record in enumerate(records)]
    if not products:
        raise ValueError(f"Catalog at {catalog_path} is empty.")
    return StaticCatalog(products)


def _product_from_record(record: Dict[str, Any], index: int) -> Product:
    name = str(record.get("name") or "").strip()
    if not name:
        raise ValueError(f"Catalog record {index} has no product name.")
    try:
        price = Decimal(str(record.get("price", "0")))
    except InvalidOperation as exc:
        raise ValueError(f"Catalog record {index} ({name}) has an invalid price.") from exc
    return Product(
        sku=str(record.get("sku") or f"ITEM{index:04d}"),
        name=name,
        price=price,
        category=str(record.get("category") or ""),
    )
