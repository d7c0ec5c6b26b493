"""Utility helpers for dynamic imports, dictionary merging and text matching."""

from __future__ import annotations

import importlib
import re
from copy import deepcopy
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

_AMOUNT_PATTERN = re.compile(r"(?<![\w.])(\d+(?:[.,]\d{1,2})?)")


def import_from_path(path: str) -> Any:
    """Import an attribute given a string path 'module:attr'."""

    if ":" not in path:
        raise ValueError(f"Invalid import path '{path}', expected format 'module:attr'.")
    module_path, attr = path.split(":", 1)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ImportError(f"Module '{module_path}' has no attribute '{attr}'.") from exc


def deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep merge of two dictionaries; neither input is mutated."""

    merged: Dict[str, Any] = deepcopy(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge_dict(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def contains_any(text: str, needles: Iterable[str]) -> bool:
    """Case-insensitive substring check against a list of indicator phrases."""

    haystack = (text or "").lower()
    return any(needle.lower() in haystack for needle in needles if needle)


def contains_word(text: str, phrase: str) -> bool:
    """Whole-word, case-insensitive match of ``phrase`` inside ``text``."""

    if not phrase:
        return False
    pattern = r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)"
    return re.search(pattern, (text or "").lower()) is not None


def extract_leading_amount(text: str) -> Optional[Decimal]:
    """Return the first numeric token in ``text`` as a Decimal, if any."""

    match = _AMOUNT_PATTERN.search(text or "")
    if not match:
        return None
    try:
        return Decimal(match.group(1).replace(",", "."))
    except InvalidOperation:
        return None


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def truncate(value: str, limit: int = 1000) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "...[truncated]"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
