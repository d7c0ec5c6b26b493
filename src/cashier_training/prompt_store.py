"""Prompt template storage with backups, history and a read-through cache."""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from .types import OptimizationRecord
from .utils import utc_now

CONTEXT_HEADER = "## CURRENT CONTEXT:"


class MissingPromptError(LookupError):
    """No prompt template exists for a personality/prompt type combination."""


class PromptPersistenceError(RuntimeError):
    """A refined prompt could not be written."""


@dataclass
class PromptContext:
    """Runtime facts appended to a template when it is handed to an agent."""

    time_of_day: Optional[str] = None
    current_time: Optional[str] = None
    currency: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)

    def lines(self) -> List[str]:
        lines: List[str] = []
        if self.time_of_day:
            lines.append(f"Time: {self.time_of_day}")
        if self.current_time:
            lines.append(f"Current time: {self.current_time}")
        if self.currency:
            lines.append(f"Currency: {self.currency}")
        lines.extend(f"{key}: {value}" for key, value in self.extras.items())
        return lines


def inject_context(template: str, context: Optional[PromptContext]) -> str:
    lines = context.lines() if context is not None else []
    if not lines:
        return template
    body = "\n".join(f"- {line}" for line in lines)
    return f"{template.rstrip()}\n\n{CONTEXT_HEADER}\n{body}\n"


def strip_context_sections(text: str) -> str:
    """Remove injected context sections and surrounding whitespace."""

    kept: List[str] = []
    skipping = False
    for line in text.splitlines():
        if line.strip().startswith(CONTEXT_HEADER):
            skipping = True
            continue
        if skipping and line.startswith("## "):
            skipping = False
        if not skipping:
            kept.append(line)
    return "\n".join(kept).strip()


class PromptStore(Protocol):
    def get_current(
        self, personality: str, prompt_type: str, context: Optional[PromptContext] = None
    ) -> str:
        ...

    def save_optimized(
        self,
        personality: str,
        prompt_type: str,
        template: str,
        score: float,
        session_id: str,
        change_summary: Optional[str] = None,
    ) -> None:
        ...

    def list_prompt_types(self, personality: str) -> List[str]:
        ...

    def get_history(self, personality: str, prompt_type: str, limit: int = 10) -> List[OptimizationRecord]:
        ...

    def invalidate(self, personality: str, prompt_type: str) -> None:
        ...


class FilePromptStore:
    """Stores templates as ``<root>/<personality>/<prompt_type>.md``.

    Each save backs up the previous template under ``.backups/``, writes the
    new one atomically, verifies it, appends an :class:`OptimizationRecord` to
    ``.history/<prompt_type>.jsonl`` and drops the cached copy for that key.
    """

    def __init__(self, root_dir: Path | str, *, keep_backups: bool = True):
        self.root_dir = Path(root_dir)
        self.keep_backups = keep_backups
        self._cache: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def template_path(self, personality: str, prompt_type: str) -> Path:
        return self.root_dir / personality / f"{prompt_type}.md"

    def _history_path(self, personality: str, prompt_type: str) -> Path:
        return self.root_dir / personality / ".history" / f"{prompt_type}.jsonl"

    def get_current(
        self, personality: str, prompt_type: str, context: Optional[PromptContext] = None
    ) -> str:
        return inject_context(self._load(personality, prompt_type), context)

    def _load(self, personality: str, prompt_type: str) -> str:
        key = (personality, prompt_type)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        path = self.template_path(personality, prompt_type)
        if not path.is_file():
            raise MissingPromptError(
                f"No prompt template for personality '{personality}' and prompt type "
                f"'{prompt_type}' (expected {path}). Create the file or point "
                "prompt_store.root_dir at the directory holding the agent prompts."
            )
        template = path.read_text(encoding="utf-8")
        with self._lock:
            self._cache[key] = template
        return template

    def invalidate(self, personality: str, prompt_type: str) -> None:
        with self._lock:
            self._cache.pop((personality, prompt_type), None)

    def save_optimized(
        self,
        personality: str,
        prompt_type: str,
        template: str,
        score: float,
        session_id: str,
        change_summary: Optional[str] = None,
    ) -> None:
        path = self.template_path(personality, prompt_type)
        normalized = strip_context_sections(template) + "\n"
        try:
            previous = path.read_text(encoding="utf-8") if path.is_file() else ""
            path.parent.mkdir(parents=True, exist_ok=True)
            if previous and self.keep_backups:
                self._backup(path, previous)

            tmp_path = path.with_name(f".{path.name}.tmp")
            tmp_path.write_text(normalized, encoding="utf-8")
            os.replace(tmp_path, path)

            if path.read_text(encoding="utf-8") != normalized:
                raise PromptPersistenceError(f"Verification failed after writing {path}.")

            record = OptimizationRecord(
                personality=personality,
                prompt_type=prompt_type,
                original_prompt=previous,
                optimized_prompt=normalized,
                score=score,
                session_id=session_id,
                quality_metrics=_prompt_metrics(normalized, score),
                notes=change_summary,
            )
            self._append_history(record)
        except OSError as exc:
            raise PromptPersistenceError(
                f"Could not persist prompt '{personality}/{prompt_type}' to {path}: {exc}"
            ) from exc
        finally:
            self.invalidate(personality, prompt_type)

    def _backup(self, path: Path, content: str) -> None:
        backup_dir = path.parent / ".backups"
        backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
        (backup_dir / f"{path.stem}.{stamp}.md").write_text(content, encoding="utf-8")

    def _append_history(self, record: OptimizationRecord) -> None:
        history_path = self._history_path(record.personality, record.prompt_type)
        history_path.parent.mkdir(parents=True, exist_ok=True)
        with history_path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(record.to_serializable(), ensure_ascii=False) + "\n")

    def list_prompt_types(self, personality: str) -> List[str]:
        directory = self.root_dir / personality
        if not directory.is_dir():
            return []
        return sorted(path.stem for path in directory.glob("*.md") if path.is_file())

    def get_history(self, personality: str, prompt_type: str, limit: int = 10) -> List[OptimizationRecord]:
        history_path = self._history_path(personality, prompt_type)
        if not history_path.is_file():
            return []
        records: List[OptimizationRecord] = []
        with history_path.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(OptimizationRecord.from_serializable(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError):
                    continue
        records.sort(key=lambda record: record.timestamp, reverse=True)
        return records[: max(0, limit)]


def _prompt_metrics(template: str, score: float) -> Dict[str, float]:
    return {
        "score": score,
        "prompt_length": float(len(template)),
        "line_count": float(template.count("\n")),
    }
