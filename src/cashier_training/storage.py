"""Training results storage."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from .types import GenerationResult, TrainingResults


class ResultsWriter:
    """Writes per-generation records and a run summary for one session."""

    def __init__(self, *, base_dir: Path, format: str = "jsonl", shard_size: int = 50):
        self.base_dir = Path(base_dir)
        self.format = format
        self.shard_size = shard_size
        self._buffer: list[dict[str, Any]] = []
        self._shard_index = 0
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def write_generation(self, result: GenerationResult) -> None:
        """Buffer a generation record and flush when the shard is full."""

        self._buffer.append(result.to_serializable())
        if len(self._buffer) >= self.shard_size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return

        shard_path = self.base_dir / f"generations-{self._shard_index:05d}.{self.format}"
        if self.format == "jsonl":
            with shard_path.open("w", encoding="utf-8") as fp:
                for item in self._buffer:
                    fp.write(json.dumps(item, ensure_ascii=False) + "\n")
        elif self.format == "parquet":
            rows = [
                {**item, "quality_metrics": json.dumps(item["quality_metrics"]),
                 "scenarios": json.dumps(item["scenarios"], ensure_ascii=False)}
                for item in self._buffer
            ]
            pd.DataFrame(rows).to_parquet(shard_path, index=False)
        else:
            raise ValueError(f"Unsupported results format '{self.format}'.")

        self._buffer.clear()
        self._shard_index += 1

    def write_summary(self, results: TrainingResults) -> Path:
        summary_path = self.base_dir / "summary.json"
        with summary_path.open("w", encoding="utf-8") as fp:
            json.dump(results.to_serializable(), fp, ensure_ascii=False, indent=2)
        return summary_path

    def finalize(self) -> None:
        self.flush()
