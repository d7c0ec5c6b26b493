"""Print the optimization history of a prompt."""

from __future__ import annotations

import argparse
from pathlib import Path

from rich.console import Console
from rich.table import Table

from cashier_training.config import load_config
from cashier_training.prompt_store import FilePromptStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show prompt optimization history.")
    parser.add_argument("--config", "-c", type=Path, required=True, help="Training run configuration (YAML).")
    parser.add_argument("--limit", type=int, default=10, help="Number of records to show.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    console = Console()
    config = load_config(args.config)
    store_config = config.prompt_store
    store = FilePromptStore(store_config.root_dir)

    console.log(
        f"Prompt types for {store_config.personality}: "
        f"{', '.join(store.list_prompt_types(store_config.personality)) or 'none'}"
    )
    records = store.get_history(store_config.personality, store_config.prompt_type, args.limit)
    if not records:
        console.log(f"[yellow]No optimization history for {store_config.personality}/{store_config.prompt_type}.")
        return

    table = Table(title=f"{store_config.personality}/{store_config.prompt_type}")
    for column in ("When", "Session", "Score", "Length", "Notes"):
        table.add_column(column)
    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.session_id,
            f"{record.score:.3f}",
            str(len(record.optimized_prompt)),
            record.notes or "",
        )
    console.print(table)


if __name__ == "__main__":
    main()
