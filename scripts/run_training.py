"""CLI entry point for running a cashier prompt-training session."""

from __future__ import annotations

import argparse
import threading
from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from cashier_training import TrainingSessionController, TrainingRunConfig
from cashier_training.catalog import load_catalog
from cashier_training.config import load_config
from cashier_training.events import GenerationComplete, ProgressUpdated
from cashier_training.utils import import_from_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Optimize a cashier agent prompt.")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        required=True,
        help="Path to the training run configuration (YAML).",
    )
    parser.add_argument(
        "--agent",
        help="Optional 'module:attr' agent factory overriding the configured agent.",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        help="Optional YAML/JSONL catalog overriding catalog_path.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    console = Console()

    run_config: TrainingRunConfig = load_config(args.config)
    training = run_config.training
    console.log(
        f"Loaded configuration for run '{run_config.run_name}': "
        f"{training.max_generations} generation(s), {training.scenario_count} scenario(s) each, "
        f"prompt {run_config.prompt_store.personality}/{run_config.prompt_store.prompt_type}."
    )

    agent_factory = import_from_path(args.agent) if args.agent else None
    catalog = load_catalog(args.catalog) if args.catalog else None
    controller = TrainingSessionController.from_config(
        run_config, agent_factory=agent_factory, catalog=catalog, console=console
    )

    generations = Table(title="Generations")
    for column in ("Gen", "Score", "Improvement", "Best", "Changes"):
        generations.add_column(column)

    cancel = threading.Event()
    with Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("training", total=1.0)

        def _on_progress(event: ProgressUpdated) -> None:
            progress.update(
                task_id,
                completed=event.progress_fraction,
                description=(
                    f"gen {event.generation} scenario {event.scenario_index}/{event.total_scenarios} "
                    f"(score {event.current_score:.2f})"
                ),
            )

        def _on_generation(event: GenerationComplete) -> None:
            generations.add_row(
                str(event.generation),
                f"{event.score:.3f}",
                f"{event.improvement:+.3f}",
                f"{event.best_score:.3f}",
                event.change_summary,
            )

        controller.events.subscribe(ProgressUpdated, _on_progress)
        controller.events.subscribe(GenerationComplete, _on_generation)

        try:
            results = controller.start(training, cancel)
        except KeyboardInterrupt:
            controller.abort("Interrupted from the keyboard.")
            raise

    console.print(generations)
    console.log(
        f"Session {results.session_id} {results.final_state}: best score {results.best_score:.3f}, "
        f"improvement {results.total_improvement:+.3f} over {results.generations_completed} generation(s)."
    )
    if results.abort_reason:
        console.log(f"[yellow]Abort reason: {results.abort_reason}")


if __name__ == "__main__":
    main()
