"""
genetic_search/services/controller.py

Search controller service.

The controller runs a search the way a long-lived job needs it run:
1. Drives fit() generation by generation
2. Logs and records a summary of every generation
3. Writes periodic JSON checkpoints
4. Stops gracefully on request or on a signal

Evaluation itself is configured in the search's phenotype strategy
(in-process, a process pool, or queue workers).
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from genetic_search.evolution.algorithms import GeneticSearchFitConfig, GeneticSearchInterface

logger = logging.getLogger(__name__)


@dataclass
class ControllerConfig:
    """Configuration for the search controller."""
    generations: int | None = 100  # None = until stopped

    checkpoint_interval: int = 10  # generations between checkpoints
    checkpoint_path: str | None = None

    summary_precision: int = 6
    history_limit: int | None = None  # None = keep everything


def _genome_to_dict(genome: Any) -> dict[str, Any]:
    if hasattr(genome, "to_dict"):
        return genome.to_dict()
    return {"id": genome.id}


class SearchController:
    """
    Runs a genetic search with logging, history and checkpoints.

    Args:
        config: Controller configuration
        search: GeneticSearch or ComposedGeneticSearch to drive
        scheduler: Optional Scheduler attached to every step
    """

    def __init__(
        self,
        config: ControllerConfig,
        search: GeneticSearchInterface,
        scheduler: Any | None = None,
    ):
        self.config = config
        self.search = search
        self.scheduler = scheduler

        self.history: list[dict[str, Any]] = []
        self.generation_offset = 0

        self.running = False
        self.start_time: float | None = None

        logger.info(f"Controller initialized for {type(search).__name__}")

    @property
    def generation(self) -> int:
        """Generations completed, including those before a loaded checkpoint."""
        return self.generation_offset + self.search.generation

    def _after_step(self, generation: int, fitness_column: list[float]) -> None:
        summary = self.search.get_population_summary(self.config.summary_precision)
        best_fitness = fitness_column[0] if fitness_column else None

        self.history.append({
            "generation": self.generation_offset + generation,
            "best_fitness": best_fitness,
            "summary": summary.to_dict(),
        })
        if self.config.history_limit is not None and len(self.history) > self.config.history_limit:
            del self.history[:len(self.history) - self.config.history_limit]

        best_fit_str = f"{best_fitness:.4f}" if best_fitness is not None else "N/A"
        logger.info(
            f"Generation {self.generation_offset + generation}: "
            f"best fitness: {best_fit_str}, "
            f"stagnation: {summary.stagnation_counter}"
        )

        if self.config.checkpoint_path and self.generation % self.config.checkpoint_interval == 0:
            self.save_checkpoint()

    def _should_stop(self, fitness_column: list[float]) -> bool:
        return not self.running

    def run(self, generations: int | None = None) -> dict[str, Any]:
        """
        Run the search.

        Args:
            generations: Number of generations (default: from config)

        Returns:
            Final statistics
        """
        if generations is None:
            generations = self.config.generations

        self.running = True
        self.start_time = time.time()

        logger.info(f"Starting search for {generations if generations is not None else 'unbounded'} generations")

        fit_config = GeneticSearchFitConfig(
            generations_count=generations,
            after_step=self._after_step,
            stop_condition=self._should_stop,
            scheduler=self.scheduler,
        )

        try:
            self.search.fit(fit_config)
        except KeyboardInterrupt:
            logger.info("Search interrupted by user")
        finally:
            self.running = False

        total_time = time.time() - self.start_time
        summary = self.search.get_population_summary(self.config.summary_precision)

        final_stats = {
            "total_generations": self.generation,
            "total_time": total_time,
            "best_fitness": summary.fitness_summary.best,
            "best_genome": _genome_to_dict(self.search.best_genome),
            "summary": summary.to_dict(),
        }

        if self.config.checkpoint_path:
            self.save_checkpoint()

        logger.info(
            f"Search complete: {self.generation} generations, "
            f"best fitness: {summary.fitness_summary.best:.4f}"
        )

        return final_stats

    def stop(self) -> None:
        """Stop after the current generation."""
        self.running = False
        logger.info("Stopping search...")

    def save_checkpoint(self, path: str | None = None) -> None:
        """Save current state to checkpoint file."""
        path = path or self.config.checkpoint_path
        if path is None:
            return

        checkpoint = {
            "generation": self.generation,
            "history": self.history,
            "summary": self.search.get_population_summary(self.config.summary_precision).to_dict(),
            "cache": self.search.cache.export(),
            "population": [
                {
                    "id": genome.id,
                    "stats": genome.stats.to_dict() if genome.stats is not None else None,
                }
                for genome in self.search.population
            ],
        }
        if self.search.population:
            checkpoint["best_genome"] = _genome_to_dict(self.search.best_genome)

        with open(path, "w") as f:
            json.dump(checkpoint, f, indent=2)

        logger.info(f"Checkpoint saved to {path}")

    def load_checkpoint(self, path: str) -> None:
        """
        Restore history, generation count and cache from a checkpoint.

        Genomes are problem-specific and are not rebuilt; restore them
        with search.set_population() when the problem can.
        """
        with open(path) as f:
            checkpoint = json.load(f)

        self.history = checkpoint.get("history", [])
        self.generation_offset = checkpoint.get("generation", 0) - self.search.generation
        self.search.cache.import_(checkpoint.get("cache", {}))

        logger.info(f"Checkpoint loaded from {path}: generation {self.generation}")

    def get_status(self) -> dict[str, Any]:
        elapsed = 0.0
        if self.start_time:
            elapsed = time.time() - self.start_time

        summary = self.search.get_population_summary(self.config.summary_precision)
        return {
            "running": self.running,
            "generation": self.generation,
            "elapsed_time": elapsed,
            "best_fitness": summary.fitness_summary.best,
            "stagnation_counter": summary.stagnation_counter,
            "population_size": len(self.search.population),
            "history_length": len(self.history),
        }


def run_controller(config: ControllerConfig | None = None, argv: list[str] | None = None) -> dict[str, Any]:
    """
    Run the controller as a standalone service.

    `--problem package.module:factory` names a callable that receives the
    loaded config dict and returns a search, or a (search, scheduler) pair.
    """
    import argparse
    import signal
    import sys

    from genetic_search.config import controller_config_from_dict, load_config_file, resolve_callable

    parser = argparse.ArgumentParser(description="Genetic search controller")
    parser.add_argument("--problem", required=True, help="module:factory building the search")
    parser.add_argument("--config", default=None, help="YAML or JSON config file")
    parser.add_argument("--generations", type=int, default=None)
    parser.add_argument("--checkpoint-path", default=None)
    parser.add_argument("--resume", default=None, help="checkpoint to resume from")

    args = parser.parse_args(argv)

    data = load_config_file(args.config) if args.config else {}

    if config is None:
        config = controller_config_from_dict(data.get("controller", {}))
    if args.generations is not None:
        config.generations = args.generations
    if args.checkpoint_path is not None:
        config.checkpoint_path = args.checkpoint_path

    built = resolve_callable(args.problem)(data)
    search, scheduler = built if isinstance(built, tuple) else (built, None)

    controller = SearchController(config, search, scheduler)
    if args.resume:
        controller.load_checkpoint(args.resume)

    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        controller.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return controller.run()


if __name__ == "__main__":
    from genetic_search.config import configure_logging

    configure_logging(logging.INFO)
    run_controller()
