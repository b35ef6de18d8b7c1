"""
genetic_search/evolution/strategies.py

Pluggable strategies used by the genetic search engine.

The engine knows nothing about the problem being solved. Everything
problem-specific comes through these contracts:
- Populate: create the first generation
- Mutation / Crossover: produce children
- Phenotype: measure genomes (usually the expensive part)
- Fitness: turn a phenotype matrix into one score per genome
- Sort / Selection: rank the population and pick parents
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from genetic_search.exceptions import EvolutionError, StrategyContractError

from .cache import PhenotypeCache
from .genome import BaseGenome, EvaluatedGenome, IdGenerator
from .utils import PhenotypeMatrix, check_lengths, distinct_by, normalize_phenotype_matrix


class PopulateStrategy(ABC):
    """Creates the initial population."""

    @abstractmethod
    def populate(self, size: int, id_generator: IdGenerator) -> List[BaseGenome]:
        pass


class MutationStrategy(ABC):

    @abstractmethod
    def mutate(self, genome: BaseGenome, new_genome_id: int) -> BaseGenome:
        """Return a new genome derived from `genome`, carrying `new_genome_id`."""
        pass


class CrossoverStrategy(ABC):

    @abstractmethod
    def cross(self, parents: Sequence[BaseGenome], new_genome_id: int) -> BaseGenome:
        """Combine a group of parents into one child carrying `new_genome_id`."""
        pass


class PhenotypeStrategy(ABC):

    @abstractmethod
    def collect(self, population: Sequence[BaseGenome], cache: PhenotypeCache) -> PhenotypeMatrix:
        """Return one phenotype row per genome, in population order."""
        pass


class FitnessStrategy(ABC):

    @abstractmethod
    def score(self, matrix: PhenotypeMatrix) -> List[float]:
        pass


class SortStrategy(ABC):

    @abstractmethod
    def sort(self, evaluated: Sequence[EvaluatedGenome]) -> List[EvaluatedGenome]:
        """Order evaluated genomes best-first."""
        pass


class SelectionStrategy(ABC):

    @abstractmethod
    def select_for_crossover(self, evaluated: Sequence[EvaluatedGenome], count: int) -> List[List[BaseGenome]]:
        """Return `count` parent groups."""
        pass

    @abstractmethod
    def select_for_mutation(self, evaluated: Sequence[EvaluatedGenome], count: int) -> List[BaseGenome]:
        """Return `count` genomes to mutate."""
        pass


# ==================== Mutation ====================

class BaseMutationStrategy(MutationStrategy):
    """
    Helper base for mutations applied gene by gene.

    `probability` is the chance of touching any single gene; subclasses
    decide what a gene is and call should_mutate() for each.
    """

    def __init__(self, probability: float, seed: Optional[int] = None):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be in [0, 1], got {probability}")
        self.probability = probability
        self.rng = np.random.default_rng(seed)

    def should_mutate(self) -> bool:
        return bool(self.rng.random() < self.probability)


# ==================== Phenotype ====================

class BasePhenotypeStrategy(PhenotypeStrategy):
    """
    Phenotype strategy that evaluates genomes through an executor.

    The executor is any object with `run(inputs, genome_ids) -> rows` that
    preserves input order (see genetic_search.services.executors). Subclasses only
    describe how a genome becomes a task input.

    Genomes the cache can answer for are not evaluated again. Every fresh
    result is stored in the cache and then read back through it, so
    averaging caches blend new and old observations the same way for
    every genome.
    """

    def __init__(self, executor: Any):
        self.executor = executor

    @abstractmethod
    def create_task_input(self, genome: BaseGenome) -> Any:
        pass

    def collect(self, population: Sequence[BaseGenome], cache: PhenotypeCache) -> PhenotypeMatrix:
        results: Dict[int, Optional[List[float]]] = {
            genome.id: cache.get_ready(genome.id) for genome in population
        }

        to_run = distinct_by(
            [genome for genome in population if results[genome.id] is None],
            key=lambda genome: genome.id,
        )
        if to_run:
            rows = self.executor.run(
                [self.create_task_input(genome) for genome in to_run],
                genome_ids=[genome.id for genome in to_run],
            )
            check_lengths(to_run, rows, what="tasks and task results")

            for genome, row in zip(to_run, rows):
                row = [float(x) for x in row]
                cache.set(genome.id, row)
                results[genome.id] = cache.get(genome.id, row)

        return [list(results[genome.id]) for genome in population]


# ==================== Fitness ====================

class ReferenceLossFitnessStrategy(FitnessStrategy):
    """
    Scores genomes by their weighted distance from a reference phenotype.

    Each column is normalized against its reference value, absolute
    losses are weighted, and fitness is the negated sum. A genome that
    hits the reference exactly scores 0; everything else is negative.
    """

    def __init__(self, reference: Sequence[float], weights: Sequence[float]):
        if len(reference) != len(weights):
            raise ValueError(
                f"reference and weights must have the same length, got {len(reference)} and {len(weights)}"
            )
        self.reference = list(reference)
        self.weights = np.asarray(weights, dtype=float)

    def score(self, matrix: PhenotypeMatrix) -> List[float]:
        if len(matrix) == 0:
            return []

        for row in matrix:
            if len(row) != len(self.reference):
                raise StrategyContractError(
                    f"Phenotype row has {len(row)} values, reference has {len(self.reference)}"
                )

        losses = np.asarray(normalize_phenotype_matrix(matrix, self.reference), dtype=float)
        return (-(losses * self.weights).sum(axis=1)).tolist()


# ==================== Sorting ====================

class DescendingSortStrategy(SortStrategy):
    """Highest fitness first. Ties keep their incoming order."""

    def sort(self, evaluated: Sequence[EvaluatedGenome]) -> List[EvaluatedGenome]:
        return sorted(evaluated, key=lambda x: x.fitness, reverse=True)


class AscendingSortStrategy(SortStrategy):
    """Lowest fitness first, for problems where fitness is a cost."""

    def sort(self, evaluated: Sequence[EvaluatedGenome]) -> List[EvaluatedGenome]:
        return sorted(evaluated, key=lambda x: x.fitness)


# ==================== Selection ====================

class RandomSelectionStrategy(SelectionStrategy):
    """Uniform choice with replacement among the candidates."""

    def __init__(self, crossover_parents_count: int = 2, seed: Optional[int] = None):
        if crossover_parents_count < 1:
            raise ValueError(f"crossover_parents_count must be >= 1, got {crossover_parents_count}")
        self.crossover_parents_count = crossover_parents_count
        self.rng = np.random.default_rng(seed)

    def select_for_crossover(self, evaluated: Sequence[EvaluatedGenome], count: int) -> List[List[BaseGenome]]:
        _check_selectable(evaluated, count)
        return [
            [self._pick(evaluated) for _ in range(self.crossover_parents_count)]
            for _ in range(count)
        ]

    def select_for_mutation(self, evaluated: Sequence[EvaluatedGenome], count: int) -> List[BaseGenome]:
        _check_selectable(evaluated, count)
        return [self._pick(evaluated) for _ in range(count)]

    def _pick(self, evaluated: Sequence[EvaluatedGenome]) -> BaseGenome:
        return evaluated[self.rng.integers(len(evaluated))].genome


class TournamentSelectionStrategy(RandomSelectionStrategy):
    """
    Tournament selection.

    Each pick draws `tournament_size` random candidates and keeps the one
    ranked first among them. Candidates are expected best-first, so the
    lowest index wins and the ranking of the active sort strategy is
    respected whatever its direction.
    """

    def __init__(
        self,
        crossover_parents_count: int = 2,
        tournament_size: int = 2,
        seed: Optional[int] = None,
    ):
        super().__init__(crossover_parents_count, seed)
        if tournament_size < 1:
            raise ValueError(f"tournament_size must be >= 1, got {tournament_size}")
        self.tournament_size = tournament_size

    def _pick(self, evaluated: Sequence[EvaluatedGenome]) -> BaseGenome:
        contestants = self.rng.integers(len(evaluated), size=self.tournament_size)
        return evaluated[int(contestants.min())].genome


def _check_selectable(evaluated: Sequence[EvaluatedGenome], count: int) -> None:
    if count > 0 and len(evaluated) == 0:
        raise EvolutionError(f"Cannot select {count} genomes from an empty population")
