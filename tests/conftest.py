"""
Shared fixtures for genetic_search tests.

The parabola problem: find x maximizing -((x + 12)^2) - 3,
so the best genome has x = -12 and fitness -3.
"""

from dataclasses import dataclass
from typing import List

import numpy as np
import pytest

from genetic_search.evolution.algorithms import GeneticSearchConfig, StrategyConfig
from genetic_search.evolution.genome import BaseGenome
from genetic_search.evolution.strategies import (
    BaseMutationStrategy,
    BasePhenotypeStrategy,
    CrossoverStrategy,
    FitnessStrategy,
    PopulateStrategy,
    RandomSelectionStrategy,
)
from genetic_search.services.executors import SequentialExecutor


@dataclass
class ParabolaGenome(BaseGenome):
    x: float = 0.0


def parabola_task(x: float) -> List[float]:
    return [-((x + 12) ** 2) - 3]


class ParabolaPopulateStrategy(PopulateStrategy):
    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)

    def populate(self, size, id_generator):
        return [
            ParabolaGenome(id=id_generator.next_id(), x=float(self.rng.uniform(-100, 100)))
            for _ in range(size)
        ]


class ParabolaMutationStrategy(BaseMutationStrategy):
    def __init__(self, seed: int = 42):
        super().__init__(probability=1.0, seed=seed)

    def mutate(self, genome, new_genome_id):
        return ParabolaGenome(id=new_genome_id, x=genome.x + float(self.rng.uniform(-5, 5)))


class ParabolaCrossoverStrategy(CrossoverStrategy):
    def cross(self, parents, new_genome_id):
        return ParabolaGenome(id=new_genome_id, x=sum(p.x for p in parents) / len(parents))


class ParabolaPhenotypeStrategy(BasePhenotypeStrategy):
    def create_task_input(self, genome):
        return genome.x


class TransparentFitnessStrategy(FitnessStrategy):
    """Fitness is the first phenotype value."""

    def score(self, matrix):
        return [row[0] for row in matrix]


def make_parabola_strategy(executor=None, cache=None, seed: int = 42) -> StrategyConfig:
    options = {}
    if cache is not None:
        options["cache"] = cache
    return StrategyConfig(
        populate=ParabolaPopulateStrategy(seed),
        phenotype=ParabolaPhenotypeStrategy(executor or SequentialExecutor(parabola_task)),
        fitness=TransparentFitnessStrategy(),
        mutation=ParabolaMutationStrategy(seed),
        crossover=ParabolaCrossoverStrategy(),
        selection=RandomSelectionStrategy(seed=seed),
        **options,
    )


@pytest.fixture
def parabola_strategy():
    return make_parabola_strategy()


@pytest.fixture
def search_config():
    return GeneticSearchConfig(population_size=100, survival_rate=0.5, crossover_rate=0.5)


def make_genome(genome_id: int, x: float = 0.0) -> ParabolaGenome:
    return ParabolaGenome(id=genome_id, x=x)


@pytest.fixture
def strategy_factory():
    return make_parabola_strategy


@pytest.fixture
def genome_factory():
    return make_genome


@pytest.fixture
def task():
    return parabola_task


def build_parabola_search(data):
    """Problem factory for run_controller: `--problem conftest:build_parabola_search`."""
    from genetic_search.config import search_config_from_dict
    from genetic_search.evolution.algorithms import GeneticSearch

    return GeneticSearch(search_config_from_dict(data.get("search", {})), make_parabola_strategy())


def failing_task(x):
    raise RuntimeError(f"cannot evaluate {x}")
