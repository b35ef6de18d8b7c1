"""
genetic_search/evolution/algorithms.py

Generational genetic search.

One generation:
- Evaluate the population (slow, may be delegated to workers)
- Score, rank and summarize it (fast, in-process)
- Keep the best, breed the rest from them (fast, in-process)

ComposedGeneticSearch runs several small "eliminator" searches next to a
final one and feeds every eliminator's champion into the final population.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple
import logging

from genetic_search.exceptions import ConfigurationError, EvolutionError, StrategyContractError

from .cache import DummyPhenotypeCache, PhenotypeCache
from .genome import BaseGenome, EvaluatedGenome, GenomeOrigin, IdGenerator
from .stats import GenomeStatsManager, PopulationSummary, PopulationSummaryManager
from .strategies import (
    CrossoverStrategy,
    DescendingSortStrategy,
    FitnessStrategy,
    MutationStrategy,
    PhenotypeStrategy,
    PopulateStrategy,
    RandomSelectionStrategy,
    SelectionStrategy,
    SortStrategy,
)
from .utils import check_lengths, create_evaluated_population, distinct_by, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class GeneticSearchConfig:
    """
    Population shape of one search.

    Kept mutable so a scheduler can tune rates between generations;
    call validate() after changing it by hand.
    """
    population_size: int = 100
    survival_rate: float = 0.5
    crossover_rate: float = 0.5

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if isinstance(self.population_size, bool) or not isinstance(self.population_size, int):
            raise ConfigurationError(f"population_size must be an int, got {self.population_size!r}")
        if self.population_size < 1:
            raise ConfigurationError(f"population_size must be >= 1, got {self.population_size}")
        for name in ("survival_rate", "crossover_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        # children are bred from survivors
        if round_half_up(self.population_size * self.survival_rate) == 0:
            raise ConfigurationError(
                f"survival_rate {self.survival_rate} leaves no survivors "
                f"in a population of {self.population_size}"
            )


@dataclass
class ComposedGeneticSearchConfig:
    """Shapes of the eliminator searches and of the final search."""
    eliminators: GeneticSearchConfig
    final: GeneticSearchConfig
    eliminators_count: Optional[int] = None

    def __post_init__(self):
        if self.eliminators_count is None:
            self.eliminators_count = self.final.population_size
        if self.eliminators_count < 1:
            raise ConfigurationError(f"eliminators_count must be >= 1, got {self.eliminators_count}")


@dataclass
class StrategyConfig:
    """The set of pluggable strategies a search runs with."""
    populate: PopulateStrategy
    phenotype: PhenotypeStrategy
    fitness: FitnessStrategy
    mutation: MutationStrategy
    crossover: CrossoverStrategy
    sorting: SortStrategy = field(default_factory=DescendingSortStrategy)
    selection: SelectionStrategy = field(default_factory=RandomSelectionStrategy)
    cache: PhenotypeCache = field(default_factory=DummyPhenotypeCache)


@dataclass
class GeneticSearchFitConfig:
    """
    Options for fit().

    generations_count=None runs until stop_condition returns True.
    """
    generations_count: Optional[int] = None
    before_step: Optional[Callable[[int], None]] = None
    after_step: Optional[Callable[[int, List[float]], None]] = None
    stop_condition: Optional[Callable[[List[float]], bool]] = None
    scheduler: Optional[Any] = None


class GeneticSearchInterface(ABC):
    """
    Abstract base for generational searches.

    Subclasses implement one generation in fit_step(); fit() drives the loop.
    """

    @property
    @abstractmethod
    def generation(self) -> int:
        pass

    @property
    @abstractmethod
    def best_genome(self) -> BaseGenome:
        pass

    @property
    @abstractmethod
    def population(self) -> List[BaseGenome]:
        pass

    @population.setter
    def population(self, population: List[BaseGenome]) -> None:
        self.set_population(population)

    @property
    @abstractmethod
    def partitions(self) -> Tuple[int, int, int]:
        """(survivors, crossover children, mutation children) per generation."""
        pass

    @property
    @abstractmethod
    def cache(self) -> PhenotypeCache:
        pass

    @abstractmethod
    def set_population(self, population: List[BaseGenome], reset_id_generator: bool = True) -> None:
        pass

    @abstractmethod
    def refresh_population(self) -> None:
        pass

    @abstractmethod
    def get_population_summary(self, round_precision: Optional[int] = None) -> PopulationSummary:
        pass

    @abstractmethod
    def fit_step(self, scheduler: Optional[Any] = None) -> List[float]:
        """
        Run one generation.

        Returns:
            Fitness column of the evaluated population, best first
        """
        pass

    @abstractmethod
    def clear_cache(self) -> None:
        pass

    def fit(self, config: GeneticSearchFitConfig) -> None:
        """Run generations until the count is reached or stop_condition fires."""
        steps = 0
        while config.generations_count is None or steps < config.generations_count:
            generation = self.generation
            self.clear_cache()

            if config.before_step is not None:
                config.before_step(generation)

            fitness_column = self.fit_step(config.scheduler)

            if config.after_step is not None:
                config.after_step(generation, fitness_column)

            steps += 1
            if config.stop_condition is not None and config.stop_condition(fitness_column):
                logger.info(f"Stop condition met at generation {generation}")
                break

        logger.info(f"Fit finished after {steps} generations")


class GeneticSearch(GeneticSearchInterface):
    """
    Single-population genetic search.

    `population` is the population the next fit_step() will evaluate.
    After a step it holds the survivors (best first) followed by the
    crossover and mutation children bred from them.
    """

    def __init__(
        self,
        config: GeneticSearchConfig,
        strategy: StrategyConfig,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.config = config
        self.strategy = strategy
        self.id_generator = id_generator if id_generator is not None else IdGenerator()
        self.stats_manager = GenomeStatsManager()
        self.summary_manager = PopulationSummaryManager()

        self._generation = 0
        self._evaluated: Optional[List[EvaluatedGenome]] = None

        self._population: List[BaseGenome] = list(
            strategy.populate.populate(config.population_size, self.id_generator)
        )
        self.stats_manager.init(self._population, GenomeOrigin.INITIAL)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def best_genome(self) -> BaseGenome:
        if not self._population:
            raise EvolutionError("Population is empty")
        return self._population[0]

    @property
    def population(self) -> List[BaseGenome]:
        return self._population

    @population.setter
    def population(self, population: List[BaseGenome]) -> None:
        self.set_population(population)

    def set_population(self, population: List[BaseGenome], reset_id_generator: bool = True) -> None:
        if reset_id_generator:
            self.id_generator.reset(population)
        self._population = list(population)

    @property
    def partitions(self) -> Tuple[int, int, int]:
        size = self.config.population_size
        count_to_survive = round_half_up(size * self.config.survival_rate)
        count_to_die = size - count_to_survive
        count_to_cross = round_half_up(count_to_die * self.config.crossover_rate)
        count_to_mutate = count_to_die - count_to_cross
        return count_to_survive, count_to_cross, count_to_mutate

    @property
    def cache(self) -> PhenotypeCache:
        return self.strategy.cache

    def clear_cache(self) -> None:
        self.strategy.cache.clear(genome.id for genome in self._population)

    def get_population_summary(self, round_precision: Optional[int] = None) -> PopulationSummary:
        if round_precision is None:
            return self.summary_manager.get()
        return self.summary_manager.get_rounded(round_precision)

    def fit_step(self, scheduler: Optional[Any] = None) -> List[float]:
        population = list(self._population)

        phenotype_matrix = self.strategy.phenotype.collect(population, self.strategy.cache)
        check_lengths(population, phenotype_matrix, what="population and phenotype matrix")

        fitness_column = self.strategy.fitness.score(phenotype_matrix)
        check_lengths(population, fitness_column, what="population and fitness column")

        self.stats_manager.update(population, phenotype_matrix, fitness_column)

        evaluated = self.strategy.sorting.sort(
            create_evaluated_population(population, fitness_column, phenotype_matrix)
        )
        check_lengths(population, evaluated, what="population and sorted population")

        self.summary_manager.update([x.genome for x in evaluated])
        self._evaluated = evaluated

        if scheduler is not None:
            scheduler.step(evaluated)

        self.refresh_population()
        self._generation += 1

        sorted_fitness = [x.fitness for x in evaluated]
        if sorted_fitness:
            logger.debug(
                f"Generation {self._generation - 1}: evaluated {len(population)} genomes, "
                f"best fitness {sorted_fitness[0]:.6g}"
            )
        return sorted_fitness

    def refresh_population(self) -> None:
        """Breed the next population from the last evaluated one."""
        if self._evaluated is None:
            raise EvolutionError("Nothing has been evaluated yet")

        count_to_survive, count_to_cross, count_to_mutate = self.partitions
        survivors = self._evaluated[:count_to_survive]

        crossed = self._cross(survivors, count_to_cross)
        mutated = self._mutate(survivors, count_to_mutate)

        self._population = [x.genome for x in survivors] + crossed + mutated

    def _cross(self, survivors: Sequence[EvaluatedGenome], count: int) -> List[BaseGenome]:
        if count == 0:
            return []

        groups = self.strategy.selection.select_for_crossover(survivors, count)
        if len(groups) != count:
            raise StrategyContractError(f"Selection returned {len(groups)} parent groups, expected {count}")

        children = []
        for parents in groups:
            new_id = self.id_generator.next_id()
            child = self.strategy.crossover.cross(parents, new_id)
            children.append(self._adopt(child, new_id, GenomeOrigin.CROSSOVER, parents))
        return children

    def _mutate(self, survivors: Sequence[EvaluatedGenome], count: int) -> List[BaseGenome]:
        if count == 0:
            return []

        parents = self.strategy.selection.select_for_mutation(survivors, count)
        if len(parents) != count:
            raise StrategyContractError(f"Selection returned {len(parents)} genomes, expected {count}")

        children = []
        for parent in parents:
            new_id = self.id_generator.next_id()
            child = self.strategy.mutation.mutate(parent, new_id)
            children.append(self._adopt(child, new_id, GenomeOrigin.MUTATION, [parent]))
        return children

    def _adopt(
        self,
        child: BaseGenome,
        new_id: int,
        origin: GenomeOrigin,
        parents: Sequence[BaseGenome],
    ) -> BaseGenome:
        if child.id != new_id:
            raise StrategyContractError(f"{origin.value} produced genome id {child.id}, expected {new_id}")
        # copies made with dataclasses.replace carry the parent's record
        child.stats = None
        self.stats_manager.init_item(child, origin, parents)
        return child


class ComposedGeneticSearch(GeneticSearchInterface):
    """
    Eliminator searches feeding a final search.

    Every eliminator evolves its own small population. After each of
    their steps, their best genomes join the final population, which then
    takes one step of its own. All searches share the strategies, the
    cache and one id generator.
    """

    def __init__(
        self,
        config: ComposedGeneticSearchConfig,
        strategy: StrategyConfig,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.config = config
        self.strategy = strategy
        self.id_generator = id_generator if id_generator is not None else IdGenerator()

        self.eliminators = [
            GeneticSearch(config.eliminators, strategy, self.id_generator)
            for _ in range(config.eliminators_count)
        ]
        self.final = GeneticSearch(config.final, strategy, self.id_generator)

    @property
    def generation(self) -> int:
        return self.final.generation

    @property
    def best_genome(self) -> BaseGenome:
        return self.final.best_genome

    @property
    def population(self) -> List[BaseGenome]:
        result = list(self.final.population[:self.final.config.population_size])
        for eliminator in self.eliminators:
            result.extend(eliminator.population)
        return result

    @population.setter
    def population(self, population: List[BaseGenome]) -> None:
        self.set_population(population)

    def set_population(self, population: List[BaseGenome], reset_id_generator: bool = True) -> None:
        """Split a flat population (final first) back into the searches."""
        if reset_id_generator:
            self.id_generator.reset(population)

        rest = list(population)
        final_size = len(self.final.population[:self.final.config.population_size])
        self.final.set_population(rest[:final_size], False)
        rest = rest[final_size:]

        for eliminator in self.eliminators:
            size = len(eliminator.population)
            eliminator.set_population(rest[:size], False)
            rest = rest[size:]

    @property
    def partitions(self) -> Tuple[int, int, int]:
        survive, cross, mutate = 0, 0, 0
        for eliminator in self.eliminators:
            s, c, m = eliminator.partitions
            survive += s
            cross += c
            mutate += m
        return survive, cross, mutate

    @property
    def cache(self) -> PhenotypeCache:
        return self.strategy.cache

    def clear_cache(self) -> None:
        self.strategy.cache.clear(genome.id for genome in self.population)

    def get_population_summary(self, round_precision: Optional[int] = None) -> PopulationSummary:
        return self.final.get_population_summary(round_precision)

    def refresh_population(self) -> None:
        for eliminator in self.eliminators:
            eliminator.refresh_population()
        self.final.refresh_population()

    def fit_step(self, scheduler: Optional[Any] = None) -> List[float]:
        for eliminator in self.eliminators:
            eliminator.fit_step()

        champions = [eliminator.best_genome for eliminator in self.eliminators]
        merged = distinct_by(self.final.population + champions, key=lambda genome: genome.id)
        logger.debug(f"Final population merged with {len(champions)} eliminator champions: {len(merged)} genomes")

        self.final.set_population(merged, False)
        return self.final.fit_step(scheduler)
