"""
Tests for genetic_search/evolution/algorithms.py and strategies.py
"""

import multiprocessing

import pytest

from genetic_search.evolution.algorithms import (
    ComposedGeneticSearch,
    ComposedGeneticSearchConfig,
    GeneticSearch,
    GeneticSearchConfig,
    GeneticSearchFitConfig,
)
from genetic_search.evolution.cache import SimplePhenotypeCache
from genetic_search.evolution.genome import EvaluatedGenome, GenomeOrigin, IdGenerator
from genetic_search.evolution.strategies import (
    AscendingSortStrategy,
    DescendingSortStrategy,
    PhenotypeStrategy,
    RandomSelectionStrategy,
    ReferenceLossFitnessStrategy,
    TournamentSelectionStrategy,
)
from genetic_search.exceptions import (
    ConfigurationError,
    EvaluationError,
    EvolutionError,
    LengthMismatchError,
    StrategyContractError,
)
from genetic_search.services.executors import PoolExecutor, SequentialExecutor

from conftest import ParabolaGenome, make_genome, make_parabola_strategy, parabola_task


def parabola(x):
    return -((x + 12) ** 2) - 3


def evaluated(*fitness):
    return [
        EvaluatedGenome(genome=make_genome(i + 1, float(i)), fitness=f, phenotype=[f])
        for i, f in enumerate(fitness)
    ]


class TestGeneticSearchConfig:
    """Tests for config validation."""

    @pytest.mark.parametrize("options", [
        {"population_size": 0},
        {"population_size": -5},
        {"population_size": 10.0},
        {"population_size": True},
        {"survival_rate": 1.5},
        {"survival_rate": -0.1},
        {"crossover_rate": 2.0},
        {"population_size": 20, "survival_rate": 0.0, "crossover_rate": 1.0},
        {"population_size": 20, "survival_rate": 0.0, "crossover_rate": 0.0},
        {"population_size": 1, "survival_rate": 0.4},
    ])
    def test_invalid_config(self, options):
        """Malformed sizes and rates are rejected at construction."""
        with pytest.raises(ConfigurationError):
            GeneticSearchConfig(**options)

    def test_configuration_error_is_value_error(self):
        """ConfigurationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            GeneticSearchConfig(population_size=0)

    def test_composed_defaults_eliminators_count(self):
        """Eliminator count defaults to the final population size."""
        config = ComposedGeneticSearchConfig(
            eliminators=GeneticSearchConfig(population_size=10),
            final=GeneticSearchConfig(population_size=7),
        )
        assert config.eliminators_count == 7

    def test_composed_rejects_zero_eliminators(self):
        with pytest.raises(ConfigurationError):
            ComposedGeneticSearchConfig(
                eliminators=GeneticSearchConfig(population_size=10),
                final=GeneticSearchConfig(population_size=10),
                eliminators_count=0,
            )


class TestPartitions:
    """Tests for population partitioning."""

    @pytest.mark.parametrize("size, survival, crossover, expected", [
        (100, 0.5, 0.5, (50, 25, 25)),
        (10, 0.5, 0.5, (5, 3, 2)),
        (7, 0.5, 0.3, (4, 1, 2)),
        (5, 0.5, 0.5, (3, 1, 1)),
        (1, 0.5, 0.5, (1, 0, 0)),
        (20, 1.0, 0.5, (20, 0, 0)),
        (20, 0.25, 0.0, (5, 0, 15)),
    ])
    def test_partitions(self, size, survival, crossover, expected):
        """Halves round up, and the three parts sum to the population size."""
        config = GeneticSearchConfig(population_size=size, survival_rate=survival, crossover_rate=crossover)
        search = GeneticSearch(config, make_parabola_strategy())

        assert search.partitions == expected
        assert sum(search.partitions) == size


class TestGeneticSearch:
    """Tests for GeneticSearch."""

    def test_initial_population(self, search_config, parabola_strategy):
        """The first population has fresh ids and initial stats."""
        search = GeneticSearch(search_config, parabola_strategy)

        assert len(search.population) == 100
        assert [genome.id for genome in search.population] == list(range(1, 101))
        assert all(genome.stats.origin == GenomeOrigin.INITIAL for genome in search.population)
        assert search.generation == 0

    def test_parabola_maximum(self, search_config, parabola_strategy):
        """The search finds the top of the parabola."""
        search = GeneticSearch(search_config, parabola_strategy, IdGenerator())
        assert search.partitions == (50, 25, 25)

        search.fit(GeneticSearchFitConfig(generations_count=100))

        best = search.best_genome
        assert abs(best.x - (-12)) < 0.01
        assert abs(parabola(best.x) - (-3)) < 0.01
        assert search.generation == 100

        population = search.population
        assert len(population) == 100
        search.population = population
        assert search.population == population

    def test_fit_step_returns_sorted_fitness(self, search_config, parabola_strategy):
        """fit_step returns the fitness column best first."""
        search = GeneticSearch(search_config, parabola_strategy)
        fitness = search.fit_step()

        assert len(fitness) == 100
        assert fitness == sorted(fitness, reverse=True)
        assert search.get_population_summary().fitness_summary.best == fitness[0]

    def test_population_layout_after_step(self, search_config, parabola_strategy):
        """Survivors come first, then crossover and mutation children."""
        search = GeneticSearch(search_config, parabola_strategy)
        search.fit_step()

        population = search.population
        origins = [genome.stats.origin for genome in population]
        assert all(origin == GenomeOrigin.INITIAL for origin in origins[:50])
        assert all(origin == GenomeOrigin.CROSSOVER for origin in origins[50:75])
        assert all(origin == GenomeOrigin.MUTATION for origin in origins[75:])
        assert [genome.id for genome in population[50:]] == list(range(101, 151))
        assert all(genome.stats.age == 1 for genome in population[:50])
        assert all(genome.stats.age == 0 for genome in population[50:])
        assert all(len(genome.stats.parent_ids) == 2 for genome in population[50:75])
        assert all(len(genome.stats.parent_ids) == 1 for genome in population[75:])

    def test_ascending_sort(self, search_config):
        """With an ascending sort the search minimizes."""
        strategy = make_parabola_strategy()
        strategy.sorting = AscendingSortStrategy()
        search = GeneticSearch(search_config, strategy)

        fitness = search.fit_step()

        assert fitness == sorted(fitness)
        assert parabola(search.best_genome.x) == fitness[0]

    def test_set_population_resets_ids(self, search_config, parabola_strategy):
        """Ids continue after the largest id of the new population."""
        search = GeneticSearch(search_config, parabola_strategy)

        search.set_population([make_genome(50), make_genome(7)])
        assert search.id_generator.peek() == 51

        search.set_population([make_genome(3)], False)
        assert search.id_generator.peek() == 51
        assert search.population == [make_genome(3)]

    def test_refresh_before_evaluation(self, search_config, parabola_strategy):
        """Breeding without an evaluated population is an error."""
        search = GeneticSearch(search_config, parabola_strategy)
        with pytest.raises(EvolutionError):
            search.refresh_population()

    def test_phenotype_length_mismatch(self, search_config):
        """A phenotype strategy dropping rows breaks the contract."""

        class ShortPhenotypeStrategy(PhenotypeStrategy):
            def collect(self, population, cache):
                return [[parabola(genome.x)] for genome in population][:-1]

        strategy = make_parabola_strategy()
        strategy.phenotype = ShortPhenotypeStrategy()
        search = GeneticSearch(search_config, strategy)

        with pytest.raises(StrategyContractError):
            search.fit_step()
        assert search.generation == 0

    def test_fitness_length_mismatch(self, search_config):
        """A fitness strategy returning too few scores breaks the contract."""
        strategy = make_parabola_strategy()
        strategy.fitness.score = lambda matrix: [row[0] for row in matrix][1:]
        search = GeneticSearch(search_config, strategy)

        with pytest.raises(LengthMismatchError):
            search.fit_step()

    def test_child_with_wrong_id(self, search_config):
        """Children must carry the id they were given."""
        strategy = make_parabola_strategy()
        strategy.crossover.cross = lambda parents, new_genome_id: ParabolaGenome(id=1, x=0.0)
        search = GeneticSearch(search_config, strategy)

        with pytest.raises(StrategyContractError):
            search.fit_step()

    def test_failing_task(self, search_config):
        """Task errors surface as EvaluationError."""

        def broken(x):
            raise RuntimeError("boom")

        search = GeneticSearch(search_config, make_parabola_strategy(SequentialExecutor(broken)))
        with pytest.raises(EvaluationError):
            search.fit_step()


class TestFit:
    """Tests for fit()."""

    def test_callbacks(self, search_config, parabola_strategy):
        """before_step and after_step see every generation in order."""
        before, after = [], []
        search = GeneticSearch(search_config, parabola_strategy)

        search.fit(GeneticSearchFitConfig(
            generations_count=3,
            before_step=lambda generation: before.append(generation),
            after_step=lambda generation, fitness: after.append((generation, len(fitness))),
        ))

        assert before == [0, 1, 2]
        assert after == [(0, 100), (1, 100), (2, 100)]

    def test_stop_condition(self, search_config, parabola_strategy):
        """fit stops as soon as stop_condition returns True."""
        seen = []

        def stop(fitness):
            seen.append(fitness[0])
            return len(seen) == 4

        search = GeneticSearch(search_config, parabola_strategy)
        search.fit(GeneticSearchFitConfig(stop_condition=stop))

        assert search.generation == 4
        assert seen == sorted(seen)

    def test_cache_reduces_evaluations(self, search_config):
        """A simple cache only evaluates newborn genomes after the first step."""
        calls = []
        executor = SequentialExecutor(parabola_task, on_task_result=lambda row, task_input: calls.append(task_input))
        search = GeneticSearch(search_config, make_parabola_strategy(executor, SimplePhenotypeCache()))

        search.fit(GeneticSearchFitConfig(generations_count=3))

        assert len(calls) == 100 + 50 + 50

    def test_without_cache_every_genome_is_evaluated(self, search_config):
        calls = []
        executor = SequentialExecutor(parabola_task, on_task_result=lambda row, task_input: calls.append(task_input))
        search = GeneticSearch(search_config, make_parabola_strategy(executor))

        search.fit(GeneticSearchFitConfig(generations_count=3))

        assert len(calls) == 300

    @pytest.mark.skipif(
        "fork" not in multiprocessing.get_all_start_methods(),
        reason="fork start method not available",
    )
    def test_pool_matches_sequential(self, search_config):
        """A process pool gives the same search as in-process evaluation."""
        sequential = GeneticSearch(search_config, make_parabola_strategy())
        pooled = GeneticSearch(
            search_config,
            make_parabola_strategy(PoolExecutor(parabola_task, pool_size=2, mp_context="fork")),
        )

        config = GeneticSearchFitConfig(generations_count=5)
        sequential.fit(config)
        pooled.fit(config)

        assert pooled.best_genome == sequential.best_genome
        assert pooled.population == sequential.population


class TestComposedGeneticSearch:
    """Tests for ComposedGeneticSearch."""

    @pytest.fixture
    def composed_config(self):
        return ComposedGeneticSearchConfig(
            eliminators=GeneticSearchConfig(population_size=10, survival_rate=0.5, crossover_rate=0.5),
            final=GeneticSearchConfig(population_size=10, survival_rate=0.5, crossover_rate=0.5),
        )

    def test_shape(self, composed_config, parabola_strategy):
        """Ten eliminators of ten plus a final population of ten."""
        search = ComposedGeneticSearch(composed_config, parabola_strategy)

        assert len(search.eliminators) == 10
        assert search.partitions == (50, 30, 20)
        assert len(search.population) == 10 * 10 + 10
        ids = [genome.id for genome in search.population]
        assert len(set(ids)) == len(ids)

    def test_parabola_maximum(self, composed_config, parabola_strategy):
        """Eliminator champions drive the final search to the maximum."""
        search = ComposedGeneticSearch(composed_config, parabola_strategy)

        search.fit(GeneticSearchFitConfig(generations_count=100))

        best = search.best_genome
        assert abs(best.x - (-12)) < 0.05
        assert abs(parabola(best.x) - (-3)) < 0.01

        population = search.population
        assert len(population) == 110
        search.population = population
        assert search.population == population

    def test_champions_join_final(self, composed_config, parabola_strategy):
        """Every eliminator's best genome is evaluated by the final search."""
        search = ComposedGeneticSearch(composed_config, parabola_strategy)
        fitness = search.fit_step()

        # 10 final genomes plus 10 distinct champions
        assert len(fitness) == 20
        assert search.generation == 1
        assert all(eliminator.generation == 1 for eliminator in search.eliminators)
        assert len(search.final.population) == 10

    def test_summary_comes_from_final(self, composed_config, parabola_strategy):
        search = ComposedGeneticSearch(composed_config, parabola_strategy)
        search.fit_step()
        assert search.get_population_summary() == search.final.get_population_summary()
        assert search.get_population_summary().fitness_summary.count == 20


class TestSelectionStrategies:
    """Tests for selection strategies."""

    def test_random_selection_shapes(self):
        strategy = RandomSelectionStrategy(crossover_parents_count=3, seed=1)
        candidates = evaluated(5.0, 4.0, 3.0)

        groups = strategy.select_for_crossover(candidates, 4)
        assert len(groups) == 4
        assert all(len(group) == 3 for group in groups)

        picked = strategy.select_for_mutation(candidates, 6)
        assert len(picked) == 6
        assert {genome.id for genome in picked} <= {1, 2, 3}

    def test_tournament_prefers_first_ranked(self):
        """With a large tournament the top-ranked candidate always wins."""
        strategy = TournamentSelectionStrategy(tournament_size=200, seed=1)
        candidates = evaluated(5.0, 4.0, 3.0, 2.0, 1.0)

        assert [genome.id for genome in strategy.select_for_mutation(candidates, 10)] == [1] * 10

    def test_empty_candidates(self):
        """Selecting from nothing is an error unless nothing is requested."""
        strategy = RandomSelectionStrategy(seed=1)
        with pytest.raises(EvolutionError):
            strategy.select_for_mutation([], 1)
        with pytest.raises(EvolutionError):
            strategy.select_for_crossover([], 1)
        assert strategy.select_for_mutation([], 0) == []

    @pytest.mark.parametrize("options", [
        {"crossover_parents_count": 0},
        {"tournament_size": 0},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(ValueError):
            TournamentSelectionStrategy(**options)


class TestSortStrategies:
    """Tests for sort strategies."""

    def test_descending_is_stable(self):
        items = evaluated(1.0, 3.0, 3.0, 2.0)
        result = DescendingSortStrategy().sort(items)
        assert [x.genome.id for x in result] == [2, 3, 4, 1]

    def test_ascending(self):
        items = evaluated(1.0, 3.0, 0.5)
        result = AscendingSortStrategy().sort(items)
        assert [x.genome.id for x in result] == [3, 1, 2]


class TestReferenceLossFitnessStrategy:
    """Tests for ReferenceLossFitnessStrategy."""

    def test_score(self):
        """Weighted normalized distances, negated."""
        strategy = ReferenceLossFitnessStrategy(reference=[0, 10], weights=[1, 2])
        matrix = [[0, 10], [2, 20], [-4, 5]]

        assert strategy.score(matrix) == pytest.approx([0.0, -2.5, -2.0])

    def test_empty_matrix(self):
        assert ReferenceLossFitnessStrategy([1.0], [1.0]).score([]) == []

    def test_mismatched_weights(self):
        with pytest.raises(ValueError):
            ReferenceLossFitnessStrategy(reference=[1.0, 2.0], weights=[1.0])

    def test_row_length_mismatch(self):
        strategy = ReferenceLossFitnessStrategy(reference=[1.0, 2.0], weights=[1.0, 1.0])
        with pytest.raises(StrategyContractError):
            strategy.score([[1.0]])

    def test_reference_fitness_search(self, search_config):
        """Scoring by distance to -3 finds the parabola top as well."""
        strategy = make_parabola_strategy()
        strategy.fitness = ReferenceLossFitnessStrategy(reference=[-3.0], weights=[1.0])
        search = GeneticSearch(search_config, strategy)

        search.fit(GeneticSearchFitConfig(generations_count=100))

        assert abs(parabola(search.best_genome.x) - (-3)) < 0.01
