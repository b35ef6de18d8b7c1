"""
Tests for genetic_search/evolution/stats.py
"""

import pytest

from genetic_search.evolution.genome import BaseGenome, GenomeOrigin, GenomeStats, OriginCounters
from genetic_search.evolution.stats import GenomeStatsManager, PopulationSummaryManager
from genetic_search.exceptions import LengthMismatchError, StrategyContractError


def scored(genome_id, fitness, origin=GenomeOrigin.INITIAL, age=1):
    genome = BaseGenome(id=genome_id)
    genome.stats = GenomeStats(age=age, fitness=fitness, origin=origin)
    return genome


class TestGenomeStatsManager:
    """Tests for GenomeStatsManager."""

    @pytest.mark.parametrize("population, matrix, fitness", [
        ([], [], []),
        (
            [BaseGenome(id=1), BaseGenome(id=2), BaseGenome(id=3)],
            [[1, 2, 3], [4, 5, 6], [7, 8, 9]],
            [10, 20, 30],
        ),
    ])
    def test_init_then_update(self, population, matrix, fitness):
        """init attaches blank stats, update ages them and stores results."""
        manager = GenomeStatsManager()
        assert all(genome.stats is None for genome in population)

        manager.init(population, GenomeOrigin.INITIAL)
        assert [genome.stats for genome in population] == [GenomeStats() for _ in population]

        manager.update(population, matrix, fitness)
        expected = [
            GenomeStats(age=1, fitness=float(f), phenotype=[float(x) for x in row])
            for row, f in zip(matrix, fitness)
        ]
        assert [genome.stats for genome in population] == expected

    def test_age_accumulates(self):
        """Each update adds one generation of age."""
        manager = GenomeStatsManager()
        population = [BaseGenome(id=1)]
        for _ in range(3):
            manager.update(population, [[0.5]], [1.5])
        assert population[0].stats.age == 3
        assert population[0].stats.fitness == 1.5

    def test_update_initializes_missing_stats(self):
        """Genomes without stats are treated as initial."""
        manager = GenomeStatsManager()
        genome = BaseGenome(id=1)
        manager.update([genome], [[1.0]], [2.0])
        assert genome.stats.origin == GenomeOrigin.INITIAL
        assert genome.stats.age == 1

    def test_lineage_counters(self):
        """A child's counters are its parents' counters plus its own operation."""
        manager = GenomeStatsManager()
        left = BaseGenome(id=1)
        left.stats = GenomeStats(origin=GenomeOrigin.CROSSOVER, origin_counters=OriginCounters(2, 1))
        right = BaseGenome(id=2)
        right.stats = GenomeStats(origin=GenomeOrigin.MUTATION, origin_counters=OriginCounters(0, 3))

        child = BaseGenome(id=3)
        manager.init_item(child, GenomeOrigin.CROSSOVER, [left, right])

        assert child.stats.origin == GenomeOrigin.CROSSOVER
        assert child.stats.origin_counters == OriginCounters(crossover=3, mutation=4)
        assert child.stats.parent_ids == [1, 2]

        mutant = BaseGenome(id=4)
        manager.init_item(mutant, GenomeOrigin.MUTATION, [child])
        assert mutant.stats.origin_counters == OriginCounters(crossover=3, mutation=5)
        assert mutant.stats.parent_ids == [3]

    def test_init_item_is_idempotent(self):
        """Existing stats are left alone."""
        manager = GenomeStatsManager()
        genome = BaseGenome(id=1)
        manager.init_item(genome, GenomeOrigin.MUTATION)
        genome.stats.age = 7

        manager.init_item(genome, GenomeOrigin.CROSSOVER)

        assert genome.stats.origin == GenomeOrigin.MUTATION
        assert genome.stats.age == 7

    def test_init_item_returns_stats(self):
        """init_item hands back the genome's stats on every call."""
        manager = GenomeStatsManager()
        genome = BaseGenome(id=1)

        first = manager.init_item(genome, GenomeOrigin.MUTATION)
        again = manager.init_item(genome, GenomeOrigin.CROSSOVER)

        assert first is genome.stats
        assert again is genome.stats
        assert again.origin == GenomeOrigin.MUTATION

    def test_length_mismatch_fails_before_mutation(self):
        """A short fitness column raises and leaves every genome untouched."""
        manager = GenomeStatsManager()
        population = [BaseGenome(id=1), BaseGenome(id=2)]

        with pytest.raises(LengthMismatchError):
            manager.update(population, [[1.0], [2.0]], [1.0])

        assert all(genome.stats is None for genome in population)

    def test_length_mismatch_is_contract_error(self):
        """LengthMismatchError is a StrategyContractError."""
        with pytest.raises(StrategyContractError):
            GenomeStatsManager().update([BaseGenome(id=1)], [], [1.0])


class TestPopulationSummaryManager:
    """Tests for PopulationSummaryManager."""

    def test_empty_summary(self):
        """A fresh manager reports zeroes."""
        summary = PopulationSummaryManager().get()
        assert summary.fitness_summary.count == 0
        assert summary.stagnation_counter == 0

    def test_fitness_summary(self):
        """Summary reads best/second positionally from the sorted population."""
        manager = PopulationSummaryManager()
        population = [scored(1, 30.0, age=3), scored(2, 20.0, age=1), scored(3, 10.0, age=2)]

        summary = manager.update(population)

        assert summary.fitness_summary.count == 3
        assert summary.fitness_summary.best == 30.0
        assert summary.fitness_summary.second == 20.0
        assert summary.fitness_summary.mean == 20.0
        assert summary.fitness_summary.median == 20.0
        assert summary.fitness_summary.worst == 10.0
        assert summary.age_summary.min == 1.0
        assert summary.age_summary.mean == 2.0
        assert summary.age_summary.max == 3.0

    def test_grouped_by_origin(self):
        """Fitness is summarized separately per origin."""
        manager = PopulationSummaryManager()
        population = [
            scored(1, 9.0, GenomeOrigin.MUTATION),
            scored(2, 8.0, GenomeOrigin.CROSSOVER),
            scored(3, 7.0, GenomeOrigin.MUTATION),
            scored(4, 6.0, GenomeOrigin.INITIAL),
        ]

        grouped = manager.update(population).grouped_fitness_summary

        assert grouped.mutation.count == 2
        assert grouped.mutation.best == 9.0
        assert grouped.mutation.worst == 7.0
        assert grouped.crossover.count == 1
        assert grouped.crossover.best == 8.0
        assert grouped.initial.count == 1
        assert grouped.initial.mean == 6.0

    def test_genomes_without_stats_are_skipped(self):
        """Only genomes carrying stats are summarized."""
        manager = PopulationSummaryManager()
        summary = manager.update([BaseGenome(id=1), scored(2, 4.0)])
        assert summary.fitness_summary.count == 1
        assert summary.fitness_summary.best == 4.0

    def test_stagnation_counter(self):
        """The counter grows while the leader holds and resets on change."""
        manager = PopulationSummaryManager()
        population = [scored(1, 10.0), scored(2, 5.0)]

        for _ in range(10):
            manager.update(population)
        assert manager.get().stagnation_counter == 9

        manager.update([scored(3, 11.0)] + population)
        assert manager.get().stagnation_counter == 0

        manager.update([scored(3, 11.0)] + population)
        assert manager.get().stagnation_counter == 1

    def test_leader_without_stats_changes_leader(self):
        """The leader is taken from the sorted population before filtering."""
        manager = PopulationSummaryManager()
        leader = scored(2, 5.0)
        manager.update([leader])

        summary = manager.update([BaseGenome(id=9), leader])

        assert summary.stagnation_counter == 0
        assert summary.fitness_summary.count == 1

    def test_empty_updates_count_as_stagnation(self):
        """Repeated empty populations keep the same (absent) leader."""
        manager = PopulationSummaryManager()
        assert manager.update([]).stagnation_counter == 1
        assert manager.update([]).stagnation_counter == 2
        assert manager.get().fitness_summary.count == 0

    def test_get_rounded(self):
        """Rounding applies to every float field."""
        manager = PopulationSummaryManager()
        manager.update([scored(1, 2.123456), scored(2, 1.987654)])

        rounded = manager.get_rounded(2)

        assert rounded.fitness_summary.best == 2.12
        assert rounded.fitness_summary.second == 1.99
        assert rounded.fitness_summary.count == 2
        assert manager.get().fitness_summary.best == 2.123456

    def test_to_dict(self):
        """Summaries serialize to plain nested dicts."""
        manager = PopulationSummaryManager()
        manager.update([scored(1, 1.0)])
        data = manager.get().to_dict()
        assert data["fitness_summary"]["best"] == 1.0
        assert data["grouped_fitness_summary"]["initial"]["count"] == 1
        assert data["stagnation_counter"] == 0
