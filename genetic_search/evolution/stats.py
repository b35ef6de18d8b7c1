"""
genetic_search/evolution/stats.py

Per-genome statistics and per-generation population summaries.

GenomeStatsManager owns the lifecycle of GenomeStats records (lineage is
fixed at creation, age/fitness/phenotype are refreshed each generation).
PopulationSummaryManager condenses a sorted population into a frozen
PopulationSummary snapshot and tracks how long the leader has held.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .genome import BaseGenome, GenomeOrigin, GenomeStats, OriginCounters
from .utils import (
    GroupedStatSummary,
    RangeStatSummary,
    StatSummary,
    calc_range_stat_summary,
    calc_stat_summary,
    check_lengths,
    round_grouped_stat_summary,
    round_range_stat_summary,
    round_stat_summary,
)


class GenomeStatsManager:
    """Creates and refreshes the stats record carried by each genome."""

    def init_item(
        self,
        genome: BaseGenome,
        origin: GenomeOrigin,
        parents: Sequence[BaseGenome] = (),
    ) -> GenomeStats:
        """
        Attach stats to a genome that has none yet.

        Origin counters are the sum of the parents' counters plus one for
        the operation that produced this genome. Calling it again on a
        genome that already has stats returns them unchanged.
        """
        if genome.stats is not None:
            return genome.stats

        counters = OriginCounters()
        for parent in parents:
            if parent.stats is not None:
                counters.crossover += parent.stats.origin_counters.crossover
                counters.mutation += parent.stats.origin_counters.mutation

        if origin == GenomeOrigin.CROSSOVER:
            counters.crossover += 1
        elif origin == GenomeOrigin.MUTATION:
            counters.mutation += 1

        genome.stats = GenomeStats(
            origin=origin,
            origin_counters=counters,
            parent_ids=[parent.id for parent in parents],
        )
        return genome.stats

    def init(self, population: Iterable[BaseGenome], origin: GenomeOrigin) -> None:
        for genome in population:
            self.init_item(genome, origin)

    def update(
        self,
        population: Sequence[BaseGenome],
        phenotype_matrix: Sequence[Sequence[float]],
        fitness_column: Sequence[float],
    ) -> None:
        """Age every genome by one generation and store its latest results."""
        check_lengths(population, phenotype_matrix, fitness_column, what="population, phenotype and fitness")

        for genome, phenotype, fitness in zip(population, phenotype_matrix, fitness_column):
            self.init_item(genome, GenomeOrigin.INITIAL)
            genome.stats.age += 1
            genome.stats.fitness = float(fitness)
            genome.stats.phenotype = [float(x) for x in phenotype]


@dataclass(frozen=True)
class PopulationSummary:
    """Snapshot of a population after one generation."""
    fitness_summary: StatSummary = field(default_factory=StatSummary)
    grouped_fitness_summary: GroupedStatSummary = field(default_factory=GroupedStatSummary)
    age_summary: RangeStatSummary = field(default_factory=RangeStatSummary)
    stagnation_counter: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PopulationSummaryManager:
    """
    Keeps the latest PopulationSummary.

    The stagnation counter counts consecutive updates in which the
    best-ranked genome id stayed the same.
    """

    def __init__(self):
        self._summary = PopulationSummary()
        self._best_id: Optional[int] = None

    def get(self) -> PopulationSummary:
        # snapshots are immutable
        return self._summary

    def get_rounded(self, precision: int) -> PopulationSummary:
        summary = self._summary
        return PopulationSummary(
            fitness_summary=round_stat_summary(summary.fitness_summary, precision),
            grouped_fitness_summary=round_grouped_stat_summary(summary.grouped_fitness_summary, precision),
            age_summary=round_range_stat_summary(summary.age_summary, precision),
            stagnation_counter=summary.stagnation_counter,
        )

    def update(self, sorted_population: Sequence[BaseGenome]) -> PopulationSummary:
        """
        Recompute the summary from a population sorted best-first.

        The leader is read before filtering; genomes without stats are
        skipped by the summaries.
        """
        stagnation_counter = self._update_stagnation(sorted_population)
        population = [genome for genome in sorted_population if genome.stats is not None]

        fitness = [genome.stats.fitness for genome in population]
        by_origin: Dict[GenomeOrigin, List[float]] = {origin: [] for origin in GenomeOrigin}
        for genome in population:
            by_origin[genome.stats.origin].append(genome.stats.fitness)

        self._summary = PopulationSummary(
            fitness_summary=calc_stat_summary(fitness),
            grouped_fitness_summary=GroupedStatSummary(
                initial=calc_stat_summary(by_origin[GenomeOrigin.INITIAL]),
                crossover=calc_stat_summary(by_origin[GenomeOrigin.CROSSOVER]),
                mutation=calc_stat_summary(by_origin[GenomeOrigin.MUTATION]),
            ),
            age_summary=calc_range_stat_summary([genome.stats.age for genome in population]),
            stagnation_counter=stagnation_counter,
        )
        return self._summary

    def _update_stagnation(self, population: Sequence[BaseGenome]) -> int:
        best_id = population[0].id if population else None
        if best_id == self._best_id:
            return self._summary.stagnation_counter + 1
        self._best_id = best_id
        return 0
