"""
genetic_search/evolution/

Generational genetic search over user-defined genomes.

One generation:
- Evaluate candidates (slow, may be distributed)
- Score and rank them (fast, centralized)
- Keep the best and breed the rest (fast, centralized)

Searches:
- GeneticSearch: a single population
- ComposedGeneticSearch: eliminator populations feeding a final one
"""

from .algorithms import (
    ComposedGeneticSearch,
    ComposedGeneticSearchConfig,
    GeneticSearch,
    GeneticSearchConfig,
    GeneticSearchFitConfig,
    GeneticSearchInterface,
    StrategyConfig,
)
from .cache import (
    AveragePhenotypeCache,
    DummyPhenotypeCache,
    PhenotypeCache,
    SimplePhenotypeCache,
    WeightedAgeAveragePhenotypeCache,
)
from .genome import BaseGenome, EvaluatedGenome, GenomeOrigin, GenomeStats, IdGenerator, OriginCounters
from .scheduler import ActionResult, ActionStatus, Scheduler, SchedulerActionInput, rule
from .stats import GenomeStatsManager, PopulationSummary, PopulationSummaryManager
from .strategies import (
    AscendingSortStrategy,
    BaseMutationStrategy,
    BasePhenotypeStrategy,
    CrossoverStrategy,
    DescendingSortStrategy,
    FitnessStrategy,
    MutationStrategy,
    PhenotypeStrategy,
    PopulateStrategy,
    RandomSelectionStrategy,
    ReferenceLossFitnessStrategy,
    SelectionStrategy,
    SortStrategy,
    TournamentSelectionStrategy,
)
from .utils import ArrayManager, GroupedStatSummary, RangeStatSummary, StatSummary

__all__ = [
    "ComposedGeneticSearch",
    "ComposedGeneticSearchConfig",
    "GeneticSearch",
    "GeneticSearchConfig",
    "GeneticSearchFitConfig",
    "GeneticSearchInterface",
    "StrategyConfig",
    "AveragePhenotypeCache",
    "DummyPhenotypeCache",
    "PhenotypeCache",
    "SimplePhenotypeCache",
    "WeightedAgeAveragePhenotypeCache",
    "BaseGenome",
    "EvaluatedGenome",
    "GenomeOrigin",
    "GenomeStats",
    "IdGenerator",
    "OriginCounters",
    "ActionResult",
    "ActionStatus",
    "Scheduler",
    "SchedulerActionInput",
    "rule",
    "GenomeStatsManager",
    "PopulationSummary",
    "PopulationSummaryManager",
    "AscendingSortStrategy",
    "BaseMutationStrategy",
    "BasePhenotypeStrategy",
    "CrossoverStrategy",
    "DescendingSortStrategy",
    "FitnessStrategy",
    "MutationStrategy",
    "PhenotypeStrategy",
    "PopulateStrategy",
    "RandomSelectionStrategy",
    "ReferenceLossFitnessStrategy",
    "SelectionStrategy",
    "SortStrategy",
    "TournamentSelectionStrategy",
    "ArrayManager",
    "GroupedStatSummary",
    "RangeStatSummary",
    "StatSummary",
]
