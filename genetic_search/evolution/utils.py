"""
genetic_search/evolution/utils.py

Numeric helpers for phenotype matrices and population statistics.

Phenotype rows are plain lists of floats on the outside; numpy does the
column arithmetic on the inside.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np

from genetic_search.exceptions import LengthMismatchError

from .genome import EvaluatedGenome

T = TypeVar("T")

PhenotypeRow = List[float]
PhenotypeMatrix = List[PhenotypeRow]
FitnessColumn = List[float]


@dataclass(frozen=True)
class StatSummary:
    """count/best/second/mean/median/worst of a best-first sample."""
    count: int = 0
    best: float = 0.0
    second: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    worst: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RangeStatSummary:
    """min/mean/max of a sample."""
    min: float = 0.0
    mean: float = 0.0
    max: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupedStatSummary:
    """StatSummary per genome origin."""
    initial: StatSummary = field(default_factory=StatSummary)
    crossover: StatSummary = field(default_factory=StatSummary)
    mutation: StatSummary = field(default_factory=StatSummary)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(np.floor(value + 0.5))


def round_value(value: float, precision: int) -> float:
    return float(round(value, precision))


def array_mean(values: Sequence[float]) -> float:
    return float(np.mean(values))


def array_median(sorted_values: Sequence[float]) -> float:
    """
    Median of an already sorted sample.

    The sample direction does not matter; for an even count the two middle
    elements are averaged.
    """
    middle = len(sorted_values) // 2
    if len(sorted_values) % 2 != 0:
        return float(sorted_values[middle])
    return (sorted_values[middle - 1] + sorted_values[middle]) / 2


def check_lengths(*sequences: Sequence[Any], what: str = "sequences") -> int:
    """Raise LengthMismatchError unless every sequence has the same length."""
    lengths = [len(s) for s in sequences]
    if len(set(lengths)) > 1:
        raise LengthMismatchError(f"Length mismatch between {what}: {lengths}")
    return lengths[0] if lengths else 0


# ==================== Normalization ====================

def normalize_phenotype_row(row: Sequence[float], reference: float) -> PhenotypeRow:
    """
    Normalize values to [-1, 1] with `reference` mapped to 0.

    The scale is the largest distance between the reference and the row's
    extremes; a zero distance leaves the row centered but unscaled.
    """
    if len(row) == 0:
        return []
    values = np.asarray(row, dtype=float)
    max_distance = max(abs(values.max() - reference), abs(values.min() - reference))
    denominator = max_distance or 1.0
    return ((values - reference) / denominator).tolist()


def normalize_phenotype_matrix_columns(
    matrix: Sequence[Sequence[float]],
    reference: Sequence[float],
) -> PhenotypeMatrix:
    """Normalize each column of the matrix against its reference value."""
    if len(matrix) == 0:
        return []

    result = np.array(matrix, dtype=float)
    for i in range(result.shape[1]):
        result[:, i] = normalize_phenotype_row(result[:, i], reference[i])
    return result.tolist()


def normalize_phenotype_matrix(
    matrix: Sequence[Sequence[float]],
    reference: Sequence[float],
    abs: bool = True,
) -> PhenotypeMatrix:
    """Column-normalize the matrix, optionally taking absolute values."""
    result = normalize_phenotype_matrix_columns(matrix, reference)
    if abs:
        return np.abs(np.array(result, dtype=float)).tolist() if result else []
    return result


# ==================== Summaries ====================

def calc_stat_summary(sorted_values: Sequence[float]) -> StatSummary:
    """
    Summarize a sample sorted best-first.

    best and second are read positionally, not searched for.
    """
    if len(sorted_values) == 0:
        return StatSummary()

    return StatSummary(
        count=len(sorted_values),
        best=float(sorted_values[0]),
        second=float(sorted_values[1]) if len(sorted_values) > 1 else 0.0,
        mean=array_mean(sorted_values),
        median=array_median(sorted_values),
        worst=float(sorted_values[-1]),
    )


def calc_range_stat_summary(values: Sequence[float]) -> RangeStatSummary:
    if len(values) == 0:
        return RangeStatSummary()

    data = np.asarray(values, dtype=float)
    return RangeStatSummary(
        min=float(data.min()),
        mean=float(data.mean()),
        max=float(data.max()),
    )


def round_stat_summary(summary: StatSummary, precision: int) -> StatSummary:
    return StatSummary(
        count=summary.count,
        best=round_value(summary.best, precision),
        second=round_value(summary.second, precision),
        mean=round_value(summary.mean, precision),
        median=round_value(summary.median, precision),
        worst=round_value(summary.worst, precision),
    )


def round_grouped_stat_summary(summary: GroupedStatSummary, precision: int) -> GroupedStatSummary:
    return GroupedStatSummary(
        initial=round_stat_summary(summary.initial, precision),
        crossover=round_stat_summary(summary.crossover, precision),
        mutation=round_stat_summary(summary.mutation, precision),
    )


def round_range_stat_summary(summary: RangeStatSummary, precision: int) -> RangeStatSummary:
    return RangeStatSummary(
        min=round_value(summary.min, precision),
        mean=round_value(summary.mean, precision),
        max=round_value(summary.max, precision),
    )


# ==================== Evaluated populations ====================

def create_evaluated_population(
    population: Sequence[Any],
    fitness_column: Sequence[float],
    phenotype_matrix: Sequence[Sequence[float]],
) -> List[EvaluatedGenome]:
    """Zip a population with its fitness column and phenotype matrix."""
    check_lengths(population, fitness_column, phenotype_matrix, what="population, fitness and phenotype")
    return [
        EvaluatedGenome(genome=genome, fitness=float(fitness), phenotype=list(phenotype))
        for genome, fitness, phenotype in zip(population, fitness_column, phenotype_matrix)
    ]


def extract_evaluated_population(
    evaluated: Sequence[EvaluatedGenome],
) -> Tuple[List[Any], FitnessColumn, PhenotypeMatrix]:
    """Split evaluated genomes back into population, fitness and phenotype."""
    return (
        [x.genome for x in evaluated],
        [x.fitness for x in evaluated],
        [x.phenotype for x in evaluated],
    )


def distinct_by(items: Iterable[T], key: Callable[[T], Any]) -> List[T]:
    """Keep the first item for every key, preserving order."""
    seen = set()
    result = []
    for item in items:
        k = key(item)
        if k not in seen:
            seen.add(k)
            result.append(item)
    return result


# ==================== ArrayManager ====================

RemoveOrder = Union[str, Callable[[Any], Any]]


class ArrayManager(Generic[T]):
    """
    Mutable handle over a list owned by someone else.

    Every operation works on the wrapped list in place, so the owner sees
    updates and removals immediately.
    """

    def __init__(self, data: List[T]):
        self._data = data

    @property
    def data(self) -> List[T]:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index: int) -> T:
        return self._data[index]

    def __iter__(self):
        return iter(self._data)

    def update(self, filter: Callable[[T], bool], update: Callable[[T], None]) -> List[T]:
        """
        Apply `update` to every item matching `filter`.

        Returns:
            The updated items in list order
        """
        updated = []
        for item in self._data:
            if filter(item):
                update(item)
                updated.append(item)
        return updated

    def remove(
        self,
        filter: Callable[[T], bool],
        max_count: Optional[int] = None,
        order: RemoveOrder = "asc",
    ) -> List[T]:
        """
        Remove items matching `filter`.

        Args:
            filter: Predicate selecting removal candidates
            max_count: Upper bound on removed items (None = no bound)
            order: "asc" removes the earliest matches first, "desc" the
                latest; a callable is used as a sort key over candidates

        Returns:
            The removed items, in the order they were chosen
        """
        if max_count is not None and max_count < 0:
            raise ValueError(f"max_count must be non-negative, got {max_count}")

        candidates = [i for i, item in enumerate(self._data) if filter(item)]

        if order == "asc":
            pass
        elif order == "desc":
            candidates.reverse()
        elif callable(order):
            candidates.sort(key=lambda i: order(self._data[i]))
        else:
            raise ValueError(f"Unknown remove order: {order}")

        if max_count is not None:
            candidates = candidates[:max_count]

        removed = [self._data[i] for i in candidates]
        chosen = set(candidates)
        self._data[:] = [item for i, item in enumerate(self._data) if i not in chosen]

        return removed
