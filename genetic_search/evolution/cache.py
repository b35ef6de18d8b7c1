"""
genetic_search/evolution/cache.py

Phenotype caches keyed by genome id.

Evaluations are the expensive part of a generation. A cache decides which
genomes need a fresh evaluation (get_ready) and what phenotype the engine
scores (get). Averaging caches deliberately re-evaluate every generation
and score the running mean instead.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

PhenotypeRow = List[float]


class PhenotypeCache(ABC):
    """Abstract base for phenotype caches."""

    @abstractmethod
    def get_ready(self, genome_id: int) -> Optional[PhenotypeRow]:
        """Return the phenotype if it can be reused without re-evaluation."""
        pass

    @abstractmethod
    def get(self, genome_id: int, default: Optional[PhenotypeRow] = None) -> Optional[PhenotypeRow]:
        """Return the phenotype to score, or `default` when unknown."""
        pass

    @abstractmethod
    def set(self, genome_id: int, phenotype: PhenotypeRow) -> None:
        pass

    @abstractmethod
    def clear(self, keep_ids: Iterable[int]) -> None:
        """Evict every entry whose id is not in `keep_ids`."""
        pass

    @abstractmethod
    def export(self) -> Dict[int, Any]:
        pass

    @abstractmethod
    def import_(self, data: Dict[Any, Any]) -> None:
        """Replace the cache contents with previously exported data."""
        pass

    def __len__(self) -> int:
        return len(self.export())


class DummyPhenotypeCache(PhenotypeCache):
    """Stores nothing; every genome is evaluated every generation."""

    def get_ready(self, genome_id: int) -> Optional[PhenotypeRow]:
        return None

    def get(self, genome_id: int, default: Optional[PhenotypeRow] = None) -> Optional[PhenotypeRow]:
        return default

    def set(self, genome_id: int, phenotype: PhenotypeRow) -> None:
        return None

    def clear(self, keep_ids: Iterable[int]) -> None:
        return None

    def export(self) -> Dict[int, Any]:
        return {}

    def import_(self, data: Dict[Any, Any]) -> None:
        return None


class SimplePhenotypeCache(PhenotypeCache):
    """Keeps the last phenotype of each genome and reuses it."""

    def __init__(self):
        self._cache: Dict[int, PhenotypeRow] = {}

    def get_ready(self, genome_id: int) -> Optional[PhenotypeRow]:
        return self.get(genome_id)

    def get(self, genome_id: int, default: Optional[PhenotypeRow] = None) -> Optional[PhenotypeRow]:
        if genome_id not in self._cache:
            return default
        return list(self._cache[genome_id])

    def set(self, genome_id: int, phenotype: PhenotypeRow) -> None:
        self._cache[genome_id] = [float(x) for x in phenotype]

    def clear(self, keep_ids: Iterable[int]) -> None:
        keep = set(keep_ids)
        for genome_id in [i for i in self._cache if i not in keep]:
            del self._cache[genome_id]

    def export(self) -> Dict[int, Any]:
        return {genome_id: list(row) for genome_id, row in self._cache.items()}

    def import_(self, data: Dict[Any, Any]) -> None:
        self._cache = {int(genome_id): [float(x) for x in row] for genome_id, row in data.items()}


class AveragePhenotypeCache(PhenotypeCache):
    """
    Accumulates every phenotype observed for a genome.

    get() returns the pointwise mean of all observations. get_ready() never
    answers, so noisy evaluations are repeated each generation and the
    scored phenotype smooths out over the genome's lifetime.
    """

    def __init__(self):
        self._cache: Dict[int, Tuple[np.ndarray, int]] = {}

    def get_ready(self, genome_id: int) -> Optional[PhenotypeRow]:
        return None

    def get(self, genome_id: int, default: Optional[PhenotypeRow] = None) -> Optional[PhenotypeRow]:
        if genome_id not in self._cache:
            return default
        total, count = self._cache[genome_id]
        return (total / count).tolist()

    def set(self, genome_id: int, phenotype: PhenotypeRow) -> None:
        row = np.asarray(phenotype, dtype=float)
        if genome_id not in self._cache:
            self._cache[genome_id] = (row.copy(), 1)
            return
        total, count = self._cache[genome_id]
        self._cache[genome_id] = (total + row, count + 1)

    def clear(self, keep_ids: Iterable[int]) -> None:
        keep = set(keep_ids)
        for genome_id in [i for i in self._cache if i not in keep]:
            del self._cache[genome_id]

    def export(self) -> Dict[int, Any]:
        return {
            genome_id: [total.tolist(), count]
            for genome_id, (total, count) in self._cache.items()
        }

    def import_(self, data: Dict[Any, Any]) -> None:
        self._cache = {
            int(genome_id): (np.asarray(total, dtype=float), int(count))
            for genome_id, (total, count) in data.items()
        }

    def get_count(self, genome_id: int) -> int:
        """Number of observations accumulated for the genome (0 if unknown)."""
        if genome_id not in self._cache:
            return 0
        return self._cache[genome_id][1]


class WeightedAgeAveragePhenotypeCache(AveragePhenotypeCache):
    """
    Average cache that pulls young genomes toward the population mean.

    For a genome observed `count` times the scored phenotype is

        own - (own - population_mean) * weight / count

    so a single lucky evaluation cannot carry a newcomer to the top, while
    long-lived genomes are scored almost exactly by their own average.
    The population mean is recomputed lazily after any set().
    """

    def __init__(self, weight: float):
        super().__init__()
        self.weight = weight
        self._average_row: Optional[np.ndarray] = None

    def set(self, genome_id: int, phenotype: PhenotypeRow) -> None:
        super().set(genome_id, phenotype)
        self._average_row = None

    def clear(self, keep_ids: Iterable[int]) -> None:
        super().clear(keep_ids)
        self._average_row = None

    def import_(self, data: Dict[Any, Any]) -> None:
        super().import_(data)
        self._average_row = None

    def get(self, genome_id: int, default: Optional[PhenotypeRow] = None) -> Optional[PhenotypeRow]:
        row = super().get(genome_id, default)
        if row is None or genome_id not in self._cache:
            return row

        average_row = self._refresh_average_row()
        if average_row is None:
            return row

        _, count = self._cache[genome_id]
        own = np.asarray(row, dtype=float)
        correction = (own - average_row) * (self.weight / count)
        return (own - correction).tolist()

    def _refresh_average_row(self) -> Optional[np.ndarray]:
        """Population-wide mean over all accumulated observations."""
        if not self._cache:
            self._average_row = None
            return None

        if self._average_row is None:
            totals = np.sum([total for total, _ in self._cache.values()], axis=0)
            observations = sum(count for _, count in self._cache.values())
            self._average_row = totals / observations

        return self._average_row
