"""
genetic_search/evolution/genome.py

Genome records shared by every strategy.

A genome is whatever the problem needs to describe one candidate, plus a
unique integer id. The engine attaches GenomeStats to it the first time it
sees it and keeps that record current while the genome survives.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, TypeVar


class GenomeOrigin(str, Enum):
    """How a genome came to exist."""
    INITIAL = "initial"
    CROSSOVER = "crossover"
    MUTATION = "mutation"


@dataclass
class OriginCounters:
    """Crossover and mutation operations anywhere in a genome's ancestry."""
    crossover: int = 0
    mutation: int = 0


@dataclass
class GenomeStats:
    """
    Engine-managed statistics of a genome.

    origin, origin_counters and parent_ids are fixed at creation;
    age, fitness and phenotype are rewritten every generation.
    """
    age: int = 0
    fitness: float = 0.0
    phenotype: List[float] = field(default_factory=list)
    origin: GenomeOrigin = GenomeOrigin.INITIAL
    origin_counters: OriginCounters = field(default_factory=OriginCounters)
    parent_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["origin"] = self.origin.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenomeStats":
        counters = data.get("origin_counters", {})
        return cls(
            age=data.get("age", 0),
            fitness=data.get("fitness", 0.0),
            phenotype=list(data.get("phenotype", [])),
            origin=GenomeOrigin(data.get("origin", GenomeOrigin.INITIAL.value)),
            origin_counters=OriginCounters(
                crossover=counters.get("crossover", 0),
                mutation=counters.get("mutation", 0),
            ),
            parent_ids=list(data.get("parent_ids", [])),
        )


@dataclass
class BaseGenome:
    """
    Base record for a candidate solution.

    Subclass it with the problem's fields; keep `id` unique per run.
    """
    id: int
    stats: Optional[GenomeStats] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize genome (problem fields and stats) to a dictionary."""
        data = asdict(self)
        data["stats"] = self.stats.to_dict() if self.stats is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaseGenome":
        """Rebuild a genome produced by to_dict."""
        data = dict(data)
        stats = data.pop("stats", None)
        genome = cls(**data)
        genome.stats = GenomeStats.from_dict(stats) if stats is not None else None
        return genome


TGenome = TypeVar("TGenome", bound=BaseGenome)

Population = List[TGenome]


@dataclass
class EvaluatedGenome:
    """A genome zipped with its results for one generation step."""
    genome: Any
    fitness: float
    phenotype: List[float]


class IdGenerator:
    """
    Monotonic genome id source.

    One instance may be shared between several searches; ids are never
    reused unless reset() is called.
    """

    def __init__(self, start: int = 1):
        self._next = start

    def next_id(self) -> int:
        current = self._next
        self._next += 1
        return current

    def peek(self) -> int:
        return self._next

    def reset(self, population: Iterable[BaseGenome]) -> None:
        """Continue numbering after the largest id in `population`."""
        self._next = max((genome.id for genome in population), default=0) + 1
