"""
genetic_search/exceptions.py

Error hierarchy shared by the engine and the services.
"""


class GeneticSearchError(Exception):
    """Base for all genetic_search exceptions."""

    pass


class ConfigurationError(GeneticSearchError, ValueError):
    """Malformed sizes or rates, rejected at construction."""

    pass


class StrategyContractError(GeneticSearchError):
    """A pluggable strategy returned data the engine cannot use."""

    pass


class LengthMismatchError(StrategyContractError):
    """Positionally aligned sequences differ in length."""

    pass


class EvaluationError(GeneticSearchError):
    """An evaluation task failed or never produced a result."""

    pass


class EvolutionError(GeneticSearchError):
    """Population regeneration failures."""

    pass


class SchedulerActionError(GeneticSearchError):
    """A scheduler action reported failure."""

    pass
