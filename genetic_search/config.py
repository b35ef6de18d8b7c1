"""
genetic_search/config.py

Loading search and service configuration from files and the environment.

Config files are YAML or JSON mappings, for example:

    search:
      population_size: 100
      survival_rate: 0.5
      crossover_rate: 0.5
    controller:
      generations: 100
      checkpoint_interval: 10
    worker:
      queue_backend: redis
      max_consecutive_errors: 5

A composed search replaces `search` with `composed`:

    composed:
      eliminators: {population_size: 10, survival_rate: 0.5, crossover_rate: 0.5}
      final: {population_size: 10, survival_rate: 0.5, crossover_rate: 0.5}
      eliminators_count: 5
"""

from __future__ import annotations

import importlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

import yaml

from genetic_search.evolution.algorithms import ComposedGeneticSearchConfig, GeneticSearchConfig
from genetic_search.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REDIS_URL_ENV = "GENETIC_SEARCH_REDIS_URL"
DEFAULT_REDIS_URL = "redis://localhost:6379"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Basic stderr logging for the command line entry points."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_redis_url(default: str = DEFAULT_REDIS_URL) -> str:
    return os.environ.get(REDIS_URL_ENV, default)


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML (.yaml/.yml) or JSON config file into a dict."""
    path = Path(path)
    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif path.suffix == ".json":
            data = json.load(f)
        else:
            raise ConfigurationError(f"Unsupported config format: {path.suffix}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    logger.debug(f"Loaded config from {path}")
    return data


def _known_fields(data: dict[str, Any], fields: tuple[str, ...], what: str) -> dict[str, Any]:
    unknown = set(data) - set(fields)
    if unknown:
        raise ConfigurationError(f"Unknown {what} options: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in fields}


def search_config_from_dict(data: dict[str, Any]) -> GeneticSearchConfig:
    return GeneticSearchConfig(**_known_fields(
        data,
        ("population_size", "survival_rate", "crossover_rate"),
        "search",
    ))


def composed_config_from_dict(data: dict[str, Any]) -> ComposedGeneticSearchConfig:
    for key in ("eliminators", "final"):
        if key not in data:
            raise ConfigurationError(f"Composed search config requires '{key}'")
    _known_fields(data, ("eliminators", "final", "eliminators_count"), "composed search")

    return ComposedGeneticSearchConfig(
        eliminators=search_config_from_dict(data["eliminators"]),
        final=search_config_from_dict(data["final"]),
        eliminators_count=data.get("eliminators_count"),
    )


def controller_config_from_dict(data: dict[str, Any]):
    """Build a ControllerConfig, rejecting unknown options."""
    from dataclasses import fields

    from genetic_search.services.controller import ControllerConfig

    options = _known_fields(data, tuple(f.name for f in fields(ControllerConfig)), "controller")
    return ControllerConfig(**options)


def worker_config_from_dict(data: dict[str, Any]):
    from dataclasses import fields

    from genetic_search.services.worker import WorkerConfig

    options = _known_fields(data, tuple(f.name for f in fields(WorkerConfig)), "worker")
    options.setdefault("redis_url", get_redis_url())
    return WorkerConfig(**options)


def resolve_callable(path: str) -> Callable[..., Any]:
    """Import `module.path:attribute` and return the attribute."""
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(f"Expected 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError:
        raise ConfigurationError(f"Module {module_name} has no attribute {attribute!r}")

    if not callable(target):
        raise ConfigurationError(f"{path} is not callable")
    return target
