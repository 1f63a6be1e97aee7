from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Dependency, DependencyConfig

logger = logging.getLogger("fanout.config")


class ConfigError(Exception):
    pass


def load_dependencies(path: str | Path) -> list[Dependency]:
    """Read the dependency list from a YAML file.

    A missing or unreadable file is logged and treated as an empty list so the
    harness still starts as a plain echo service. Malformed content raises
    ConfigError.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Could not read config file %s: %s", path, e)
        raw = ""

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config in {path}: top level must be a mapping, got {type(data).__name__}.")

    try:
        conf = DependencyConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e

    logger.info("Loaded %d dependencies from %s", len(conf.dependencies), path)
    return list(conf.dependencies)
