from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from keeperstat.config.models import RuntimeConfig, parse_runtime_config
from keeperstat.core.errors import ConfigurationError

_config_logger = logging.getLogger("keeperstat.config")


def default_config_path() -> Path | None:
    home_default = Path("~/.keeperstat/config.yaml").expanduser()
    if home_default.exists():
        return home_default
    return None


def load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"YAML file must parse to a mapping: {path}")
    return data


def load_runtime_config(path: Path | None, env: Mapping[str, str] | None = None) -> RuntimeConfig:
    raw: dict[str, Any] = {}
    if path is not None:
        raw = load_yaml(path.expanduser())
        _config_logger.debug("loaded runtime config from %s", os.fspath(path))
    return parse_runtime_config(raw, dict(os.environ) if env is None else env)
