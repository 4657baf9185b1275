from __future__ import annotations

from pathlib import Path

import pytest

from keeperstat.config.io import default_config_path, load_runtime_config, load_yaml
from keeperstat.core.errors import ConfigurationError


def test_load_runtime_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "app:\n"
        "  network: mainnet\n"
        "  file_logging: true\n"
        "rpc:\n"
        "  endpoint: http://rpc.local\n"
        "  poll_interval_ms: 500\n"
        "sync:\n"
        "  max_attempts: 5\n",
        encoding="utf-8",
    )

    config = load_runtime_config(path, env={})

    assert config.network == "mainnet"
    assert config.endpoint == "http://rpc.local"
    assert config.file_logging is True
    assert config.poll_interval_seconds == 0.5
    assert config.retry.max_attempts == 5


def test_load_runtime_config_without_file_uses_environment() -> None:
    config = load_runtime_config(None, env={"ENV": "mainnet", "ENDPOINT": "http://env"})
    assert config.network == "mainnet"
    assert config.endpoint == "http://env"


def test_load_yaml_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_yaml(path)


def test_load_yaml_rejects_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("app: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="invalid YAML"):
        load_yaml(path)


def test_load_yaml_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="cannot read"):
        load_yaml(tmp_path / "missing.yaml")


def test_default_config_path_only_when_present(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_config_path() is None
    (tmp_path / ".keeperstat").mkdir()
    (tmp_path / ".keeperstat" / "config.yaml").write_text("{}\n", encoding="utf-8")
    assert default_config_path() == tmp_path / ".keeperstat" / "config.yaml"
