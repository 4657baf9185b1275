from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from keeperstat.core.errors import ConfigurationError

SUPPORTED_NETWORKS = frozenset({"devnet", "mainnet"})
SUPPORTED_COMMITMENTS = frozenset({"processed", "confirmed", "finalized"})
DEFAULT_NETWORK = "devnet"
DEFAULT_HOME_DIR = "~/.keeperstat"
DEFAULT_COMMITMENT = "confirmed"
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_EVENT_MAX_TX = 8192
DEFAULT_EVENT_MAX_EVENTS_PER_TYPE = 8192
DEFAULT_RETRY_INTERVAL_SECONDS = 1.0
DEFAULT_VAULT_NAMESPACE = "admin"
DEFAULT_ENDPOINTS = {
    "devnet": "https://api.devnet.solana.com",
    "mainnet": "https://api.mainnet-beta.solana.com",
}


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS
    max_attempts: int | None = None


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    network: str
    endpoint: str
    home_dir: str
    log_level: str
    file_logging: bool
    loki_url: str | None
    commitment: str
    poll_interval_ms: int
    event_max_tx: int
    event_max_events_per_type: int
    retry: RetryPolicy
    vault_endpoint: str | None
    vault_token: str | None
    vault_namespace: str

    @property
    def is_test_network(self) -> bool:
        return self.network == "devnet"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


def _section(raw: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} must be a mapping")
    return value


def _positive_int(value: Any, *, field: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{field} must be an integer") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{field} must be positive")
    return parsed


def _env_text(env: Mapping[str, str], name: str) -> str | None:
    raw = str(env.get(name, "")).strip()
    return raw or None


def parse_runtime_config(raw: Mapping[str, Any], env: Mapping[str, str] | None = None) -> RuntimeConfig:
    env = env or {}
    app = _section(raw, "app")
    rpc = _section(raw, "rpc")
    events = _section(raw, "events")
    sync = _section(raw, "sync")
    vault = _section(raw, "vault")

    network = (_env_text(env, "ENV") or str(app.get("network", DEFAULT_NETWORK))).strip().lower()
    if network not in SUPPORTED_NETWORKS:
        raise ConfigurationError(f"unsupported network: {network} (expected devnet or mainnet)")

    endpoint = _env_text(env, "ENDPOINT") or str(rpc.get("endpoint", "")).strip()
    if not endpoint:
        endpoint = DEFAULT_ENDPOINTS[network]

    commitment = str(rpc.get("commitment", DEFAULT_COMMITMENT)).strip().lower()
    if commitment not in SUPPORTED_COMMITMENTS:
        raise ConfigurationError(f"rpc.commitment must be one of: {', '.join(sorted(SUPPORTED_COMMITMENTS))}")

    try:
        interval_seconds = float(sync.get("retry_interval_seconds", DEFAULT_RETRY_INTERVAL_SECONDS))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("sync.retry_interval_seconds must be numeric") from exc
    if interval_seconds < 0:
        raise ConfigurationError("sync.retry_interval_seconds must be >= 0")
    max_attempts_raw = sync.get("max_attempts")
    max_attempts = (
        _positive_int(max_attempts_raw, field="sync.max_attempts") if max_attempts_raw is not None else None
    )

    loki_url = _env_text(env, "LOKI_URL") or (str(app.get("loki_url") or "").strip() or None)

    return RuntimeConfig(
        network=network,
        endpoint=endpoint,
        home_dir=_env_text(env, "KEEPERSTAT_HOME") or str(app.get("home_dir", DEFAULT_HOME_DIR)),
        log_level=_env_text(env, "KEEPERSTAT_LOG_LEVEL") or str(app.get("log_level", "INFO")),
        file_logging=bool(app.get("file_logging", False)),
        loki_url=loki_url,
        commitment=commitment,
        poll_interval_ms=_positive_int(
            rpc.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS), field="rpc.poll_interval_ms"
        ),
        event_max_tx=_positive_int(events.get("max_tx", DEFAULT_EVENT_MAX_TX), field="events.max_tx"),
        event_max_events_per_type=_positive_int(
            events.get("max_events_per_type", DEFAULT_EVENT_MAX_EVENTS_PER_TYPE),
            field="events.max_events_per_type",
        ),
        retry=RetryPolicy(interval_seconds=interval_seconds, max_attempts=max_attempts),
        vault_endpoint=_env_text(env, "VAULT_ENDPOINT") or (str(vault.get("endpoint") or "").strip() or None),
        vault_token=_env_text(env, "VAULT_TOKEN"),
        vault_namespace=str(vault.get("namespace", DEFAULT_VAULT_NAMESPACE)).strip() or DEFAULT_VAULT_NAMESPACE,
    )
