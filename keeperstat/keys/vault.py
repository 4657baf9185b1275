from __future__ import annotations

from collections.abc import Callable
from typing import Any

from keeperstat.core.errors import VaultError

VAULT_SECRET_KEY_FIELD = "pk"


def extract_private_key(payload: Any, *, field: str = VAULT_SECRET_KEY_FIELD) -> str:
    """Read ``data.data.<field>`` from a KV v2 secret response."""
    if not isinstance(payload, dict):
        raise VaultError("vault_invalid_response_payload")
    outer = payload.get("data")
    inner = outer.get("data") if isinstance(outer, dict) else None
    if not isinstance(inner, dict):
        raise VaultError("vault_response_missing_data")
    value = inner.get(field)
    if value is None:
        raise VaultError(f"vault_response_missing_field:{field}")
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    text = str(value).strip()
    if not text:
        raise VaultError(f"vault_response_empty_field:{field}")
    return text


class VaultAdapter:
    def __init__(
        self,
        *,
        endpoint: str,
        token: str,
        namespace: str = "admin",
        timeout_seconds: float = 15.0,
        session_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.endpoint = endpoint.strip()
        self.token = token
        self.namespace = namespace
        self.timeout_seconds = timeout_seconds
        self._session_factory = session_factory

    def _headers(self) -> dict[str, str]:
        return {
            "X-Vault-Token": self.token,
            "X-Vault-Namespace": self.namespace,
            "Accept": "application/json",
        }

    async def fetch_private_key(self) -> str:
        import aiohttp

        if self._session_factory is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            session_cm = aiohttp.ClientSession(timeout=timeout)
        else:
            session_cm = self._session_factory()

        try:
            async with session_cm as session:
                async with session.get(self.endpoint, headers=self._headers()) as response:
                    if response.status >= 400:
                        raise VaultError(f"vault_http_error:{response.status}")
                    payload = await response.json()
        except aiohttp.ClientError as exc:
            raise VaultError(f"vault_network_error:{exc}") from exc
        return extract_private_key(payload)
