"""Private key resolution for the keeper wallet.

Key material comes from the secret store when ``--vault`` is set, otherwise from
``--private-key`` / ``KEEPER_PRIVATE_KEY``. The value is either a path to a
Solana CLI style ``id.json`` (a JSON array of bytes) or an inline list of comma
separated byte values.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from solders.keypair import Keypair

from keeperstat.core.errors import ConfigurationError

MISSING_KEY_MESSAGE = (
    "Must set environment variable KEEPER_PRIVATE_KEY with the path to a id.json or a list of "
    "comma separated numbers or load via vault and use the --vault flag"
)

_keys_logger = logging.getLogger("keeperstat.keys")


def _coerce_byte(value: object, *, position: int) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"private key byte {position} is not an integer")
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip())
        except ValueError as exc:
            raise ConfigurationError(f"private key byte {position} is not an integer: {value!r}") from exc
    if not 0 <= parsed <= 255:
        raise ConfigurationError(f"private key byte {position} out of range: {parsed}")
    return parsed


def parse_secret_key_file(path: Path) -> bytes:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"cannot parse private key file {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise ConfigurationError(f"private key file must contain a JSON array of bytes: {path}")
    return bytes(_coerce_byte(value, position=i) for i, value in enumerate(raw))


def parse_secret_key_csv(value: str) -> bytes:
    return bytes(_coerce_byte(segment, position=i) for i, segment in enumerate(value.split(",")))


def parse_secret_key_material(value: str, *, logger: logging.Logger | None = None) -> bytes:
    log = logger or _keys_logger
    candidate = Path(value).expanduser()
    if candidate.is_file():
        log.info("loading private key from %s", value)
        return parse_secret_key_file(candidate)
    log.info("loading private key as comma separated numbers")
    return parse_secret_key_csv(value)


def keypair_from_secret_bytes(secret: bytes) -> Keypair:
    if len(secret) != 64:
        raise ConfigurationError(f"private key must be 64 bytes, got {len(secret)}")
    try:
        return Keypair.from_bytes(secret)
    except ValueError as exc:
        raise ConfigurationError(f"invalid private key bytes: {exc}") from exc


async def resolve_private_key(
    *,
    use_vault: bool,
    private_key: str | None,
    vault_fetch: Callable[[], Awaitable[str]] | None = None,
) -> str:
    if use_vault:
        if vault_fetch is None:
            raise ConfigurationError("--vault requires VAULT_ENDPOINT and VAULT_TOKEN")
        material = await vault_fetch()
    else:
        material = private_key
    if not material or not str(material).strip():
        raise ConfigurationError(MISSING_KEY_MESSAGE)
    return str(material).strip()


async def load_keypair(
    *,
    use_vault: bool,
    private_key: str | None,
    vault_fetch: Callable[[], Awaitable[str]] | None = None,
    logger: logging.Logger | None = None,
) -> Keypair:
    material = await resolve_private_key(
        use_vault=use_vault, private_key=private_key, vault_fetch=vault_fetch
    )
    return keypair_from_secret_bytes(parse_secret_key_material(material, logger=logger))
