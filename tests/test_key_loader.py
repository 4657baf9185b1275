from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from solders.keypair import Keypair

from keeperstat.core.errors import ConfigurationError
from keeperstat.keys.loader import (
    MISSING_KEY_MESSAGE,
    keypair_from_secret_bytes,
    load_keypair,
    parse_secret_key_csv,
    parse_secret_key_material,
    resolve_private_key,
)


def _write_key_file(tmp_path: Path, keypair: Keypair) -> Path:
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))), encoding="utf-8")
    return path


def test_load_keypair_from_json_file(tmp_path: Path) -> None:
    original = Keypair()
    path = _write_key_file(tmp_path, original)

    loaded = asyncio.run(load_keypair(use_vault=False, private_key=str(path)))

    assert bytes(loaded) == bytes(original)
    assert loaded.pubkey() == original.pubkey()


def test_load_keypair_from_comma_separated_numbers() -> None:
    original = Keypair()
    csv = ",".join(str(b) for b in bytes(original))

    loaded = asyncio.run(load_keypair(use_vault=False, private_key=csv))

    assert loaded.pubkey() == original.pubkey()


def test_parse_secret_key_csv_length_matches_segments() -> None:
    assert len(parse_secret_key_csv("1,2,3")) == 3
    assert parse_secret_key_csv(" 7, 8 ,9") == bytes([7, 8, 9])


def test_parse_secret_key_material_prefers_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "key.json"
    path.write_text("[1, 2, 3, 4]", encoding="utf-8")
    assert parse_secret_key_material(str(path)) == bytes([1, 2, 3, 4])


def test_parse_secret_key_material_file_must_hold_array(tmp_path: Path) -> None:
    path = tmp_path / "key.json"
    path.write_text('{"pk": [1, 2]}', encoding="utf-8")
    with pytest.raises(ConfigurationError, match="JSON array"):
        parse_secret_key_material(str(path))


@pytest.mark.parametrize("value", ["1,2,abc", "1,256", "1,-1", "1,,2"])
def test_parse_secret_key_csv_rejects_bad_segments(value: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_secret_key_csv(value)


def test_keypair_from_secret_bytes_requires_64_bytes() -> None:
    with pytest.raises(ConfigurationError, match="64 bytes"):
        keypair_from_secret_bytes(bytes(32))


@pytest.mark.parametrize("private_key", [None, "", "   "])
def test_resolve_private_key_missing_material(private_key) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(resolve_private_key(use_vault=False, private_key=private_key))
    assert str(excinfo.value) == MISSING_KEY_MESSAGE


def test_resolve_private_key_uses_vault_over_flag() -> None:
    calls = {"count": 0}

    async def _fetch() -> str:
        calls["count"] += 1
        return "9,8,7"

    material = asyncio.run(resolve_private_key(use_vault=True, private_key="1,2,3", vault_fetch=_fetch))

    assert material == "9,8,7"
    assert calls["count"] == 1


def test_resolve_private_key_vault_without_fetcher() -> None:
    with pytest.raises(ConfigurationError, match="VAULT_ENDPOINT"):
        asyncio.run(resolve_private_key(use_vault=True, private_key=None))


def test_resolve_private_key_does_not_touch_vault_when_disabled() -> None:
    async def _fetch() -> str:
        raise AssertionError("vault should not be queried")

    material = asyncio.run(resolve_private_key(use_vault=False, private_key=" 1,2 ", vault_fetch=_fetch))
    assert material == "1,2"
