from __future__ import annotations

import asyncio

import pytest
from anchorpy import Provider, Wallet
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from spl.token.constants import TOKEN_PROGRAM_ID

from keeperstat.adapters.faucet import (
    TOKEN_FAUCET_PROGRAM_ID,
    TokenFaucet,
    build_mint_to_user_instruction,
    faucet_config_address,
    mint_authority_address,
    token_faucet_program,
)

MINT = Keypair().pubkey()


def _program():
    return token_faucet_program(Provider(AsyncClient("http://127.0.0.1:8899"), Wallet(Keypair())))


def test_token_faucet_program_exposes_mint_to_user() -> None:
    program = _program()
    assert program.program_id == TOKEN_FAUCET_PROGRAM_ID
    assert "mint_to_user" in program.instruction


def test_build_mint_to_user_instruction_layout() -> None:
    user_ata = Keypair().pubkey()

    ix = build_mint_to_user_instruction(_program(), mint=MINT, user_token_account=user_ata, amount=100_000_000)

    assert ix.program_id == TOKEN_FAUCET_PROGRAM_ID
    assert bytes(ix.data)[8:] == (100_000_000).to_bytes(8, "little")
    assert [meta.pubkey for meta in ix.accounts] == [
        faucet_config_address(MINT),
        MINT,
        user_ata,
        mint_authority_address(MINT),
        TOKEN_PROGRAM_ID,
    ]
    assert [meta.is_writable for meta in ix.accounts] == [False, True, True, False, False]
    assert not any(meta.is_signer for meta in ix.accounts)


def test_build_mint_to_user_instruction_rejects_non_positive_amount() -> None:
    with pytest.raises(ValueError, match="positive"):
        build_mint_to_user_instruction(_program(), mint=MINT, user_token_account=Keypair().pubkey(), amount=0)


def test_token_faucet_sends_single_instruction() -> None:
    sent: list = []
    payer = Keypair()
    user_ata = Keypair().pubkey()
    connection = AsyncClient("http://127.0.0.1:8899")

    async def _send(conn, signer, instructions) -> str:
        sent.append((conn, signer, list(instructions)))
        return "faucet-sig"

    faucet = TokenFaucet(connection, payer, MINT, send=_send)
    signature = asyncio.run(faucet.mint_to_user(user_ata, 5))

    assert signature == "faucet-sig"
    assert len(sent) == 1
    conn, signer, instructions = sent[0]
    assert conn is connection
    assert signer is payer
    assert len(instructions) == 1
    assert instructions[0].accounts[2].pubkey == user_ata
    assert bytes(instructions[0].data)[8:] == (5).to_bytes(8, "little")
