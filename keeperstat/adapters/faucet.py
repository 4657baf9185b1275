"""Devnet token faucet client for the Drift quote mint.

The faucet program mints test USDC to any token account. Instructions are
built with anchorpy from the ``token_faucet`` IDL that ships with driftpy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

import driftpy
from anchorpy import Context, Idl, Program, Provider, Wallet
from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from keeperstat.adapters.token import send_instructions

TOKEN_FAUCET_PROGRAM_ID = Pubkey.from_string("V4v1mQiAdLz4qwckEb45WqHYceYizoib39cDBHSWfaB")

SendInstructions = Callable[[AsyncClient, Keypair, Sequence[Instruction]], Awaitable[str]]


def load_token_faucet_idl() -> Idl:
    path = Path(str(next(iter(driftpy.__path__)))) / "idl" / "token_faucet.json"
    return Idl.from_json(path.read_text(encoding="utf-8"))


def token_faucet_program(provider: Provider, program_id: Pubkey = TOKEN_FAUCET_PROGRAM_ID) -> Program:
    return Program(load_token_faucet_idl(), program_id, provider)


def faucet_config_address(mint: Pubkey, program_id: Pubkey = TOKEN_FAUCET_PROGRAM_ID) -> Pubkey:
    address, _bump = Pubkey.find_program_address([b"faucet_config", bytes(mint)], program_id)
    return address


def mint_authority_address(mint: Pubkey, program_id: Pubkey = TOKEN_FAUCET_PROGRAM_ID) -> Pubkey:
    address, _bump = Pubkey.find_program_address([b"mint_authority", bytes(mint)], program_id)
    return address


def build_mint_to_user_instruction(
    program: Program,
    *,
    mint: Pubkey,
    user_token_account: Pubkey,
    amount: int,
) -> Instruction:
    if amount <= 0:
        raise ValueError(f"mint amount must be positive, got {amount}")
    return program.instruction["mint_to_user"](
        int(amount),
        ctx=Context(
            accounts={
                "faucet_config": faucet_config_address(mint, program.program_id),
                "mint_account": mint,
                "user_token_account": user_token_account,
                "mint_authority": mint_authority_address(mint, program.program_id),
                "token_program": TOKEN_PROGRAM_ID,
            }
        ),
    )


class TokenFaucet:
    def __init__(
        self,
        connection: AsyncClient,
        payer: Keypair,
        mint: Pubkey,
        *,
        program_id: Pubkey = TOKEN_FAUCET_PROGRAM_ID,
        send: SendInstructions = send_instructions,
    ) -> None:
        self.connection = connection
        self.payer = payer
        self.mint = mint
        self.program = token_faucet_program(Provider(connection, Wallet(payer)), program_id)
        self._send = send

    async def mint_to_user(self, user_token_account: Pubkey, amount: int) -> str:
        ix = build_mint_to_user_instruction(
            self.program,
            mint=self.mint,
            user_token_account=user_token_account,
            amount=amount,
        )
        return await self._send(self.connection, self.payer, [ix])
