from __future__ import annotations

import logging
from collections.abc import Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.instructions import create_associated_token_account, get_associated_token_address

_token_logger = logging.getLogger("keeperstat.adapters.token")


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, mint)


async def send_instructions(
    connection: AsyncClient,
    payer: Keypair,
    instructions: Sequence[Instruction],
) -> str:
    latest = await connection.get_latest_blockhash()
    blockhash = latest.value.blockhash
    message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
    tx = Transaction([payer], message, blockhash)
    resp = await connection.send_transaction(tx, opts=TxOpts(preflight_commitment=Confirmed))
    return str(resp.value)


async def get_or_create_associated_token_account(
    connection: AsyncClient,
    mint: Pubkey,
    payer: Keypair,
    *,
    logger: logging.Logger | None = None,
) -> Pubkey:
    log = logger or _token_logger
    owner = payer.pubkey()
    ata = associated_token_address(owner, mint)
    info = await connection.get_account_info(ata)
    if info.value is not None:
        return ata
    log.info("creating associated token account %s for mint %s", ata, mint)
    ix = create_associated_token_account(payer=owner, owner=owner, mint=mint)
    signature = await send_instructions(connection, payer, [ix])
    log.info("created associated token account in transaction: %s", signature)
    return ata
