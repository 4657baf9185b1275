from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from keeperstat.config.models import RetryPolicy
from keeperstat.core.errors import ConfigurationError, SubscriptionError
from keeperstat.core.units import LAMPORTS_PER_SOL

_sync_logger = logging.getLogger("keeperstat.sync")

SleepFn = Callable[[float], Awaitable[None]]
TokenAccountResolver = Callable[[], Awaitable[Any]]


async def log_wallet_balances(
    *,
    connection: Any,
    wallet_pubkey: Any,
    program_id: Any,
    resolve_quote_token_account: TokenAccountResolver,
    logger: logging.Logger | None = None,
) -> None:
    log = logger or _sync_logger
    lamports = (await connection.get_balance(wallet_pubkey)).value
    log.info("DriftClient ProgramId: %s", program_id)
    log.info("Wallet pubkey: %s", wallet_pubkey)
    log.info(" . SOL balance: %s", lamports / LAMPORTS_PER_SOL)
    token_account = await resolve_quote_token_account()
    usdc_balance = await connection.get_token_account_balance(token_account)
    log.info(" . USDC balance: %s", usdc_balance.value.ui_amount)


async def ensure_user_account(
    *,
    client: Any,
    wallet_pubkey: Any,
    init_user: bool,
    logger: logging.Logger | None = None,
) -> str | None:
    log = logger or _sync_logger
    if await client.user_exists():
        return None
    log.error("User for %s does not exist", wallet_pubkey)
    if not init_user:
        raise ConfigurationError("Run with '--init-user' flag to initialize a User")
    log.info("Creating User for %s", wallet_pubkey)
    signature = await client.initialize_user()
    log.info("Initialized user account in transaction: %s", signature)
    return signature


async def wait_for_subscriptions(
    *,
    client: Any,
    user: Any,
    event_subscriber: Any,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    stop_event: asyncio.Event | None = None,
    logger: logging.Logger | None = None,
) -> int:
    """Retry subscribing until all three handles report success.

    Returns the number of failed rounds. Unbounded unless
    ``policy.max_attempts`` or ``stop_event`` is provided.
    """
    log = logger or _sync_logger
    failures = 0
    while True:
        if stop_event is not None and stop_event.is_set():
            raise SubscriptionError("subscription wait cancelled")
        if (
            await client.subscribe()
            and await user.subscribe()
            and await event_subscriber.subscribe()
        ):
            return failures
        failures += 1
        if policy.max_attempts is not None and failures >= policy.max_attempts:
            raise SubscriptionError(
                f"failed to subscribe to DriftClient and User after {failures} attempts"
            )
        log.info("waiting to subscribe to DriftClient and User")
        await sleep(policy.interval_seconds)


async def sync_account(
    *,
    session: Any,
    init_user: bool,
    policy: RetryPolicy,
    resolve_quote_token_account: TokenAccountResolver,
    sleep: SleepFn = asyncio.sleep,
    stop_event: asyncio.Event | None = None,
    logger: logging.Logger | None = None,
) -> Any:
    """Subscribe every handle, make sure the user exists and load fresh state.

    Returns the subscribed user view.
    """
    log = logger or _sync_logger
    client = session.client
    wallet_pubkey = session.wallet.public_key

    await log_wallet_balances(
        connection=session.connection,
        wallet_pubkey=wallet_pubkey,
        program_id=client.program_id,
        resolve_quote_token_account=resolve_quote_token_account,
        logger=log,
    )

    await client.subscribe()

    def _on_client_error(error: BaseException | str) -> None:
        log.info("drift client error")
        log.error("%s", error)

    client.on_error(_on_client_error)

    await session.event_subscriber.subscribe()
    await session.slot_subscriber.subscribe()

    await ensure_user_account(client=client, wallet_pubkey=wallet_pubkey, init_user=init_user, logger=log)

    user = client.get_user()
    await wait_for_subscriptions(
        client=client,
        user=user,
        event_subscriber=session.event_subscriber,
        policy=policy,
        sleep=sleep,
        stop_event=stop_event,
        logger=log,
    )
    log.info("User PublicKey: %s", user.user_account_public_key)
    await client.fetch_accounts()
    await user.fetch_accounts()
    return user
