"""Drift protocol handles built on driftpy.

Orchestration code only talks to the small surface exposed by
``DriftProtocolClient``, ``DriftUserView`` and ``SubscriberHandle``; every
protocol computation stays inside driftpy.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solders.pubkey import Pubkey

from keeperstat.config.models import RuntimeConfig

_drift_logger = logging.getLogger("keeperstat.adapters.drift")

_COMMITMENTS: dict[str, Commitment] = {
    "processed": Processed,
    "confirmed": Confirmed,
    "finalized": Finalized,
}

ErrorCallback = Callable[[BaseException | str], None]


def resolve_commitment(name: str) -> Commitment:
    return _COMMITMENTS.get(name.strip().lower(), Confirmed)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _signature_text(result: Any) -> str:
    tx_sig = getattr(result, "tx_sig", None)
    if tx_sig is not None:
        return str(tx_sig)
    if isinstance(result, list | tuple) and result:
        return str(result[0])
    return str(result)


@dataclass(frozen=True, slots=True)
class MarketDirectory:
    perp_symbols: dict[int, str]
    spot_symbols: dict[int, str]
    spot_mints: dict[int, Pubkey]

    def perp_symbol(self, market_index: int) -> str:
        return self.perp_symbols.get(int(market_index), f"market-{market_index}")

    def spot_symbol(self, market_index: int) -> str:
        return self.spot_symbols.get(int(market_index), f"market-{market_index}")

    def spot_mint(self, market_index: int) -> Pubkey:
        try:
            return self.spot_mints[int(market_index)]
        except KeyError as exc:
            raise KeyError(f"no spot market config for index {market_index}") from exc


def load_market_directory(network: str) -> MarketDirectory:
    from driftpy.constants.config import configs

    config = configs[network]
    return MarketDirectory(
        perp_symbols={int(m.market_index): str(m.symbol) for m in config.perp_markets},
        spot_symbols={int(m.market_index): str(m.symbol) for m in config.spot_markets},
        spot_mints={int(m.market_index): m.mint for m in config.spot_markets},
    )


class SubscriberHandle:
    """Normalizes sync or async ``subscribe`` calls to ``async -> bool``."""

    def __init__(self, inner: Any, *, name: str, logger: logging.Logger | None = None) -> None:
        self.inner = inner
        self.name = name
        self._logger = logger or _drift_logger

    async def subscribe(self) -> bool:
        try:
            result = await _maybe_await(self.inner.subscribe())
        except Exception as exc:
            self._logger.warning("%s subscribe failed: %s", self.name, exc)
            return False
        return result is not False


class DriftUserView:
    def __init__(self, client: Any, *, sub_account_id: int = 0, logger: logging.Logger | None = None) -> None:
        self._client = client
        self.sub_account_id = sub_account_id
        self._logger = logger or _drift_logger

    def _user(self) -> Any:
        return self._client.get_user(self.sub_account_id)

    async def subscribe(self) -> bool:
        try:
            try:
                user = self._user()
            except KeyError:
                await self._client.add_user(self.sub_account_id)
                user = self._user()
            await _maybe_await(user.subscribe())
        except Exception as exc:
            self._logger.warning("user subscribe failed: %s", exc)
            return False
        return True

    async def fetch_accounts(self) -> None:
        subscriber = getattr(self._user(), "account_subscriber", None)
        fetch = getattr(subscriber, "fetch", None)
        if callable(fetch):
            await _maybe_await(fetch())

    @property
    def user_account_public_key(self) -> Pubkey:
        return self._user().user_public_key

    def get_user_account(self) -> Any:
        return self._user().get_user_account()

    def get_free_collateral(self) -> int:
        return int(self._user().get_free_collateral())

    def get_unrealized_pnl(self) -> int:
        return int(self._user().get_unrealized_pnl(with_funding=False))

    def get_unrealized_funding_pnl(self) -> int:
        return int(self._user().get_unrealized_funding_pnl())


class DriftProtocolClient:
    def __init__(self, client: Any, *, logger: logging.Logger | None = None) -> None:
        self.client = client
        self._logger = logger or _drift_logger
        self._error_callbacks: list[ErrorCallback] = []
        self._user_view: DriftUserView | None = None

    @property
    def program_id(self) -> Pubkey:
        return self.client.program_id

    @property
    def connection(self) -> AsyncClient:
        return self.client.connection

    @property
    def wallet(self) -> Any:
        return self.client.wallet

    async def subscribe(self) -> bool:
        try:
            await _maybe_await(self.client.subscribe())
        except Exception as exc:
            self._logger.warning("drift client subscribe failed: %s", exc)
            return False
        return True

    async def fetch_accounts(self) -> None:
        fetch = getattr(getattr(self.client, "account_subscriber", None), "fetch", None)
        if callable(fetch):
            await _maybe_await(fetch())

    def on_error(self, callback: ErrorCallback) -> None:
        """Route unhandled errors from background SDK tasks to ``callback``."""
        self._error_callbacks.append(callback)
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception") or str(context.get("message", "unknown error"))
        for callback in self._error_callbacks:
            callback(error)

    def get_user(self) -> DriftUserView:
        if self._user_view is None:
            self._user_view = DriftUserView(self.client, logger=self._logger)
        return self._user_view

    async def user_exists(self) -> bool:
        user_pubkey = self.client.get_user_account_public_key()
        resp = await self.connection.get_account_info(user_pubkey)
        return resp.value is not None

    async def initialize_user(self) -> str:
        return _signature_text(await self.client.initialize_user())

    async def close_position(self, market_index: int) -> str:
        close = getattr(self.client, "close_position", None)
        if not callable(close):
            raise RuntimeError("installed driftpy DriftClient has no close_position")
        return _signature_text(await close(market_index))

    async def cancel_order(self, order_id: int) -> str:
        return _signature_text(await self.client.cancel_order(order_id))

    async def deposit(self, amount: int, spot_market_index: int, user_token_account: Pubkey) -> str:
        return _signature_text(await self.client.deposit(amount, spot_market_index, user_token_account))


@dataclass(slots=True)
class DriftSession:
    connection: AsyncClient
    account_loader: Any
    client: DriftProtocolClient
    event_subscriber: SubscriberHandle
    slot_subscriber: SubscriberHandle
    wallet: Any
    network: str
    markets: MarketDirectory


def build_drift_session(*, wallet: Any, config: RuntimeConfig, logger: logging.Logger | None = None) -> DriftSession:
    """Construct every SDK handle; performs no network I/O."""
    from driftpy.account_subscription_config import AccountSubscriptionConfig
    from driftpy.accounts.bulk_account_loader import BulkAccountLoader
    from driftpy.drift_client import DriftClient
    from driftpy.events.event_subscriber import EventSubscriber
    from driftpy.events.types import EventSubscriptionOptions, PollingLogProviderConfig
    from driftpy.slot.slot_subscriber import SlotSubscriber

    log = logger or _drift_logger
    commitment = resolve_commitment(config.commitment)
    connection = AsyncClient(config.endpoint, commitment=commitment)
    account_loader = BulkAccountLoader(connection, commitment, config.poll_interval_seconds)
    drift_client = DriftClient(
        connection,
        wallet,
        config.network,
        account_subscription=AccountSubscriptionConfig(
            "polling", bulk_account_loader=account_loader, commitment=commitment
        ),
    )
    event_subscriber = EventSubscriber(
        connection,
        drift_client.program,
        EventSubscriptionOptions(
            max_tx=config.event_max_tx,
            max_events_per_type=config.event_max_events_per_type,
            order_by="blockchain",
            order_dir="desc",
            commitment=commitment,
            log_provider_config=PollingLogProviderConfig(frequency=config.poll_interval_seconds),
        ),
    )
    slot_subscriber = SlotSubscriber(drift_client)
    return DriftSession(
        connection=connection,
        account_loader=account_loader,
        client=DriftProtocolClient(drift_client, logger=log),
        event_subscriber=SubscriberHandle(event_subscriber, name="event subscriber", logger=log),
        slot_subscriber=SubscriberHandle(slot_subscriber, name="slot subscriber", logger=log),
        wallet=wallet,
        network=config.network,
        markets=load_market_directory(config.network),
    )
