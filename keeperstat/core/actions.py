from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from keeperstat.core.errors import ConfigurationError, DepositValidationError
from keeperstat.core.units import QUOTE_PRECISION

QUOTE_SPOT_MARKET_INDEX = 0

_actions_logger = logging.getLogger("keeperstat.actions")


class RunOutcome(StrEnum):
    DEPOSIT_ONLY = "deposit_only"
    FULL_REPORT = "full_report"


@dataclass(frozen=True, slots=True)
class ActionFlags:
    close_open_positions: bool = False
    cancel_open_orders: bool = False
    force_deposit: str | None = None
    jit_maker: bool = False
    dry_run: bool = False


def parse_deposit_amount(raw: str | int | float | Decimal | None) -> int:
    """Convert an operator supplied USDC amount to quote base units."""
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise DepositValidationError(f"Deposit amount must be a number, got {raw!r}") from exc
    if not value.is_finite() or value <= 0:
        raise DepositValidationError("Deposit amount must be greater than 0")
    amount = int((value * QUOTE_PRECISION).to_integral_value(rounding=ROUND_DOWN))
    if amount <= 0:
        raise DepositValidationError("Deposit amount must be greater than 0")
    return amount


def open_perp_positions(user_account: Any) -> list[Any]:
    return [p for p in user_account.perp_positions if int(p.base_asset_amount) != 0]


def open_spot_positions(user_account: Any) -> list[Any]:
    return [p for p in user_account.spot_positions if int(p.scaled_balance) != 0]


def collect_open_order_ids(user_account: Any) -> list[int]:
    return [int(order.order_id) for order in user_account.orders if int(order.base_asset_amount) != 0]


async def _close_each(
    client: Any,
    positions: Iterable[Any],
    *,
    is_open: Callable[[Any], bool],
    dry_run: bool,
    log: logging.Logger,
) -> int:
    closed = 0
    for position in positions:
        if not is_open(position):
            log.info("no position on market: %s", position.market_index)
            continue
        log.info("closing position on %s", position.market_index)
        if dry_run:
            log.info(" . [dry-run] would close position on market %s", position.market_index)
        else:
            log.info(" . %s", await client.close_position(position.market_index))
        closed += 1
    return closed


async def close_open_positions(
    *, client: Any, user_account: Any, dry_run: bool = False, logger: logging.Logger | None = None
) -> tuple[int, int]:
    log = logger or _actions_logger
    log.info("Closing open perp positions")
    closed_perps = await _close_each(
        client,
        user_account.perp_positions,
        is_open=lambda p: int(p.base_asset_amount) != 0,
        dry_run=dry_run,
        log=log,
    )
    log.info("Closed %s perp positions", closed_perps)
    closed_spots = await _close_each(
        client,
        user_account.spot_positions,
        is_open=lambda p: int(p.scaled_balance) != 0,
        dry_run=dry_run,
        log=log,
    )
    log.info("Closed %s spot positions", closed_spots)
    return closed_perps, closed_spots


async def cancel_orders(
    *, client: Any, order_ids: list[int], dry_run: bool = False, logger: logging.Logger | None = None
) -> list[str]:
    log = logger or _actions_logger
    signatures: list[str] = []
    for order_id in order_ids:
        log.info("Cancelling open order %s", order_id)
        if dry_run:
            log.info(" . [dry-run] would cancel order %s", order_id)
            continue
        signatures.append(await client.cancel_order(order_id))
    return signatures


class ActionDispatcher:
    def __init__(
        self,
        *,
        client: Any,
        user: Any,
        is_test_network: bool,
        resolve_deposit_token_account: Callable[[], Any],
        faucet_factory: Callable[[], Any],
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.user = user
        self.is_test_network = is_test_network
        self._resolve_deposit_token_account = resolve_deposit_token_account
        self._faucet_factory = faucet_factory
        self._logger = logger or _actions_logger

    async def deposit(self, raw_amount: str, *, dry_run: bool = False) -> str | None:
        log = self._logger
        amount = parse_deposit_amount(raw_amount)
        log.info("Depositing (%s USDC to collateral account)", raw_amount)
        token_account = self._resolve_deposit_token_account()
        if dry_run:
            log.info(
                "[dry-run] would deposit %s quote units at spot market %s from %s",
                amount,
                QUOTE_SPOT_MARKET_INDEX,
                token_account,
            )
            return None
        if self.is_test_network:
            faucet = self._faucet_factory()
            minted = await faucet.mint_to_user(token_account, amount)
            log.info("Minted %s quote units to %s: %s", amount, token_account, minted)
        signature = await self.client.deposit(amount, QUOTE_SPOT_MARKET_INDEX, token_account)
        log.info("Deposit transaction: %s", signature)
        return signature

    async def dispatch(self, flags: ActionFlags) -> RunOutcome:
        log = self._logger
        if flags.close_open_positions:
            await close_open_positions(
                client=self.client,
                user_account=self.user.get_user_account(),
                dry_run=flags.dry_run,
                logger=log,
            )

        if flags.jit_maker and not flags.force_deposit and self.user.get_free_collateral() == 0:
            raise ConfigurationError(
                "No collateral in account, collateral is required to run JitMakerBot, "
                "run with --force-deposit flag to deposit collateral"
            )

        if flags.force_deposit is not None:
            await self.deposit(flags.force_deposit, dry_run=flags.dry_run)
            log.info("exiting...run again without --force-deposit flag")
            return RunOutcome.DEPOSIT_ONLY

        user_account = self.user.get_user_account()
        log.info("")
        log.info("Open orders: %s", len(user_account.orders))
        order_ids = collect_open_order_ids(user_account)
        if flags.cancel_open_orders:
            await cancel_orders(client=self.client, order_ids=order_ids, dry_run=flags.dry_run, logger=log)
        return RunOutcome.FULL_REPORT

