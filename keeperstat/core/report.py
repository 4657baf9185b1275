from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from driftpy.math.spot_market import get_signed_token_amount
from driftpy.types import is_variant

from keeperstat.core.actions import open_perp_positions, open_spot_positions
from keeperstat.core.units import (
    BASE_PRECISION,
    FUNDING_RATE_PRECISION,
    QUOTE_PRECISION,
    SPOT_BALANCE_PRECISION,
    format_number,
)

_report_logger = logging.getLogger("keeperstat.report")

SymbolLookup = Callable[[int], str]


def balance_type_name(balance_type: Any) -> str:
    return "deposit" if is_variant(balance_type, "Deposit") else "borrow"


def render_account_stats(user: Any) -> list[str]:
    return [
        f"User free collateral: ${format_number(user.get_free_collateral(), QUOTE_PRECISION)}:",
        f"User unrealized funding PnL: {format_number(user.get_unrealized_funding_pnl(), QUOTE_PRECISION)}",
        f"User unrealized PnL:         {format_number(user.get_unrealized_pnl(), QUOTE_PRECISION)}",
    ]


def render_perp_position(position: Any, symbol: str) -> list[str]:
    return [
        f"[{symbol}]",
        f" . baseAssetAmount:  {format_number(position.base_asset_amount, BASE_PRECISION)}",
        f" . quoteAssetAmount: {format_number(position.quote_asset_amount, QUOTE_PRECISION)}",
        f" . quoteEntryAmount: {format_number(position.quote_entry_amount, QUOTE_PRECISION)}",
        " . lastCumulativeFundingRate: "
        f"{format_number(position.last_cumulative_funding_rate, FUNDING_RATE_PRECISION)}",
        f" . openOrders: {position.open_orders}, "
        f"openBids: {format_number(position.open_bids, BASE_PRECISION)}, "
        f"openAsks: {format_number(position.open_asks, BASE_PRECISION)}",
    ]


def render_spot_position(position: Any, symbol: str) -> list[str]:
    signed = get_signed_token_amount(int(position.scaled_balance), position.balance_type)
    return [
        f"[{symbol}]",
        f" . baseAssetAmount:  {format_number(signed, SPOT_BALANCE_PRECISION)}",
        f" . balanceType: {balance_type_name(position.balance_type)}",
        f" . openOrders: {position.open_orders}, "
        f"openBids: {format_number(position.open_bids, SPOT_BALANCE_PRECISION)}, "
        f"openAsks: {format_number(position.open_asks, SPOT_BALANCE_PRECISION)}",
    ]


def render_open_positions(
    user_account: Any, *, perp_symbol: SymbolLookup, spot_symbol: SymbolLookup
) -> tuple[list[str], list[str]]:
    perp_lines: list[str] = []
    for position in open_perp_positions(user_account):
        perp_lines.extend(render_perp_position(position, perp_symbol(position.market_index)))
    spot_lines: list[str] = []
    for position in open_spot_positions(user_account):
        spot_lines.extend(render_spot_position(position, spot_symbol(position.market_index)))
    return perp_lines, spot_lines


def print_report(
    user: Any,
    *,
    perp_symbol: SymbolLookup,
    spot_symbol: SymbolLookup,
    logger: logging.Logger | None = None,
    emit: Callable[[str], None] = print,
) -> None:
    """Headers go to the logger, position blocks straight to stdout."""
    log = logger or _report_logger
    for line in render_account_stats(user):
        log.info("%s", line)
    perp_lines, spot_lines = render_open_positions(
        user.get_user_account(), perp_symbol=perp_symbol, spot_symbol=spot_symbol
    )
    log.info("Open Perp Positions:")
    for line in perp_lines:
        emit(line)
    log.info("Open Spot Positions:")
    for line in spot_lines:
        emit(line)
