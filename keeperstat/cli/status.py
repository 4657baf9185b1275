from __future__ import annotations

import argparse
import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv

from keeperstat.config.io import default_config_path, load_runtime_config
from keeperstat.config.models import RuntimeConfig
from keeperstat.core.actions import ActionDispatcher, ActionFlags, RunOutcome
from keeperstat.core.errors import KeeperStatError
from keeperstat.core.report import print_report
from keeperstat.core.sync import sync_account
from keeperstat.logging_setup import configure_logging, flush_logging

_TRUE_WORDS = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "n", "off"})

_status_logger = logging.getLogger("keeperstat.cli.status")


@dataclass(frozen=True, slots=True)
class StatusOptions:
    dry_run: bool = False
    init_user: bool = False
    filler: bool = False
    spot_filler: bool = False
    trigger: bool = False
    jit_maker: bool = False
    floating_maker: bool = False
    liquidator: bool = False
    pnl_settler: bool = False
    cancel_open_orders: bool = False
    close_open_positions: bool = False
    test_liveness: bool = False
    force_deposit: str | None = None
    metrics: int | None = None
    vault: bool = False
    private_key: str | None = None
    debug: bool = False
    config_path: str | None = None

    def action_flags(self) -> ActionFlags:
        return ActionFlags(
            close_open_positions=self.close_open_positions,
            cancel_open_orders=self.cancel_open_orders,
            force_deposit=self.force_deposit,
            jit_maker=self.jit_maker,
            dry_run=self.dry_run,
        )


def _bool_word(value: str) -> bool:
    normalized = str(value).strip().lower()
    if normalized in _TRUE_WORDS:
        return True
    if normalized in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean value, got {value!r}")


def build_parser(env: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    parser = argparse.ArgumentParser(
        prog="keeperstat",
        description="Show Drift keeper account status and run one-shot account maintenance",
    )
    parser.add_argument("-d", "--dry-run", action="store_true", help="Dry run, do not send transactions on chain")
    parser.add_argument(
        "--init-user",
        action="store_true",
        help="calls DriftClient.initialize_user if no user account exists",
    )
    parser.add_argument("--filler", action="store_true", help="Enable filler bot")
    parser.add_argument("--spot-filler", action="store_true", help="Enable spot filler bot")
    parser.add_argument("--trigger", action="store_true", help="Enable trigger bot")
    parser.add_argument("--jit-maker", action="store_true", help="Enable JIT auction maker bot")
    parser.add_argument("--floating-maker", action="store_true", help="Enable floating maker bot")
    parser.add_argument("--liquidator", action="store_true", help="Enable liquidator bot")
    parser.add_argument("--pnl-settler", action="store_true", help="Enable PnL settler bot")
    parser.add_argument("--cancel-open-orders", action="store_true", help="Cancel open orders on startup")
    parser.add_argument("--close-open-positions", action="store_true", help="Close all open positions")
    parser.add_argument(
        "--test-liveness",
        action="store_true",
        help="Purposefully fail liveness test after 1 minute",
    )
    parser.add_argument(
        "--force-deposit",
        metavar="NUMBER",
        default=None,
        help=(
            "Force deposit this amount of USDC to collateral account, "
            "the program will end after the deposit transaction is sent"
        ),
    )
    parser.add_argument("--metrics", metavar="NUMBER", type=int, default=None, help="Enable Prometheus metric scraper")
    parser.add_argument(
        "--vault",
        metavar="BOOL",
        type=_bool_word,
        default=False,
        help="Load private key from vault in the `secret` mount with the key `pk`",
    )
    parser.add_argument(
        "-p",
        "--private-key",
        default=env.get("KEEPER_PRIVATE_KEY") or None,
        help="private key, supports path to id.json, or list of comma separate numbers (env: KEEPER_PRIVATE_KEY)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default="", help="Optional runtime config YAML")
    return parser


def parse_options(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> StatusOptions:
    args = build_parser(env).parse_args(argv)
    return StatusOptions(
        dry_run=bool(args.dry_run),
        init_user=bool(args.init_user),
        filler=bool(args.filler),
        spot_filler=bool(args.spot_filler),
        trigger=bool(args.trigger),
        jit_maker=bool(args.jit_maker),
        floating_maker=bool(args.floating_maker),
        liquidator=bool(args.liquidator),
        pnl_settler=bool(args.pnl_settler),
        cancel_open_orders=bool(args.cancel_open_orders),
        close_open_positions=bool(args.close_open_positions),
        test_liveness=bool(args.test_liveness),
        force_deposit=args.force_deposit,
        metrics=args.metrics,
        vault=bool(args.vault),
        private_key=args.private_key,
        debug=bool(args.debug),
        config_path=str(args.config).strip() or None,
    )


def _flag_text(value: bool) -> str:
    return str(bool(value)).lower()


def log_enabled_bots(options: StatusOptions, logger: logging.Logger) -> None:
    logger.info(
        "Dry run: %s,\nFillerBot enabled: %s,\nSpotFillerBot enabled: %s,\n"
        "TriggerBot enabled: %s,\nJitMakerBot enabled: %s,\nPnlSettler enabled: %s,\n",
        _flag_text(options.dry_run),
        _flag_text(options.filler),
        _flag_text(options.spot_filler),
        _flag_text(options.trigger),
        _flag_text(options.jit_maker),
        _flag_text(options.pnl_settler),
    )


def _vault_fetcher(config: RuntimeConfig) -> Callable[[], Awaitable[str]] | None:
    if not config.vault_endpoint or not config.vault_token:
        return None
    from keeperstat.keys.vault import VaultAdapter

    adapter = VaultAdapter(
        endpoint=config.vault_endpoint,
        token=config.vault_token,
        namespace=config.vault_namespace,
    )
    return adapter.fetch_private_key


async def _default_wallet_factory(options: StatusOptions, config: RuntimeConfig, logger: logging.Logger) -> Any:
    from anchorpy import Wallet

    from keeperstat.keys.loader import load_keypair

    keypair = await load_keypair(
        use_vault=options.vault,
        private_key=options.private_key,
        vault_fetch=_vault_fetcher(config) if options.vault else None,
        logger=logger,
    )
    return Wallet(keypair)


def _default_session_factory(wallet: Any, config: RuntimeConfig, logger: logging.Logger) -> Any:
    from keeperstat.adapters.drift import build_drift_session

    return build_drift_session(wallet=wallet, config=config, logger=logger)


def _default_faucet_factory(session: Any) -> Callable[[], Any]:
    def _factory() -> Any:
        from keeperstat.adapters.faucet import TokenFaucet

        return TokenFaucet(session.connection, session.wallet.payer, session.markets.spot_mint(0))

    return _factory


async def run_status(
    options: StatusOptions,
    config: RuntimeConfig,
    *,
    logger: logging.Logger | None = None,
    wallet_factory: Callable[[StatusOptions, RuntimeConfig, logging.Logger], Awaitable[Any]] = _default_wallet_factory,
    session_factory: Callable[[Any, RuntimeConfig, logging.Logger], Any] = _default_session_factory,
    faucet_factory: Callable[[Any], Callable[[], Any]] = _default_faucet_factory,
    resolve_quote_token_account: Callable[[Any], Callable[[], Awaitable[Any]]] | None = None,
    resolve_deposit_token_account: Callable[[Any], Callable[[], Any]] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    stop_event: asyncio.Event | None = None,
) -> RunOutcome:
    log = logger or _status_logger
    wallet = await wallet_factory(options, config, log)
    log.info("RPC endpoint: %s", config.endpoint)
    session = session_factory(wallet, config, log)

    if resolve_quote_token_account is None:
        from keeperstat.adapters.token import get_or_create_associated_token_account

        async def _quote_token_account() -> Any:
            return await get_or_create_associated_token_account(
                session.connection, session.markets.spot_mint(0), wallet.payer, logger=log
            )

        quote_token_account = _quote_token_account
    else:
        quote_token_account = resolve_quote_token_account(session)

    if resolve_deposit_token_account is None:

        def _deposit_token_account() -> Any:
            from keeperstat.adapters.token import associated_token_address

            return associated_token_address(wallet.public_key, session.markets.spot_mint(0))

        deposit_token_account = _deposit_token_account
    else:
        deposit_token_account = resolve_deposit_token_account(session)

    try:
        user = await sync_account(
            session=session,
            init_user=options.init_user,
            policy=config.retry,
            resolve_quote_token_account=quote_token_account,
            sleep=sleep,
            stop_event=stop_event,
            logger=log,
        )

        dispatcher = ActionDispatcher(
            client=session.client,
            user=user,
            is_test_network=config.is_test_network,
            resolve_deposit_token_account=deposit_token_account,
            faucet_factory=faucet_factory(session),
            logger=log,
        )
        outcome = await dispatcher.dispatch(options.action_flags())
        if outcome is RunOutcome.FULL_REPORT:
            print_report(
                user,
                perp_symbol=session.markets.perp_symbol,
                spot_symbol=session.markets.spot_symbol,
                logger=log,
            )
        return outcome
    finally:
        await session.connection.close()


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv(find_dotenv(usecwd=True))
    options = parse_options(argv)
    try:
        config_path = Path(options.config_path) if options.config_path else default_config_path()
        config = load_runtime_config(config_path)
    except KeeperStatError as exc:
        configure_logging(log_level="DEBUG" if options.debug else "INFO")
        _status_logger.error("%s", exc)
        raise SystemExit(1) from exc

    logger = configure_logging(
        log_level="DEBUG" if options.debug else config.log_level,
        home_dir=config.home_dir,
        file_logging=config.file_logging,
        loki_url=config.loki_url,
    )
    log_enabled_bots(options, logger)

    try:
        asyncio.run(run_status(options, config, logger=logger))
    except KeeperStatError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    finally:
        flush_logging()
    raise SystemExit(0)


if __name__ == "__main__":
    main()
