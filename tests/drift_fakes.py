from __future__ import annotations

from types import SimpleNamespace

from driftpy.types import SpotBalanceType

from keeperstat.adapters.drift import MarketDirectory

Deposit = SpotBalanceType.Deposit
Borrow = SpotBalanceType.Borrow


def perp_position(market_index: int, base: int, **overrides):
    fields = {
        "market_index": market_index,
        "base_asset_amount": base,
        "quote_asset_amount": 0,
        "quote_entry_amount": 0,
        "last_cumulative_funding_rate": 0,
        "open_orders": 0,
        "open_bids": 0,
        "open_asks": 0,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def spot_position(market_index: int, scaled_balance: int, balance_type=None, **overrides):
    fields = {
        "market_index": market_index,
        "scaled_balance": scaled_balance,
        "balance_type": balance_type if balance_type is not None else Deposit(),
        "open_orders": 0,
        "open_bids": 0,
        "open_asks": 0,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def order(order_id: int, base: int):
    return SimpleNamespace(order_id=order_id, base_asset_amount=base)


def user_account(*, perps=(), spots=(), orders=()):
    return SimpleNamespace(perp_positions=list(perps), spot_positions=list(spots), orders=list(orders))


class FakeUser:
    def __init__(
        self,
        account=None,
        *,
        free_collateral: int = 0,
        unrealized_pnl: int = 0,
        funding_pnl: int = 0,
        subscribe_results=None,
        events: list | None = None,
    ) -> None:
        self.account = account if account is not None else user_account()
        self.free_collateral = free_collateral
        self.unrealized_pnl = unrealized_pnl
        self.funding_pnl = funding_pnl
        self._subscribe_results = list(subscribe_results or [])
        self.events = events if events is not None else []
        self.user_account_public_key = "UserPk111"

    async def subscribe(self) -> bool:
        self.events.append(("user.subscribe",))
        if self._subscribe_results:
            return self._subscribe_results.pop(0)
        return True

    async def fetch_accounts(self) -> None:
        self.events.append(("user.fetch_accounts",))

    def get_user_account(self):
        return self.account

    def get_free_collateral(self) -> int:
        return self.free_collateral

    def get_unrealized_pnl(self) -> int:
        return self.unrealized_pnl

    def get_unrealized_funding_pnl(self) -> int:
        return self.funding_pnl


class FakeClient:
    MUTATING = ("initialize_user", "close_position", "cancel_order", "deposit")

    def __init__(
        self,
        user: FakeUser | None = None,
        *,
        user_exists: bool = True,
        subscribe_results=None,
        events: list | None = None,
    ) -> None:
        self.events = events if events is not None else []
        self.user = user or FakeUser(events=self.events)
        self._user_exists = user_exists
        self._subscribe_results = list(subscribe_results or [])
        self.error_callbacks: list = []
        self.program_id = "dRiftyHA39MWEi3m9aunc5MzRF1JYuBsbn6VPcn33UH"

    def mutating_calls(self) -> list:
        return [event for event in self.events if event[0] in self.MUTATING]

    async def subscribe(self) -> bool:
        self.events.append(("client.subscribe",))
        if self._subscribe_results:
            return self._subscribe_results.pop(0)
        return True

    async def fetch_accounts(self) -> None:
        self.events.append(("client.fetch_accounts",))

    def on_error(self, callback) -> None:
        self.error_callbacks.append(callback)

    def get_user(self) -> FakeUser:
        return self.user

    async def user_exists(self) -> bool:
        return self._user_exists

    async def initialize_user(self) -> str:
        self.events.append(("initialize_user",))
        self._user_exists = True
        return "init-sig"

    async def close_position(self, market_index: int) -> str:
        self.events.append(("close_position", market_index))
        return f"close-sig-{market_index}"

    async def cancel_order(self, order_id: int) -> str:
        self.events.append(("cancel_order", order_id))
        return f"cancel-sig-{order_id}"

    async def deposit(self, amount: int, spot_market_index: int, token_account) -> str:
        self.events.append(("deposit", amount, spot_market_index, token_account))
        return "deposit-sig"


class FakeSubscriber:
    def __init__(self, name: str, events: list, subscribe_results=None) -> None:
        self.name = name
        self.events = events
        self._subscribe_results = list(subscribe_results or [])

    async def subscribe(self) -> bool:
        self.events.append((f"{self.name}.subscribe",))
        if self._subscribe_results:
            return self._subscribe_results.pop(0)
        return True


class FakeConnection:
    def __init__(self, *, lamports: int = 2_500_000_000, usdc: float = 12.5) -> None:
        self.lamports = lamports
        self.usdc = usdc
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    async def get_balance(self, _pubkey):
        return SimpleNamespace(value=self.lamports)

    async def get_token_account_balance(self, _token_account):
        return SimpleNamespace(value=SimpleNamespace(ui_amount=self.usdc))


class FakeFaucet:
    def __init__(self, events: list) -> None:
        self.events = events

    async def mint_to_user(self, token_account, amount: int) -> str:
        self.events.append(("mint_to_user", token_account, amount))
        return "mint-sig"


def make_markets() -> MarketDirectory:
    return MarketDirectory(
        perp_symbols={0: "SOL-PERP", 1: "BTC-PERP"},
        spot_symbols={0: "USDC", 1: "SOL"},
        spot_mints={0: "QuoteMint111", 1: "So11111111111111111111111111111111111111112"},
    )


def make_session(client: FakeClient, *, event_results=None, connection: FakeConnection | None = None):
    events = client.events
    return SimpleNamespace(
        connection=connection or FakeConnection(),
        account_loader=None,
        client=client,
        event_subscriber=FakeSubscriber("event_subscriber", events, event_results),
        slot_subscriber=FakeSubscriber("slot_subscriber", events),
        wallet=SimpleNamespace(public_key="WalletPk111", payer=SimpleNamespace(name="payer")),
        network="devnet",
        markets=make_markets(),
    )
