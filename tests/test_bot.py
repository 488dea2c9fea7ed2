"""Tests for the chat layer: alert input parsing, lookup commands and rendering."""

import asyncio
from types import SimpleNamespace

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vybebot.bot import (
    MARKET_VIEWS,
    BotHandlers,
    build_condition,
    describe_alert,
    parse_threshold,
    rank_markets,
    render_holdings,
    render_markets,
)
from vybebot.errors import ProviderUnavailable
from vybebot.models import (
    ActiveUsersCondition,
    Alert,
    AlertKind,
    BalanceCondition,
    Operator,
    PriceCondition,
    TVLCondition,
)
from vybebot.storage import CsvStore
from vybebot.vybe_api import Holding, MarketPair, WalletHoldings

PROGRAM = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"


@pytest.mark.parametrize("text, expected", [
    ("2.5", 2.5),
    ("$1,250", 1250.0),
    (" 100 ", 100.0),
    ("0", None),
    ("-3", None),
    ("abc", None),
    ("nan", None),
    ("inf", None),
])
def test_parse_threshold(text, expected):
    assert parse_threshold(text) == expected


class TestBuildCondition:

    def test_price(self):
        condition = build_condition({
            "kind": AlertKind.PRICE, "resource": "MINT", "threshold": 2.5, "operator": Operator.GREATER_THAN,
        })
        assert condition == PriceCondition(asset_mint="MINT", threshold=2.5, operator=Operator.GREATER_THAN)

    def test_balance(self):
        condition = build_condition({
            "kind": AlertKind.BALANCE, "resource": "W1", "asset": "SOL",
            "threshold": 100, "operator": Operator.LESS_THAN,
        })
        assert condition == BalanceCondition(
            wallet_address="W1", asset_mint="SOL", threshold=100, operator=Operator.LESS_THAN
        )

    def test_active_users_default_timeframe(self):
        condition = build_condition({
            "kind": AlertKind.ACTIVE_USERS, "resource": PROGRAM, "threshold": 10, "operator": Operator.GREATER_THAN,
        })
        assert isinstance(condition, ActiveUsersCondition)
        assert condition.timeframe == "24h"

    def test_incomplete_draft(self):
        with pytest.raises(KeyError):
            build_condition({"kind": AlertKind.TVL, "resource": PROGRAM, "threshold": 10})


def test_describe_alert():
    alert = Alert(
        id="a",
        user_id=1,
        kind=AlertKind.TVL,
        condition=TVLCondition(program_id=PROGRAM, threshold=5_000_000, operator=Operator.LESS_THAN),
        label="<orca>",
    )

    text = describe_alert(alert)

    assert "whir...tyCc" in text
    assert "below $5,000,000.00" in text
    assert "&lt;orca&gt;" in text


WALLET_A = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
WALLET_B = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class FakeMessage:

    def __init__(self):
        self.replies = []

    async def reply_text(self, text, **kwargs):
        self.replies.append(text)


class StubProvider:
    """Answers the chat lookups from canned values; wallets in `failing` raise ProviderUnavailable."""

    def __init__(self, details=None, holdings=None, pairs=None, failing=()):
        self.details = details or {}
        self.holdings = holdings or {}
        self.pairs = pairs
        self.failing = set(failing)

    async def get_token_details(self, mint):
        return self.details

    async def get_price(self, mint):
        raise ProviderUnavailable("no ohlcv")

    async def get_wallet_holdings(self, wallet):
        if wallet in self.failing:
            raise ProviderUnavailable(f"{wallet} unavailable")
        return self.holdings[wallet]

    async def get_market_pairs(self):
        if self.pairs is None:
            raise ProviderUnavailable("markets down")
        return self.pairs


def run_command(handler, *args, user_id=1):
    update = SimpleNamespace(effective_user=SimpleNamespace(id=user_id), message=FakeMessage())
    context = SimpleNamespace(args=list(args), user_data={})
    asyncio.run(handler(update, context))
    return update.message.replies


def pair(base, volume=None, change=None, price=1.0, quote="USDC"):
    return MarketPair(base_symbol=base, quote_symbol=quote, last_price=price,
                      volume_24h=volume, price_change_24h=change)


class TestPriceCommand:

    def test_non_numeric_price_is_reported_not_raised(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider(details={"symbol": "USDC", "price": "n/a"}))

        replies = run_command(handlers.cmd_price, USDC)

        assert replies == ["Could not fetch price data right now. Please try again later."]

    def test_price_from_details(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider(details={"symbol": "<USDC>", "price": "1.0001"}))

        [reply] = run_command(handlers.cmd_price, USDC)

        assert "&lt;USDC&gt;" in reply
        assert "$1.00" in reply


class TestHoldingsCommand:

    def test_all_saved_wallets_with_one_failing(self, tmp_path):
        store = CsvStore(tmp_path)
        store.add_wallet(1, WALLET_A)
        store.add_wallet(1, WALLET_B)
        holdings = {WALLET_A: WalletHoldings(WALLET_A, [Holding(USDC, "USDC", 10, 10)], 10)}
        handlers = BotHandlers(store, StubProvider(holdings=holdings, failing=(WALLET_B,)))

        [reply] = run_command(handlers.cmd_holdings)

        assert "9WzD...AWWM" in reply and "USDC" in reply
        assert "HN7c...YWrH" in reply and "Could not fetch holdings" in reply

    def test_saved_wallet_by_number(self, tmp_path):
        store = CsvStore(tmp_path)
        store.add_wallet(1, WALLET_A)
        store.add_wallet(1, WALLET_B)
        holdings = {WALLET_B: WalletHoldings(WALLET_B, [], 0)}
        handlers = BotHandlers(store, StubProvider(holdings=holdings))

        [reply] = run_command(handlers.cmd_holdings, "2")

        assert "HN7c...YWrH" in reply
        assert "No token holdings found." in reply

    def test_bad_number_and_no_wallets(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider())

        assert "Invalid number" in run_command(handlers.cmd_holdings, "3")[0]
        assert "no saved wallets" in run_command(handlers.cmd_holdings)[0]
        assert "Usage" in run_command(handlers.cmd_holdings, "0xdeadbeef")[0]


class TestMarketsCommand:

    def test_default_view_is_volume(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider(pairs=[pair("SOL", volume=5e6), pair("JUP", volume=1e6)]))

        [reply] = run_command(handlers.cmd_markets)

        assert "Top Market Pairs by Volume" in reply
        assert reply.index("SOL/USDC") < reply.index("JUP/USDC")
        assert "Vol: $5,000,000.00" in reply

    def test_provider_failure(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider(pairs=None))

        assert run_command(handlers.cmd_markets, "gainers") == [
            "Could not fetch market data right now. Please try again later."
        ]

    def test_unknown_view(self, tmp_path):
        handlers = BotHandlers(CsvStore(tmp_path), StubProvider(pairs=[]))

        assert run_command(handlers.cmd_markets, "pumps")[0].startswith("Usage: /markets")


class TestRankMarkets:

    def test_gainers_and_losers(self):
        pairs = [pair("A", change=5), pair("B", change=-2), pair("C", change=12), pair("D"), pair("E", change=-9)]

        assert [p.base_symbol for p in rank_markets(pairs, "gainers")] == ["C", "A"]
        assert [p.base_symbol for p in rank_markets(pairs, "losers")] == ["E", "B"]

    def test_volume_treats_missing_as_zero(self):
        pairs = [pair("A"), pair("B", volume=3), pair("C", volume=7)]

        assert [p.base_symbol for p in rank_markets(pairs, "volume")] == ["C", "B", "A"]

    @given(st.lists(st.one_of(st.none(), st.floats(min_value=-100, max_value=100)), max_size=30),
           st.sampled_from(MARKET_VIEWS))
    def test_views_are_bounded_and_ordered(self, changes, view):
        pairs = [pair(f"T{i}", volume=abs(c) if c is not None else None, change=c) for i, c in enumerate(changes)]

        ranked = rank_markets(pairs, view, limit=10)

        assert len(ranked) <= 10
        if view == "gainers":
            assert all(p.price_change_24h > 0 for p in ranked)
            assert [p.price_change_24h for p in ranked] == sorted((p.price_change_24h for p in ranked), reverse=True)
        elif view == "losers":
            assert all(p.price_change_24h < 0 for p in ranked)
            assert [p.price_change_24h for p in ranked] == sorted(p.price_change_24h for p in ranked)
        else:
            volumes = [p.volume_24h or 0 for p in ranked]
            assert volumes == sorted(volumes, reverse=True)


def test_render_markets_shows_signed_change():
    text = render_markets("losers", [pair("<B>", change=-2.5, price=0.004)])

    assert "&lt;B&gt;/USDC" in text
    assert "-2.50%" in text
    assert "$0.004" in text


def test_render_holdings_sorted_and_truncated():
    holdings = [Holding(f"M{i}", f"T{i}", amount=1, value_usd=i) for i in range(12)]

    text = render_holdings(WalletHoldings(WALLET_A, holdings, total_usd=66), limit=3)

    lines = text.splitlines()
    assert lines[1] == "Total value: <b>$66.00</b>"
    assert [line.split("<b>")[1].split("</b>")[0] for line in lines[2:5]] == ["T11", "T10", "T9"]
    assert lines[-1] == "... and 9 more"
