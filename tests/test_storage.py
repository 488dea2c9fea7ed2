"""Tests for the CSV alert and wallet store."""

import csv
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from vybebot.errors import MalformedAlert
from vybebot.models import (
    ActiveUsersCondition,
    AlertKind,
    BalanceCondition,
    Operator,
    PriceCondition,
    TVLCondition,
)
from vybebot.storage import (
    ALERT_FIELDS,
    CsvStore,
    alert_from_row,
    condition_from_row,
    validate_solana_address,
)

from conftest import NOW

WALLETS = [
    "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
    "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH",
    "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1",
]
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def store(tmp_path):
    return CsvStore(tmp_path, max_wallets=2)


class TestAlerts:

    def test_conditions_survive_storage(self, store):
        conditions = [
            PriceCondition(asset_mint=USDC, threshold=2.5, operator=Operator.GREATER_THAN, quote_mint="Q", market_id=None),
            BalanceCondition(wallet_address=WALLETS[0], asset_mint="SOL", threshold=100, operator=Operator.LESS_THAN),
            TVLCondition(program_id=WALLETS[1], threshold=1e6, operator=Operator.LESS_THAN),
            ActiveUsersCondition(program_id=WALLETS[2], threshold=50, operator=Operator.GREATER_THAN, timeframe="7d"),
        ]
        for condition in conditions:
            store.add_alert(1, condition, label="mine")

        loaded = store.find_enabled()

        assert [alert.condition for alert in loaded] == conditions
        assert [alert.kind for alert in loaded] == list(AlertKind)
        assert all(alert.label == "mine" and alert.last_triggered_at is None for alert in loaded)

    def test_mark_triggered_persists(self, store):
        alert = store.add_alert(1, PriceCondition(asset_mint=USDC, threshold=1, operator=Operator.GREATER_THAN))

        store.mark_triggered(alert.id, NOW)
        store.mark_triggered(alert.id, NOW)

        assert store.find_enabled()[0].last_triggered_at == NOW

    def test_mark_triggered_on_deleted_alert_does_not_recreate_it(self, store):
        alert = store.add_alert(1, PriceCondition(asset_mint=USDC, threshold=1, operator=Operator.GREATER_THAN))
        assert store.delete_alert(1, alert.id)

        store.mark_triggered(alert.id, NOW)

        assert store.find_enabled() == []

    def test_delete_only_own_alert(self, store):
        alert = store.add_alert(1, PriceCondition(asset_mint=USDC, threshold=1, operator=Operator.GREATER_THAN))

        assert store.delete_alert(2, alert.id) is False
        assert store.delete_alert(1, alert.id) is True
        assert store.get_user_alerts(1) == []

    def test_user_alerts_are_scoped_and_ordered(self, store):
        first = store.add_alert(1, TVLCondition(program_id=WALLETS[0], threshold=1, operator=Operator.LESS_THAN))
        store.add_alert(2, TVLCondition(program_id=WALLETS[1], threshold=1, operator=Operator.LESS_THAN))
        second = store.add_alert(1, TVLCondition(program_id=WALLETS[2], threshold=1, operator=Operator.LESS_THAN))

        assert [alert.id for alert in store.get_user_alerts(1)] == [first.id, second.id]

    def test_disabled_alerts_are_not_loaded(self, store):
        store.add_alert(1, TVLCondition(program_id=WALLETS[0], threshold=1, operator=Operator.LESS_THAN))
        with open(store.alerts_file, newline="") as f:
            rows = list(csv.DictReader(f))
        rows[0]["enabled"] = "false"
        with open(store.alerts_file, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=ALERT_FIELDS)
            writer.writeheader()
            writer.writerows(rows)

        assert store.find_enabled() == []
        assert len(store.get_user_alerts(1)) == 1

    def test_unreadable_row_is_skipped(self, store):
        good = store.add_alert(1, TVLCondition(program_id=WALLETS[0], threshold=1, operator=Operator.LESS_THAN))
        with open(store.alerts_file, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=ALERT_FIELDS)
            writer.writerow({"id": "broken", "user_id": "1", "kind": "price", "threshold": "lots",
                             "operator": "gt", "enabled": "true"})

        assert [alert.id for alert in store.find_enabled()] == [good.id]

    def test_missing_resource_column_loads_as_blank(self):
        condition = condition_from_row(AlertKind.TVL, {"threshold": "5", "operator": "lt"})
        assert condition.program_id == ""

    def test_bad_kind_is_malformed(self):
        with pytest.raises(MalformedAlert):
            alert_from_row({"id": "x", "user_id": "1", "kind": "volume", "threshold": "1", "operator": "gt"})


class TestWallets:

    def test_add_and_list(self, store):
        assert store.add_wallet(1, WALLETS[0]) == (True, None)
        assert [addr for addr, _ in store.get_user_wallets(1)] == [WALLETS[0]]
        assert store.get_user_wallets(2) == []

    def test_duplicate_and_invalid_rejected(self, store):
        store.add_wallet(1, WALLETS[0])

        assert store.add_wallet(1, WALLETS[0]) == (False, None)
        assert store.add_wallet(1, "0xb317d2bc2d3d2df5fa441b5bae0ab9d8b07283ae") == (False, None)

    def test_oldest_evicted_at_capacity(self, store):
        store.add_wallet(1, WALLETS[0])
        store.add_wallet(1, WALLETS[1])

        assert store.add_wallet(1, WALLETS[2]) == (True, WALLETS[0])
        assert [addr for addr, _ in store.get_user_wallets(1)] == [WALLETS[1], WALLETS[2]]

    def test_concurrent_adds_of_same_wallet_keep_one(self, store):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: store.add_wallet(1, WALLETS[0]), range(16)))

        assert results.count((True, None)) == 1
        assert [addr for addr, _ in store.get_user_wallets(1)] == [WALLETS[0]]

    def test_concurrent_adds_respect_capacity(self, store):
        with ThreadPoolExecutor(max_workers=3) as pool:
            results = list(pool.map(lambda addr: store.add_wallet(1, addr), WALLETS))

        assert all(success for success, _ in results)
        assert len(store.get_user_wallets(1)) == store.max_wallets
        assert sum(1 for _, removed in results if removed) == 1

    def test_remove(self, store):
        store.add_wallet(1, WALLETS[0])

        assert store.remove_wallet(1, WALLETS[0]) is True
        assert store.remove_wallet(1, WALLETS[0]) is False
        assert store.get_user_wallets(1) == []


@pytest.mark.parametrize("address, valid", [
    (WALLETS[0], True),
    (USDC, True),
    ("11111111111111111111111111111111", True),
    ("0xb317d2bc2d3d2df5fa441b5bae0ab9d8b07283ae", False),
    ("short", False),
    ("", False),
])
def test_validate_solana_address(address, valid):
    assert validate_solana_address(address) is valid


def test_trigger_time_roundtrip_keeps_timezone(tmp_path):
    store = CsvStore(tmp_path)
    alert = store.add_alert(1, TVLCondition(program_id=WALLETS[0], threshold=1, operator=Operator.LESS_THAN))
    later = NOW + timedelta(minutes=65)

    store.mark_triggered(alert.id, later)

    assert store.find_enabled()[0].last_triggered_at - NOW == timedelta(minutes=65)
