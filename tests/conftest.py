"""Shared fakes for the alert pipeline tests."""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from vybebot.errors import ProviderUnavailable, RepositoryFailure
from vybebot.models import Alert, AlertKind, Operator, PriceCondition

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeStore:
    """In-memory alert repository recording every trigger write."""

    def __init__(self, alerts: Optional[List[Alert]] = None, fail_load: bool = False, fail_write: bool = False):
        self.alerts = list(alerts or [])
        self.fail_load = fail_load
        self.fail_write = fail_write
        self.loads = 0
        self.marked: List[tuple] = []

    def find_enabled(self) -> List[Alert]:
        self.loads += 1
        if self.fail_load:
            raise RepositoryFailure("disk on fire")
        # Hand out copies so the scheduler only sees persisted state
        return [replace(alert) for alert in self.alerts if alert.enabled]

    def mark_triggered(self, alert_id: str, timestamp: datetime):
        if self.fail_write:
            raise RepositoryFailure("read-only")
        self.marked.append((alert_id, timestamp))
        for alert in self.alerts:
            if alert.id == alert_id:
                alert.last_triggered_at = timestamp

    def get(self, alert_id: str) -> Alert:
        return next(alert for alert in self.alerts if alert.id == alert_id)


class FakeProvider:
    """Provider answering from dictionaries; keys listed in `failing` raise ProviderUnavailable."""

    def __init__(
        self,
        prices: Optional[Dict[str, float]] = None,
        balances: Optional[Dict[str, Dict[str, float]]] = None,
        tvl: Optional[Dict[str, float]] = None,
        active_users: Optional[Dict[tuple, float]] = None,
        failing: tuple = (),
    ):
        self.prices = prices or {}
        self.balances = balances or {}
        self.tvl = tvl or {}
        self.active_users = active_users or {}
        self.failing = set(failing)
        self.calls: List[tuple] = []

    def _check(self, key):
        if key in self.failing:
            raise ProviderUnavailable(f"{key} unavailable")

    async def get_price(self, mint: str) -> float:
        self.calls.append(("price", mint))
        self._check(mint)
        return self.prices[mint]

    async def get_wallet_balances(self, wallet: str) -> Dict[str, float]:
        self.calls.append(("balances", wallet))
        self._check(wallet)
        return self.balances[wallet]

    async def get_tvl(self, program_id: str) -> float:
        self.calls.append(("tvl", program_id))
        self._check(program_id)
        return self.tvl[program_id]

    async def get_active_users(self, program_id: str, timeframe: str) -> float:
        self.calls.append(("active_users", program_id, timeframe))
        self._check(program_id)
        return self.active_users[(program_id, timeframe)]


class FakeSink:
    """Chat sink that records messages; chat ids in `blocked` fail delivery."""

    def __init__(self, blocked: tuple = (), raises: bool = False):
        self.blocked = set(blocked)
        self.raises = raises
        self.sent: List[tuple] = []

    async def send(self, chat_id: int, text: str) -> bool:
        if self.raises:
            raise RuntimeError("sink exploded")
        if chat_id in self.blocked:
            return False
        self.sent.append((chat_id, text))
        return True


def price_alert(alert_id: str, mint: str, threshold: float, operator: Operator = Operator.GREATER_THAN,
                user_id: int = 1, **kwargs) -> Alert:
    return Alert(
        id=alert_id,
        user_id=user_id,
        kind=AlertKind.PRICE,
        condition=PriceCondition(asset_mint=mint, threshold=threshold, operator=operator),
        **kwargs,
    )

