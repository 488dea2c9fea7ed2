"""
Alert data model.

An alert watches one metric of one on-chain resource and fires when the
current value crosses a threshold. The condition is a closed tagged union:
one dataclass per AlertKind, each carrying its own resource fields plus the
shared threshold/operator pair.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

# Native SOL has no SPL mint; balance conditions use this sentinel instead
NATIVE_ASSET = "SOL"
DEFAULT_TIMEFRAME = "24h"


class AlertKind(str, Enum):
    PRICE = "price"
    BALANCE = "balance"
    TVL = "tvl"
    ACTIVE_USERS = "activeUsers"


class Operator(str, Enum):
    GREATER_THAN = "gt"
    LESS_THAN = "lt"

    @property
    def phrase(self) -> str:
        return "above" if self is Operator.GREATER_THAN else "below"


@dataclass(frozen=True)
class PriceCondition:
    asset_mint: str
    threshold: float
    operator: Operator
    quote_mint: Optional[str] = None
    market_id: Optional[str] = None

    kind = AlertKind.PRICE


@dataclass(frozen=True)
class BalanceCondition:
    wallet_address: str
    asset_mint: str
    threshold: float
    operator: Operator

    kind = AlertKind.BALANCE


@dataclass(frozen=True)
class TVLCondition:
    program_id: str
    threshold: float
    operator: Operator

    kind = AlertKind.TVL


@dataclass(frozen=True)
class ActiveUsersCondition:
    program_id: str
    threshold: float
    operator: Operator
    timeframe: str = DEFAULT_TIMEFRAME

    kind = AlertKind.ACTIVE_USERS


Condition = Union[PriceCondition, BalanceCondition, TVLCondition, ActiveUsersCondition]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Alert:
    """A persisted alert subscription owned by one Telegram chat."""

    id: str
    user_id: int
    kind: AlertKind
    condition: Condition
    label: Optional[str] = None
    enabled: bool = True
    last_triggered_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TriggerEvent:
    """An alert whose condition held against a freshly fetched value."""

    alert_id: str
    kind: AlertKind
    condition: Condition
    current_value: float
    label: Optional[str] = None

    @property
    def threshold(self) -> float:
        return self.condition.threshold

    @property
    def operator(self) -> Operator:
        return self.condition.operator

    @classmethod
    def from_alert(cls, alert: Alert, current_value: float) -> "TriggerEvent":
        return cls(
            alert_id=alert.id,
            kind=alert.kind,
            condition=alert.condition,
            current_value=current_value,
            label=alert.label,
        )
