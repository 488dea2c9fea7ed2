"""Batch alerts by the external lookup they need so one fetch serves many alerts."""

import logging
from typing import Dict, Iterable, List, Tuple

from vybebot.errors import MalformedAlert
from vybebot.models import (
    ActiveUsersCondition,
    Alert,
    AlertKind,
    BalanceCondition,
    PriceCondition,
    TVLCondition,
)

logger = logging.getLogger(__name__)

GroupKey = Tuple[AlertKind, str]

_CONDITION_TYPES = {
    AlertKind.PRICE: PriceCondition,
    AlertKind.BALANCE: BalanceCondition,
    AlertKind.TVL: TVLCondition,
    AlertKind.ACTIVE_USERS: ActiveUsersCondition,
}


def resource_key(alert: Alert) -> str:
    """
    Extract the lookup key for an alert.

    Price alerts are keyed by asset mint, balance alerts by wallet address,
    TVL and active-user alerts by program id.

    Raises:
        MalformedAlert: if the condition does not match the kind or the key is blank
    """
    condition = alert.condition
    expected = _CONDITION_TYPES.get(alert.kind)
    if expected is None or not isinstance(condition, expected):
        raise MalformedAlert(
            f"Alert {alert.id}: {type(condition).__name__} does not match kind {alert.kind!r}"
        )

    if isinstance(condition, PriceCondition):
        key = condition.asset_mint
    elif isinstance(condition, BalanceCondition):
        key = condition.wallet_address
    else:
        key = condition.program_id

    if not isinstance(key, str) or not key.strip():
        raise MalformedAlert(f"Alert {alert.id}: missing resource key")
    return key.strip()


def group_alerts(alerts: Iterable[Alert]) -> Dict[GroupKey, List[Alert]]:
    """
    Partition alerts by (kind, resource key).

    Malformed alerts are logged and left out; they stay in storage and are
    looked at again next pass. Alerts keep their input order inside a group.
    """
    groups: Dict[GroupKey, List[Alert]] = {}
    for alert in alerts:
        try:
            key = resource_key(alert)
        except MalformedAlert as e:
            logger.warning(f"Skipping malformed alert: {e}")
            continue
        groups.setdefault((alert.kind, key), []).append(alert)
    return groups


def split_by_kind(groups: Dict[GroupKey, List[Alert]]) -> Dict[AlertKind, Dict[str, List[Alert]]]:
    """Re-key grouped alerts as kind -> resource key -> alerts."""
    by_kind: Dict[AlertKind, Dict[str, List[Alert]]] = {kind: {} for kind in AlertKind}
    for (kind, key), members in groups.items():
        by_kind[kind][key] = members
    return by_kind
