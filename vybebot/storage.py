"""
CSV-backed storage for alerts and user wallets.

Every write rewrites the whole file, so writers are serialized with a lock.
Alert conditions are flattened into columns; columns that do not apply to an
alert's kind are left empty.
"""

import csv
import logging
import re
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from vybebot import config
from vybebot.errors import MalformedAlert, RepositoryFailure
from vybebot.models import (
    DEFAULT_TIMEFRAME,
    ActiveUsersCondition,
    Alert,
    AlertKind,
    BalanceCondition,
    Condition,
    Operator,
    PriceCondition,
    TVLCondition,
    utcnow,
)

logger = logging.getLogger(__name__)

ALERT_FIELDS = [
    "id", "user_id", "kind", "label", "enabled",
    "asset_mint", "quote_mint", "market_id", "wallet_address", "program_id", "timeframe",
    "threshold", "operator",
    "last_triggered_at", "created_at", "updated_at",
]
WALLET_FIELDS = ["user_id", "address", "added_at", "active"]

SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def validate_solana_address(address: str) -> bool:
    """Base58 check for a Solana account or mint address (32-44 chars)."""
    return bool(SOLANA_ADDRESS_RE.match(address or ""))


# ============================================================================
# Row <-> model conversion
# ============================================================================

def condition_to_row(condition: Condition) -> Dict[str, str]:
    row = {
        "threshold": repr(float(condition.threshold)),
        "operator": condition.operator.value,
    }
    if isinstance(condition, PriceCondition):
        row["asset_mint"] = condition.asset_mint
        row["quote_mint"] = condition.quote_mint or ""
        row["market_id"] = condition.market_id or ""
    elif isinstance(condition, BalanceCondition):
        row["wallet_address"] = condition.wallet_address
        row["asset_mint"] = condition.asset_mint
    elif isinstance(condition, TVLCondition):
        row["program_id"] = condition.program_id
    elif isinstance(condition, ActiveUsersCondition):
        row["program_id"] = condition.program_id
        row["timeframe"] = condition.timeframe
    else:
        raise TypeError(f"Unknown condition type: {type(condition).__name__}")
    return row


def condition_from_row(kind: AlertKind, row: Dict[str, str]) -> Condition:
    """
    Rebuild the condition variant for `kind` from a CSV row.

    Missing resource columns come back as empty strings and are caught later
    by the grouper; an unreadable threshold or operator raises MalformedAlert.
    """
    try:
        threshold = float(row["threshold"])
        operator = Operator(row["operator"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedAlert(f"Alert {row.get('id')}: bad threshold/operator ({e})") from e

    if kind is AlertKind.PRICE:
        return PriceCondition(
            asset_mint=row.get("asset_mint") or "",
            threshold=threshold,
            operator=operator,
            quote_mint=row.get("quote_mint") or None,
            market_id=row.get("market_id") or None,
        )
    if kind is AlertKind.BALANCE:
        return BalanceCondition(
            wallet_address=row.get("wallet_address") or "",
            asset_mint=row.get("asset_mint") or "",
            threshold=threshold,
            operator=operator,
        )
    if kind is AlertKind.TVL:
        return TVLCondition(program_id=row.get("program_id") or "", threshold=threshold, operator=operator)
    if kind is AlertKind.ACTIVE_USERS:
        return ActiveUsersCondition(
            program_id=row.get("program_id") or "",
            threshold=threshold,
            operator=operator,
            timeframe=row.get("timeframe") or DEFAULT_TIMEFRAME,
        )
    raise MalformedAlert(f"Alert {row.get('id')}: unknown kind {kind!r}")


def alert_to_row(alert: Alert) -> Dict[str, str]:
    row = {name: "" for name in ALERT_FIELDS}
    row.update({
        "id": alert.id,
        "user_id": str(alert.user_id),
        "kind": alert.kind.value,
        "label": alert.label or "",
        "enabled": "true" if alert.enabled else "false",
        "last_triggered_at": alert.last_triggered_at.isoformat() if alert.last_triggered_at else "",
        "created_at": alert.created_at.isoformat(),
        "updated_at": alert.updated_at.isoformat(),
    })
    row.update(condition_to_row(alert.condition))
    return row


def alert_from_row(row: Dict[str, str]) -> Alert:
    try:
        kind = AlertKind(row["kind"])
        user_id = int(row["user_id"])
        last_triggered = row.get("last_triggered_at")
        return Alert(
            id=row["id"],
            user_id=user_id,
            kind=kind,
            condition=condition_from_row(kind, row),
            label=row.get("label") or None,
            enabled=row.get("enabled", "true").lower() == "true",
            last_triggered_at=datetime.fromisoformat(last_triggered) if last_triggered else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedAlert(f"Alert {row.get('id')}: {e}") from e


# ============================================================================
# Store
# ============================================================================

class CsvStore:
    """Alerts and wallets kept in two CSV files under `data_dir`."""

    def __init__(self, data_dir: Path = config.DATA_DIR, max_wallets: int = config.MAX_WALLETS_PER_USER):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.alerts_file = self.data_dir / "alerts.csv"
        self.wallets_file = self.data_dir / "wallets.csv"
        self.max_wallets = max_wallets
        self._lock = threading.Lock()

    def _read(self, path: Path) -> List[Dict[str, str]]:
        if not path.exists():
            return []
        with open(path, "r", newline="") as f:
            return list(csv.DictReader(f))

    def _write(self, path: Path, fieldnames: List[str], rows: List[Dict[str, str]]):
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        tmp.replace(path)

    def _load_alerts(self) -> List[Alert]:
        alerts = []
        for row in self._read(self.alerts_file):
            try:
                alerts.append(alert_from_row(row))
            except MalformedAlert as e:
                logger.warning(f"Skipping unreadable alert row: {e}")
        return alerts

    # ---------------------------- Alerts ----------------------------

    def find_enabled(self) -> List[Alert]:
        """
        Load every enabled alert. Read fresh from disk on each call.

        Raises:
            RepositoryFailure: if the alerts file cannot be read
        """
        try:
            with self._lock:
                alerts = self._load_alerts()
        except OSError as e:
            raise RepositoryFailure(f"Failed to read {self.alerts_file}: {e}") from e
        return [alert for alert in alerts if alert.enabled]

    def mark_triggered(self, alert_id: str, timestamp: datetime):
        """
        Record a successful notification. Writing the same timestamp twice is harmless.

        Raises:
            RepositoryFailure: if the alerts file cannot be rewritten
        """
        try:
            with self._lock:
                rows = self._read(self.alerts_file)
                found = False
                for row in rows:
                    if row["id"] == alert_id:
                        row["last_triggered_at"] = timestamp.isoformat()
                        row["updated_at"] = timestamp.isoformat()
                        found = True
                if not found:
                    logger.info(f"Alert {alert_id} no longer exists, not marking triggered")
                    return
                self._write(self.alerts_file, ALERT_FIELDS, rows)
        except OSError as e:
            raise RepositoryFailure(f"Failed to update alert {alert_id}: {e}") from e

    def add_alert(self, user_id: int, condition: Condition, label: Optional[str] = None) -> Alert:
        alert = Alert(
            id=uuid.uuid4().hex[:12],
            user_id=user_id,
            kind=condition.kind,
            condition=condition,
            label=label or None,
        )
        with self._lock:
            rows = self._read(self.alerts_file)
            rows.append(alert_to_row(alert))
            self._write(self.alerts_file, ALERT_FIELDS, rows)

        logger.info(f"Added {alert.kind.value} alert {alert.id} for user {user_id}")
        return alert

    def get_user_alerts(self, user_id: int) -> List[Alert]:
        """All alerts owned by a user, oldest first."""
        with self._lock:
            alerts = [alert for alert in self._load_alerts() if alert.user_id == user_id]
        alerts.sort(key=lambda a: a.created_at)
        return alerts

    def delete_alert(self, user_id: int, alert_id: str) -> bool:
        """
        Delete an alert owned by `user_id`.

        Returns:
            True if the alert existed and belonged to the user
        """
        with self._lock:
            rows = self._read(self.alerts_file)
            kept = [row for row in rows if not (row["id"] == alert_id and row["user_id"] == str(user_id))]
            if len(kept) == len(rows):
                return False
            self._write(self.alerts_file, ALERT_FIELDS, kept)

        logger.info(f"Deleted alert {alert_id} for user {user_id}")
        return True

    # ---------------------------- Wallets ----------------------------

    def get_user_wallets(self, user_id: int) -> List[Tuple[str, str]]:
        """
        Get all active wallets for a user.

        Returns:
            List of (address, added_at) tuples, sorted by added_at
        """
        with self._lock:
            rows = self._read(self.wallets_file)
        return _active_wallets(rows, user_id)

    def add_wallet(self, user_id: int, address: str) -> Tuple[bool, Optional[str]]:
        """
        Add a wallet for a user. If the user already has `max_wallets`, the oldest is removed.

        Returns:
            (success, removed_address) - removed_address is set if an old wallet was removed
        """
        address = address.strip()
        if not validate_solana_address(address):
            return False, None

        removed_address = None
        with self._lock:
            rows = self._read(self.wallets_file)
            current_wallets = _active_wallets(rows, user_id)
            if any(wallet == address for wallet, _ in current_wallets):
                logger.info(f"Wallet {address} already exists for user {user_id}")
                return False, None

            if len(current_wallets) >= self.max_wallets:
                removed_address = current_wallets[0][0]
                for row in rows:
                    if int(row["user_id"]) == user_id and row["address"] == removed_address:
                        row["active"] = "false"
                logger.info(f"Removed oldest wallet {removed_address} for user {user_id}")

            rows.append({
                "user_id": str(user_id),
                "address": address,
                "added_at": utcnow().isoformat(),
                "active": "true",
            })
            self._write(self.wallets_file, WALLET_FIELDS, rows)

        logger.info(f"Added wallet {address} for user {user_id}")
        return True, removed_address

    def remove_wallet(self, user_id: int, address: str) -> bool:
        """
        Remove a wallet for a user by setting it to inactive.

        Returns:
            True if wallet was removed, False if not found
        """
        found = False
        with self._lock:
            rows = self._read(self.wallets_file)
            for row in rows:
                if (int(row["user_id"]) == user_id and
                        row["address"] == address and
                        row["active"].lower() == "true"):
                    row["active"] = "false"
                    found = True
            if found:
                self._write(self.wallets_file, WALLET_FIELDS, rows)

        if found:
            logger.info(f"Removed wallet {address} for user {user_id}")
        return found


def _active_wallets(rows: List[Dict[str, str]], user_id: int) -> List[Tuple[str, str]]:
    wallets = [
        (row["address"], row["added_at"])
        for row in rows
        if int(row["user_id"]) == user_id and row["active"].lower() == "true"
    ]
    wallets.sort(key=lambda x: x[1])
    return wallets
