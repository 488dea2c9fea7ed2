"""
Alert scheduler.

Runs one evaluation pass every interval:
load enabled alerts -> group by (kind, resource) -> fetch each resource once
-> evaluate -> cooldown gate -> notify -> record trigger time.

Failures stay as small as possible: a provider error skips one resource
group, a delivery error skips one alert, a store error aborts one pass.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from vybebot import config
from vybebot.errors import ProviderUnavailable, RepositoryFailure
from vybebot.evaluator import COOLDOWN, evaluate, is_eligible
from vybebot.grouping import group_alerts, split_by_kind
from vybebot.models import Alert, AlertKind, TriggerEvent, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PassStats:
    loaded: int = 0
    groups: int = 0
    failed_groups: int = 0
    triggered: int = 0
    suppressed: int = 0
    notified: int = 0
    failed_deliveries: int = 0


class AlertScheduler:
    """
    Periodic alert evaluation bound to one store, provider and notifier.

    Args:
        store: Exposes find_enabled() and mark_triggered(alert_id, timestamp)
        provider: Exposes get_price, get_wallet_balances, get_tvl, get_active_users
        notifier: Exposes async notify(event, chat_id) -> bool
        clock: Returns the current aware datetime
        cooldown: Minimum time between two notifications of one alert
    """

    def __init__(
        self,
        store,
        provider,
        notifier,
        clock: Callable[[], datetime] = utcnow,
        cooldown: timedelta = COOLDOWN,
    ):
        self.store = store
        self.provider = provider
        self.notifier = notifier
        self.clock = clock
        self.cooldown = cooldown

        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._running = False
        self._pass_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, interval_min: float = config.ALERT_INTERVAL_MIN):
        """Start the periodic loop. Must be called from inside the running event loop."""
        if self._running:
            logger.warning("Alert scheduler is already running")
            return

        logger.info(f"Starting alert scheduler (interval: {interval_min} min)")
        # A loop stopped earlier may still be finishing its last pass
        previous = self._task if self._task is not None and not self._task.done() else None
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval_min * 60, self._stopping, previous))
        self._running = True

    def stop(self):
        """
        Stop scheduling new passes.

        A pass that is already running is allowed to finish; await
        wait_stopped() to block until it has.
        """
        if not self._running:
            logger.warning("Alert scheduler is not running")
            return

        logger.info("Stopping alert scheduler")
        self._stopping.set()
        self._running = False

    async def wait_stopped(self):
        task = self._task
        if task is not None:
            await task
            if self._task is task:
                self._task = None

    async def _loop(self, interval_sec: float, stopping: asyncio.Event, previous: Optional[asyncio.Task] = None):
        if previous is not None:
            logger.info("Waiting for the previous scheduler loop to finish")
            await previous

        while not stopping.is_set():
            await self.run_once()

            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval_sec)
            except asyncio.TimeoutError:
                pass

        logger.info("Alert scheduler stopped")

    # ------------------------------------------------------------------
    # One pass
    # ------------------------------------------------------------------

    async def run_once(self) -> Optional[PassStats]:
        """
        Execute one evaluation pass.

        Returns:
            Pass statistics, or None if the pass was skipped or aborted
        """
        if self._pass_lock.locked():
            logger.warning("Previous alert pass still running, skipping this tick")
            return None

        async with self._pass_lock:
            try:
                return await self._run_pass()
            except Exception as e:
                logger.error(f"Error in alert pass: {e}", exc_info=True)
                return None

    async def _run_pass(self) -> Optional[PassStats]:
        now = self.clock()

        try:
            alerts = await asyncio.to_thread(self.store.find_enabled)
        except RepositoryFailure as e:
            logger.error(f"Could not load alerts, skipping pass: {e}")
            return None

        stats = PassStats(loaded=len(alerts))
        if not alerts:
            logger.debug("No enabled alerts found")
            return stats

        logger.info(f"Checking {len(alerts)} enabled alerts")

        by_kind = split_by_kind(group_alerts(alerts))
        stats.groups = sum(len(groups) for groups in by_kind.values())

        await asyncio.gather(*(
            self._process_kind(kind, groups, now, stats)
            for kind, groups in by_kind.items()
        ))

        logger.info(
            f"Alert pass done: {stats.groups} groups ({stats.failed_groups} failed), "
            f"{stats.triggered} triggered, {stats.suppressed} in cooldown, "
            f"{stats.notified} notified, {stats.failed_deliveries} undelivered"
        )
        return stats

    async def _process_kind(self, kind: AlertKind, groups: Dict[str, List[Alert]], now: datetime, stats: PassStats):
        if not groups:
            return

        logger.debug(f"Processing {sum(len(a) for a in groups.values())} {kind.value} alerts in {len(groups)} groups")
        await asyncio.gather(*(
            self._process_group(kind, key, members, now, stats)
            for key, members in groups.items()
        ))

    async def _process_group(self, kind: AlertKind, key: str, alerts: List[Alert], now: datetime, stats: PassStats):
        try:
            values = await self._fetch_values(kind, key, alerts)
        except ProviderUnavailable as e:
            logger.warning(f"Skipping {kind.value} alerts for {key}: {e}")
            stats.failed_groups += 1
            return
        except Exception as e:
            logger.error(f"Error fetching {kind.value} data for {key}: {e}", exc_info=True)
            stats.failed_groups += 1
            return

        for alert in alerts:
            value = values.get(alert.id)
            if value is None:
                continue
            try:
                await self._check_and_notify(alert, value, now, stats)
            except Exception as e:
                logger.error(f"Error checking alert {alert.id}: {e}", exc_info=True)

    async def _fetch_values(self, kind: AlertKind, key: str, alerts: List[Alert]) -> Dict[str, Optional[float]]:
        """
        Fetch the current metric for a resource group.

        Returns:
            Dictionary mapping alert id to its current value (None if unavailable for that alert)
        """
        if kind is AlertKind.PRICE:
            price = await self.provider.get_price(key)
            return {alert.id: price for alert in alerts}

        if kind is AlertKind.BALANCE:
            holdings = await self.provider.get_wallet_balances(key)
            values = {}
            for alert in alerts:
                amount = holdings.get(alert.condition.asset_mint)
                if amount is None:
                    logger.warning(f"No balance data for wallet {key}, asset {alert.condition.asset_mint}")
                values[alert.id] = amount
            return values

        if kind is AlertKind.TVL:
            tvl = await self.provider.get_tvl(key)
            return {alert.id: tvl for alert in alerts}

        if kind is AlertKind.ACTIVE_USERS:
            # One program can be watched over several windows
            by_timeframe: Dict[str, float] = {}
            for alert in alerts:
                timeframe = alert.condition.timeframe
                if timeframe not in by_timeframe:
                    by_timeframe[timeframe] = await self.provider.get_active_users(key, timeframe)
            return {alert.id: by_timeframe[alert.condition.timeframe] for alert in alerts}

        raise ValueError(f"Unknown alert kind: {kind!r}")

    async def _check_and_notify(self, alert: Alert, value: float, now: datetime, stats: PassStats):
        if not evaluate(alert.condition, value):
            return
        stats.triggered += 1

        if not is_eligible(alert, now, self.cooldown):
            logger.debug(f"Alert {alert.id} was triggered recently, skipping notification")
            stats.suppressed += 1
            return

        event = TriggerEvent.from_alert(alert, value)
        if not await self.notifier.notify(event, alert.user_id):
            stats.failed_deliveries += 1
            return

        triggered_at = self.clock()
        try:
            await asyncio.to_thread(self.store.mark_triggered, alert.id, triggered_at)
        except RepositoryFailure as e:
            logger.error(f"Alert {alert.id} notified but trigger time not saved: {e}")
            stats.notified += 1
            return

        alert.last_triggered_at = triggered_at
        stats.notified += 1
        logger.info(f"Alert {alert.id} triggered and notification sent")
