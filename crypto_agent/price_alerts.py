"""
Price alerts: an in-process registry of alert definitions, a recurring
monitor that polls prices and fires each alert at most once, and the
request-side operations the API exposes on top of them.

All registry mutations happen under a single asyncio.Lock. The monitor never
holds the lock across a network call: prices are fetched outside it and the
ACTIVE -> TRIGGERED transition is applied under it after re-checking that the
alert still exists and has not fired yet.
"""
import asyncio
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import structlog

from .config import settings, AlertStatus, ThresholdType
from .error_handling import AlertNotFoundError, ProviderError, ValidationError, error_collector
from .external_apis import api_manager
from .models import (
    PriceAlert, TriggeredAlertRecord, Notification, NotificationData,
    AlertSetupRequest, AlertSetupResponse, AlertSummary, AlertStatusEntry,
    AlertStatusReport, AlertStatusSummary, MonitorStatus, NotificationsResponse,
    utc_now
)
from .notifications import email_service

logger = structlog.get_logger()

@dataclass(frozen=True)
class ThresholdHit:
    threshold_type: str
    threshold_value: float
    message: str

def evaluate_thresholds(alert: PriceAlert, price: float) -> Optional[ThresholdHit]:
    """Which threshold, if any, a price crosses. Low is checked before high."""
    symbol = alert.symbol.upper()
    if alert.low_threshold is not None and price <= alert.low_threshold:
        return ThresholdHit(
            threshold_type=ThresholdType.LOW,
            threshold_value=alert.low_threshold,
            message=f"PRICE ALERT: {symbol} has dropped to ${price} (below your threshold of ${alert.low_threshold})"
        )
    if alert.high_threshold is not None and price >= alert.high_threshold:
        return ThresholdHit(
            threshold_type=ThresholdType.HIGH,
            threshold_value=alert.high_threshold,
            message=f"PRICE ALERT: {symbol} has risen to ${price} (above your threshold of ${alert.high_threshold})"
        )
    return None

def validate_thresholds(low_threshold: Optional[float], high_threshold: Optional[float]):
    if low_threshold is None and high_threshold is None:
        raise ValidationError("At least one threshold (low or high) must be provided")
    for name, value in (("low_threshold", low_threshold), ("high_threshold", high_threshold)):
        if value is not None and value <= 0:
            raise ValidationError(f"{name} must be greater than 0")
    if low_threshold is not None and high_threshold is not None and low_threshold >= high_threshold:
        raise ValidationError("low_threshold must be less than high_threshold")

def _epoch_ms() -> int:
    return int(time.time() * 1000)

def describe_age(since: datetime, now: Optional[datetime] = None) -> str:
    elapsed = ((now or utc_now()) - since).total_seconds()
    days, remainder = divmod(int(max(elapsed, 0)), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days} day(s) ago"
    if hours > 0:
        return f"{hours} hour(s) ago"
    return f"{minutes} minute(s) ago"

class AlertRegistry:
    """Owns alerts, triggered records and notifications; single writer via one lock"""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._alerts: Dict[str, PriceAlert] = {}
        self._triggered: List[TriggeredAlertRecord] = []
        self._notifications: List[Notification] = []

    async def add(self, alert: PriceAlert):
        async with self._lock:
            self._alerts[alert.id] = alert

    async def remove(self, alert_id: str) -> Optional[PriceAlert]:
        async with self._lock:
            return self._alerts.pop(alert_id, None)

    async def get(self, alert_id: str) -> Optional[PriceAlert]:
        async with self._lock:
            alert = self._alerts.get(alert_id)
            return alert.model_copy() if alert else None

    async def all_alerts(self) -> List[PriceAlert]:
        async with self._lock:
            return [alert.model_copy() for alert in self._alerts.values()]

    async def active_alerts(self) -> List[PriceAlert]:
        async with self._lock:
            return [alert.model_copy() for alert in self._alerts.values() if not alert.triggered]

    async def apply_price(self, alert_id: str, price: float,
                          checked_at: datetime) -> Optional[Tuple[PriceAlert, ThresholdHit]]:
        """Record a polled price and fire the alert if it crosses a threshold.

        Returns the triggered alert and the threshold it crossed, or None when
        nothing fired (including when the alert was removed or had already
        fired since the caller's snapshot).
        """
        async with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.triggered:
                return None

            alert.current_price = price
            alert.last_checked_at = checked_at

            hit = evaluate_thresholds(alert, price)
            if hit is None:
                return None

            alert.triggered = True
            alert.triggered_at = checked_at
            return alert.model_copy(), hit

    async def append_trigger(self, record: TriggeredAlertRecord, notification: Notification):
        async with self._lock:
            self._triggered.append(record)
            self._notifications.append(notification)

    async def triggered_records(self) -> List[TriggeredAlertRecord]:
        async with self._lock:
            return [record.model_copy() for record in self._triggered]

    async def notifications(self) -> List[Notification]:
        async with self._lock:
            return [notification.model_copy(deep=True) for notification in self._notifications]

    async def acknowledge(self, notification_id: str) -> bool:
        async with self._lock:
            notification = next((n for n in self._notifications if n.id == notification_id), None)
            if notification is None:
                return False
            notification.acknowledged = True
            for record in self._triggered:
                if record.id == notification.data.triggered_alert_id:
                    record.acknowledged = True
            return True

class PriceAlertMonitor:
    """Recurring task that polls prices for every active alert"""

    def __init__(self, registry: AlertRegistry, provider=None, email=None,
                 check_interval: Optional[float] = None):
        self.registry = registry
        self.provider = provider or api_manager
        self.email_service = email or email_service
        self.check_interval = check_interval if check_interval is not None else settings.ALERT_CHECK_INTERVAL_SECONDS
        self.is_running = False
        self.last_check_time: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def start(self):
        """Start the monitoring loop"""
        if self.is_running:
            logger.warning("Price alert monitor already running")
            return

        self._stop_event = asyncio.Event()
        self.is_running = True
        self._task = asyncio.create_task(self._monitoring_loop())
        logger.info("Price alert monitor started", interval_seconds=self.check_interval)

    async def stop(self):
        """Stop after the tick in progress, if any, has finished"""
        if not self.is_running:
            return

        logger.info("Stopping price alert monitor")
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Price alert monitor stopped")

    async def _monitoring_loop(self):
        while not self._stop_event.is_set():
            try:
                await self.check_alerts()
            except Exception as e:
                logger.error("Error in price alert monitoring loop", error=str(e))
                error_collector.record_error(e, {"task": "price_alert_monitor"})

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                pass

    async def check_alerts(self) -> int:
        """Run one polling pass over the active alerts; returns how many fired"""
        active = await self.registry.active_alerts()
        fired = 0

        # One fetch per alert, sequentially
        for alert in active:
            try:
                price = await self.provider.get_price(alert.symbol)
            except ProviderError as e:
                logger.warning("Price fetch failed, skipping alert", alert_id=alert.id,
                               symbol=alert.symbol, error=str(e))
                error_collector.record_error(e, {"alert_id": alert.id, "symbol": alert.symbol})
                continue
            except Exception as e:
                logger.error("Unexpected error fetching alert price, skipping alert", alert_id=alert.id,
                             symbol=alert.symbol, error=str(e))
                error_collector.record_error(e, {"alert_id": alert.id, "symbol": alert.symbol})
                continue

            if price is None:
                logger.warning("No price data for alert symbol", alert_id=alert.id, symbol=alert.symbol)
                error_collector.record_error(
                    ProviderError(f"No price data found for {alert.symbol}"),
                    {"alert_id": alert.id, "symbol": alert.symbol}
                )
                continue

            result = await self.registry.apply_price(alert.id, price, utc_now())
            if result is not None:
                await self._trigger_alert(*result)
                fired += 1

        self.last_check_time = utc_now()
        if active:
            logger.info("Price alert check completed", checked=len(active), triggered=fired)
        return fired

    async def _trigger_alert(self, alert: PriceAlert, hit: ThresholdHit):
        logger.warning("Price alert triggered", alert_id=alert.id, symbol=alert.symbol,
                       price=alert.current_price, threshold_type=hit.threshold_type,
                       threshold_value=hit.threshold_value)

        # The alert is already disabled; email outcome only annotates the records
        email_sent = False
        if alert.notify_email:
            try:
                email_sent = await self.email_service.send_price_alert(
                    alert.notify_email, alert.symbol, alert.current_price,
                    hit.threshold_type, hit.threshold_value, alert.id
                )
            except Exception as e:
                logger.error("Email delivery raised", alert_id=alert.id, error=str(e))
                error_collector.record_error(e, {"alert_id": alert.id, "stage": "email"})

        stamp = _epoch_ms()
        record = TriggeredAlertRecord(
            id=f"triggered_{alert.id}_{stamp}",
            alert_id=alert.id,
            symbol=alert.symbol,
            message=hit.message,
            trigger_price=alert.current_price,
            threshold_type=hit.threshold_type,
            threshold_value=hit.threshold_value,
            triggered_at=alert.triggered_at,
            email_sent=email_sent
        )
        notification = Notification(
            id=f"notification_{alert.id}_{stamp}",
            title=f"{alert.symbol.upper()} Price Alert",
            message=hit.message,
            timestamp=alert.triggered_at,
            data=NotificationData(
                alert_id=alert.id,
                symbol=alert.symbol,
                current_price=alert.current_price,
                threshold_type=hit.threshold_type,
                threshold_value=hit.threshold_value,
                triggered_alert_id=record.id,
                email_sent=email_sent
            )
        )
        await self.registry.append_trigger(record, notification)

class PriceAlertService:
    """Request-side alert operations"""

    def __init__(self, registry: AlertRegistry, monitor: PriceAlertMonitor, provider=None):
        self.registry = registry
        self.monitor = monitor
        self.provider = provider or api_manager

    async def setup_price_alert(self, request: AlertSetupRequest) -> AlertSetupResponse:
        validate_thresholds(request.low_threshold, request.high_threshold)

        current_price = await self.provider.get_price(request.symbol)
        if current_price is None:
            raise ValidationError(f"Could not fetch current price for {request.symbol}")

        alert = PriceAlert(
            id=f"{request.symbol}_{_epoch_ms()}_{secrets.token_hex(4)}",
            symbol=request.symbol,
            low_threshold=request.low_threshold,
            high_threshold=request.high_threshold,
            notify_email=request.notify_email,
            current_price=current_price
        )
        await self.registry.add(alert)

        logger.info("Price alert created", alert_id=alert.id, symbol=alert.symbol,
                    low_threshold=alert.low_threshold, high_threshold=alert.high_threshold,
                    email_enabled=alert.email_enabled)

        message = f"Price alert set successfully for {alert.symbol}. Current price: ${current_price}"
        if alert.notify_email:
            message += f". Email notifications will be sent to {alert.notify_email}"

        return AlertSetupResponse(
            alert_id=alert.id,
            symbol=alert.symbol,
            low_threshold=alert.low_threshold,
            high_threshold=alert.high_threshold,
            current_price=current_price,
            email_enabled=alert.email_enabled,
            message=message
        )

    async def list_price_alerts(self) -> List[AlertSummary]:
        alerts = await self.registry.all_alerts()
        return [
            AlertSummary(
                alert_id=alert.id,
                symbol=alert.symbol,
                low_threshold=alert.low_threshold,
                high_threshold=alert.high_threshold,
                current_price=alert.current_price,
                created_at=alert.created_at,
                last_checked=alert.last_checked_at,
                triggered=alert.triggered,
                triggered_at=alert.triggered_at,
                email_enabled=alert.email_enabled
            )
            for alert in alerts
        ]

    async def remove_price_alert(self, alert_id: str) -> bool:
        removed = await self.registry.remove(alert_id)
        if removed is None:
            logger.info("Alert not found for removal", alert_id=alert_id)
            return False
        logger.info("Price alert removed", alert_id=alert_id, symbol=removed.symbol)
        return True

    async def check_alert_status(self, alert_id: Optional[str] = None,
                                 detailed: bool = False) -> AlertStatusReport:
        all_alerts = await self.registry.all_alerts()

        if alert_id is not None:
            selected = [alert for alert in all_alerts if alert.id == alert_id]
            if not selected:
                raise AlertNotFoundError(alert_id)
        else:
            selected = all_alerts

        now = utc_now()
        entries = [self._status_entry(alert, detailed, now) for alert in selected]

        triggers = await self.registry.triggered_records()
        if alert_id is not None:
            triggers = [record for record in triggers if record.alert_id == alert_id]
        triggers.sort(key=lambda record: record.triggered_at, reverse=True)

        return AlertStatusReport(
            monitor_status=MonitorStatus(
                is_running=self.monitor.is_running,
                check_interval_seconds=self.monitor.check_interval,
                last_check_time=self.monitor.last_check_time,
                errors_last_hour=error_collector.count_since(hours=1)
            ),
            alert_summary=AlertStatusSummary(
                total_alerts=len(all_alerts),
                active_alerts=sum(1 for alert in all_alerts if not alert.triggered),
                triggered_alerts=sum(1 for alert in all_alerts if alert.triggered),
                email_enabled_alerts=sum(1 for alert in all_alerts if alert.email_enabled)
            ),
            alerts=entries,
            recent_triggers=triggers[:settings.ALERT_RECENT_TRIGGERS_LIMIT]
        )

    @staticmethod
    def _status_entry(alert: PriceAlert, detailed: bool, now: datetime) -> AlertStatusEntry:
        entry = AlertStatusEntry(
            alert_id=alert.id,
            symbol=alert.symbol,
            status=AlertStatus.TRIGGERED if alert.triggered else AlertStatus.MONITORING,
            low_threshold=alert.low_threshold,
            high_threshold=alert.high_threshold,
            created_at=alert.created_at,
            last_checked=alert.last_checked_at,
            email_enabled=alert.email_enabled,
            time_since_creation=describe_age(alert.created_at, now)
        )

        if detailed and alert.current_price:
            price = alert.current_price
            entry.current_price = price
            if alert.low_threshold:
                entry.price_distance_to_low = round((price - alert.low_threshold) / alert.low_threshold * 100, 2)
            if alert.high_threshold:
                entry.price_distance_to_high = round((alert.high_threshold - price) / price * 100, 2)

        return entry

    async def get_alert_notifications(self, unacknowledged_only: bool = False) -> NotificationsResponse:
        notifications = await self.registry.notifications()
        selected = [n for n in notifications if not n.acknowledged] if unacknowledged_only else notifications
        return NotificationsResponse(
            notifications=selected,
            total_count=len(notifications),
            unacknowledged_count=sum(1 for n in notifications if not n.acknowledged)
        )

    async def acknowledge_alert(self, notification_id: str) -> bool:
        acknowledged = await self.registry.acknowledge(notification_id)
        if acknowledged:
            logger.info("Notification acknowledged", notification_id=notification_id)
        else:
            logger.info("Notification not found", notification_id=notification_id)
        return acknowledged

# Global alert registry, monitor and service
alert_registry = AlertRegistry()
price_alert_monitor = PriceAlertMonitor(alert_registry)
alert_service = PriceAlertService(alert_registry, price_alert_monitor)
