"""Alert dispatching with per-metric cooldowns and notification fan-out."""

import asyncio
import smtplib
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any

import aiohttp
import structlog

from ..constants import CONSTANTS
from ..core.exceptions import AlertNotFoundError, AlertStateError, NotificationError
from .anomalies import AnomalyRegistry
from .models import AlertEvent, AlertHistoryRecord, AlertSeverity, AlertStatus

logger = structlog.get_logger(__name__)


class ChannelType(Enum):
    """Kinds of notification channel."""

    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    SMS = "sms"


@dataclass
class ChannelConfig:
    """Configuration of one notification channel."""

    id: str
    type: ChannelType
    enabled: bool = False
    url: str | None = None
    recipients: list[str] = field(default_factory=list)
    token: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "enabled": self.enabled,
            "recipients": len(self.recipients),
        }


def default_channels() -> list[ChannelConfig]:
    """Channels built from the environment; each is enabled only when its target is set."""
    return [
        ChannelConfig(
            id="email-ops",
            type=ChannelType.EMAIL,
            enabled=bool(CONSTANTS.ALERT_EMAIL_TO),
            recipients=list(CONSTANTS.ALERT_EMAIL_TO),
        ),
        ChannelConfig(
            id="slack-alerts",
            type=ChannelType.SLACK,
            enabled=bool(CONSTANTS.SLACK_WEBHOOK_URL),
            url=CONSTANTS.SLACK_WEBHOOK_URL,
        ),
        ChannelConfig(
            id="sms-critical",
            type=ChannelType.SMS,
            enabled=bool(CONSTANTS.SMS_GATEWAY_URL and CONSTANTS.ALERT_SMS_TO),
            url=CONSTANTS.SMS_GATEWAY_URL,
            recipients=list(CONSTANTS.ALERT_SMS_TO),
            token=CONSTANTS.SMS_GATEWAY_TOKEN,
        ),
        ChannelConfig(
            id="webhook-monitoring",
            type=ChannelType.WEBHOOK,
            enabled=bool(CONSTANTS.MONITORING_WEBHOOK_URL),
            url=CONSTANTS.MONITORING_WEBHOOK_URL,
        ),
    ]


def default_severity_channels() -> dict[AlertSeverity, list[str]]:
    return {
        AlertSeverity.CRITICAL: ["email-ops", "slack-alerts", "sms-critical", "webhook-monitoring"],
        AlertSeverity.WARNING: ["email-ops", "slack-alerts", "webhook-monitoring"],
        AlertSeverity.INFO: ["slack-alerts"],
    }


def default_cooldowns() -> dict[str, float]:
    return {
        "disk_space": CONSTANTS.SLOW_METRIC_COOLDOWN_MINUTES,
        "connections": CONSTANTS.SLOW_METRIC_COOLDOWN_MINUTES,
        "error_pattern": CONSTANTS.ERROR_METRIC_COOLDOWN_MINUTES,
        "error_rate": CONSTANTS.ERROR_METRIC_COOLDOWN_MINUTES,
        "performance_trend": CONSTANTS.TREND_COOLDOWN_MINUTES,
    }


@dataclass
class AlertConfig:
    """Configuration for alert dispatching."""

    enabled: bool = True
    default_cooldown_minutes: float = CONSTANTS.DEFAULT_COOLDOWN_MINUTES
    cooldown_minutes: dict[str, float] = field(default_factory=default_cooldowns)
    history_limit: int = CONSTANTS.ALERT_HISTORY_LIMIT
    channels: list[ChannelConfig] = field(default_factory=default_channels)
    severity_channels: dict[AlertSeverity, list[str]] = field(
        default_factory=default_severity_channels
    )
    notification_timeout: float = CONSTANTS.NOTIFICATION_TIMEOUT
    dashboard_url: str = CONSTANTS.DASHBOARD_URL

    # Email configuration
    smtp_host: str = CONSTANTS.SMTP_HOST
    smtp_port: int = CONSTANTS.SMTP_PORT
    smtp_username: str | None = CONSTANTS.SMTP_USER
    smtp_password: str | None = CONSTANTS.SMTP_PASSWORD
    smtp_use_tls: bool = True
    from_email: str = CONSTANTS.ALERT_EMAIL_FROM


class NotificationChannel:
    """Base class for notification channels."""

    def __init__(self, channel: ChannelConfig, config: AlertConfig):
        self.channel = channel
        self.config = config

    @property
    def id(self) -> str:
        return self.channel.id

    @property
    def enabled(self) -> bool:
        return self.channel.enabled

    async def send(self, alert: AlertEvent) -> None:
        """Deliver one alert.

        Raises:
            NotificationError: If delivery fails
        """
        raise NotImplementedError

    async def _post(self, url: str | None, payload: dict[str, Any], headers: dict[str, str] | None = None) -> None:
        if not url:
            raise NotificationError("No target URL configured", channel=self.id)

        try:
            async with (
                aiohttp.ClientSession() as session,
                session.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.config.notification_timeout),
                ) as response,
            ):
                if not 200 <= response.status < 300:
                    raise NotificationError(
                        f"Unexpected response status {response.status}", channel=self.id
                    )
        except aiohttp.ClientError as e:
            raise NotificationError("Request failed", channel=self.id, cause=e) from e
        except TimeoutError as e:
            raise NotificationError("Request timed out", channel=self.id, cause=e) from e


class EmailChannel(NotificationChannel):
    """Sends alerts by SMTP from a worker thread."""

    async def send(self, alert: AlertEvent) -> None:
        if not self.channel.recipients:
            raise NotificationError("No recipients configured", channel=self.id)

        msg = MIMEMultipart()
        msg["From"] = self.config.from_email
        msg["To"] = ", ".join(self.channel.recipients)
        msg["Subject"] = f"[{alert.severity.value.upper()}] {alert.service}: {alert.message}"

        body = f"""
Alert: {alert.message}
Severity: {alert.severity.value.upper()}
Service: {alert.service}
Metric: {alert.metric}
Value: {alert.current_value}
Threshold: {alert.threshold}
Time: {alert.timestamp.isoformat()}
Dashboard: {self.config.dashboard_url}
"""
        msg.attach(MIMEText(body, "plain"))

        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError("SMTP delivery failed", channel=self.id, cause=e) from e

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(
            self.config.smtp_host, self.config.smtp_port, timeout=self.config.notification_timeout
        ) as server:
            if self.config.smtp_use_tls:
                server.starttls()
            if self.config.smtp_username and self.config.smtp_password:
                server.login(self.config.smtp_username, self.config.smtp_password)

            server.send_message(msg)


class SlackChannel(NotificationChannel):
    """Posts an attachment-style message to a Slack incoming webhook."""

    COLORS = {
        AlertSeverity.CRITICAL: "danger",
        AlertSeverity.WARNING: "warning",
        AlertSeverity.INFO: "good",
    }

    async def send(self, alert: AlertEvent) -> None:
        payload = {
            "text": f"{alert.severity.value.upper()} alert: {alert.message}",
            "attachments": [
                {
                    "color": self.COLORS[alert.severity],
                    "title": f"{alert.severity.value.upper()} - {alert.service}",
                    "text": alert.message,
                    "fields": [
                        {"title": "Metric", "value": alert.metric, "short": True},
                        {"title": "Threshold", "value": str(alert.threshold), "short": True},
                        {"title": "Current value", "value": str(alert.current_value), "short": True},
                        {"title": "Timestamp", "value": alert.timestamp.isoformat(), "short": True},
                    ],
                    "title_link": self.config.dashboard_url,
                }
            ],
        }
        await self._post(self.channel.url, payload)


class WebhookChannel(NotificationChannel):
    """Posts the alert as JSON to a generic monitoring webhook."""

    async def send(self, alert: AlertEvent) -> None:
        payload = {
            "source": CONSTANTS.APP_NAME,
            "alert": alert.to_dict(),
            "dashboard_url": self.config.dashboard_url,
        }
        await self._post(self.channel.url, payload)


class SmsChannel(NotificationChannel):
    """Sends a short text to every recipient through an HTTP SMS gateway."""

    async def send(self, alert: AlertEvent) -> None:
        if not self.channel.recipients:
            raise NotificationError("No recipients configured", channel=self.id)

        headers = {"Authorization": f"Bearer {self.channel.token}"} if self.channel.token else None
        text = f"[{alert.severity.value.upper()}] {alert.service}: {alert.message}"
        for recipient in self.channel.recipients:
            await self._post(self.channel.url, {"to": recipient, "message": text}, headers)


CHANNEL_CLASSES: dict[ChannelType, type[NotificationChannel]] = {
    ChannelType.EMAIL: EmailChannel,
    ChannelType.SLACK: SlackChannel,
    ChannelType.WEBHOOK: WebhookChannel,
    ChannelType.SMS: SmsChannel,
}

_TRANSITIONS: dict[AlertStatus, set[AlertStatus]] = {
    AlertStatus.TRIGGERED: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.CLOSED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED, AlertStatus.CLOSED},
    AlertStatus.RESOLVED: {AlertStatus.CLOSED},
    AlertStatus.CLOSED: set(),
}


class AlertDispatcher:
    """Deduplicates alerts, fans them out to channels and keeps a history."""

    def __init__(
        self,
        config: AlertConfig | None = None,
        anomalies: AnomalyRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the dispatcher.

        Args:
            config: Alert configuration
            anomalies: Registry receiving one anomaly per dispatched alert
            clock: Monotonic clock used for cooldowns
        """
        self.config = config or AlertConfig()
        self.anomalies = anomalies
        self._clock = clock
        self._lock = threading.Lock()
        self._last_fired: dict[str, tuple[float, float]] = {}
        self._history: deque[AlertHistoryRecord] = deque(maxlen=self.config.history_limit)
        self._channels: dict[str, NotificationChannel] = {
            channel.id: CHANNEL_CLASSES[channel.type](channel, self.config)
            for channel in self.config.channels
        }

        logger.info(
            "Alert dispatcher initialized",
            channels=[cid for cid, channel in self._channels.items() if channel.enabled],
        )

    def cooldown_seconds(self, metric: str) -> float:
        minutes = self.config.cooldown_minutes.get(metric, self.config.default_cooldown_minutes)
        return minutes * 60

    def cooldown_remaining(self, key: str) -> float:
        """Seconds until an alert with this key may fire again (0 when it may fire now)."""
        with self._lock:
            fired = self._last_fired.get(key)
        if fired is None:
            return 0.0
        fired_at, cooldown = fired
        return max(fired_at + cooldown - self._clock(), 0.0)

    def channels_for(self, severity: AlertSeverity) -> list[str]:
        return list(self.config.severity_channels.get(severity, []))

    async def dispatch(self, alert: AlertEvent) -> AlertHistoryRecord | None:
        """Dispatch one alert unless its key is cooling down.

        Args:
            alert: Alert to dispatch

        Returns:
            The history record, or None when the alert was suppressed
        """
        try:
            if not self._claim(alert):
                logger.info(
                    "Alert suppressed by cooldown",
                    key=alert.key,
                    remaining_seconds=round(self.cooldown_remaining(alert.key), 1),
                )
                return None

            channel_ids = self.channels_for(alert.severity)
            delivered, failed = await self._fan_out(alert, channel_ids)

            record = AlertHistoryRecord(
                id=f"alert_{uuid.uuid4().hex[:12]}",
                alert_key=alert.key,
                timestamp=alert.timestamp,
                message=alert.message,
                severity=alert.severity,
                channels=channel_ids,
                metadata={
                    "service": alert.service,
                    "metric": alert.metric,
                    "threshold": alert.threshold,
                    "current_value": alert.current_value,
                    "delivered": delivered,
                    "failed": failed,
                },
            )
            with self._lock:
                self._history.append(record)

            logger.warning(
                "Alert dispatched",
                key=alert.key,
                severity=alert.severity.value,
                value=alert.current_value,
                threshold=alert.threshold,
                delivered=delivered,
                failed=failed,
            )

            self._file_anomaly(alert, record)
            return record

        except Exception as e:
            logger.error("Alert dispatch failed", key=alert.key, error=str(e))
            return None

    def _claim(self, alert: AlertEvent) -> bool:
        now = self._clock()
        with self._lock:
            fired = self._last_fired.get(alert.key)
            if fired is not None and now < fired[0] + fired[1]:
                return False
            self._last_fired[alert.key] = (now, self.cooldown_seconds(alert.metric))
            return True

    async def _fan_out(self, alert: AlertEvent, channel_ids: Iterable[str]) -> tuple[list[str], list[str]]:
        targets = []
        for channel_id in channel_ids:
            channel = self._channels.get(channel_id)
            if channel is None:
                logger.warning("Unknown alert channel", channel=channel_id)
            elif not channel.enabled:
                logger.debug("Alert channel disabled", channel=channel_id)
            else:
                targets.append(channel)

        results = await asyncio.gather(
            *(channel.send(alert) for channel in targets), return_exceptions=True
        )

        delivered: list[str] = []
        failed: list[str] = []
        for channel, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to send alert notification",
                    channel=channel.id,
                    key=alert.key,
                    error=str(result),
                )
                failed.append(channel.id)
            else:
                delivered.append(channel.id)
        return delivered, failed

    def _file_anomaly(self, alert: AlertEvent, record: AlertHistoryRecord) -> None:
        if self.anomalies is None:
            return
        try:
            anomaly = self.anomalies.file_from_alert(
                alert, {"alert_record_id": record.id, "channels": record.channels}
            )
            record.metadata["anomaly_id"] = anomaly.id
        except Exception as e:
            logger.error("Failed to file anomaly", key=alert.key, error=str(e))

    def get_history(self, limit: int = 100) -> list[AlertHistoryRecord]:
        """The most recent history records, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._history)[-limit:]

    def get_record(self, record_id: str) -> AlertHistoryRecord:
        with self._lock:
            for record in self._history:
                if record.id == record_id:
                    return record
        raise AlertNotFoundError(f"Alert not found: {record_id}")

    def acknowledge(self, record_id: str) -> AlertHistoryRecord:
        return self._transition(record_id, AlertStatus.ACKNOWLEDGED)

    def resolve(self, record_id: str) -> AlertHistoryRecord:
        return self._transition(record_id, AlertStatus.RESOLVED)

    def close(self, record_id: str) -> AlertHistoryRecord:
        return self._transition(record_id, AlertStatus.CLOSED)

    def resolve_cleared(self, active_keys: Iterable[str]) -> list[AlertHistoryRecord]:
        """Resolve open records whose alert key no longer fires.

        Args:
            active_keys: Keys produced by the latest evaluation

        Returns:
            Records that were resolved
        """
        active = set(active_keys)
        now = datetime.now(UTC)
        resolved = []
        with self._lock:
            for record in self._history:
                if record.is_open and record.alert_key not in active:
                    record.status = AlertStatus.RESOLVED
                    record.resolved_at = now
                    record.metadata["auto_resolved"] = True
                    resolved.append(record)

        for record in resolved:
            logger.info("Alert resolved", key=record.alert_key, alert_id=record.id)
        return resolved

    def _transition(self, record_id: str, target: AlertStatus) -> AlertHistoryRecord:
        record = self.get_record(record_id)
        with self._lock:
            if target not in _TRANSITIONS[record.status]:
                raise AlertStateError(record.status.value, target.value)

            now = datetime.now(UTC)
            record.status = target
            if target == AlertStatus.ACKNOWLEDGED:
                record.acknowledged_at = now
            elif target == AlertStatus.RESOLVED:
                record.resolved_at = now
            elif target == AlertStatus.CLOSED:
                record.closed_at = now

        logger.info("Alert status changed", alert_id=record_id, status=target.value)
        return record

    def get_channels(self) -> list[dict[str, Any]]:
        return [channel.channel.to_dict() for channel in self._channels.values()]

    async def test_channel(self, channel_id: str) -> dict[str, Any]:
        """Send an info-level test alert to one channel, bypassing cooldowns.

        Raises:
            NotificationError: If the channel does not exist
        """
        channel = self._channels.get(channel_id)
        if channel is None:
            raise NotificationError("Unknown channel", channel=channel_id)

        alert = AlertEvent(
            severity=AlertSeverity.INFO,
            message="Test alert",
            service="application",
            metric="test",
            threshold=0,
            current_value=0,
        )
        try:
            await channel.send(alert)
        except NotificationError as e:
            logger.warning("Test notification failed", channel=channel_id, error=str(e))
            return {"channel": channel_id, "delivered": False, "error": str(e)}

        return {"channel": channel_id, "delivered": True, "error": None}
