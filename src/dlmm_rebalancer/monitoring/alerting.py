"""
Alert Manager for Telegram notifications.

Sends position lifecycle and failure alerts with deduplication to prevent spam.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


@dataclass
class AlertRecord:
    """Tracks when an alert was last sent."""

    key: str
    last_sent: float  # Unix timestamp
    count: int = 1


class AlertManager:
    """
    Manages alerts with deduplication.

    Sends alerts via Telegram and suppresses duplicates within a cooldown
    window. Without credentials every alert is logged and dropped.

    Usage:
        manager = AlertManager(
            telegram_bot_token="...",
            telegram_chat_id="...",
        )

        manager.send_alert(
            title="Bot Started",
            message="Pool DbTk2...",
            dedup_key="startup",
        )

        manager.alert_position_opened(position_id, lower_bin, upper_bin)
        manager.alert_low_gas(Decimal("0.05"), Decimal("0.1"))
    """

    DEFAULT_COOLDOWN = 300  # 5 minutes

    def __init__(
        self,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        default_cooldown: int = DEFAULT_COOLDOWN,
        _telegram_api: Optional[Any] = None,  # For testing
    ) -> None:
        """
        Initialize the alert manager.

        Args:
            telegram_bot_token: Bot token from @BotFather
            telegram_chat_id: Chat ID to send messages to
            default_cooldown: Default cooldown between duplicate alerts
            _telegram_api: Injected API client for testing
        """
        self._bot_token = telegram_bot_token
        self._chat_id = telegram_chat_id
        self._default_cooldown = default_cooldown
        self._telegram_api = _telegram_api

        self._sent_alerts: Dict[str, AlertRecord] = {}

    @property
    def enabled(self) -> bool:
        return self._telegram_api is not None or bool(self._bot_token and self._chat_id)

    def send_alert(
        self,
        title: str,
        message: str,
        dedup_key: Optional[str] = None,
        cooldown_seconds: Optional[int] = None,
        priority: str = "normal",
    ) -> bool:
        """
        Send an alert via Telegram.

        Args:
            title: Alert title
            message: Alert message body
            dedup_key: Key for deduplication (None to skip dedup)
            cooldown_seconds: Cooldown for this specific alert
            priority: Priority level ("low", "normal", "high", "critical")

        Returns:
            True if alert was sent, False if deduplicated or not delivered
        """
        if dedup_key:
            cooldown = cooldown_seconds if cooldown_seconds is not None else self._default_cooldown
            if not self._should_send(dedup_key, cooldown):
                logger.debug(f"Deduplicated alert: {dedup_key}")
                return False

        formatted = self._format_message(title, message, priority)
        success = self._send_telegram(formatted)

        if dedup_key and success:
            self._record_sent(dedup_key)

        return success

    def alert_position_opened(
        self,
        position_id: str,
        lower_bin_id: int,
        upper_bin_id: int,
    ) -> bool:
        """Send position opened alert."""
        message = f"""
Position: {position_id}
Range: [{lower_bin_id}, {upper_bin_id}]
"""
        return self.send_alert(
            title="📈 Position Opened",
            message=message,
            dedup_key=f"open_{position_id}",
            cooldown_seconds=60,
        )

    def alert_position_closed(self, position_id: str, active_bin_id: int) -> bool:
        """Send position closed (out of range) alert."""
        message = f"""
Position: {position_id}
Active Bin: {active_bin_id}
Reason: out of range
"""
        return self.send_alert(
            title="📉 Position Closed",
            message=message,
            dedup_key=f"close_{position_id}",
            cooldown_seconds=60,
        )

    def alert_action_failed(
        self,
        operation: str,
        attempts: int,
        error: str,
    ) -> bool:
        """
        Send an alert when an action exhausted its retries.

        Args:
            operation: Operation name (swap_a_to_b, create_position, ...)
            attempts: Attempts made
            error: Last error message

        Returns:
            True if sent
        """
        message = f"""
Operation: {operation}
Attempts: {attempts}
Last Error: {error}
Time: {datetime.now(timezone.utc).isoformat()}
"""
        return self.send_alert(
            title=f"🔴 Action Failed: {operation}",
            message=message,
            dedup_key=f"failed_{operation}",
            cooldown_seconds=300,
            priority="high",
        )

    def alert_low_gas(self, current_balance: Decimal, threshold: Decimal) -> bool:
        """
        Send a low gas balance alert.

        Args:
            current_balance: Current native balance (SOL)
            threshold: Minimum required to act

        Returns:
            True if sent
        """
        message = f"""
Current Balance: {current_balance} SOL
Threshold: {threshold} SOL
Action Required: Top up SOL to resume rebalancing
"""
        return self.send_alert(
            title="⛽ Low Gas Warning",
            message=message,
            dedup_key="low_gas",
            cooldown_seconds=3600,  # 1 hour cooldown
            priority="high",
        )

    def _should_send(self, key: str, cooldown: int) -> bool:
        """Check if alert should be sent based on cooldown."""
        if key not in self._sent_alerts:
            return True

        record = self._sent_alerts[key]
        return (time.time() - record.last_sent) >= cooldown

    def _record_sent(self, key: str) -> None:
        """Record that an alert was sent."""
        now = time.time()

        if key in self._sent_alerts:
            self._sent_alerts[key].last_sent = now
            self._sent_alerts[key].count += 1
        else:
            self._sent_alerts[key] = AlertRecord(key=key, last_sent=now)

    def _format_message(self, title: str, message: str, priority: str) -> str:
        """Format alert message for Telegram."""
        priority_markers = {
            "critical": "🚨🚨🚨",
            "high": "⚠️",
            "normal": "",
            "low": "ℹ️",
        }

        marker = priority_markers.get(priority, "")
        header = f"{marker} *{title}*" if marker else f"*{title}*"

        return f"{header}\n\n{message.strip()}"

    def _send_telegram(self, text: str) -> bool:
        """Send message via Telegram API. Delivery failures are logged, not raised."""
        if self._telegram_api:
            try:
                self._telegram_api.send_message(
                    chat_id=self._chat_id,
                    text=text,
                    parse_mode="Markdown",
                )
                return True
            except Exception as e:
                logger.error(f"Telegram API error: {e}")
                return False

        if not self._bot_token or not self._chat_id:
            logger.debug(f"Telegram not configured, alert dropped: {text[:50]}")
            return False

        url = f"{TELEGRAM_API_URL}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "Markdown",
        }

        try:
            response = requests.post(url, json=payload, timeout=10)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

        logger.info(f"Sent Telegram alert: {text[:50]}...")
        return True

    def clear_dedup_cache(self) -> None:
        """Clear the deduplication cache."""
        self._sent_alerts.clear()

    def get_alert_stats(self) -> Dict[str, int]:
        """Get statistics about sent alerts."""
        return {
            "unique_alerts": len(self._sent_alerts),
            "total_sent": sum(r.count for r in self._sent_alerts.values()),
        }
