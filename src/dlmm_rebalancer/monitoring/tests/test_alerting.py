"""
Tests for alerting and notifications.

Alerts notify operators of position changes, failed actions and low gas.
"""
import time

import pytest
import requests
from decimal import Decimal
from unittest.mock import MagicMock, patch

from dlmm_rebalancer.monitoring.alerting import AlertManager


class TestTelegramAlerts:
    """Tests for Telegram notification sending."""

    def test_sends_alert_message(self, alert_manager, mock_telegram_api):
        result = alert_manager.send_alert(title="Position Opened", message="pos_1")

        assert result is True
        mock_telegram_api.send_message.assert_called_once()

    def test_formats_message_correctly(self, alert_manager, mock_telegram_api):
        alert_manager.send_alert(title="Test Alert", message="Test message content")

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert "*Test Alert*" in text
        assert "Test message content" in text

    def test_priority_marker(self, alert_manager, mock_telegram_api):
        alert_manager.send_alert(title="Gas", message="low", priority="high")

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert text.startswith("⚠️")

    def test_handles_api_error_gracefully(self, alert_manager, mock_telegram_api):
        mock_telegram_api.send_message.side_effect = Exception("API error")

        assert alert_manager.send_alert(title="Test", message="Test") is False

    def test_returns_false_without_credentials(self):
        manager = AlertManager(telegram_bot_token=None, telegram_chat_id=None)

        assert manager.enabled is False
        assert manager.send_alert(title="Test", message="Test") is False

    def test_posts_to_telegram_with_requests(self):
        manager = AlertManager(telegram_bot_token="tok", telegram_chat_id="42")

        with patch("dlmm_rebalancer.monitoring.alerting.requests.post") as mock_post:
            mock_post.return_value = MagicMock(raise_for_status=MagicMock())

            assert manager.send_alert(title="Hi", message="there") is True

        url = mock_post.call_args.args[0]
        assert url == "https://api.telegram.org/bottok/sendMessage"
        assert mock_post.call_args.kwargs["json"]["chat_id"] == "42"

    def test_http_failure_returns_false(self):
        manager = AlertManager(telegram_bot_token="tok", telegram_chat_id="42")

        with patch(
            "dlmm_rebalancer.monitoring.alerting.requests.post",
            side_effect=requests.ConnectionError("down"),
        ):
            assert manager.send_alert(title="Hi", message="there") is False


class TestDeduplication:

    def test_same_key_suppressed_within_cooldown(self, alert_manager, mock_telegram_api):
        assert alert_manager.send_alert("A", "a", dedup_key="k", cooldown_seconds=60) is True
        assert alert_manager.send_alert("A", "a", dedup_key="k", cooldown_seconds=60) is False

        assert mock_telegram_api.send_message.call_count == 1

    def test_different_keys_not_suppressed(self, alert_manager, mock_telegram_api):
        alert_manager.send_alert("A", "a", dedup_key="k1")
        alert_manager.send_alert("B", "b", dedup_key="k2")

        assert mock_telegram_api.send_message.call_count == 2

    def test_sends_again_after_cooldown(self, alert_manager, mock_telegram_api):
        alert_manager.send_alert("A", "a", dedup_key="k", cooldown_seconds=60)

        with patch("dlmm_rebalancer.monitoring.alerting.time.time", return_value=time.time() + 61):
            assert alert_manager.send_alert("A", "a", dedup_key="k", cooldown_seconds=60) is True

    def test_failed_send_not_recorded(self, alert_manager, mock_telegram_api):
        mock_telegram_api.send_message.side_effect = [Exception("down"), {"ok": True}]

        assert alert_manager.send_alert("A", "a", dedup_key="k") is False
        assert alert_manager.send_alert("A", "a", dedup_key="k") is True

    def test_stats_and_clear(self, alert_manager):
        alert_manager.send_alert("A", "a", dedup_key="k1")
        alert_manager.send_alert("B", "b", dedup_key="k2")

        assert alert_manager.get_alert_stats() == {"unique_alerts": 2, "total_sent": 2}

        alert_manager.clear_dedup_cache()
        assert alert_manager.get_alert_stats()["unique_alerts"] == 0


class TestLifecycleAlerts:

    def test_position_opened(self, alert_manager, mock_telegram_api):
        assert alert_manager.alert_position_opened("pos_1", 90, 110) is True

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert "pos_1" in text
        assert "[90, 110]" in text

    def test_position_closed(self, alert_manager, mock_telegram_api):
        alert_manager.alert_position_closed("pos_1", 150)

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert "Active Bin: 150" in text

    def test_action_failed(self, alert_manager, mock_telegram_api):
        alert_manager.alert_action_failed("remove_position", 5, "rpc down")

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert "remove_position" in text
        assert "Attempts: 5" in text

    def test_low_gas_deduplicated(self, alert_manager, mock_telegram_api):
        assert alert_manager.alert_low_gas(Decimal("0.05"), Decimal("0.1")) is True
        assert alert_manager.alert_low_gas(Decimal("0.04"), Decimal("0.1")) is False

        text = mock_telegram_api.send_message.call_args[1]["text"]
        assert "0.05 SOL" in text
