from unittest.mock import MagicMock, Mock, patch

import httpx

from support_relay.services.alert_service import (
    alert_error,
    send_alert,
)

WEBHOOK_URL = "https://hooks.example.test/alerts"


class TestSendAlert:
    @patch("support_relay.services.alert_service.settings.alert_webhook_url", None)
    def test_returns_false_when_not_configured(self):
        result = send_alert("ERROR", "Test message")
        assert result is False

    @patch("support_relay.services.alert_service.settings.alert_webhook_url", WEBHOOK_URL)
    @patch("support_relay.services.alert_service.httpx.Client")
    def test_posts_alert_to_webhook(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client

        mock_response = Mock()
        mock_response.status_code = 200
        mock_client.post.return_value = mock_response

        result = send_alert("ERROR", "Test error message")

        assert result is True
        mock_client.post.assert_called_once()

        call_args = mock_client.post.call_args
        assert call_args[0][0] == WEBHOOK_URL
        json_data = call_args[1]["json"]
        assert json_data["level"] == "ERROR"
        assert "[ERROR]" in json_data["text"]
        assert "Test error message" in json_data["text"]

    @patch("support_relay.services.alert_service.settings.alert_webhook_url", WEBHOOK_URL)
    @patch("support_relay.services.alert_service.httpx.Client")
    def test_includes_context_in_message(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client

        mock_response = Mock()
        mock_response.status_code = 200
        mock_client.post.return_value = mock_response

        context = {"user_id": "u1", "error": "database is locked"}
        send_alert("ERROR", "Message ingest failed", context)

        json_data = mock_client.post.call_args[1]["json"]
        assert "user_id: u1" in json_data["text"]
        assert "database is locked" in json_data["text"]

    @patch("support_relay.services.alert_service.settings.alert_webhook_url", WEBHOOK_URL)
    @patch("support_relay.services.alert_service.httpx.Client")
    def test_returns_false_on_webhook_error_status(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client

        mock_response = Mock()
        mock_response.status_code = 400
        mock_client.post.return_value = mock_response

        result = send_alert("ERROR", "Test message")

        assert result is False

    @patch("support_relay.services.alert_service.settings.alert_webhook_url", WEBHOOK_URL)
    @patch("support_relay.services.alert_service.httpx.Client")
    def test_returns_false_on_network_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("Network error")

        result = send_alert("ERROR", "Test message")

        assert result is False


class TestAlertShortcuts:
    @patch("support_relay.services.alert_service.send_alert")
    def test_alert_error_calls_send_alert_with_error_level(self, mock_send):
        mock_send.return_value = True

        result = alert_error("Test error", {"key": "value"})

        mock_send.assert_called_once_with("ERROR", "Test error", {"key": "value"})
        assert result is True
