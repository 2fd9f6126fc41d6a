"""
Tests for the LINE WORKS notifier with a mocked HTTP session.
"""

from unittest.mock import MagicMock

import pytest
import requests

from vacancysync.domain.config.settings import LineWorksSettings
from vacancysync.domain.errors import NotificationError
from vacancysync.infrastructure.notify.lineworks import LineWorksNotifier

TOKEN_URL = "https://auth.example/token"
MESSAGE_URL = "https://api.example/bots/{bot_id}/messages"


def response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    return resp


class FakeEndpoints:
    """Routes session.post by URL and records calls."""

    def __init__(self):
        self.token_calls = 0
        self.messages = []
        self.message_statuses = []
        self.expires_in = 3600

    def __call__(self, url, json=None, headers=None, timeout=None):
        if url == TOKEN_URL:
            self.token_calls += 1
            return response(200, {"access_token": f"tok-{self.token_calls}", "expires_in": self.expires_in})
        self.messages.append((url, json, headers, timeout))
        status = self.message_statuses.pop(0) if self.message_statuses else 201
        return response(status)


@pytest.fixture
def endpoints():
    return FakeEndpoints()


@pytest.fixture
def notifier(clock, endpoints):
    session = MagicMock()
    session.post.side_effect = endpoints
    settings = LineWorksSettings(
        bot_id="bot-1",
        client_id="client",
        client_secret="s3cret",
        token_url=TOKEN_URL,
        message_url=MESSAGE_URL,
        timeout_seconds=15,
    )
    return LineWorksNotifier(settings, clock, session=session, sleep=lambda _: None)


class TestAccessToken:
    def test_token_cached_until_margin(self, notifier, endpoints, clock):
        assert notifier.access_token() == "tok-1"
        clock.advance(3600 - 301)
        assert notifier.access_token() == "tok-1"
        clock.advance(2)
        assert notifier.access_token() == "tok-2"
        assert endpoints.token_calls == 2

    def test_token_request_payload(self, notifier):
        notifier.access_token()
        call = notifier.session.post.call_args_list[0]
        assert call.args[0] == TOKEN_URL
        assert call.kwargs["json"]["grant_type"] == "client_credentials"
        assert call.kwargs["json"]["client_secret"] == "s3cret"

    def test_token_failure_raises(self, notifier):
        notifier.session.post.side_effect = None
        notifier.session.post.return_value = response(400)
        with pytest.raises(NotificationError):
            notifier.access_token()

    def test_malformed_token_response(self, notifier):
        notifier.session.post.side_effect = None
        notifier.session.post.return_value = response(200, {"unexpected": True})
        with pytest.raises(NotificationError, match="Malformed"):
            notifier.access_token()


class TestSendText:
    def test_message_posted_to_bot_channel(self, notifier, endpoints):
        notifier.send_text("hello")
        url, payload, headers, timeout = endpoints.messages[0]
        assert url == "https://api.example/bots/bot-1/messages"
        assert payload == {"content": {"type": "text", "text": "hello"}}
        assert headers == {"Authorization": "Bearer tok-1"}
        assert timeout == 15

    def test_one_retry_then_success(self, notifier, endpoints):
        endpoints.message_statuses = [500, 201]
        notifier.send_text("hello")
        assert len(endpoints.messages) == 2

    def test_two_failures_raise(self, notifier, endpoints):
        endpoints.message_statuses = [500, 500, 500]
        with pytest.raises(NotificationError):
            notifier.send_text("hello")
        assert len(endpoints.messages) == 2

    def test_unauthorized_forces_new_token(self, notifier, endpoints):
        endpoints.message_statuses = [401, 201]
        notifier.send_text("hello")
        assert endpoints.token_calls == 2
        assert endpoints.messages[1][2] == {"Authorization": "Bearer tok-2"}

    def test_timeout_is_notification_error(self, notifier, endpoints):
        def timeout(url, **kwargs):
            if url == TOKEN_URL:
                return endpoints(url, **kwargs)
            raise requests.Timeout("slow")

        notifier.session.post.side_effect = timeout
        with pytest.raises(NotificationError):
            notifier.send_text("hello")


class TestMessages:
    def test_change_summary_mentions_proof_file(self, notifier, endpoints):
        notifier.send_change_summary("New: 1", "proofs/20240615_090000_proof.csv")
        text = endpoints.messages[0][1]["content"]["text"]
        assert "New: 1" in text
        assert "20240615_090000_proof.csv" in text

    def test_error_below_threshold(self, notifier, endpoints):
        notifier.send_error("share offline", 1)
        text = endpoints.messages[0][1]["content"]["text"]
        assert text.startswith("⚠️")
        assert "Consecutive failures: 1" in text

    def test_error_at_threshold_is_urgent(self, notifier, endpoints):
        notifier.send_error("share offline", 3)
        text = endpoints.messages[0][1]["content"]["text"]
        assert text.startswith("🚨")
        assert "Administrator attention required" in text

    def test_send_error_never_raises(self, notifier, endpoints, caplog):
        endpoints.message_statuses = [500, 500]
        with caplog.at_level("ERROR"):
            notifier.send_error("share offline", 1)
        assert any("Failed to send error notification" in r.getMessage() for r in caplog.records)

    def test_critical_alert(self, notifier, endpoints):
        notifier.send_critical_alert(3, "remote store down")
        text = endpoints.messages[0][1]["content"]["text"]
        assert "reached 3" in text
        assert "remote store down" in text

    def test_close_releases_session(self, notifier):
        session = notifier.session
        notifier.close()
        session.close.assert_called_once()
