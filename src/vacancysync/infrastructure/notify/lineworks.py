"""
LINE WORKS bot notifier.

Obtains a bearer token through the client-credentials exchange (cached
until five minutes before expiry) and posts text messages to the bot's
default channel.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from typing import Callable

import requests

from vacancysync.domain.config.settings import LineWorksSettings
from vacancysync.domain.errors import NotificationError, RetryExhaustedError
from vacancysync.domain.ports import Clock, SystemClock
from vacancysync.infrastructure.resilience.retry import execute_with_retry

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_MARGIN = 300
INTERACTIVE_TIMEOUT = 30.0
SERVICE_TIMEOUT = 15.0
ALERT_THRESHOLD = 3


def default_timeout() -> float:
    """30s when attached to a terminal, 15s when running as a service."""
    try:
        interactive = sys.stdin is not None and sys.stdin.isatty()
    except (AttributeError, ValueError):
        interactive = False
    return INTERACTIVE_TIMEOUT if interactive else SERVICE_TIMEOUT


class LineWorksNotifier:
    """``Notifier`` posting to a LINE WORKS bot."""

    def __init__(
        self,
        settings: LineWorksSettings,
        clock: Clock | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()
        self._session = session
        self._sleep = sleep
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()
        self.timeout = settings.timeout_seconds or default_timeout()

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def access_token(self) -> str:
        """
        Return a valid bearer token, exchanging credentials when needed.

        Raises:
            NotificationError: Token endpoint failed or returned garbage
        """
        with self._token_lock:
            if self._token and self.clock.monotonic() < self._token_expires_at:
                return self._token

            payload = {
                "grant_type": "client_credentials",
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
            }
            try:
                response = self.session.post(self.settings.token_url, json=payload, timeout=self.timeout)
            except requests.RequestException as e:
                raise NotificationError(f"Token request failed: {e}") from e
            if response.status_code >= 400:
                raise NotificationError(
                    f"Token request returned {response.status_code}", response.status_code
                )

            try:
                body = response.json()
                token = body["access_token"]
                expires_in = int(body.get("expires_in", 0))
            except (ValueError, KeyError, TypeError) as e:
                raise NotificationError(f"Malformed token response: {e}") from e

            self._token = token
            self._token_expires_at = self.clock.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
            logger.info("Obtained new LINE WORKS access token")
            return token

    def _post_message(self, text: str) -> None:
        url = self.settings.message_url.format(bot_id=self.settings.bot_id)
        headers = {"Authorization": f"Bearer {self.access_token()}"}
        payload = {"content": {"type": "text", "text": text}}
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise NotificationError(f"Message send timed out after {self.timeout:.0f}s") from e
        except requests.RequestException as e:
            raise NotificationError(f"Message send failed: {e}") from e
        if response.status_code == 401:
            # Token revoked early; force a fresh exchange on the next attempt
            self._token = None
        if response.status_code >= 400:
            raise NotificationError(
                f"Message send returned {response.status_code}", response.status_code
            )

    def send_text(self, text: str) -> None:
        """
        Post ``text`` with up to ``max_attempts`` attempts.

        Raises:
            NotificationError: Every attempt failed
        """
        try:
            execute_with_retry(
                lambda: self._post_message(text),
                retry_count=self.settings.max_attempts - 1,
                initial_delay=1.0,
                max_delay=5.0,
                operation_name="LINE WORKS message",
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            raise NotificationError(str(e.last_error)) from e
        logger.debug("LINE WORKS message sent")

    def send_change_summary(self, summary: str, proof_file: str | None = None) -> None:
        lines = ["📊 Reservation data update", "", summary, ""]
        if proof_file:
            lines.append(f"📄 Proof list: {proof_file}")
        lines.append(f"⏰ Processed at: {self.clock.now():%Y/%m/%d %H:%M:%S}")
        self.send_text("\n".join(lines))

    def send_error(self, message: str, error_count: int = 1) -> None:
        """Best-effort error notice; failures are logged, never raised."""
        urgent = error_count >= ALERT_THRESHOLD
        lines = [
            f"{'🚨' if urgent else '⚠️'} Reservation sync error",
            "",
            f"Error: {message}",
            f"Consecutive failures: {error_count}",
            f"Occurred at: {self.clock.now():%Y/%m/%d %H:%M:%S}",
        ]
        if urgent:
            lines += ["", "⚠️ Administrator attention required"]
        try:
            self.send_text("\n".join(lines))
            logger.info("Error notification sent (failures: %d)", error_count)
        except NotificationError as e:
            logger.error("Failed to send error notification: %s", e)

    def send_critical_alert(self, error_count: int, last_error: str) -> None:
        text = (
            "🚨 Reservation sync service stopping\n\n"
            f"Consecutive failures reached {error_count}.\n"
            f"Last error: {last_error}\n"
            f"Occurred at: {self.clock.now():%Y/%m/%d %H:%M:%S}\n\n"
            "The service will exit and must be restarted by the host."
        )
        self.send_text(text)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

