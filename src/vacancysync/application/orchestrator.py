"""
Service orchestration loop.

Drives sync cycles on a fixed interval through the lifecycle state
machine, runs periodic health checks and proof-list cleanup, tracks
consecutive failures and performs the graceful shutdown sequence.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Iterable

from vacancysync.application.health_check import HealthCheckService
from vacancysync.application.pipeline import CycleReport, SyncPipeline
from vacancysync.domain.config.settings import AppSettings
from vacancysync.domain.errors import ConfigurationError, NotificationError, OperationCancelledError
from vacancysync.domain.models import PipelineHealth
from vacancysync.domain.ports import Clock, Notifier, SystemClock
from vacancysync.domain.state_machine import PipelineState, transition
from vacancysync.infrastructure.config_loader import validate_required
from vacancysync.infrastructure.report.proof_list import ProofListWriter
from vacancysync.infrastructure.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE_CEILING = 1
EXIT_CONFIG_ERROR = 2

_LOOP_STATES = (PipelineState.RUNNING, PipelineState.HEALTH_CHECK, PipelineState.DEGRADED)


class ServiceOrchestrator:
    # pylint: disable=too-many-instance-attributes
    """
    Long-lived scheduler for sync cycles.

    Args:
        settings: Full application settings
        pipeline: Cycle implementation
        health_check: Resource checks run at most once per interval
        notifier: Channel for failure, health and critical alerts
        proof_writer: Used for the daily proof-list purge
        resources: Release callbacks run during shutdown
        clock: Wall clock (injectable for tests)
    """

    def __init__(
        self,
        settings: AppSettings,
        pipeline: SyncPipeline,
        health_check: HealthCheckService,
        notifier: Notifier,
        proof_writer: ProofListWriter,
        resources: Iterable[Callable[[], None]] = (),
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.pipeline = pipeline
        self.health_check = health_check
        self.notifier = notifier
        self.proof_writer = proof_writer
        self.resources = list(resources)
        self.clock = clock or SystemClock()

        self.state = PipelineState.STARTING
        self.health = PipelineHealth()
        self.shutdown_token = CancellationToken()
        self.last_report: CycleReport | None = None
        self._state_lock = threading.RLock()
        self._cycle_done = threading.Event()
        self._cycle_done.set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _move(self, target: PipelineState) -> None:
        with self._state_lock:
            # Shutdown wins over any move the loop makes concurrently
            if self.state in (PipelineState.STOPPING, PipelineState.STOPPED) and target in _LOOP_STATES:
                return
            self.state = transition(self.state, target)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Validate configuration and enter RUNNING.

        Raises:
            ConfigurationError: Required settings are missing; the
                orchestrator ends in STOPPED
        """
        try:
            validate_required(self.settings)
        except ConfigurationError as e:
            logger.critical("Configuration invalid, service will not start: %s", e)
            self._move(PipelineState.STOPPING)
            self._move(PipelineState.STOPPED)
            raise
        self._move(PipelineState.RUNNING)
        logger.info(
            "Service started (polling every %s min, failure ceiling %d)",
            self.settings.service.polling_interval_minutes,
            self.settings.service.max_consecutive_failures,
        )

    def run(self) -> int:
        """
        Run cycles until shutdown or the failure ceiling.

        Returns:
            Process exit code
        """
        try:
            self.start()
        except ConfigurationError:
            return EXIT_CONFIG_ERROR

        exit_code = EXIT_OK
        interval = self.settings.service.polling_interval_minutes * 60
        try:
            while not self.shutdown_token.cancelled:
                self.maybe_run_health_check()
                self.maybe_cleanup_proof_lists()
                self.run_once()
                if self.state is PipelineState.DEGRADED:
                    exit_code = EXIT_FAILURE_CEILING
                    break
                if self.shutdown_token.wait(interval):
                    break
        finally:
            self.stop()

        logger.info("Service loop exited with code %d", exit_code)
        return exit_code

    def run_once(self) -> CycleReport | None:
        """
        Run one cycle bounded by the cycle timeout.

        Returns:
            The cycle report, or None if the cycle failed or was cancelled
        """
        if not self.state.accepts_work or self.shutdown_token.cancelled:
            return None

        token = CancellationToken.linked(
            self.shutdown_token, timeout=self.settings.service.cycle_timeout_seconds
        )
        self._cycle_done.clear()
        try:
            report = self.pipeline.run_cycle(token)
        except OperationCancelledError as e:
            if token.timed_out and not self.shutdown_token.cancelled:
                logger.warning(
                    "Cycle timed out after %.0fs and was cancelled",
                    self.settings.service.cycle_timeout_seconds,
                )
                self._on_failure("cycle timed out")
            else:
                logger.info("Cycle cancelled: %s", e.reason)
            return None
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Cycle failed: %s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            self._on_failure(str(e))
            return None
        finally:
            self._cycle_done.set()

        self._on_success()
        self.last_report = report
        return report

    def request_shutdown(self, reason: str = "shutdown requested") -> None:
        """Signal the loop and any in-flight cycle to stop."""
        logger.info("Shutdown requested: %s", reason)
        self.shutdown_token.cancel(reason)

    def stop(self, grace_period: float | None = None) -> None:
        """
        Stop the service: cancel work, wait for the cycle, release resources.

        Args:
            grace_period: Seconds to wait for the in-flight cycle
                (defaults to ``shutdown_grace_seconds``)
        """
        with self._state_lock:
            if self.state in (PipelineState.STOPPING, PipelineState.STOPPED):
                return
            self._move(PipelineState.STOPPING)

        grace = self.settings.service.shutdown_grace_seconds if grace_period is None else grace_period
        self.shutdown_token.cancel("shutdown")
        if not self._cycle_done.wait(grace):
            logger.warning("In-flight cycle did not finish within %.0fs, forcing cleanup", grace)

        for release in self.resources:
            try:
                release()
            except Exception as e:  # pylint: disable=broad-except
                logger.warning("Resource release failed: %s", e)

        self._move(PipelineState.STOPPED)
        logger.info("Service stopped")

    # ------------------------------------------------------------------
    # Failure accounting
    # ------------------------------------------------------------------

    def _on_success(self) -> None:
        previous = self.health.record_success(self.clock.now())
        if previous:
            logger.info("Recovered after %d consecutive failure(s)", previous)

    def _on_failure(self, reason: str) -> None:
        count = self.health.record_failure(reason)
        ceiling = self.settings.service.max_consecutive_failures
        logger.error("Consecutive failures: %d/%d", count, ceiling)

        if count >= ceiling:
            logger.critical("Failure ceiling reached (%d), stopping service", count)
            try:
                self.notifier.send_critical_alert(count, reason)
            except NotificationError as e:
                logger.error("Critical alert not delivered: %s", e)
            self._move(PipelineState.DEGRADED)
            return

        now = self.clock.now()
        last = self.health.last_failure_notification_at
        interval = timedelta(minutes=self.settings.service.failure_notification_interval_minutes)
        if last is not None and now - last < interval:
            logger.debug("Failure notification suppressed (rate limited)")
            return
        try:
            self.notifier.send_error(reason, count)
        except NotificationError as e:
            logger.error("Failure notification not delivered: %s", e)
        self.health.last_failure_notification_at = now

    # ------------------------------------------------------------------
    # Periodic housekeeping
    # ------------------------------------------------------------------

    def maybe_run_health_check(self) -> None:
        """Run the health check if the interval has elapsed."""
        now = self.clock.now()
        last = self.health.last_health_check_at
        if last is not None and now - last < timedelta(minutes=self.settings.service.health_check_interval_minutes):
            return
        if self.state is not PipelineState.RUNNING:
            return

        self._move(PipelineState.HEALTH_CHECK)
        try:
            result = self.health_check.run()
        finally:
            self.health.last_health_check_at = now
            self._move(PipelineState.RUNNING)

        if result.is_critical:
            try:
                self.notifier.send_text(f"⚠️ {result.summary()}")
            except NotificationError as e:
                logger.error("Health notification not delivered: %s", e)

    def maybe_cleanup_proof_lists(self) -> None:
        """Purge old proof lists once per day."""
        if not self.settings.proof_list.enable_auto_cleanup:
            return
        today = self.clock.now().date()
        if self.health.last_cleanup_date == today:
            return
        self.health.last_cleanup_date = today
        self.proof_writer.cleanup()
