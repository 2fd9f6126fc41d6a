"""
Dependency injection container for the application.

Builds every component from AppSettings by explicit constructor injection.
Collaborators (file system, clock, remote store, notifier) can be passed
in to substitute fakes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from vacancysync.application.change_detector import ChangeDetector
from vacancysync.application.extractor import ReservationExtractor
from vacancysync.application.health_check import HealthCheckService
from vacancysync.application.orchestrator import ServiceOrchestrator
from vacancysync.application.pipeline import SyncPipeline
from vacancysync.application.sync.service import ReservationSyncService
from vacancysync.domain.config.settings import AppSettings
from vacancysync.domain.models import FileFingerprint
from vacancysync.domain.ports import Clock, Notifier, ReservationStore, SystemClock
from vacancysync.infrastructure.config_loader import ConfigLoader
from vacancysync.infrastructure.filesystem import FileSystem, LocalFileSystem
from vacancysync.infrastructure.notify.lineworks import LineWorksNotifier
from vacancysync.infrastructure.remote.rest_store import RestReservationStore
from vacancysync.infrastructure.report.proof_list import ProofListWriter
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe
from vacancysync.infrastructure.resilience.retry import RetryPolicy
from vacancysync.infrastructure.resilience.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


class Container:
    # pylint: disable=too-many-instance-attributes
    """
    Dependency injection container.

    Manages the creation and lifecycle of services and infrastructure
    components. Every property is created on first access.
    """

    def __init__(
        self,
        settings: AppSettings,
        file_system: FileSystem | None = None,
        clock: Clock | None = None,
        store: ReservationStore | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.settings = settings
        self._file_system = file_system
        self._clock = clock
        self._store = store
        self._notifier = notifier

        self._lock_probe: FileLockProbe | None = None
        self._fingerprint_cache: TTLCache[str, FileFingerprint] | None = None
        self._change_detector: ChangeDetector | None = None
        self._extractor: ReservationExtractor | None = None
        self._sync_service: ReservationSyncService | None = None
        self._proof_writer: ProofListWriter | None = None
        self._health_check: HealthCheckService | None = None
        self._pipeline: SyncPipeline | None = None
        self._orchestrator: ServiceOrchestrator | None = None

    @classmethod
    def from_config(cls, config_dir: Path | str = "config", validate: bool = True) -> Container:
        """Load settings from ``config_dir`` and build a container."""
        settings = ConfigLoader(config_dir).load(validate=validate)
        return cls(settings)

    @property
    def file_system(self) -> FileSystem:
        if self._file_system is None:
            self._file_system = LocalFileSystem()
        return self._file_system

    @property
    def clock(self) -> Clock:
        if self._clock is None:
            self._clock = SystemClock()
        return self._clock

    @property
    def retry_policy(self) -> RetryPolicy:
        """A fresh policy from the retry settings."""
        return RetryPolicy.from_settings(self.settings.retry)

    @property
    def lock_probe(self) -> FileLockProbe:
        if self._lock_probe is None:
            self._lock_probe = FileLockProbe(self.file_system)
        return self._lock_probe

    @property
    def fingerprint_cache(self) -> TTLCache[str, FileFingerprint]:
        if self._fingerprint_cache is None:
            cache = self.settings.cache
            self._fingerprint_cache = TTLCache(
                "file-fingerprints",
                default_ttl=cache.ttl_minutes * 60,
                cleanup_interval=cache.cleanup_interval_minutes * 60,
                max_items=cache.max_items,
            )
        return self._fingerprint_cache

    @property
    def change_detector(self) -> ChangeDetector:
        if self._change_detector is None:
            self._change_detector = ChangeDetector(
                self.settings.workbook,
                self.file_system,
                self.lock_probe,
                self.fingerprint_cache,
                self.retry_policy,
            )
        return self._change_detector

    @property
    def extractor(self) -> ReservationExtractor:
        if self._extractor is None:
            self._extractor = ReservationExtractor(
                self.settings.workbook,
                self.file_system,
                self.lock_probe,
                self.clock,
                retry_policy=self.retry_policy,
            )
        return self._extractor

    @property
    def store(self) -> ReservationStore:
        if self._store is None:
            self._store = RestReservationStore(self.settings.remote_store)
        return self._store

    @property
    def sync_service(self) -> ReservationSyncService:
        if self._sync_service is None:
            self._sync_service = ReservationSyncService(
                self.store, self.settings.remote_store, self.clock, self.retry_policy
            )
        return self._sync_service

    @property
    def proof_writer(self) -> ProofListWriter:
        if self._proof_writer is None:
            self._proof_writer = ProofListWriter(self.settings.proof_list, self.clock)
        return self._proof_writer

    @property
    def notifier(self) -> Notifier:
        if self._notifier is None:
            self._notifier = LineWorksNotifier(self.settings.lineworks, self.clock)
        return self._notifier

    @property
    def health_check(self) -> HealthCheckService:
        if self._health_check is None:
            self._health_check = HealthCheckService(self.settings, self.file_system, self.clock)
        return self._health_check

    @property
    def pipeline(self) -> SyncPipeline:
        if self._pipeline is None:
            self._pipeline = SyncPipeline(
                self.change_detector,
                self.extractor,
                self.sync_service,
                self.proof_writer,
                self.notifier,
            )
        return self._pipeline

    @property
    def orchestrator(self) -> ServiceOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ServiceOrchestrator(
                self.settings,
                self.pipeline,
                self.health_check,
                self.notifier,
                self.proof_writer,
                resources=[
                    self.change_detector.close,
                    self.extractor.release_resources,
                    self.store.close,
                    self.notifier.close,
                ],
                clock=self.clock,
            )
        return self._orchestrator

    def start_background_tasks(self) -> None:
        """Start the fingerprint cache sweeper."""
        self.fingerprint_cache.start_sweeper()
        logger.debug("Fingerprint cache sweeper started")
