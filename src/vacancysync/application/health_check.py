"""
Periodic health checks.

Independent of the sync cycle: verifies the resources a cycle depends on
so problems surface before they fail a cycle.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from vacancysync.domain.config.settings import AppSettings
from vacancysync.domain.ports import Clock, SystemClock
from vacancysync.infrastructure.filesystem import FileSystem

logger = logging.getLogger(__name__)

CHECK_DISK = "disk_space"
CHECK_WORKBOOK_PATH = "workbook_path"
CHECK_REMOTE_STORE = "remote_store"
CHECK_NOTIFIER = "notifier"
CHECK_PROOF_DIRECTORY = "proof_directory"

# Failures here touch detection or sync and warrant a notification
CRITICAL_CHECKS = frozenset({CHECK_DISK, CHECK_WORKBOOK_PATH, CHECK_REMOTE_STORE})


@dataclass
class HealthCheckResult:
    """
    Outcome of one health check pass.

    Attributes:
        healthy: True when every check passed
        failed_checks: Names of failed checks
        details: Check name -> human-readable detail
        checked_at: When the pass ran
    """

    healthy: bool
    failed_checks: list[str] = field(default_factory=list)
    details: dict[str, str] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=datetime.now)

    @property
    def critical_checks(self) -> list[str]:
        return [name for name in self.failed_checks if name in CRITICAL_CHECKS]

    @property
    def is_critical(self) -> bool:
        return bool(self.critical_checks)

    def summary(self) -> str:
        if self.healthy:
            return "All health checks passed"
        return "Health check failed: " + "; ".join(
            f"{name} ({self.details.get(name, 'failed')})" for name in self.failed_checks
        )


class HealthCheckService:
    """Run the five resource checks."""

    def __init__(self, settings: AppSettings, file_system: FileSystem, clock: Clock | None = None) -> None:
        self.settings = settings
        self.file_system = file_system
        self.clock = clock or SystemClock()

    def run(self) -> HealthCheckResult:
        checks = {
            CHECK_DISK: self._check_disk,
            CHECK_WORKBOOK_PATH: self._check_workbook_path,
            CHECK_REMOTE_STORE: self._check_remote_store,
            CHECK_NOTIFIER: self._check_notifier,
            CHECK_PROOF_DIRECTORY: self._check_proof_directory,
        }
        failed: list[str] = []
        details: dict[str, str] = {}
        for name, check in checks.items():
            try:
                ok, detail = check()
            except Exception as e:  # pylint: disable=broad-except
                ok, detail = False, f"check raised: {e}"
            details[name] = detail
            if not ok:
                failed.append(name)
                logger.warning("Health check '%s' failed: %s", name, detail)
            else:
                logger.debug("Health check '%s' ok: %s", name, detail)

        result = HealthCheckResult(not failed, failed, details, self.clock.now())
        if result.healthy:
            logger.info("Health check passed")
        return result

    def _check_disk(self) -> tuple[bool, str]:
        target = self.settings.proof_list.output_directory or "."
        free = self.file_system.disk_free_bytes(target)
        free_gb = free / (1024 ** 3)
        minimum = self.settings.service.min_free_disk_gb
        return free_gb >= minimum, f"{free_gb:.2f} GB free (minimum {minimum:.2f} GB)"

    def _check_workbook_path(self) -> tuple[bool, str]:
        base = self.settings.workbook.base_path
        if not base:
            return False, "base path not configured"
        if not self.file_system.is_dir(base):
            return False, f"not reachable: {base}"
        return True, base

    def _check_remote_store(self) -> tuple[bool, str]:
        remote = self.settings.remote_store
        missing = [name for name, value in (("url", remote.url), ("key", remote.key)) if not value]
        if missing:
            return False, "missing " + ", ".join(missing)
        return True, remote.url

    def _check_notifier(self) -> tuple[bool, str]:
        lw = self.settings.lineworks
        missing = [
            name
            for name, value in (
                ("bot_id", lw.bot_id),
                ("client_id", lw.client_id),
                ("client_secret", lw.client_secret),
            )
            if not value
        ]
        if missing:
            return False, "missing " + ", ".join(missing)
        return True, f"bot {lw.bot_id}"

    def _check_proof_directory(self) -> tuple[bool, str]:
        directory = Path(self.settings.proof_list.output_directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            scratch = directory / f".healthcheck_{uuid.uuid4().hex}.tmp"
            scratch.write_text("ok", encoding="utf-8")
            scratch.unlink()
        except OSError as e:
            return False, f"not writable: {e}"
        return True, str(directory)
