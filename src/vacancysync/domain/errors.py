"""
Error taxonomy for the synchronization pipeline.

Every domain error carries an error code, a severity and a retryable flag.
The retry layer consults ``retryable``; the orchestrator consults
``severity`` when deciding whether an administrator must be notified.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorSeverity(IntEnum):
    """Severity of a pipeline error."""

    INFO = 0  # Processing continues
    WARNING = 1  # Processing continues, needs attention
    ERROR = 2  # Current unit aborted, system unaffected
    CRITICAL = 3  # Whole service affected


class VacancySyncError(Exception):
    """Base class for all domain-classified errors."""

    default_code = "VACANCYSYNC-ERR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.severity = severity
        self.retryable = retryable

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ConfigurationError(VacancySyncError):
    """Missing or malformed configuration. Fatal at startup, never retried."""

    default_code = "CONFIG-ERR"

    def __init__(self, message: str, setting: str = "", error_code: str | None = None) -> None:
        super().__init__(message, error_code, ErrorSeverity.CRITICAL, retryable=False)
        self.setting = setting


class WorkbookAccessError(VacancySyncError):
    """Transient I/O against the workbook share (enumeration, stat, read)."""

    default_code = "EXCEL-IO-ERR"

    def __init__(self, message: str, path: str = "", retryable: bool = True) -> None:
        super().__init__(message, severity=ErrorSeverity.ERROR, retryable=retryable)
        self.path = path

    @classmethod
    def base_path_missing(cls, path: str) -> WorkbookAccessError:
        return cls(f"Workbook base path not reachable: {path}", path=path)


class WorkbookFormatError(VacancySyncError):
    """A single workbook is malformed. Skip the file, continue the batch."""

    default_code = "EXCEL-FORMAT-ERR"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message, severity=ErrorSeverity.WARNING, retryable=False)
        self.path = path


class RemoteStoreError(VacancySyncError):
    """Failure talking to the remote relational store."""

    default_code = "STORE-ERR"

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        status_code: int | None = None,
        error_code: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, error_code, ErrorSeverity.ERROR, retryable)
        self.endpoint = endpoint
        self.status_code = status_code

    @classmethod
    def authentication_error(cls, endpoint: str, status_code: int) -> RemoteStoreError:
        return cls(
            f"Remote store authentication failed: {endpoint} (status {status_code})",
            endpoint,
            status_code,
            "STORE-AUTH-ERR",
            retryable=False,
        )

    @classmethod
    def connection_error(cls, endpoint: str, detail: str = "") -> RemoteStoreError:
        message = f"Remote store connection failed: {endpoint}"
        if detail:
            message = f"{message} ({detail})"
        return cls(message, endpoint, None, "STORE-CONN-ERR")

    @classmethod
    def data_operation_error(
        cls,
        endpoint: str,
        details: str,
        status_code: int | None = None,
    ) -> RemoteStoreError:
        # Client errors other than timeouts and throttling will not heal on retry
        retryable = status_code is None or status_code >= 500 or status_code in (408, 429)
        return cls(
            f"Remote store data operation failed: {endpoint} - {details}",
            endpoint,
            status_code,
            "STORE-DATA-ERR",
            retryable,
        )

    @classmethod
    def malformed_row(cls, endpoint: str, details: str) -> RemoteStoreError:
        return cls(
            f"Remote store returned an unreadable row: {endpoint} - {details}",
            endpoint,
            None,
            "STORE-ROW-ERR",
            retryable=False,
        )


class NotificationError(VacancySyncError):
    """Chat notification could not be delivered. Best effort only."""

    default_code = "NOTIFY-ERR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, severity=ErrorSeverity.WARNING, retryable=True)
        self.status_code = status_code


class ServiceCriticalError(VacancySyncError):
    """The consecutive-failure ceiling was reached."""

    default_code = "SERVICE-CRITICAL"

    def __init__(self, message: str, failure_count: int) -> None:
        super().__init__(message, severity=ErrorSeverity.CRITICAL, retryable=False)
        self.failure_count = failure_count


class InvalidTransitionError(VacancySyncError):
    """Illegal move in the service state machine."""

    default_code = "STATE-ERR"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Invalid state transition: {current} -> {target}",
            severity=ErrorSeverity.CRITICAL,
        )
        self.current = current
        self.target = target


class OperationCancelledError(Exception):
    """A cancellation token was observed by a suspended operation."""

    def __init__(self, reason: str = "cancelled", timed_out: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.timed_out = timed_out


class RetryExhaustedError(Exception):
    """All retry attempts failed. ``__cause__`` holds the last error."""

    def __init__(self, operation_name: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation_name} failed after {attempts} attempts: {last_error}"
        )
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error


class ParallelProcessingError(Exception):
    """One or more items failed inside a bounded parallel batch."""

    def __init__(
        self,
        operation_name: str,
        errors: list[BaseException],
        results: list | None = None,
    ) -> None:
        super().__init__(f"{operation_name}: {len(errors)} item(s) failed")
        self.operation_name = operation_name
        self.errors = errors
        self.results = results or []
