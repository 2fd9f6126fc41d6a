"""
Configuration domain models.
"""

from vacancysync.domain.config.settings import (
    AppSettings,
    CacheSettings,
    LineWorksSettings,
    LoggingSettings,
    ProofListSettings,
    RemoteStoreSettings,
    RetrySettings,
    ServiceSettings,
    WorkbookSettings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "LineWorksSettings",
    "LoggingSettings",
    "ProofListSettings",
    "RemoteStoreSettings",
    "RetrySettings",
    "ServiceSettings",
    "WorkbookSettings",
]
