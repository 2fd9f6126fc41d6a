"""
PostgREST (Supabase REST) reservation store.

One table keyed by (tenant_id, facility_id, year, month) with a text-array
column ``reservation_counts``. Authentication uses the project API key in
both the ``apikey`` and bearer headers.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

import requests

from vacancysync.domain.config.settings import RemoteStoreSettings
from vacancysync.domain.errors import RemoteStoreError
from vacancysync.domain.models import CompositeKey, MonthlyReservationRecord, StoredReservationRow

logger = logging.getLogger(__name__)

KEY_COLUMNS = ("tenant_id", "facility_id", "year", "month")


def key_filters(key: CompositeKey) -> dict[str, str]:
    """PostgREST equality filters for a composite key."""
    return {column: f"eq.{value}" for column, value in zip(KEY_COLUMNS, key)}


class RestReservationStore:
    """``ReservationStore`` over HTTPS with a lazily created session."""

    def __init__(
        self,
        settings: RemoteStoreSettings,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.settings = settings
        self._session_factory = session_factory
        self._session: requests.Session | None = None

    @property
    def endpoint(self) -> str:
        return f"{self.settings.url}/rest/v1/{self.settings.table_name}"

    @property
    def session(self) -> requests.Session:
        """Get or create the HTTP session with auth headers."""
        if self._session is None:
            self._session = self._session_factory()
            self._session.headers.update(
                {
                    "apikey": self.settings.key,
                    "Authorization": f"Bearer {self.settings.key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                }
            )
        return self._session

    def _request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method,
                self.endpoint,
                params=params,
                json=json,
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteStoreError.connection_error(self.endpoint, str(e)) from e
        except requests.RequestException as e:
            raise RemoteStoreError.data_operation_error(self.endpoint, str(e)) from e

        if response.status_code in (401, 403):
            raise RemoteStoreError.authentication_error(self.endpoint, response.status_code)
        if response.status_code >= 400:
            raise RemoteStoreError.data_operation_error(
                self.endpoint,
                f"{method} returned {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        return response

    def _parse(self, row: Any) -> StoredReservationRow:
        try:
            return StoredReservationRow.from_row(row)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RemoteStoreError.malformed_row(self.endpoint, f"{type(e).__name__}: {e}") from e

    def fetch(self, key: CompositeKey) -> StoredReservationRow | None:
        """Existing row for ``key`` (array as stored) or None."""
        params = {"select": "*", "limit": 1, **key_filters(key)}
        rows = self._request("GET", params=params).json()
        if not rows:
            return None
        return self._parse(rows[0])

    def insert(self, record: MonthlyReservationRecord) -> None:
        self._request("POST", json=record.to_row(), headers={"Prefer": "return=minimal"})
        logger.debug("Inserted %s", record)

    def update(self, record: MonthlyReservationRecord) -> None:
        self._request(
            "PATCH",
            params=key_filters(record.key),
            json={"reservation_counts": list(record.reservation_counts)},
            headers={"Prefer": "return=minimal"},
        )
        logger.debug("Updated %s", record)

    def upsert(self, records: Iterable[MonthlyReservationRecord]) -> None:
        """Insert-or-merge on the composite key."""
        rows = [r.to_row() for r in records]
        if not rows:
            return
        self._request(
            "POST",
            params={"on_conflict": ",".join(KEY_COLUMNS)},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        logger.debug("Upserted %d row(s)", len(rows))

    def fetch_all(self, year: int | None = None) -> list[StoredReservationRow]:
        """All rows, optionally restricted to one year, ordered by key."""
        params: dict[str, Any] = {"select": "*", "order": "facility_id.asc,year.asc,month.asc"}
        if year is not None:
            params["year"] = f"eq.{year}"
        rows = self._request("GET", params=params).json()
        return [self._parse(row) for row in rows]

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> RestReservationStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
