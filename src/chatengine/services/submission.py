"""Idempotent submission of orders and appointments to the backend.

A local record is created in the "processing" state before the first
attempt. Every attempt sends that record's id as its idempotency key and
updates the same record, so retries never produce duplicates. When every
attempt fails the record is kept as "local_only" and the caller reports a
degraded success.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from chatengine.services.backend import BackendClient
from chatengine.services.retry import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)


class SubmissionKind(str, Enum):
    ORDER = "order"
    APPOINTMENT = "appointment"


class SubmissionStatus(str, Enum):
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    LOCAL_ONLY = "local_only"


@dataclass
class SubmissionRecord:
    """Local record of one submission.

    Attributes:
        id: Local id, also the idempotency key.
        kind: Order or appointment.
        payload: Body sent to the backend.
        status: Processing, confirmed or local_only.
        external_id: Id assigned by the backend once confirmed.
        attempts: Attempts made so far.
        last_error: Message of the latest failure.
    """

    id: str
    kind: SubmissionKind
    payload: dict[str, Any]
    status: SubmissionStatus = SubmissionStatus.PROCESSING
    external_id: str | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


class SubmissionLedger:
    """Thread-safe in-memory store of submission records."""

    def __init__(self) -> None:
        self._records: dict[str, SubmissionRecord] = {}
        self._lock = threading.Lock()

    def create(self, kind: SubmissionKind, payload: dict[str, Any]) -> SubmissionRecord:
        """Create a record in the processing state."""
        record = SubmissionRecord(id=str(uuid.uuid4()), kind=kind, payload=dict(payload))
        with self._lock:
            self._records[record.id] = record
        return record

    def update(self, record_id: str, **changes: Any) -> SubmissionRecord:
        """Apply changes to an existing record.

        Raises:
            KeyError: If the record does not exist.
        """
        with self._lock:
            record = replace(self._records[record_id], updated_at=datetime.now(), **changes)
            self._records[record_id] = record
            return record

    def get(self, record_id: str) -> SubmissionRecord | None:
        """Get a record by id."""
        with self._lock:
            return self._records.get(record_id)

    def records(self, kind: SubmissionKind | None = None) -> list[SubmissionRecord]:
        """List records, optionally of one kind."""
        with self._lock:
            return [r for r in self._records.values() if kind is None or r.kind == kind]


class BackendSubmitter:
    """Sends submissions to the backend with retries.

    Without a backend client, records are confirmed locally.
    """

    def __init__(
        self,
        ledger: SubmissionLedger,
        client: BackendClient | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self._ledger = ledger
        self._client = client
        self._retry_config = retry_config or RetryConfig()

    @property
    def ledger(self) -> SubmissionLedger:
        """Get the ledger records are kept in."""
        return self._ledger

    async def submit(
        self, kind: SubmissionKind, path: str, payload: dict[str, Any]
    ) -> SubmissionRecord:
        """Submit a payload.

        Args:
            kind: Order or appointment.
            path: Backend path to POST to.
            payload: Request body; the local id is added as ``reference``.

        Returns:
            The final record: confirmed, or local_only after exhaustion.
        """
        record = self._ledger.create(kind, payload)
        if self._client is None:
            return self._ledger.update(record.id, status=SubmissionStatus.CONFIRMED)

        client = self._client

        async def attempt(number: int) -> dict[str, Any]:
            self._ledger.update(record.id, attempts=number)
            return await client.post(
                path, {**payload, "reference": record.id}, idempotency_key=record.id
            )

        response, result = await retry_with_backoff(attempt, self._retry_config)
        if result.success:
            external_id = (response or {}).get("id")
            logger.info(
                "Submission confirmed (kind=%s, id=%s, attempts=%d)",
                kind.value,
                record.id,
                result.attempts,
            )
            return self._ledger.update(
                record.id,
                status=SubmissionStatus.CONFIRMED,
                external_id=str(external_id) if external_id is not None else None,
                attempts=result.attempts,
            )

        logger.warning(
            "Submission kept locally after %d attempts (kind=%s, id=%s): %s",
            result.attempts,
            kind.value,
            record.id,
            result.last_error,
        )
        return self._ledger.update(
            record.id,
            status=SubmissionStatus.LOCAL_ONLY,
            attempts=result.attempts,
            last_error=str(result.last_error) if result.last_error else None,
        )
