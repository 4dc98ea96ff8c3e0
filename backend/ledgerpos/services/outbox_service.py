# Overview: Outbox queue; local record of committed events awaiting remote application.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import ConflictOrValidation, NotFound
from ..models import OutboxEntry
from ..time_utils import utcnow
from .concurrency import commit_with_retry
from .ledger_store import LocalLedgerStore, WriteBatch
"""
Outbox Invariants (authoritative)

- client_txn_id is unique across the queue and is never regenerated.
- PENDING -> SYNCED on confirmed remote application (or found already applied).
- PENDING -> FAILED on any error; FAILED -> PENDING only via retry_failed().
- Rows are never deleted automatically; clear_synced() and delete() are
  operator actions.
"""

log = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_SYNCED = "SYNCED"
STATUS_FAILED = "FAILED"
STATUSES = (STATUS_PENDING, STATUS_SYNCED, STATUS_FAILED)


class OutboxQueue:
    def __init__(self, store: LocalLedgerStore):
        self.store = store

    @property
    def session(self):
        return self.store.session

    def _exists(self, client_txn_id: str) -> bool:
        in_db = (
            self.session.query(OutboxEntry.id)
            .filter(OutboxEntry.client_txn_id == client_txn_id)
            .first()
        )
        return in_db is not None or client_txn_id in self.store.held_txn_ids()

    def enqueue(
        self,
        client_txn_id: str,
        event_type: str,
        payload: dict,
        *,
        batch: WriteBatch | None = None,
    ) -> OutboxEntry:
        """
        Queue an event as PENDING with zero attempts.

        With ``batch`` the entry commits together with the caller's other rows.
        """
        if not client_txn_id:
            raise ConflictOrValidation("client_txn_id is required")
        if self._exists(client_txn_id):
            raise ConflictOrValidation(
                f"Outbox already holds client_txn_id {client_txn_id}",
                details={"client_txn_id": client_txn_id},
            )

        entry = OutboxEntry(
            client_txn_id=client_txn_id,
            event_type=event_type,
            payload=payload,
            status=STATUS_PENDING,
            attempts=0,
            created_at=utcnow(),
        )
        if batch is not None:
            batch.add(entry)
        else:
            work = self.store.new_batch()
            work.add(entry)
            self.store.commit(work)
        return entry

    def get(self, entry_id: int) -> OutboxEntry:
        entry = self.session.get(OutboxEntry, entry_id)
        if entry is None:
            raise NotFound(f"Outbox entry {entry_id} not found", details={"id": entry_id})
        return entry

    def list_pending(
        self,
        max_batch: int = 10,
        *,
        event_types: tuple[str, ...] | None = None,
        newest_first: bool = False,
    ) -> list[OutboxEntry]:
        q = self.session.query(OutboxEntry).filter(OutboxEntry.status == STATUS_PENDING)
        if event_types:
            q = q.filter(OutboxEntry.event_type.in_(event_types))
        if newest_first:
            q = q.order_by(OutboxEntry.created_at.desc(), OutboxEntry.id.desc())
        else:
            q = q.order_by(OutboxEntry.created_at.asc(), OutboxEntry.id.asc())
        return q.limit(max_batch).all()

    def list_entries(self, status: str | None = None, limit: int = 200) -> list[OutboxEntry]:
        q = self.session.query(OutboxEntry)
        if status:
            code = status.upper()
            if code not in STATUSES:
                raise ConflictOrValidation(f"invalid status {status!r}", details={"allowed": list(STATUSES)})
            q = q.filter(OutboxEntry.status == code)
        return q.order_by(OutboxEntry.created_at.desc(), OutboxEntry.id.desc()).limit(limit).all()

    def mark_attempt(self, entry_id: int) -> OutboxEntry:
        entry = self.get(entry_id)
        entry.attempts = (entry.attempts or 0) + 1
        entry.last_attempt_at = utcnow()
        commit_with_retry()
        return entry

    def mark_synced(self, entry_id: int) -> OutboxEntry:
        entry = self.get(entry_id)
        entry.status = STATUS_SYNCED
        entry.last_error = None
        commit_with_retry()
        return entry

    def mark_failed(self, entry_id: int, error: str) -> OutboxEntry:
        entry = self.get(entry_id)
        entry.status = STATUS_FAILED
        entry.last_error = str(error)
        commit_with_retry()
        return entry

    def retry_failed(self) -> int:
        """Operator action: put every FAILED row back to PENDING."""
        count = (
            self.session.query(OutboxEntry)
            .filter(OutboxEntry.status == STATUS_FAILED)
            .update({OutboxEntry.status: STATUS_PENDING}, synchronize_session=False)
        )
        commit_with_retry()
        if count:
            log.info("Outbox: %d failed row(s) returned to PENDING", count)
        return count

    def clear_synced(self) -> int:
        count = (
            self.session.query(OutboxEntry)
            .filter(OutboxEntry.status == STATUS_SYNCED)
            .delete(synchronize_session=False)
        )
        commit_with_retry()
        if count:
            log.info("Outbox: cleared %d synced row(s)", count)
        return count

    def delete(self, entry_id: int) -> None:
        entry = self.get(entry_id)
        self.session.delete(entry)
        commit_with_retry()

    def counts(self) -> dict:
        rows = (
            self.session.query(OutboxEntry.status, func.count(OutboxEntry.id))
            .group_by(OutboxEntry.status)
            .all()
        )
        result = {status: 0 for status in STATUSES}
        for status, count in rows:
            result[status] = int(count)
        result["total"] = sum(result[s] for s in STATUSES)
        return result
