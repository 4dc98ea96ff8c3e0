from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


class OutboxEntry(db.Model):
    """
    Local queue of domain events awaiting confirmed remote application.

    LIFECYCLE:
    - PENDING: committed locally, not yet confirmed remotely
    - SYNCED: remote application confirmed (or found already applied)
    - FAILED: last attempt failed; returns to PENDING only via operator retry

    client_txn_id is the idempotency key; it is generated once and never
    regenerated on retry.
    """
    __tablename__ = "offline_outbox_queue"
    __table_args__ = (
        db.Index("ix_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_txn_id = db.Column(db.String(128), nullable=False, unique=True, index=True)
    event_type = db.Column(db.String(32), nullable=False, index=True)  # SALE, PAYMENT, STOCK_MOVEMENT, LEDGER
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_attempt_at = db.Column(db.DateTime, nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self, include_payload: bool = False) -> dict:
        data = {
            "id": self.id,
            "client_txn_id": self.client_txn_id,
            "event_type": self.event_type,
            "status": self.status,
            "attempts": self.attempts,
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
        }
        if include_payload:
            data["payload"] = self.payload
        return data
