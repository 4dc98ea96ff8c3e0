# Overview: Client-side identifier generation (reference ids, receipt numbers, idempotency keys).

from __future__ import annotations

import secrets
import time
import uuid


def _now_ms() -> int:
    return int(time.time() * 1000)


def make_reference_id(prefix: str) -> str:
    """Human-traceable document id, e.g. ``SALE-1700000000000-3f9a1c``."""
    return f"{prefix}-{_now_ms()}-{secrets.token_hex(3)}"


def make_receipt_no() -> str:
    return str(_now_ms())[-6:]


def make_client_txn_id(device_id: str = "web") -> str:
    """
    Idempotency key for one outbox event.

    Generated once when the event is committed locally and never regenerated
    on retry; the remote store records it as the applied marker.
    """
    return f"{device_id}-{_now_ms()}-{uuid.uuid4()}"


def make_row_id() -> str:
    return uuid.uuid4().hex
