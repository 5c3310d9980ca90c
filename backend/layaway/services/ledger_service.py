# Overview: Service-layer operations for the audit ledger.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Audit Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    deposit_order_id: int | None = None,
    sale_id: int | None = None,
    payment_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - payload is stored as compact JSON.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        deposit_order_id=deposit_order_id,
        sale_id=sale_id,
        payment_id=payment_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, separators=(",", ":")) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def get_order_events(deposit_order_id: int) -> list[LedgerEvent]:
    return (
        db.session.query(LedgerEvent)
        .filter_by(deposit_order_id=deposit_order_id)
        .order_by(LedgerEvent.occurred_at, LedgerEvent.id)
        .all()
    )
