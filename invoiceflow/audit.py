"""
invoiceflow/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store username snapshot to preserve identity even if username changes later.
- Store IP address for traceability (when called inside a request).

IMPORTANT:
- This helper ADDS AuditLog entries to the current SQLAlchemy session.
  The calling workflow operation controls transaction boundaries (commit/rollback),
  so the audit row commits or rolls back together with the change it describes.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog, User


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string representation suitable for JSON and DB storage.

    - Enums are stored by value.
    - Decimal/date/datetime: str(value).
    - None stays None.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    - Values are converted to string for JSON safety and SQLite/PostgreSQL portability.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def client_ip() -> Optional[str]:
    """Remote address of the current request, None outside a request."""
    if not has_request_context():
        return None
    return request.remote_addr


def log_action(
    entity: Any,
    action: str,
    *,
    actor: Optional[User] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flushed)
        action: CREATE / UPDATE / DELETE / UPLOAD / REASSIGN ...
        actor: acting user (None for system actions)
        before / after: dict snapshots (optional)
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    entry = AuditLog(
        user_id=actor.id if actor is not None else None,
        username_snapshot=actor.username if actor is not None else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=client_ip(),
    )
    db.session.add(entry)
    return entry
