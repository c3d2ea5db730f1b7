"""
invoiceflow/assignment.py

Workload-balanced selection of the accounting worker a new invoice is routed to.

Rules:
- Candidates are ACTIVE accounting workers, in id order.
- Load = number of invoices assigned to the worker whose status is not terminal
  (completed / rejected).
- The worker with the strictly smallest load wins; ties go to the first encountered.
- Without workers, the first active accounting admin is returned, otherwise None.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from sqlalchemy import func

from .extensions import db
from .models import Invoice, Role, TERMINAL_STATUSES, User

logger = logging.getLogger(__name__)


def pick_least_loaded(candidate_ids: Sequence[int], open_counts: Mapping[int, int]) -> Optional[int]:
    """Return the candidate with the smallest open count (first one on ties)."""
    selected: Optional[int] = None
    selected_count: Optional[int] = None
    for candidate_id in candidate_ids:
        count = open_counts.get(candidate_id, 0)
        if selected_count is None or count < selected_count:
            selected, selected_count = candidate_id, count
    return selected


def open_invoice_counts(user_ids: Sequence[int]) -> dict[int, int]:
    """Open (non-terminal) invoices currently assigned to each user."""
    if not user_ids:
        return {}
    rows = (
        db.session.query(Invoice.assigned_to_id, func.count(Invoice.id))
        .filter(
            Invoice.assigned_to_id.in_(list(user_ids)),
            Invoice.status.notin_(list(TERMINAL_STATUSES)),
        )
        .group_by(Invoice.assigned_to_id)
        .all()
    )
    return {user_id: int(count) for user_id, count in rows}


def select_assignee() -> Optional[int]:
    """Pick the user id a newly submitted invoice should be assigned to."""
    worker_ids = [
        row.id
        for row in User.query.filter_by(role=Role.ACCOUNTING_WORKER, is_active=True).order_by(User.id.asc()).all()
    ]

    if not worker_ids:
        admin = (
            User.query.filter_by(role=Role.ACCOUNTING_ADMIN, is_active=True)
            .order_by(User.id.asc())
            .first()
        )
        if admin is None:
            logger.warning("No active accounting worker or admin available for assignment")
            return None
        logger.info("No active accounting workers; falling back to admin %s", admin.id)
        return admin.id

    counts = open_invoice_counts(worker_ids)
    selected = pick_least_loaded(worker_ids, counts)
    logger.debug("Assignment loads %s -> selected %s", counts, selected)
    return selected
