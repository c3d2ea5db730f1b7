"""
invoiceflow/workflow.py

Invoice state machine and the operations that mutate invoices.

Transition graph (fixed):
    submitted -> assigned -> processing -> access_code_issued -> isr_retained
              -> iva_retained -> paid -> completed
    any non-terminal state -> rejected
    rejected -> submitted

Consistency contract:
- Each operation runs as ONE unit of work: invoice row, payment row, state events and audit
  rows commit together or not at all.
- The invoice row is read with SELECT ... FOR UPDATE and refreshed from the database.
  Invoice.version_id additionally makes a concurrent writer fail with StaleDataError; the
  operation is then re-run from fresh state, where the transition-table check rejects it.
- apply_transition() decides against the status committed when it was called. If another
  writer changed that status before the lock was obtained, the request is rejected with
  InvalidTransition (never applied on top of the other writer's result).
- Transitions are NOT idempotent: re-applying a reached target raises InvalidTransition.
- Notifications are collected during the unit of work and dispatched only after commit.
  A dispatch problem is logged and never touches workflow state.

Document-driven transitions:
- Recording a payment artifact never takes an arbitrary target. The implied state comes from
  invoiceflow.documents.next_state() and the invoice is walked forward edge by edge
  (one event per edge) until it reaches it.
- The walk is monotonic: when the implied state is not ahead of the current one, the artifact
  is stored and the status is left untouched.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from . import documents
from .assignment import select_assignee
from .audit import client_ip, log_action, serialize_model
from .errors import (
    DocumentNotRequired,
    DocumentsIncomplete,
    DuplicateNumber,
    Forbidden,
    InvalidAmount,
    InvalidTransition,
    NotFound,
    PersistenceError,
    ValidationError,
    WorkflowError,
)
from .extensions import db, notifier
from .models import (
    ArtifactKind,
    Invoice,
    InvoiceFile,
    InvoiceStateEvent,
    InvoiceStatus,
    Payment,
    Priority,
    Role,
    Supplier,
    User,
    money,
    utcnow,
)
from .notifications import EventType, NotificationEvent
from .permissions import Permission, PermissionEvaluator, evaluator_for, owns_invoice
from .storage import FileStore, delete_files, get_file_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

S = InvoiceStatus

TRANSITIONS: dict[InvoiceStatus, tuple[InvoiceStatus, ...]] = {
    S.SUBMITTED: (S.ASSIGNED, S.REJECTED),
    S.ASSIGNED: (S.PROCESSING, S.REJECTED),
    S.PROCESSING: (S.ACCESS_CODE_ISSUED, S.REJECTED),
    S.ACCESS_CODE_ISSUED: (S.ISR_RETAINED, S.REJECTED),
    S.ISR_RETAINED: (S.IVA_RETAINED, S.REJECTED),
    S.IVA_RETAINED: (S.PAID, S.REJECTED),
    S.PAID: (S.COMPLETED, S.REJECTED),
    S.COMPLETED: (),
    S.REJECTED: (S.SUBMITTED,),
}

# Targets that may only be applied once the uploaded documents justify them
DOCUMENT_GATED = frozenset({S.ACCESS_CODE_ISSUED, S.ISR_RETAINED, S.IVA_RETAINED, S.PAID})

EDITABLE_FIELDS = frozenset({"description", "amount", "due_date", "priority"})


@dataclass(frozen=True)
class SourceFile:
    """Descriptor of an already-stored source file attached at creation."""

    name: str
    stored_path: str
    size: Optional[int] = None
    content_type: Optional[str] = None


# ---------------------------------------------------------------------
# Graph helpers
# ---------------------------------------------------------------------
def allowed_transitions(status: InvoiceStatus | str) -> list[InvoiceStatus]:
    return list(TRANSITIONS[InvoiceStatus(status)])


def can_transition(current: InvoiceStatus | str, target: InvoiceStatus | str) -> bool:
    return InvoiceStatus(target) in TRANSITIONS[InvoiceStatus(current)]


def _now() -> datetime:
    return utcnow()


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {label} '{value}'") from None


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError, AttributeError):
        raise InvalidAmount(value) from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(value)
    return money(amount)


def _parse_due_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid due date '{value}'") from None


# ---------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------
def _publish(events: Sequence[NotificationEvent]) -> None:
    """Hand committed events to the dispatcher. Never raises."""
    for event in events:
        try:
            notifier.dispatch(event)
        except Exception:
            logger.exception("Could not dispatch %s for invoice %s", event.event_type.value, event.invoice_id)


def _atomic(operation: Callable[[list[NotificationEvent]], T], *, description: str) -> T:
    """
    Run operation inside one transaction and commit it.

    - WorkflowError: rolled back and re-raised untouched.
    - StaleDataError (concurrent writer won): rolled back and re-run from fresh state.
    - Any other database failure: rolled back and raised as PersistenceError.
    """
    attempts = max(1, int(current_app.config.get("TRANSITION_MAX_RETRIES", 3)))

    for attempt in range(1, attempts + 1):
        events: list[NotificationEvent] = []
        try:
            result = operation(events)
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.warning("Concurrent update during %s (attempt %s/%s)", description, attempt, attempts)
            continue
        except WorkflowError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during %s", description)
            raise PersistenceError() from exc
        except Exception:
            db.session.rollback()
            raise

        _publish(events)
        return result

    logger.error("Giving up %s after %s concurrent-update retries", description, attempts)
    raise PersistenceError(f"Concurrent updates prevented {description}; retry it", attempts=attempts)


# ---------------------------------------------------------------------
# Loaders & guards
# ---------------------------------------------------------------------
def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def _lock_invoice(invoice_id: int) -> Invoice:
    """Load the invoice row for update, overwriting any stale identity-map copy."""
    invoice = db.session.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if invoice is None:
        raise NotFound("Invoice", invoice_id)
    return invoice


def _observed_status(invoice_id: int) -> InvoiceStatus:
    """Committed status at call time (plain read, no lock)."""
    try:
        status = db.session.execute(
            select(Invoice.status).where(Invoice.id == invoice_id)
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Could not read status of invoice %s", invoice_id)
        raise PersistenceError() from exc
    if status is None:
        raise NotFound("Invoice", invoice_id)
    return status


def _evaluator(user: User) -> PermissionEvaluator:
    return evaluator_for(user, current_app.config.get("ROLE_PERMISSIONS"))


def _require_active(actor: User) -> None:
    if not actor.is_active:
        raise Forbidden("Inactive users cannot act on invoices")
    if actor.role == Role.SUPPLIER and (actor.supplier is None or not actor.supplier.is_active):
        raise Forbidden("Supplier account is not linked to an active supplier")


def authorize_transition(actor: User, invoice: Invoice, evaluator: PermissionEvaluator) -> None:
    """
    Who may drive a status change:
    - suppliers never (only implicitly, through document uploads)
    - accounting workers only on invoices assigned to them
    - accounting admins / super admins on any invoice
    All of them need invoices.edit.
    """
    _require_active(actor)
    if actor.role == Role.SUPPLIER:
        raise Forbidden("Suppliers cannot change invoice status directly")
    if not evaluator.has_permission(Permission.INVOICES_EDIT):
        raise Forbidden("Missing permission invoices.edit")
    if actor.role == Role.ACCOUNTING_WORKER and not owns_invoice(actor, invoice):
        raise Forbidden("Only invoices assigned to you can be changed")


def authorize_document(actor: User, invoice: Invoice, evaluator: PermissionEvaluator) -> None:
    """Uploads: documents.create or documents.edit, scoped to owned invoices for suppliers/workers."""
    _require_active(actor)
    if not evaluator.has_any_permission([Permission.DOCUMENTS_CREATE, Permission.DOCUMENTS_EDIT]):
        raise Forbidden("Missing permission documents.create")
    if actor.role in (Role.SUPPLIER, Role.ACCOUNTING_WORKER) and not owns_invoice(actor, invoice):
        raise Forbidden("Documents can only be added to your own invoices")


def _check_edge(invoice: Invoice, target: InvoiceStatus) -> None:
    if not can_transition(invoice.status, target):
        raise InvalidTransition(
            invoice.status.value,
            target.value,
            [s.value for s in allowed_transitions(invoice.status)],
        )


def _check_documents(invoice: Invoice, target: InvoiceStatus) -> None:
    """Manual moves into document states must be backed by the uploaded documents."""
    if target is not S.COMPLETED and target not in DOCUMENT_GATED:
        return

    regime = invoice.supplier.regime
    missing = documents.missing_documents(invoice.payment, regime)

    if target is S.COMPLETED:
        if missing:
            raise DocumentsIncomplete(target.value, [k.value for k in missing])
        return

    implied = documents.next_state(invoice.payment, regime)
    if documents.path_index(implied) < documents.path_index(target):
        raise DocumentsIncomplete(target.value, [k.value for k in missing])


# ---------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------
def _next_event_timestamp(invoice_id: int) -> datetime:
    """Clock value, bumped so event timestamps strictly increase per invoice."""
    last = (
        db.session.query(func.max(InvoiceStateEvent.created_at))
        .filter(InvoiceStateEvent.invoice_id == invoice_id)
        .scalar()
    )
    stamp = _now()
    if last is not None and stamp <= last:
        stamp = last + timedelta(microseconds=1)
    return stamp


def _append_event(
    invoice: Invoice,
    from_state: Optional[InvoiceStatus],
    to_state: InvoiceStatus,
    actor_id: Optional[int],
    note: Optional[str],
) -> InvoiceStateEvent:
    event = InvoiceStateEvent(
        invoice_id=invoice.id,
        from_state=from_state,
        to_state=to_state,
        user_id=actor_id,
        notes=note,
        created_at=_next_event_timestamp(invoice.id),
    )
    db.session.add(event)
    return event


def _apply_edge(
    invoice: Invoice,
    target: InvoiceStatus,
    actor: Optional[User],
    note: Optional[str],
    events: list[NotificationEvent],
    *,
    actor_id: Optional[int] = None,
) -> InvoiceStateEvent:
    """Move along ONE table edge: status + history row + pending notification."""
    _check_edge(invoice, target)

    current = invoice.status
    if actor is not None:
        actor_id = actor.id

    # assigned_to must be set before the status ever leaves submitted
    if current is S.SUBMITTED and invoice.assigned_to_id is None:
        assignee_id = select_assignee()
        if assignee_id is None and actor is not None and actor.is_accounting:
            assignee_id = actor.id
        if assignee_id is None:
            raise InvalidTransition(current.value, target.value, [])
        invoice.assigned_to_id = assignee_id

    note = note or f"Status changed to {target.value}"
    invoice.status = target
    event = _append_event(invoice, current, target, actor_id, note)
    invoice.updated_at = event.created_at

    if target is S.COMPLETED and invoice.payment is not None:
        invoice.payment.completion_date = event.created_at

    events.append(
        NotificationEvent(
            event_type=EventType.STATUS_CHANGED,
            invoice_id=invoice.id,
            from_state=current.value,
            to_state=target.value,
            actor_id=actor_id,
            timestamp=event.created_at,
            note=note,
        )
    )
    logger.info("Invoice %s: %s -> %s (actor %s)", invoice.id, current.value, target.value, actor_id)
    return event


def _advance_by_documents(
    invoice: Invoice,
    actor: User,
    note: str,
    events: list[NotificationEvent],
) -> None:
    """Walk forward to the state implied by the uploaded documents (never backwards)."""
    regime = invoice.supplier.regime
    implied = documents.next_state(invoice.payment, regime)

    current_index = documents.path_index(invoice.status)
    target_index = documents.path_index(implied)
    if current_index is None or target_index <= current_index:
        logger.debug(
            "Invoice %s stays %s (documents imply %s)", invoice.id, invoice.status.value, implied.value
        )
        return

    for step in documents.DOCUMENT_PATH[current_index + 1 : target_index + 1]:
        _apply_edge(invoice, step, actor, note, events)


def _get_or_create_payment(invoice: Invoice) -> Payment:
    if invoice.payment is None:
        invoice.payment = Payment(invoice_id=invoice.id)
        db.session.flush()
    return invoice.payment


# ---------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------
def create_invoice(
    supplier_id: int,
    number: str,
    amount: Any,
    description: Optional[str],
    due_date: Any,
    priority: Priority | str | None,
    creator_id: int,
    *,
    files: Iterable[SourceFile] = (),
    creation_ip: Optional[str] = None,
) -> Invoice:
    """
    Create an invoice in `submitted` and immediately try to auto-assign it.

    When the balancer finds nobody the invoice simply stays `submitted`.
    """
    number = (number or "").strip()
    if not number:
        raise ValidationError("Invoice number is required")
    amount = _parse_amount(amount)
    due_date = _parse_due_date(due_date)
    priority = _coerce(Priority, priority or Priority.MEDIUM, "priority")
    files = list(files)

    def operation(events: list[NotificationEvent]) -> Invoice:
        creator = _get_user(creator_id)
        _require_active(creator)
        if not _evaluator(creator).has_permission(Permission.INVOICES_CREATE):
            raise Forbidden("Missing permission invoices.create")

        supplier = db.session.get(Supplier, supplier_id)
        if supplier is None or not supplier.is_active:
            raise NotFound("Supplier", supplier_id)
        if creator.role == Role.SUPPLIER and creator.supplier_id != supplier.id:
            raise Forbidden("Suppliers can only submit their own invoices")

        if Invoice.query.filter_by(number=number).first() is not None:
            raise DuplicateNumber(number)

        stamp = _now()
        invoice = Invoice(
            number=number,
            supplier_id=supplier.id,
            amount=amount,
            description=(description or "").strip() or None,
            due_date=due_date,
            priority=priority,
            status=S.SUBMITTED,
            created_by_id=creator.id,
            created_ip=creation_ip or client_ip(),
            created_at=stamp,
            updated_at=stamp,
        )
        for position, source in enumerate(files):
            invoice.files.append(
                InvoiceFile(
                    position=position,
                    original_name=source.name,
                    stored_path=source.stored_path,
                    size=source.size,
                    content_type=source.content_type,
                    uploaded_at=stamp,
                )
            )

        db.session.add(invoice)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateNumber(number) from exc

        note = (
            "Invoice submitted by supplier"
            if creator.role == Role.SUPPLIER
            else "Invoice created by accounting staff"
        )
        created = _append_event(invoice, None, S.SUBMITTED, creator.id, note)
        events.append(
            NotificationEvent(
                event_type=EventType.INVOICE_CREATED,
                invoice_id=invoice.id,
                to_state=S.SUBMITTED.value,
                actor_id=creator.id,
                timestamp=created.created_at,
                note=note,
            )
        )

        assignee_id = select_assignee()
        if assignee_id is not None:
            invoice.assigned_to_id = assignee_id
            _apply_edge(invoice, S.ASSIGNED, None, "Auto-assigned by workload balancer", events, actor_id=assignee_id)
        else:
            logger.warning("Invoice %s left unassigned: no accounting user available", invoice.id)

        log_action(invoice, "CREATE", actor=creator, after=serialize_model(invoice))
        return invoice

    return _atomic(operation, description=f"creation of invoice {number}")


def apply_transition(
    invoice_id: int,
    target_state: InvoiceStatus | str,
    actor_id: int,
    note: Optional[str] = None,
) -> Invoice:
    """Validate and apply one edge of the transition table."""
    target = _coerce(InvoiceStatus, target_state, "status")
    note = (note or "").strip() or None
    observed = _observed_status(invoice_id)

    def operation(events: list[NotificationEvent]) -> Invoice:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        authorize_transition(actor, invoice, _evaluator(actor))
        if invoice.status is not observed:
            logger.info(
                "Invoice %s moved %s -> %s while a transition to %s was pending",
                invoice_id, observed.value, invoice.status.value, target.value,
            )
            raise InvalidTransition(
                invoice.status.value,
                target.value,
                [s.value for s in allowed_transitions(invoice.status)],
            )
        _check_edge(invoice, target)
        _check_documents(invoice, target)
        _apply_edge(invoice, target, actor, note, events)
        return invoice

    return _atomic(operation, description=f"transition of invoice {invoice_id} to {target.value}")


def record_document_upload(
    invoice_id: int,
    artifact_kind: ArtifactKind | str,
    artifact_ref: str,
    actor_id: int,
) -> Invoice:
    """
    Store a payment artifact reference and apply the document-driven transition.

    The invoice must be on the document path (processing .. paid).
    """
    kind = _coerce(ArtifactKind, artifact_kind, "document type")
    artifact_ref = (artifact_ref or "").strip()
    if not artifact_ref:
        raise ValidationError("A stored document reference is required")

    def operation(events: list[NotificationEvent]) -> Invoice:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        authorize_document(actor, invoice, _evaluator(actor))

        regime = invoice.supplier.regime
        if not documents.is_document_required(kind, regime):
            raise DocumentNotRequired(kind.value, regime.value)

        if documents.path_index(invoice.status) is None:
            raise InvalidTransition(
                invoice.status.value,
                documents.ARTIFACT_STATES[kind].value,
                [s.value for s in allowed_transitions(invoice.status)],
            )

        payment = _get_or_create_payment(invoice)
        before = serialize_model(payment)
        payment.set_artifact_ref(kind, artifact_ref)
        invoice.updated_at = _now()
        db.session.flush()
        log_action(payment, "UPLOAD", actor=actor, before=before, after=serialize_model(payment))

        _advance_by_documents(invoice, actor, f"{kind.value} uploaded (regime {regime.value})", events)
        return invoice

    return _atomic(operation, description=f"{kind.value} upload for invoice {invoice_id}")


def generate_access_code(moment: Optional[datetime] = None) -> str:
    """<PREFIX>-YYYYMMDD-NNNNN with the date taken in the business timezone."""
    tz = ZoneInfo(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    prefix = current_app.config.get("ACCESS_CODE_PREFIX", "AC")
    moment = (moment or _now()).replace(tzinfo=timezone.utc).astimezone(tz)
    return f"{prefix}-{moment:%Y%m%d}-{10000 + secrets.randbelow(90000)}"


def issue_access_code(invoice_id: int, actor_id: int) -> Invoice:
    """Generate the access code of a `processing` invoice and advance it."""

    def operation(events: list[NotificationEvent]) -> Invoice:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        evaluator = _evaluator(actor)
        authorize_document(actor, invoice, evaluator)
        if not actor.is_accounting:
            raise Forbidden("Only accounting staff can issue access codes")

        if invoice.status is not S.PROCESSING:
            raise InvalidTransition(
                invoice.status.value,
                S.ACCESS_CODE_ISSUED.value,
                [s.value for s in allowed_transitions(invoice.status)],
            )

        payment = _get_or_create_payment(invoice)
        before = serialize_model(payment)
        payment.access_code = generate_access_code()
        invoice.updated_at = _now()
        db.session.flush()
        log_action(payment, "ACCESS_CODE", actor=actor, before=before, after=serialize_model(payment))

        _advance_by_documents(invoice, actor, f"Access code generated: {payment.access_code}", events)
        return invoice

    return _atomic(operation, description=f"access code for invoice {invoice_id}")


def update_invoice(invoice_id: int, actor_id: int, changes: Mapping[str, Any]) -> Invoice:
    """Edit metadata of an invoice that is still `submitted`."""
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {}
    if "amount" in changes:
        values["amount"] = _parse_amount(changes["amount"])
    if "due_date" in changes:
        values["due_date"] = _parse_due_date(changes["due_date"])
    if "priority" in changes:
        values["priority"] = _coerce(Priority, changes["priority"], "priority")
    if "description" in changes:
        values["description"] = (changes["description"] or "").strip() or None

    def operation(events: list[NotificationEvent]) -> Invoice:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        _require_active(actor)

        evaluator = _evaluator(actor)
        if actor.role == Role.SUPPLIER:
            if not owns_invoice(actor, invoice):
                raise Forbidden("Suppliers can only edit their own invoices")
        elif not evaluator.has_permission(Permission.INVOICES_EDIT):
            raise Forbidden("Missing permission invoices.edit")
        elif actor.role == Role.ACCOUNTING_WORKER and not owns_invoice(actor, invoice):
            raise Forbidden("Only invoices assigned to you can be edited")

        if invoice.status is not S.SUBMITTED:
            raise ValidationError("Only submitted invoices can be edited")

        before = serialize_model(invoice)
        for field, value in values.items():
            setattr(invoice, field, value)
        invoice.updated_at = _now()
        db.session.flush()
        log_action(invoice, "UPDATE", actor=actor, before=before, after=serialize_model(invoice))
        return invoice

    return _atomic(operation, description=f"edit of invoice {invoice_id}")


def reassign_invoice(invoice_id: int, assignee_id: int, actor_id: int, note: Optional[str] = None) -> Invoice:
    """
    Hand an open invoice to another accounting user.

    The change is versioned as a history row whose from/to state equal the current state.
    """

    def operation(events: list[NotificationEvent]) -> Invoice:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        _require_active(actor)
        if not actor.is_admin or not _evaluator(actor).has_permission(Permission.INVOICES_EDIT):
            raise Forbidden("Only accounting admins can reassign invoices")
        if not invoice.is_open:
            raise ValidationError("Closed invoices cannot be reassigned")

        assignee = _get_user(assignee_id)
        if not assignee.is_active or not assignee.is_accounting:
            raise ValidationError("Invoices can only be assigned to active accounting users")

        previous_id = invoice.assigned_to_id
        if previous_id == assignee.id:
            return invoice

        before = serialize_model(invoice)
        invoice.assigned_to_id = assignee.id
        text = note or f"Reassigned from user {previous_id or '-'} to user {assignee.id}"
        event = _append_event(invoice, invoice.status, invoice.status, actor.id, text)
        invoice.updated_at = event.created_at
        db.session.flush()
        log_action(invoice, "REASSIGN", actor=actor, before=before, after=serialize_model(invoice))

        events.append(
            NotificationEvent(
                event_type=EventType.INVOICE_ASSIGNED,
                invoice_id=invoice.id,
                from_state=invoice.status.value,
                to_state=invoice.status.value,
                actor_id=actor.id,
                timestamp=event.created_at,
                note=text,
            )
        )
        logger.info("Invoice %s reassigned %s -> %s by %s", invoice.id, previous_id, assignee.id, actor.id)
        return invoice

    return _atomic(operation, description=f"reassignment of invoice {invoice_id}")


def delete_invoice(invoice_id: int, actor_id: int, file_store: Optional[FileStore] = None) -> list[str]:
    """
    Hard-delete an invoice (super admin only) and then its stored files.

    Returns the stored paths that could not be removed (logged, non-fatal).
    """

    def operation(events: list[NotificationEvent]) -> list[str]:
        actor = _get_user(actor_id)
        invoice = _lock_invoice(invoice_id)
        _require_active(actor)
        if actor.role != Role.SUPER_ADMIN or not _evaluator(actor).has_permission(Permission.INVOICES_DELETE):
            raise Forbidden("Only super admins can delete invoices")

        paths = [f.stored_path for f in invoice.files]
        if invoice.payment is not None:
            paths.extend(invoice.payment.stored_paths())

        log_action(invoice, "DELETE", actor=actor, before=serialize_model(invoice))
        db.session.delete(invoice)
        logger.info("Invoice %s deleted by %s", invoice_id, actor.id)
        return paths

    paths = _atomic(operation, description=f"deletion of invoice {invoice_id}")
    return delete_files(file_store or get_file_store(), paths)


# ---------------------------------------------------------------------
# Reads (no locking; committed state only)
# ---------------------------------------------------------------------
def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Invoice", invoice_id)
    return invoice


def compute_progress(invoice_id: int) -> documents.Progress:
    invoice = get_invoice(invoice_id)
    return documents.progress(invoice.payment, invoice.supplier.regime)


def invoice_history(invoice_id: int) -> list[InvoiceStateEvent]:
    get_invoice(invoice_id)
    return (
        InvoiceStateEvent.query.filter_by(invoice_id=invoice_id)
        .order_by(InvoiceStateEvent.created_at.asc(), InvoiceStateEvent.id.asc())
        .all()
    )
