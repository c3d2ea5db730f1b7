"""
invoiceflow/blueprints/invoices/routes.py

Invoice workflow routes (JSON).

Includes:
- create / list / read / edit / delete
- status transitions, document uploads, access-code generation
- progress, history, reassignment, assignment preview

IMPORTANT:
- Routes only parse input, call invoiceflow.workflow and serialise the result.
  Every guard (permissions, ownership, transition table, documents) lives in the core,
  and its typed errors are turned into JSON by the app-level error handler.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import workflow
from ...assignment import select_assignee
from ...errors import Forbidden, ValidationError
from ...models import Invoice, InvoiceStatus, Role
from ...permissions import Permission
from ...security import can_view_invoice, get_evaluator, permission_required

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")


# ---------------------------------------------------------------------
# Parsing & serialisation helpers
# ---------------------------------------------------------------------
def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{field}' must be an integer") from None


def _required(data: dict, field: str) -> Any:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"'{field}' is required")
    return value


def _source_files(raw: Any) -> list[workflow.SourceFile]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("'files' must be a list")
    files = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("Each file must be an object")
        files.append(
            workflow.SourceFile(
                name=str(_required(item, "name")),
                stored_path=str(_required(item, "stored_path")),
                size=item.get("size"),
                content_type=item.get("content_type"),
            )
        )
    return files


def invoice_payload(invoice: Invoice, *, detail: bool = False) -> dict:
    data = {
        "id": invoice.id,
        "number": invoice.number,
        "supplier_id": invoice.supplier_id,
        "assigned_to_id": invoice.assigned_to_id,
        "amount": str(invoice.amount),
        "description": invoice.description,
        "priority": invoice.priority.value,
        "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
        "status": invoice.status.value,
        "created_by_id": invoice.created_by_id,
        "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
        "updated_at": invoice.updated_at.isoformat() if invoice.updated_at else None,
    }
    if detail:
        payment = invoice.payment
        data["allowed_transitions"] = [s.value for s in workflow.allowed_transitions(invoice.status)]
        data["files"] = [
            {
                "position": f.position,
                "name": f.original_name,
                "stored_path": f.stored_path,
                "size": f.size,
                "content_type": f.content_type,
            }
            for f in invoice.files
        ]
        data["payment"] = (
            {
                "access_code": payment.access_code,
                "access_code_file": payment.access_code_file,
                "isr_retention_file": payment.isr_retention_file,
                "iva_retention_file": payment.iva_retention_file,
                "payment_proof_file": payment.payment_proof_file,
                "completion_date": payment.completion_date.isoformat() if payment.completion_date else None,
            }
            if payment is not None
            else None
        )
    return data


def _visible_invoice(invoice_id: int) -> Invoice:
    invoice = workflow.get_invoice(invoice_id)
    if not can_view_invoice(current_user, invoice):
        raise Forbidden("You cannot view this invoice")
    return invoice


# ---------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------
@invoices_bp.route("", methods=["GET"])
@permission_required(Permission.INVOICES_VIEW_ALL, Permission.INVOICES_VIEW_OWN, any_of=True)
def list_invoices():
    """Invoices visible to the current user, newest first (optional ?status= filter)."""
    query = Invoice.query

    if not get_evaluator().has_permission(Permission.INVOICES_VIEW_ALL):
        if current_user.role == Role.SUPPLIER:
            query = query.filter(Invoice.supplier_id == current_user.supplier_id)
        else:
            query = query.filter(Invoice.assigned_to_id == current_user.id)

    status = request.args.get("status")
    if status:
        try:
            query = query.filter(Invoice.status == InvoiceStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'") from None

    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify([invoice_payload(i) for i in invoices])


@invoices_bp.route("", methods=["POST"])
@permission_required(Permission.INVOICES_CREATE)
def create_invoice():
    data = _json_body()

    supplier_id = data.get("supplier_id")
    if supplier_id is None and current_user.role == Role.SUPPLIER:
        supplier_id = current_user.supplier_id

    invoice = workflow.create_invoice(
        supplier_id=_parse_int(supplier_id, "supplier_id"),
        number=str(_required(data, "number")),
        amount=_required(data, "amount"),
        description=data.get("description"),
        due_date=data.get("due_date"),
        priority=data.get("priority"),
        creator_id=current_user.id,
        files=_source_files(data.get("files")),
        creation_ip=request.remote_addr,
    )
    return jsonify(invoice_payload(invoice, detail=True)), 201


@invoices_bp.route("/assignee-preview", methods=["GET"])
@permission_required(Permission.INVOICES_VIEW_ALL, Permission.INVOICES_EDIT)
def assignee_preview():
    """Who the balancer would pick right now (no side effects)."""
    return jsonify({"assignee_id": select_assignee()})


# ---------------------------------------------------------------------
# Single invoice
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@login_required
def get_invoice(invoice_id: int):
    return jsonify(invoice_payload(_visible_invoice(invoice_id), detail=True))


@invoices_bp.route("/<int:invoice_id>", methods=["PATCH"])
@login_required
def update_invoice(invoice_id: int):
    data = _json_body()
    invoice = workflow.update_invoice(invoice_id, current_user.id, data)
    return jsonify(invoice_payload(invoice, detail=True))


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@permission_required(Permission.INVOICES_DELETE)
def delete_invoice(invoice_id: int):
    failed = workflow.delete_invoice(invoice_id, current_user.id)
    return jsonify({"deleted": invoice_id, "undeleted_files": failed})


@invoices_bp.route("/<int:invoice_id>/transitions", methods=["POST"])
@login_required
def apply_transition(invoice_id: int):
    data = _json_body()
    invoice = workflow.apply_transition(
        invoice_id,
        _required(data, "target"),
        current_user.id,
        note=data.get("note"),
    )
    return jsonify(invoice_payload(invoice, detail=True))


@invoices_bp.route("/<int:invoice_id>/documents", methods=["POST"])
@login_required
def upload_document(invoice_id: int):
    """Record an already-stored payment artifact (kind + stored reference)."""
    data = _json_body()
    invoice = workflow.record_document_upload(
        invoice_id,
        _required(data, "kind"),
        str(_required(data, "ref")),
        current_user.id,
    )
    payload = invoice_payload(invoice, detail=True)
    payload["progress"] = workflow.compute_progress(invoice.id).as_dict()
    return jsonify(payload)


@invoices_bp.route("/<int:invoice_id>/access-code", methods=["POST"])
@login_required
def issue_access_code(invoice_id: int):
    invoice = workflow.issue_access_code(invoice_id, current_user.id)
    return jsonify(invoice_payload(invoice, detail=True))


@invoices_bp.route("/<int:invoice_id>/progress", methods=["GET"])
@login_required
def progress(invoice_id: int):
    _visible_invoice(invoice_id)
    return jsonify(workflow.compute_progress(invoice_id).as_dict())


@invoices_bp.route("/<int:invoice_id>/history", methods=["GET"])
@login_required
def history(invoice_id: int):
    _visible_invoice(invoice_id)
    return jsonify([event.as_dict() for event in workflow.invoice_history(invoice_id)])


@invoices_bp.route("/<int:invoice_id>/assignee", methods=["PUT"])
@login_required
def reassign(invoice_id: int):
    data = _json_body()
    invoice = workflow.reassign_invoice(
        invoice_id,
        _parse_int(_required(data, "assignee_id"), "assignee_id"),
        current_user.id,
        note=data.get("note"),
    )
    return jsonify(invoice_payload(invoice, detail=True))
