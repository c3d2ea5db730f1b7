"""
invoiceflow/errors.py

Typed outcomes of the invoice workflow core.

Every expected failure is a WorkflowError subclass carrying:
- code: stable machine-readable identifier
- http_status: status used by the JSON error handler
- to_dict(): JSON-safe payload

PersistenceError is the only fatal class: the operation was NOT applied and the
caller must retry the whole operation.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class WorkflowError(Exception):
    code = "WORKFLOW_ERROR"
    http_status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class Forbidden(WorkflowError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidTransition(WorkflowError):
    """Requested edge is not in the transition table for the current state."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, current: str, requested: str, allowed: Iterable[str]) -> None:
        self.current = str(current)
        self.requested = str(requested)
        self.allowed: List[str] = [str(s) for s in allowed]
        super().__init__(f"Invalid transition from '{self.current}' to '{self.requested}'")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(current_status=self.current, requested_status=self.requested, valid_states=self.allowed)
        return data


class ValidationError(WorkflowError):
    code = "VALIDATION_ERROR"
    http_status = 400


class DuplicateNumber(ValidationError):
    code = "DUPLICATE_NUMBER"

    def __init__(self, number: str) -> None:
        super().__init__(f"Invoice number '{number}' already exists")
        self.number = number


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"

    def __init__(self, amount: Any) -> None:
        super().__init__("Amount must be greater than 0")
        self.amount = amount


class DocumentNotRequired(ValidationError):
    code = "DOCUMENT_NOT_REQUIRED"

    def __init__(self, artifact: str, regime: str) -> None:
        super().__init__(f"Supplier regime '{regime}' does not require '{artifact}'")
        self.artifact = artifact
        self.regime = regime


class DocumentsIncomplete(ValidationError):
    code = "DOCUMENTS_INCOMPLETE"

    def __init__(self, target: str, missing: Iterable[str]) -> None:
        self.target = str(target)
        self.missing: List[str] = [str(m) for m in missing]
        super().__init__(f"Cannot move to '{self.target}': required documents are missing")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["missing"] = self.missing
        return data


class PersistenceError(WorkflowError):
    code = "PERSISTENCE_ERROR"
    http_status = 503

    def __init__(self, message: str = "The operation could not be committed; retry it", *, attempts: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
