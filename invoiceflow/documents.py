"""
invoiceflow/documents.py

Document requirement tracker (pure functions, no I/O, no session access).

Given a supplier regime it knows which payment artifacts are mandatory and, from the
artifacts present on a Payment (or any object exposing the same attributes), computes:
- progress percentage
- missing artifacts
- the workflow state implied by the uploaded artifacts

IMPORTANT:
- next_state() walks the gates in a FIXED priority order:
  access code -> ISR (if required) -> IVA (if required) -> payment proof.
  A gate that is not required counts as passed, so a regime without ISR moves from
  access_code_issued straight to isr_retained once the access code exists.
- The access-code artifact is present when either the generated code or an uploaded
  access-code file exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from .models import ARTIFACT_FIELDS, ArtifactKind, InvoiceStatus, Regime

REQUIRED_DOCUMENTS: dict[Regime, tuple[ArtifactKind, ...]] = {
    Regime.STANDARD_WITHHOLDING: (
        ArtifactKind.PAYMENT_PROOF,
        ArtifactKind.ACCESS_CODE,
        ArtifactKind.IVA_RETENTION,
        ArtifactKind.ISR_RETENTION,
    ),
    Regime.QUARTERLY_PAYER: (
        ArtifactKind.PAYMENT_PROOF,
        ArtifactKind.ACCESS_CODE,
        ArtifactKind.IVA_RETENTION,
    ),
    Regime.SMALL_TAXPAYER: (
        ArtifactKind.PAYMENT_PROOF,
        ArtifactKind.ACCESS_CODE,
        ArtifactKind.IVA_RETENTION,
    ),
    Regime.QUARTERLY_PAYER_RETENTION_AGENT: (
        ArtifactKind.PAYMENT_PROOF,
        ArtifactKind.ACCESS_CODE,
    ),
}

# State reached once each artifact is uploaded
ARTIFACT_STATES: dict[ArtifactKind, InvoiceStatus] = {
    ArtifactKind.ACCESS_CODE: InvoiceStatus.ACCESS_CODE_ISSUED,
    ArtifactKind.ISR_RETENTION: InvoiceStatus.ISR_RETAINED,
    ArtifactKind.IVA_RETENTION: InvoiceStatus.IVA_RETAINED,
    ArtifactKind.PAYMENT_PROOF: InvoiceStatus.PAID,
}

# Document-driven segment of the workflow, in order
DOCUMENT_PATH: tuple[InvoiceStatus, ...] = (
    InvoiceStatus.PROCESSING,
    InvoiceStatus.ACCESS_CODE_ISSUED,
    InvoiceStatus.ISR_RETAINED,
    InvoiceStatus.IVA_RETAINED,
    InvoiceStatus.PAID,
)


@dataclass(frozen=True)
class Progress:
    percent: int
    missing: list[ArtifactKind]
    required: list[ArtifactKind]
    next_state: InvoiceStatus

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def as_dict(self) -> dict:
        return {
            "percent": self.percent,
            "missing": [kind.value for kind in self.missing],
            "required": [kind.value for kind in self.required],
            "next_state": self.next_state.value,
            "complete": self.is_complete,
        }


def required_documents(regime: Regime | str) -> tuple[ArtifactKind, ...]:
    return REQUIRED_DOCUMENTS[Regime(regime)]


def is_document_required(kind: ArtifactKind | str, regime: Regime | str) -> bool:
    return ArtifactKind(kind) in required_documents(regime)


def has_artifact(payment: Optional[Any], kind: ArtifactKind | str) -> bool:
    if payment is None:
        return False
    kind = ArtifactKind(kind)
    if kind is ArtifactKind.ACCESS_CODE and getattr(payment, "access_code", None):
        return True
    return bool(getattr(payment, ARTIFACT_FIELDS[kind], None))


def missing_documents(payment: Optional[Any], regime: Regime | str) -> list[ArtifactKind]:
    return [kind for kind in required_documents(regime) if not has_artifact(payment, kind)]


def is_complete(payment: Optional[Any], regime: Regime | str) -> bool:
    return payment is not None and not missing_documents(payment, regime)


def calculate_progress(payment: Optional[Any], regime: Regime | str) -> int:
    """Whole percentage of required artifacts present (0 without a Payment)."""
    if payment is None:
        return 0
    required = required_documents(regime)
    if not required:
        return 0
    uploaded = sum(1 for kind in required if has_artifact(payment, kind))
    ratio = Decimal(uploaded) * Decimal(100) / Decimal(len(required))
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def next_state(payment: Optional[Any], regime: Regime | str) -> InvoiceStatus:
    """State implied by the uploaded artifacts (see module docstring for the gate order)."""
    required = required_documents(regime)

    if not has_artifact(payment, ArtifactKind.ACCESS_CODE):
        return InvoiceStatus.PROCESSING

    if ArtifactKind.ISR_RETENTION in required and not has_artifact(payment, ArtifactKind.ISR_RETENTION):
        return InvoiceStatus.ACCESS_CODE_ISSUED

    if ArtifactKind.IVA_RETENTION in required and not has_artifact(payment, ArtifactKind.IVA_RETENTION):
        return InvoiceStatus.ISR_RETAINED

    if not has_artifact(payment, ArtifactKind.PAYMENT_PROOF):
        return InvoiceStatus.IVA_RETAINED

    return InvoiceStatus.PAID


def progress(payment: Optional[Any], regime: Regime | str) -> Progress:
    return Progress(
        percent=calculate_progress(payment, regime),
        missing=missing_documents(payment, regime),
        required=list(required_documents(regime)),
        next_state=next_state(payment, regime),
    )


def path_index(status: InvoiceStatus | str) -> Optional[int]:
    """Position of a status on the document-driven path, None when off the path."""
    status = InvoiceStatus(status)
    if status not in DOCUMENT_PATH:
        return None
    return DOCUMENT_PATH.index(status)
