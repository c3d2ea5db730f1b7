"""
Invoice Workflow – Domain Models

Entities:
- Supplier (tax regime drives which payment artifacts are mandatory)
- User (role + optional supplier link + per-user permission overrides)
- Invoice (status is only mutated through invoiceflow.workflow)
- InvoiceFile (ordered source-file descriptors)
- InvoiceStateEvent (append-only history, one row per transition)
- Payment (1-1 with Invoice, created lazily)
- AuditLog (who did what, before/after snapshots)

IMPORTANT:
- Invoice.version_id is an optimistic-concurrency counter. A concurrent writer that
  loaded an older version fails with StaleDataError instead of overwriting.
- Enum columns are stored by value (lowercase strings), never by member name.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _enum_type(enum_cls, name: str):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=40,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


# ---------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------
class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ACCOUNTING_ADMIN = "accounting_admin"
    ACCOUNTING_WORKER = "accounting_worker"
    SUPPLIER = "supplier"


ACCOUNTING_ROLES = frozenset({Role.SUPER_ADMIN, Role.ACCOUNTING_ADMIN, Role.ACCOUNTING_WORKER})
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ACCOUNTING_ADMIN})


class Regime(str, Enum):
    """Supplier tax-withholding classification."""

    STANDARD_WITHHOLDING = "standard_withholding"
    QUARTERLY_PAYER = "quarterly_payer"
    SMALL_TAXPAYER = "small_taxpayer"
    QUARTERLY_PAYER_RETENTION_AGENT = "quarterly_payer_retention_agent"


class InvoiceStatus(str, Enum):
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    PROCESSING = "processing"
    ACCESS_CODE_ISSUED = "access_code_issued"
    ISR_RETAINED = "isr_retained"
    IVA_RETAINED = "iva_retained"
    PAID = "paid"
    COMPLETED = "completed"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({InvoiceStatus.COMPLETED, InvoiceStatus.REJECTED})


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ArtifactKind(str, Enum):
    ACCESS_CODE = "access_code"
    ISR_RETENTION = "isr_retention"
    IVA_RETENTION = "iva_retention"
    PAYMENT_PROOF = "payment_proof"


# Payment column holding the stored reference of each artifact
ARTIFACT_FIELDS = {
    ArtifactKind.ACCESS_CODE: "access_code_file",
    ArtifactKind.ISR_RETENTION: "isr_retention_file",
    ArtifactKind.IVA_RETENTION: "iva_retention_file",
    ArtifactKind.PAYMENT_PROOF: "payment_proof_file",
}


# ---------------------------------------------------------------------
# Suppliers & users
# ---------------------------------------------------------------------
class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    business_name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(20), nullable=False, index=True)

    contact_email = db.Column(db.String(255))
    contact_phone = db.Column(db.String(20))
    address = db.Column(db.Text)
    bank_name = db.Column(db.String(120))
    bank_account = db.Column(db.String(64))

    regime = db.Column(
        _enum_type(Regime, "supplier_regime"),
        nullable=False,
        default=Regime.STANDARD_WITHHOLDING,
    )

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    users = db.relationship("User", back_populates="supplier", lazy=True)
    invoices = db.relationship("Invoice", back_populates="supplier", lazy=True)

    __table_args__ = (
        # tax id unique among ACTIVE suppliers only
        db.Index(
            "uq_suppliers_active_tax_id",
            "tax_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
    )

    def __repr__(self):
        return f"<Supplier {self.tax_id} - {self.business_name}>"


class User(UserMixin, db.Model):
    """System login user (supplier users are linked to their Supplier)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(150), nullable=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(_enum_type(Role, "user_role"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    last_login_at = db.Column(db.DateTime, nullable=True)
    last_login_ip = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", back_populates="users")

    permission_grants = db.relationship(
        "UserPermission",
        back_populates="user",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_accounting(self) -> bool:
        return self.role in ACCOUNTING_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def permission_overrides(self) -> dict[str, dict[str, bool]]:
        """Per-user grants as module -> action -> bool (empty when the role defaults apply)."""
        overrides: dict[str, dict[str, bool]] = {}
        for grant in self.permission_grants:
            overrides.setdefault(grant.module, {})[grant.action] = bool(grant.allowed)
        return overrides

    def __repr__(self):
        return f"<User {self.username} ({self.role.value if self.role else '-'})>"


class UserPermission(db.Model):
    """Individually overridden grant. Once a user has any, role defaults stop applying."""

    __tablename__ = "user_permissions"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module = db.Column(db.String(40), nullable=False)
    action = db.Column(db.String(40), nullable=False)
    allowed = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", back_populates="permission_grants")

    __table_args__ = (db.UniqueConstraint("user_id", "module", "action", name="uq_user_permission"),)


# ---------------------------------------------------------------------
# Invoice domain
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    number = db.Column(db.String(100), nullable=False, unique=True, index=True)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    assigned_to_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(_enum_type(Priority, "invoice_priority"), nullable=False, default=Priority.MEDIUM)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(
        _enum_type(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.SUBMITTED,
        index=True,
    )

    # processing metadata
    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_ip = db.Column(db.String(45), nullable=True)

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", back_populates="invoices")
    assignee = db.relationship("User", foreign_keys=[assigned_to_id])
    creator = db.relationship("User", foreign_keys=[created_by_id])

    files = db.relationship(
        "InvoiceFile",
        back_populates="invoice",
        order_by="InvoiceFile.position",
        cascade="all, delete-orphan",
    )

    events = db.relationship(
        "InvoiceStateEvent",
        back_populates="invoice",
        order_by=lambda: [InvoiceStateEvent.created_at, InvoiceStateEvent.id],
        cascade="all, delete-orphan",
    )

    payment = db.relationship(
        "Payment",
        back_populates="invoice",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (db.CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    def __repr__(self):
        return f"<Invoice {self.number} [{self.status.value if self.status else '-'}]>"


class InvoiceFile(db.Model):
    """Uploaded source file descriptor (the bytes live in the file store)."""

    __tablename__ = "invoice_files"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position = db.Column(db.Integer, nullable=False, default=0)
    original_name = db.Column(db.String(255), nullable=False)
    stored_path = db.Column(db.String(500), nullable=False)
    size = db.Column(db.Integer, nullable=True)
    content_type = db.Column(db.String(120), nullable=True)
    uploaded_at = db.Column(db.DateTime, default=utcnow)

    invoice = db.relationship("Invoice", back_populates="files")


class InvoiceStateEvent(db.Model):
    """Append-only status history. Never updated or deleted (except with its invoice)."""

    __tablename__ = "invoice_state_events"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_state = db.Column(_enum_type(InvoiceStatus, "invoice_status"), nullable=True)
    to_state = db.Column(_enum_type(InvoiceStatus, "invoice_status"), nullable=False)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    invoice = db.relationship("Invoice", back_populates="events")
    user = db.relationship("User")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "user_id": self.user_id,
            "notes": self.notes,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }


class Payment(db.Model):
    """Payment artifacts of an invoice (created the first time any field is set)."""

    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    access_code = db.Column(db.String(64), nullable=True)
    access_code_file = db.Column(db.String(500), nullable=True)
    isr_retention_file = db.Column(db.String(500), nullable=True)
    iva_retention_file = db.Column(db.String(500), nullable=True)
    payment_proof_file = db.Column(db.String(500), nullable=True)

    completion_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    invoice = db.relationship("Invoice", back_populates="payment")

    def artifact_ref(self, kind: ArtifactKind) -> str | None:
        return getattr(self, ARTIFACT_FIELDS[ArtifactKind(kind)])

    def set_artifact_ref(self, kind: ArtifactKind, ref: str) -> None:
        setattr(self, ARTIFACT_FIELDS[ArtifactKind(kind)], ref)

    def stored_paths(self) -> list[str]:
        return [ref for ref in (getattr(self, f) for f in ARTIFACT_FIELDS.values()) if ref]


class AuditLog(db.Model):
    """Who did WHAT to WHICH entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(30), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
