"""
invoiceflow/seed.py

Bootstrap and demo data.

Rules:
- Safe to run multiple times (idempotent): rows are matched by tax id / username.
- One demo supplier per tax regime so every document matrix can be exercised.
- One demo user per role; the supplier user is linked to the standard-withholding supplier.

NOTE:
- Demo passwords are for local development only.
"""

from __future__ import annotations

import logging
from typing import Optional

from .extensions import db
from .models import Regime, Role, Supplier, User

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "demo12345"

DEMO_SUPPLIERS = [
    # tax_id, business_name, regime
    ("1000001-1", "Demo Standard Withholding Ltd", Regime.STANDARD_WITHHOLDING),
    ("1000002-2", "Demo Quarterly Payer Ltd", Regime.QUARTERLY_PAYER),
    ("1000003-3", "Demo Small Taxpayer", Regime.SMALL_TAXPAYER),
    ("1000004-4", "Demo Retention Agent Corp", Regime.QUARTERLY_PAYER_RETENTION_AGENT),
]

DEMO_USERS = [
    # username, name, role, supplier tax id
    ("superadmin", "Demo Super Admin", Role.SUPER_ADMIN, None),
    ("accadmin", "Demo Accounting Admin", Role.ACCOUNTING_ADMIN, None),
    ("worker1", "Demo Accounting Worker 1", Role.ACCOUNTING_WORKER, None),
    ("worker2", "Demo Accounting Worker 2", Role.ACCOUNTING_WORKER, None),
    ("supplier1", "Demo Supplier User", Role.SUPPLIER, "1000001-1"),
]


def create_superadmin(username: str, password: str, *, email: Optional[str] = None) -> Optional[User]:
    """Create the first super admin. Returns None when any user already exists."""
    if User.query.count() > 0:
        return None

    user = User(
        username=username.strip(),
        name="System Administrator",
        email=email,
        role=Role.SUPER_ADMIN,
        is_active=True,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info("Super admin %s created", user.username)
    return user


def seed_demo_data() -> None:
    """Create demo suppliers and users if they don't exist."""
    suppliers: dict[str, Supplier] = {}
    for tax_id, business_name, regime in DEMO_SUPPLIERS:
        supplier = Supplier.query.filter_by(tax_id=tax_id, is_active=True).first()
        if not supplier:
            supplier = Supplier(tax_id=tax_id, business_name=business_name, regime=regime, is_active=True)
            db.session.add(supplier)
        else:
            # keep regime in sync with the demo matrix
            supplier.regime = regime
        suppliers[tax_id] = supplier

    db.session.flush()

    for username, name, role, tax_id in DEMO_USERS:
        if User.query.filter_by(username=username).first():
            continue
        user = User(
            username=username,
            name=name,
            role=role,
            is_active=True,
            supplier_id=suppliers[tax_id].id if tax_id else None,
        )
        user.set_password(DEMO_PASSWORD)
        db.session.add(user)

    db.session.commit()
    logger.info("Demo data seeded (%s suppliers, %s users)", len(DEMO_SUPPLIERS), len(DEMO_USERS))
