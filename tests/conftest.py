"""Shared fixtures: application on a throwaway SQLite file, plus supplier/user factories."""

from __future__ import annotations

import itertools
from types import SimpleNamespace

import pytest
from flask import g

from config import TestConfig
from invoiceflow import create_app, workflow
from invoiceflow.extensions import db, notifier
from invoiceflow.models import Regime, Role, Supplier, User

PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'invoiceflow-test.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Config)

    @app.before_request
    def _reset_login_cache():
        # the outer app context below is shared by every test request
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        yield app
        notifier.shutdown()
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_supplier(app):
    counter = itertools.count(1)

    def _make(regime: Regime = Regime.STANDARD_WITHHOLDING, **fields) -> Supplier:
        n = next(counter)
        supplier = Supplier(
            business_name=fields.pop("business_name", f"Supplier {n}"),
            tax_id=fields.pop("tax_id", f"TAX-{n:05d}"),
            regime=regime,
            **fields,
        )
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return _make


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(role: Role, *, supplier: Supplier | None = None, is_active: bool = True, username: str | None = None) -> User:
        n = next(counter)
        user = User(
            username=username or f"{role.value}-{n}",
            name=f"{role.value} {n}",
            role=role,
            is_active=is_active,
            supplier_id=supplier.id if supplier is not None else None,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def world(make_supplier, make_user):
    """One user per role, one worker, and a standard-withholding supplier."""
    supplier = make_supplier(Regime.STANDARD_WITHHOLDING)
    return SimpleNamespace(
        supplier=supplier,
        super_admin=make_user(Role.SUPER_ADMIN, username="root"),
        admin=make_user(Role.ACCOUNTING_ADMIN, username="admin"),
        worker=make_user(Role.ACCOUNTING_WORKER, username="worker"),
        supplier_user=make_user(Role.SUPPLIER, supplier=supplier, username="vendor"),
    )


@pytest.fixture
def new_invoice(world):
    """Create invoices for the world's supplier (submitted by the supplier user)."""
    counter = itertools.count(1)

    def _create(supplier: Supplier | None = None, creator: User | None = None, amount="100.00", **fields):
        supplier = supplier or world.supplier
        creator = creator or world.supplier_user
        return workflow.create_invoice(
            supplier_id=supplier.id,
            number=fields.pop("number", f"INV-{next(counter):04d}"),
            amount=amount,
            description=fields.pop("description", "Office supplies"),
            due_date=fields.pop("due_date", None),
            priority=fields.pop("priority", "medium"),
            creator_id=creator.id,
            **fields,
        )

    return _create


@pytest.fixture
def captured(app):
    """Collect dispatched notifications (call .flush() before asserting)."""
    events = []
    notifier.add_sink(events.append)

    def flush():
        notifier.flush()
        return events

    yield SimpleNamespace(events=events, flush=flush)
    notifier.remove_sink(events.append)
