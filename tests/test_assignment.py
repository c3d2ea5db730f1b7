from decimal import Decimal

from invoiceflow.assignment import open_invoice_counts, pick_least_loaded, select_assignee
from invoiceflow.extensions import db
from invoiceflow.models import Invoice, InvoiceStatus, Role


def _load(supplier, user, count, status=InvoiceStatus.PROCESSING, prefix=""):
    for n in range(count):
        db.session.add(
            Invoice(
                number=f"{prefix}{user.username}-{status.value}-{n}",
                supplier_id=supplier.id,
                assigned_to_id=user.id,
                amount=Decimal("10.00"),
                status=status,
            )
        )
    db.session.commit()


def test_pick_least_loaded_prefers_first_on_tie():
    assert pick_least_loaded([1, 2, 3], {1: 4, 2: 2, 3: 2}) == 2
    assert pick_least_loaded([1, 2, 3], {}) == 1
    assert pick_least_loaded([], {1: 0}) is None


def test_selects_worker_with_fewest_open_invoices(make_supplier, make_user):
    supplier = make_supplier()
    first = make_user(Role.ACCOUNTING_WORKER)
    second = make_user(Role.ACCOUNTING_WORKER)
    third = make_user(Role.ACCOUNTING_WORKER)

    _load(supplier, first, 4)
    _load(supplier, second, 2)
    _load(supplier, third, 2)

    assert open_invoice_counts([first.id, second.id, third.id]) == {first.id: 4, second.id: 2, third.id: 2}
    assert select_assignee() == second.id


def test_terminal_invoices_do_not_count(make_supplier, make_user):
    supplier = make_supplier()
    busy = make_user(Role.ACCOUNTING_WORKER)
    idle = make_user(Role.ACCOUNTING_WORKER)

    _load(supplier, busy, 1)
    _load(supplier, idle, 3, status=InvoiceStatus.COMPLETED)
    _load(supplier, idle, 2, status=InvoiceStatus.REJECTED)

    assert select_assignee() == idle.id


def test_inactive_workers_are_skipped(make_supplier, make_user):
    make_user(Role.ACCOUNTING_WORKER, is_active=False)
    active = make_user(Role.ACCOUNTING_WORKER)
    assert select_assignee() == active.id


def test_falls_back_to_first_active_admin(make_user):
    make_user(Role.ACCOUNTING_ADMIN, is_active=False)
    admin = make_user(Role.ACCOUNTING_ADMIN)
    make_user(Role.ACCOUNTING_ADMIN)
    assert select_assignee() == admin.id


def test_nobody_available(make_user):
    make_user(Role.SUPER_ADMIN)
    make_user(Role.SUPPLIER)
    assert select_assignee() is None
