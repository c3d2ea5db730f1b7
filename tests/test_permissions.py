from types import SimpleNamespace

import pytest

from invoiceflow.models import Role
from invoiceflow.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    Action,
    Module,
    Permission,
    PermissionEvaluator,
    owns_invoice,
)


def test_parse_known_and_unknown_keys():
    assert Permission.parse("invoices.edit") is Permission.INVOICES_EDIT
    assert Permission.INVOICES_VIEW_ALL.key == "invoices.view_all"
    with pytest.raises(ValueError):
        Permission.parse("invoices.approve")
    with pytest.raises(ValueError):
        Permission.parse("dashboard.delete")
    with pytest.raises(ValueError):
        Permission.parse("")


def test_role_defaults():
    worker = PermissionEvaluator(Role.ACCOUNTING_WORKER)
    assert worker.has_permission(Permission.INVOICES_EDIT)
    assert not worker.has_permission(Permission.INVOICES_CREATE)
    assert not worker.has_permission(Permission.INVOICES_DELETE)

    supplier = PermissionEvaluator("supplier")
    assert supplier.has_permission(Permission.INVOICES_CREATE)
    assert supplier.has_permission(Permission.INVOICES_VIEW_OWN)
    assert not supplier.has_permission(Permission.INVOICES_VIEW_ALL)
    assert not supplier.has_permission(Permission.INVOICES_EDIT)


def test_super_admin_short_circuits_even_with_overrides():
    evaluator = PermissionEvaluator(Role.SUPER_ADMIN, {"invoices": {"delete": False}})
    assert evaluator.has_permission(Permission.INVOICES_DELETE)
    assert evaluator.has_permission(Permission.USERS_MANAGE)


def test_overrides_replace_role_defaults_entirely():
    evaluator = PermissionEvaluator(Role.ACCOUNTING_ADMIN, {Module.INVOICES: {Action.VIEW_ALL: True}})
    assert evaluator.uses_overrides
    assert evaluator.has_permission(Permission.INVOICES_VIEW_ALL)
    # granted by the admin role, but not present in the overrides
    assert not evaluator.has_permission(Permission.INVOICES_EDIT)
    assert not evaluator.has_permission(Permission.DASHBOARD_VIEW)


def test_inactive_user_has_nothing():
    assert not PermissionEvaluator(Role.SUPER_ADMIN, is_active=False).has_permission(Permission.DASHBOARD_VIEW)
    assert not PermissionEvaluator(Role.ACCOUNTING_ADMIN, is_active=False).has_permission(Permission.INVOICES_EDIT)


def test_injected_role_table():
    table = {"accounting_worker": {"invoices": {"create": True}}}
    evaluator = PermissionEvaluator(Role.ACCOUNTING_WORKER, role_table=table)
    assert evaluator.has_permission(Permission.INVOICES_CREATE)
    assert not evaluator.has_permission(Permission.INVOICES_EDIT)
    # the shared default table is untouched
    assert DEFAULT_ROLE_PERMISSIONS[Role.ACCOUNTING_WORKER][Module.INVOICES][Action.CREATE] is False


def test_all_and_any_semantics():
    worker = PermissionEvaluator(Role.ACCOUNTING_WORKER)
    assert worker.has_all_permissions([Permission.INVOICES_EDIT, Permission.DOCUMENTS_CREATE])
    assert not worker.has_all_permissions([Permission.INVOICES_EDIT, Permission.INVOICES_CREATE])
    assert worker.has_any_permission([Permission.INVOICES_CREATE, Permission.INVOICES_EDIT])
    assert not worker.has_any_permission([Permission.INVOICES_CREATE, Permission.INVOICES_DELETE])
    assert worker.has_all_permissions([])
    assert not worker.has_any_permission([])


def test_string_permissions_are_rejected():
    with pytest.raises(TypeError):
        PermissionEvaluator(Role.ACCOUNTING_WORKER).has_permission("invoices.edit")


def test_ownership():
    invoice = SimpleNamespace(supplier_id=7, assigned_to_id=3)
    assert owns_invoice(SimpleNamespace(role=Role.SUPPLIER, supplier_id=7, id=99), invoice)
    assert not owns_invoice(SimpleNamespace(role=Role.SUPPLIER, supplier_id=8, id=3), invoice)
    assert owns_invoice(SimpleNamespace(role=Role.ACCOUNTING_WORKER, supplier_id=None, id=3), invoice)
    assert not owns_invoice(SimpleNamespace(role=Role.ACCOUNTING_WORKER, supplier_id=None, id=4), invoice)
    assert not owns_invoice(
        SimpleNamespace(role=Role.ACCOUNTING_WORKER, supplier_id=None, id=4),
        SimpleNamespace(supplier_id=7, assigned_to_id=None),
    )
