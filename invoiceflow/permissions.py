"""
invoiceflow/permissions.py

Permission evaluation for the invoice workflow.

Rules:
- Grants are a mapping module -> action -> bool.
- A user with individual overrides is evaluated against the overrides ONLY.
  Role defaults are not merged in once any override exists.
- The only implicit bypass is the explicit super-admin short-circuit.
- Inactive users hold no permissions.
- Permissions are a closed set of (module, action) pairs. Unknown strings are rejected
  when parsed, never silently evaluated to False.

The default role table is plain data. The application injects it (or a substitute) through
the ROLE_PERMISSIONS config value; nothing here reads or mutates global state.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Optional

from .models import Role


class Module(str, Enum):
    DASHBOARD = "dashboard"
    INVOICES = "invoices"
    DOCUMENTS = "documents"
    SUPPLIERS = "suppliers"
    USERS = "users"


class Action(str, Enum):
    VIEW = "view"
    VIEW_ALL = "view_all"
    VIEW_OWN = "view_own"
    CREATE = "create"
    EDIT = "edit"
    MANAGE = "manage"
    DELETE = "delete"


class Permission(Enum):
    """Closed set of valid (module, action) pairs."""

    DASHBOARD_VIEW = (Module.DASHBOARD, Action.VIEW)

    INVOICES_VIEW_ALL = (Module.INVOICES, Action.VIEW_ALL)
    INVOICES_VIEW_OWN = (Module.INVOICES, Action.VIEW_OWN)
    INVOICES_CREATE = (Module.INVOICES, Action.CREATE)
    INVOICES_EDIT = (Module.INVOICES, Action.EDIT)
    INVOICES_DELETE = (Module.INVOICES, Action.DELETE)

    DOCUMENTS_VIEW_ALL = (Module.DOCUMENTS, Action.VIEW_ALL)
    DOCUMENTS_VIEW_OWN = (Module.DOCUMENTS, Action.VIEW_OWN)
    DOCUMENTS_CREATE = (Module.DOCUMENTS, Action.CREATE)
    DOCUMENTS_EDIT = (Module.DOCUMENTS, Action.EDIT)
    DOCUMENTS_DELETE = (Module.DOCUMENTS, Action.DELETE)

    SUPPLIERS_VIEW_ALL = (Module.SUPPLIERS, Action.VIEW_ALL)
    SUPPLIERS_VIEW_OWN = (Module.SUPPLIERS, Action.VIEW_OWN)
    SUPPLIERS_CREATE = (Module.SUPPLIERS, Action.CREATE)
    SUPPLIERS_EDIT = (Module.SUPPLIERS, Action.EDIT)
    SUPPLIERS_MANAGE = (Module.SUPPLIERS, Action.MANAGE)
    SUPPLIERS_DELETE = (Module.SUPPLIERS, Action.DELETE)

    USERS_VIEW_ALL = (Module.USERS, Action.VIEW_ALL)
    USERS_VIEW_OWN = (Module.USERS, Action.VIEW_OWN)
    USERS_CREATE = (Module.USERS, Action.CREATE)
    USERS_EDIT = (Module.USERS, Action.EDIT)
    USERS_MANAGE = (Module.USERS, Action.MANAGE)
    USERS_DELETE = (Module.USERS, Action.DELETE)

    @property
    def module(self) -> Module:
        return self.value[0]

    @property
    def action(self) -> Action:
        return self.value[1]

    @property
    def key(self) -> str:
        return f"{self.module.value}.{self.action.value}"

    @classmethod
    def parse(cls, key: str) -> "Permission":
        """Parse 'module.action'. Raises ValueError for pairs outside the closed set."""
        module_raw, _, action_raw = (key or "").strip().partition(".")
        try:
            pair = (Module(module_raw), Action(action_raw))
        except ValueError:
            raise ValueError(f"Unknown permission '{key}'") from None
        for member in cls:
            if member.value == pair:
                return member
        raise ValueError(f"Unknown permission '{key}'")


GrantTable = Mapping[str, Mapping[str, bool]]


def _all(actions: Iterable[Action], allowed: Iterable[Action] = ()) -> dict[Action, bool]:
    allowed = set(allowed)
    return {action: action in allowed for action in actions}


_INVOICE_ACTIONS = (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT, Action.DELETE)
_DIRECTORY_ACTIONS = (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT, Action.MANAGE, Action.DELETE)

DEFAULT_ROLE_PERMISSIONS = {
    Role.SUPER_ADMIN: {
        Module.DASHBOARD: {Action.VIEW: True},
        Module.INVOICES: _all(_INVOICE_ACTIONS, _INVOICE_ACTIONS),
        Module.DOCUMENTS: _all(_INVOICE_ACTIONS, _INVOICE_ACTIONS),
        Module.SUPPLIERS: _all(_DIRECTORY_ACTIONS, _DIRECTORY_ACTIONS),
        Module.USERS: _all(_DIRECTORY_ACTIONS, _DIRECTORY_ACTIONS),
    },
    Role.ACCOUNTING_ADMIN: {
        Module.DASHBOARD: {Action.VIEW: True},
        Module.INVOICES: _all(_INVOICE_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT)),
        Module.DOCUMENTS: _all(_INVOICE_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT)),
        Module.SUPPLIERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT)),
        Module.USERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN)),
    },
    Role.ACCOUNTING_WORKER: {
        Module.DASHBOARD: {Action.VIEW: True},
        Module.INVOICES: _all(_INVOICE_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN, Action.EDIT)),
        Module.DOCUMENTS: _all(_INVOICE_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN, Action.CREATE, Action.EDIT)),
        Module.SUPPLIERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_ALL, Action.VIEW_OWN)),
        Module.USERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_OWN,)),
    },
    Role.SUPPLIER: {
        Module.DASHBOARD: {Action.VIEW: True},
        Module.INVOICES: _all(_INVOICE_ACTIONS, (Action.VIEW_OWN, Action.CREATE)),
        Module.DOCUMENTS: _all(_INVOICE_ACTIONS, (Action.VIEW_OWN, Action.CREATE)),
        Module.SUPPLIERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_OWN, Action.EDIT)),
        Module.USERS: _all(_DIRECTORY_ACTIONS, (Action.VIEW_OWN,)),
    },
}


def _key(value) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def normalize_grants(grants: Optional[Mapping]) -> dict[str, dict[str, bool]]:
    """Normalize a module -> action -> bool mapping to plain string keys."""
    normalized: dict[str, dict[str, bool]] = {}
    for module, actions in (grants or {}).items():
        normalized[_key(module)] = {_key(action): bool(flag) for action, flag in (actions or {}).items()}
    return normalized


def normalize_role_table(table: Optional[Mapping]) -> dict[str, dict[str, dict[str, bool]]]:
    return {_key(role): normalize_grants(grants) for role, grants in (table or {}).items()}


class PermissionEvaluator:
    """
    Answers "is action A allowed on module M" for one user.

    role_table is the injected role -> module -> action table (DEFAULT_ROLE_PERMISSIONS
    when None); overrides are the user's individual grants.
    """

    def __init__(
        self,
        role: Role | str,
        overrides: Optional[Mapping] = None,
        *,
        role_table: Optional[Mapping] = None,
        is_active: bool = True,
    ) -> None:
        self.role = Role(_key(role))
        self.is_active = bool(is_active)

        normalized_overrides = normalize_grants(overrides)
        if normalized_overrides:
            self._grants = normalized_overrides
            self.uses_overrides = True
        else:
            table = normalize_role_table(DEFAULT_ROLE_PERMISSIONS if role_table is None else role_table)
            self._grants = table.get(self.role.value, {})
            self.uses_overrides = False

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def has_permission(self, permission: Permission) -> bool:
        if not self.is_active:
            return False
        if self.is_super_admin:
            return True
        if not isinstance(permission, Permission):
            raise TypeError(f"Expected a Permission member, got {permission!r}")
        return bool(self._grants.get(permission.module.value, {}).get(permission.action.value, False))

    def has_all_permissions(self, permissions: Iterable[Permission]) -> bool:
        """AND semantics (an empty list is trivially satisfied)."""
        return all(self.has_permission(p) for p in permissions)

    def has_any_permission(self, permissions: Iterable[Permission]) -> bool:
        """OR semantics (an empty list is never satisfied)."""
        return any(self.has_permission(p) for p in permissions)


def evaluator_for(user, role_table: Optional[Mapping] = None) -> PermissionEvaluator:
    """Build the evaluator for a User row."""
    return PermissionEvaluator(
        user.role,
        user.permission_overrides(),
        role_table=role_table,
        is_active=user.is_active,
    )


def owns_invoice(user, invoice) -> bool:
    """
    Ownership contract:
    - supplier users own the invoices of their supplier
    - accounting users own the invoices currently assigned to them
    """
    if user.role == Role.SUPPLIER:
        return user.supplier_id is not None and invoice.supplier_id == user.supplier_id
    return invoice.assigned_to_id is not None and invoice.assigned_to_id == user.id
