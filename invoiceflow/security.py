"""
invoiceflow/security.py

Route-level access control helpers.

Key rules:
- Clients are never trusted; every check runs server-side.
- Permissions come from invoiceflow.permissions (role defaults OR per-user overrides).
- The workflow core re-checks actor permissions itself. These decorators only give
  API callers an early, uniform 401/403 answer.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import current_app, jsonify
from flask_login import current_user

from .errors import Forbidden
from .permissions import Permission, PermissionEvaluator, evaluator_for, owns_invoice


def _forbidden(message: str = "You do not have permission to perform this action"):
    """Consistent JSON 403 body."""
    return jsonify(Forbidden(message).to_dict()), 403


def _unauthorized():
    return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401


def get_evaluator(user=None) -> PermissionEvaluator:
    """Evaluator for the given (default: current) user with the configured role table."""
    user = user if user is not None else current_user
    return evaluator_for(user, current_app.config.get("ROLE_PERMISSIONS"))


def can_view_invoice(user, invoice) -> bool:
    """
    Read access:
    - invoices.view_all sees everything
    - invoices.view_own sees owned invoices (supplier's own / assigned to the user)
    """
    evaluator = get_evaluator(user)
    if evaluator.has_permission(Permission.INVOICES_VIEW_ALL):
        return True
    return evaluator.has_permission(Permission.INVOICES_VIEW_OWN) and owns_invoice(user, invoice)


def permission_required(*permissions: Permission, any_of: bool = False) -> Callable[..., Any]:
    """
    Decorator factory: require permissions for the current user.

    AND semantics by default; any_of=True switches to OR.

    Usage:
        @permission_required(Permission.INVOICES_CREATE)
        def create(): ...
    """

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                return _unauthorized()

            evaluator = get_evaluator()
            allowed = (
                evaluator.has_any_permission(permissions)
                if any_of
                else evaluator.has_all_permissions(permissions)
            )
            if not allowed:
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
