"""Tenant context: the ambient company every activity query is scoped to.

State lives on ``flask.g``, so it belongs to the active application context:
each request and each queue worker thread gets its own, and it disappears
with the context.

Three states:
    tenant set   g.tenant_id holds a company id; reads are filtered to it
    unscoped     entered via without_tenant(); reads span all companies
    none         neither; tenant-scoped reads raise NoTenantSet

with_tenant() / without_tenant() save the previous state and restore it on
exit, including when the body raises.
"""

from contextlib import contextmanager

from flask import g, jsonify
from flask_login import current_user


class NoTenantSet(RuntimeError):
    """A tenant-scoped query ran with no ambient company."""

    def __init__(self, message="No tenant set for a tenant-scoped query."):
        super().__init__(message)


def _snapshot():
    return g.get("tenant_id"), g.get("tenant_unscoped", False)


def _restore(state):
    g.tenant_id, g.tenant_unscoped = state


def _company_id(company):
    """Accept a Company row or a bare company id."""
    return getattr(company, "id", company)


@contextmanager
def with_tenant(company):
    """Bind ``company`` as the ambient tenant for the body of the block."""
    company_id = _company_id(company)
    if company_id is None:
        raise ValueError("with_tenant() requires a company.")

    previous = _snapshot()
    g.tenant_id = company_id
    g.tenant_unscoped = False
    try:
        yield company
    finally:
        _restore(previous)


@contextmanager
def without_tenant():
    """Clear the ambient tenant and allow cross-company reads in the block."""
    previous = _snapshot()
    g.tenant_id = None
    g.tenant_unscoped = True
    try:
        yield
    finally:
        _restore(previous)


def current_tenant_id():
    """Return the ambient company id, or None."""
    return g.get("tenant_id")


def tenant_is_unscoped():
    """True inside without_tenant() (and no nested with_tenant())."""
    return g.get("tenant_id") is None and g.get("tenant_unscoped", False)


def require_tenant():
    """Return the ambient company id or raise NoTenantSet.

    Returns None inside without_tenant(), meaning "do not filter".
    """
    tenant_id = g.get("tenant_id")
    if tenant_id is not None:
        return tenant_id
    if g.get("tenant_unscoped", False):
        return None
    raise NoTenantSet()


def resolve_tenant():
    """Before-request hook: bind the authenticated user's company.

    Unauthenticated requests get no tenant; anything tenant-scoped they
    touch raises NoTenantSet.
    """
    g.tenant_id = None
    g.tenant_unscoped = False
    if current_user.is_authenticated and current_user.company_id:
        g.tenant_id = current_user.company_id


def clear_tenant(exc=None):
    """Teardown hook: the request's tenant never outlives the request."""
    g.pop("tenant_id", None)
    g.pop("tenant_unscoped", None)


def handle_no_tenant(error):
    return jsonify({"error": "Company not found"}), 404


def init_tenant_middleware(app):
    """Register the tenant resolver, its teardown and the NoTenantSet handler."""
    app.before_request(resolve_tenant)
    app.teardown_request(clear_tenant)
    app.register_error_handler(NoTenantSet, handle_no_tenant)
