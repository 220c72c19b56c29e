"""Provisioning service: companies and users.

Handles creation, soft deletion and guarded hard deletion:
- create_company / create_user: flush, caller commits
- discard_user / undiscard_user: soft delete, history stays intact
- delete_company / delete_user: refused while dependents exist, so activity
  history can never be orphaned or cascaded away
"""

import logging

from activity_app.extensions import db
from activity_app.middleware.tenant import without_tenant
from activity_app.models.activity import Activity
from activity_app.models.company import Company
from activity_app.models.user import User

logger = logging.getLogger(__name__)


def create_company(name, tracking_enabled=True, enabled_activity_types=None,
                   retention_days=None):
    """Create a company.

    Raises:
        ValueError: If the name is blank or already taken.
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Company name is required.")
    if Company.query.filter_by(name=name).first() is not None:
        raise ValueError(f"Company '{name}' already exists.")

    config = {}
    if enabled_activity_types is not None:
        config["enabled_activity_types"] = list(enabled_activity_types)
    if retention_days is not None:
        config["retention_days"] = retention_days

    company = Company(
        name=name,
        tracking_enabled=tracking_enabled,
        tracking_config=config,
    )
    db.session.add(company)
    db.session.flush()
    return company


def create_user(company, email, name, role="user"):
    """Create a user in ``company``.

    Raises:
        ValueError: If name is blank, email/role invalid, or the email is
            already used inside this company (discarded users included).
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required.")

    user = User(company_id=company.id, email=email, name=name, role=role)
    existing = (
        User.visible(include_discarded=True)
        .filter_by(company_id=company.id, email=user.email)
        .first()
    )
    if existing is not None:
        raise ValueError(f"Email {user.email} is already taken in {company.name}.")

    db.session.add(user)
    db.session.flush()
    return user


def discard_user(user):
    """Soft-delete a user. Returns False if already discarded."""
    changed = user.discard()
    db.session.flush()
    return changed


def undiscard_user(user):
    changed = user.undiscard()
    db.session.flush()
    return changed


def _dependents_error(kind):
    return f"Cannot delete record because dependent {kind} exist"


def delete_company(company):
    """Hard-delete a company with no users and no activities.

    Returns:
        tuple: (True, None) when deleted, (False, "reason") when refused.
    """
    with without_tenant():
        if User.query.filter_by(company_id=company.id).count():
            return False, _dependents_error("users")
        if Activity.scoped().filter(Activity.company_id == company.id).count():
            return False, _dependents_error("activities")

    db.session.delete(company)
    db.session.commit()
    logger.info(f"Deleted company {company.id}")
    return True, None


def delete_user(user):
    """Hard-delete a user with no activity history.

    Users with history should be discarded instead.

    Returns:
        tuple: (True, None) when deleted, (False, "reason") when refused.
    """
    with without_tenant():
        if Activity.scoped().filter(Activity.user_id == user.id).count():
            return False, _dependents_error("activities")

    db.session.delete(user)
    db.session.commit()
    logger.info(f"Deleted user {user.id}")
    return True, None
