"""User model.

A user belongs to one company for its whole lifetime. Users are never
hard-deleted while they have activity history; discard() soft-deletes by
stamping discarded_at.

There is no implicit default scope: callers choose with
User.visible(include_discarded=...). The Activity.user relationship always
resolves, discarded or not.
"""

import re
import uuid
from datetime import datetime, timezone

from flask_login import UserMixin
from sqlalchemy.orm import validates

from activity_app.extensions import db

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["user", "company_admin", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id = db.Column(
        db.String(36),
        db.ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), default="user", nullable=False)  # user | company_admin | admin
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        db.Index("ix_users_company_role", "company_id", "role"),
    )

    # --- Relationships ---
    company = db.relationship("Company", back_populates="users")
    activities = db.relationship(
        "Activity", back_populates="user", lazy="dynamic", passive_deletes="all"
    )

    @validates("company_id")
    def _validate_company_id(self, key, value):
        if self.company_id is not None and value != self.company_id:
            raise ValueError("A user's company cannot be changed.")
        return value

    @validates("company")
    def _validate_company(self, key, company):
        if (
            self.company_id is not None
            and company is not None
            and company.id != self.company_id
        ):
            raise ValueError("A user's company cannot be changed.")
        return company

    @validates("email")
    def _validate_email(self, key, value):
        value = (value or "").strip().lower()
        if not EMAIL_RE.match(value):
            raise ValueError(f"Invalid email address '{value}'.")
        return value

    @validates("role")
    def _validate_role(self, key, value):
        if value not in self.ROLES:
            raise ValueError(
                f"Invalid role '{value}'. Must be one of: {', '.join(self.ROLES)}"
            )
        return value

    # --- Soft delete ---

    @classmethod
    def visible(cls, include_discarded=False):
        """Query users, hiding discarded ones unless asked not to."""
        query = cls.query
        if not include_discarded:
            query = query.filter(cls.discarded_at.is_(None))
        return query

    @property
    def is_discarded(self):
        return self.discarded_at is not None

    def discard(self):
        """Soft-delete. Returns False if already discarded."""
        if self.is_discarded:
            return False
        self.discarded_at = datetime.now(timezone.utc)
        return True

    def undiscard(self):
        if not self.is_discarded:
            return False
        self.discarded_at = None
        return True

    # --- Roles ---

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_company_admin(self):
        return self.role == "company_admin"

    @property
    def can_view_activities(self):
        return self.is_admin or self.is_company_admin

    @property
    def is_active(self):
        """Flask-Login hook: discarded users cannot authenticate."""
        return not self.is_discarded

    def __repr__(self):
        return f"<User {self.email}>"
