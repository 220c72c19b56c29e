"""Company model: the tenant.

Every user and activity belongs to exactly one company. tracking_config
is a JSON map with two optional keys:
    enabled_activity_types: allow-list of activity type names
    retention_days         how long the company wants history kept (hint)
"""

import uuid

from activity_app.extensions import db


class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), unique=True, nullable=False)
    tracking_enabled = db.Column(
        db.Boolean, default=True, nullable=False, index=True
    )
    tracking_config = db.Column(db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    # passive_deletes="all": never null out children on delete; the
    # provisioning service refuses the delete while dependents exist.
    users = db.relationship(
        "User", back_populates="company", lazy="dynamic", passive_deletes="all"
    )
    activities = db.relationship(
        "Activity",
        back_populates="company",
        lazy="dynamic",
        passive_deletes="all",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("tracking_enabled", True)
        kwargs.setdefault("tracking_config", {})
        super().__init__(**kwargs)

    @classmethod
    def with_tracking_enabled(cls):
        return cls.query.filter(cls.tracking_enabled.is_(True))

    @property
    def enabled_activity_types(self):
        """The configured allow-list, or None when every type is allowed."""
        return (self.tracking_config or {}).get("enabled_activity_types")

    @property
    def retention_days(self):
        return (self.tracking_config or {}).get("retention_days")

    def tracking_enabled_for(self, activity_type):
        from activity_app.services.tracking_policy import is_enabled

        return is_enabled(self, activity_type)

    def __repr__(self):
        return f"<Company {self.name}>"
