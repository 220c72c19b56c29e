"""Activity model: one recorded user action.

Write-time rules (run from a before_flush hook, so every ORM write path is
covered, including metadata-only updates):
    - occurred_at defaults to now and is never touched once set
    - metadata keys are stringified and sensitive keys are stripped
    - activity_type must be one of Activity.TYPES
    - the activity's company must be its user's company

activity_type is also guarded by the valid_activity_type CHECK constraint,
so Core-level inserts that skip the ORM are still rejected by the database.

Writes need an ambient tenant (or without_tenant()); a flush with neither
raises NoTenantSet.

Every ORM SELECT that touches the activities table is checked by a
do_orm_execute hook: with a tenant set it gets a company_id criterion
added, with no tenant it raises NoTenantSet, and inside without_tenant()
it runs unfiltered. Activity.scoped() and Activity.tenant_filter() add the
same criterion explicitly for column-level and aggregate queries.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import event, true
from sqlalchemy.orm import Session, with_loader_criteria
from sqlalchemy.sql import visitors
from sqlalchemy.sql.expression import TableClause

from activity_app.extensions import db
from activity_app.middleware.tenant import current_tenant_id, require_tenant

TYPES = [
    "login",
    "logout",
    "give_recognition",
    "receive_recognition",
    "profile_update",
    "admin_action",
]

SENSITIVE_KEYS = frozenset(
    ["password", "token", "secret", "api_key", "credit_card", "ssn"]
)

# Open-ended ranges reach this far in either direction.
OPEN_RANGE = timedelta(days=365 * 100)


class ActivityValidationError(ValueError):
    """An activity failed application-level validation."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def _stringify_keys(value):
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value


def sanitize_metadata(metadata):
    """Return a copy of metadata with string keys and no sensitive keys."""
    if not metadata:
        return {}
    cleaned = _stringify_keys(dict(metadata))
    return {k: v for k, v in cleaned.items() if k not in SENSITIVE_KEYS}


def as_utc(value):
    """SQLite hands back naive datetimes; everything we store is UTC.

    Aware values are converted, not relabelled, since the SQLite bind drops
    the offset.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def _parse_bound(value, end_of_day):
    """Turn a range bound into an aware datetime.

    Date-only input covers the whole calendar day; datetimes are exact.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.strip()
        if len(value) == 10:
            value = date.fromisoformat(value)
        else:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(
            value, time.max if end_of_day else time.min, tzinfo=timezone.utc
        )
    raise ValueError(f"Unsupported date value: {value!r}")


class Activity(db.Model):
    __tablename__ = "activities"

    TYPES = TYPES

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    company_id = db.Column(
        db.String(36),
        db.ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    activity_type = db.Column(db.String(50), nullable=False, index=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict, nullable=False
    )  # named metadata_ to avoid clashing with SQLAlchemy's Model.metadata
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.CheckConstraint(
            "activity_type IN ({})".format(", ".join(f"'{t}'" for t in TYPES)),
            name="valid_activity_type",
        ),
        db.Index("ix_activities_company_occurred", "company_id", "occurred_at"),
        db.Index("ix_activities_user_type", "user_id", "activity_type"),
        db.Index(
            "ix_activities_company_type_occurred",
            "company_id",
            "activity_type",
            "occurred_at",
        ),
    )

    # --- Relationships ---
    # Plain relationship, so discarded users still resolve.
    user = db.relationship("User", back_populates="activities")
    company = db.relationship("Company", back_populates="activities")

    # --- Tenant-scoped access ---

    @classmethod
    def tenant_filter(cls):
        """Criterion restricting rows to the ambient tenant."""
        tenant_id = require_tenant()
        if tenant_id is None:
            return true()
        return cls.company_id == tenant_id

    @classmethod
    def scoped(cls):
        return cls.query.filter(cls.tenant_filter())

    # --- Filters ---

    @staticmethod
    def date_range(start=None, end=None):
        """(start, end) as aware datetimes; missing bounds are open-ended."""
        now = datetime.now(timezone.utc)
        start_at = _parse_bound(start, end_of_day=False) or now - OPEN_RANGE
        end_at = _parse_bound(end, end_of_day=True) or now + OPEN_RANGE
        return start_at, end_at

    @classmethod
    def between(cls, start=None, end=None):
        start_at, end_at = cls.date_range(start, end)
        return cls.occurred_at.between(start_at, end_at)

    @classmethod
    def recent(cls, query=None):
        query = query if query is not None else cls.scoped()
        return query.order_by(cls.occurred_at.desc())

    @classmethod
    def filter_by_params(cls, params):
        """Filtered, most-recent-first listing for the ambient tenant.

        Recognised keys: user_id, activity_type, start_date, end_date.
        """
        params = params or {}
        query = cls.scoped()
        if params.get("user_id"):
            query = query.filter(cls.user_id == params["user_id"])
        if params.get("activity_type"):
            query = query.filter(cls.activity_type == params["activity_type"])
        query = query.filter(
            cls.between(params.get("start_date"), params.get("end_date"))
        )
        return cls.recent(query)

    # --- Writes ---

    @classmethod
    def create_from_payload(cls, payload):
        """Add an activity built from a tracking payload and flush it.

        Shared by the synchronous and queued write paths. Does not commit.
        """
        occurred_at = payload.get("occurred_at")
        if isinstance(occurred_at, str):
            occurred_at = datetime.fromisoformat(occurred_at)
        activity = cls(
            user_id=payload["user_id"],
            company_id=payload["company_id"],
            activity_type=payload["activity_type"],
            metadata_=payload.get("metadata") or {},
            occurred_at=occurred_at,
        )
        db.session.add(activity)
        db.session.flush()
        return activity

    def prepare_for_write(self, session):
        """Fill defaults, sanitize, and validate. Raises ActivityValidationError."""
        from activity_app.models.user import User

        require_tenant()

        if self.occurred_at is None:
            self.occurred_at = datetime.now(timezone.utc)

        cleaned = sanitize_metadata(self.metadata_)
        if cleaned != self.metadata_:
            self.metadata_ = cleaned

        if self.company_id is None and self.company is None:
            self.company_id = current_tenant_id()

        errors = []
        if self.activity_type not in TYPES:
            errors.append(f"activity_type '{self.activity_type}' is not valid")

        user = self.user
        if user is None and self.user_id is not None:
            user = session.get(User, self.user_id)
        company_id = self.company_id or (self.company.id if self.company else None)

        if user is None:
            errors.append("user is required")
        elif company_id is None:
            errors.append("company is required")
        elif user.company_id != company_id:
            errors.append("user must belong to the same company")

        tenant_id = current_tenant_id()
        if tenant_id is not None and company_id is not None and company_id != tenant_id:
            errors.append("activity belongs to a different tenant")

        if errors:
            raise ActivityValidationError(errors)

    # --- Serialization ---

    def to_dict(self):
        """Persisted shape of an activity record."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "activity_type": self.activity_type,
            "metadata": dict(self.metadata_ or {}),
            "occurred_at": isoformat(self.occurred_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Activity {self.activity_type} user={self.user_id}>"


@event.listens_for(Session, "before_flush")
def _prepare_activities(session, flush_context, instances):
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Activity):
            obj.prepare_for_write(session)


def _touches_activities(statement):
    for element in visitors.iterate(statement):
        if isinstance(element, TableClause) and element.name == Activity.__tablename__:
            return True
    return False


@event.listens_for(Session, "do_orm_execute")
def _scope_activity_reads(orm_execute_state):
    # Refreshing attributes of an already-loaded row is not a new read.
    if not orm_execute_state.is_select or orm_execute_state.is_column_load:
        return
    if not _touches_activities(orm_execute_state.statement):
        return

    tenant_id = require_tenant()
    if tenant_id is None or orm_execute_state.is_relationship_load:
        return
    orm_execute_state.statement = orm_execute_state.statement.options(
        with_loader_criteria(
            Activity, Activity.company_id == tenant_id, include_aliases=True
        )
    )
