"""Activity stats: dashboard numbers for one company.

generate_stats():    totals, today's numbers, type breakdown, latest activity
generate_overview(): weekly user stats, most active users, 7-day trends by
                     day and type, and an hour-of-day histogram

"Today" is the current UTC calendar day up to now; future-dated activities
are left out of every windowed count.
"""

from datetime import datetime, time, timedelta, timezone

from flask import current_app
from sqlalchemy import distinct, extract, func
from sqlalchemy.orm import joinedload

from activity_app.extensions import db
from activity_app.middleware.tenant import require_tenant, with_tenant
from activity_app.models.activity import Activity, isoformat
from activity_app.models.user import User

TREND_WINDOW = timedelta(days=7)
MOST_ACTIVE_LIMIT = 5

# Metadata keys hidden from admin listings.
HIDDEN_METADATA_KEYS = ("ip_address", "session_id")


# ──────────────────────────────────────────────
# Serialization
# ──────────────────────────────────────────────

def serialize_user(user):
    if user is None:
        return {"id": None, "name": "[Deleted User]", "email": "[Deleted]"}
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "status": "deleted" if user.is_discarded else "active",
    }


def serialize_activity(activity):
    metadata = {
        k: v for k, v in (activity.metadata_ or {}).items()
        if k not in HIDDEN_METADATA_KEYS
    }
    return {
        "id": activity.id,
        "user": serialize_user(activity.user),
        "activity_type": activity.activity_type,
        "metadata": metadata,
        "occurred_at": isoformat(activity.occurred_at),
    }


# ──────────────────────────────────────────────
# Building blocks (all run inside with_tenant)
# ──────────────────────────────────────────────

def _start_of_day(now):
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


def _count_between(since, until):
    return Activity.scoped().filter(Activity.occurred_at.between(since, until)).count()


def _distinct_users_between(since, until):
    return (
        db.session.query(func.count(distinct(Activity.user_id)))
        .filter(Activity.tenant_filter(), Activity.occurred_at.between(since, until))
        .scalar()
    ) or 0


def activity_breakdown():
    rows = (
        db.session.query(Activity.activity_type, func.count(Activity.id))
        .filter(Activity.tenant_filter())
        .group_by(Activity.activity_type)
        .all()
    )
    return {activity_type: count for activity_type, count in rows}


def recent_activities(limit):
    return (
        Activity.recent()
        .options(joinedload(Activity.user))
        .limit(limit)
        .all()
    )


def most_active_users(limit=MOST_ACTIVE_LIMIT):
    """Top users by activity count, ranked in the database.

    Ties are ordered by user id so the ranking is stable.
    """
    activity_count = func.count(Activity.id).label("activity_count")
    rows = (
        db.session.query(Activity.user_id, activity_count)
        .filter(Activity.tenant_filter())
        .group_by(Activity.user_id)
        .order_by(activity_count.desc(), Activity.user_id.asc())
        .limit(limit)
        .all()
    )
    users = {
        u.id: u
        for u in User.query.filter(User.id.in_([user_id for user_id, _ in rows]))
    }
    return [
        {
            "id": user_id,
            "name": users[user_id].name if user_id in users else None,
            "email": users[user_id].email if user_id in users else None,
            "activity_count": count,
        }
        for user_id, count in rows
    ]


def activity_trends(since, until):
    """{"YYYY-MM-DD": {activity_type: count}} for activities in [since, until]."""
    day = func.date(Activity.occurred_at)
    rows = (
        db.session.query(day, Activity.activity_type, func.count(Activity.id))
        .filter(Activity.tenant_filter(), Activity.occurred_at.between(since, until))
        .group_by(day, Activity.activity_type)
        .all()
    )
    trends = {}
    for day_value, activity_type, count in rows:
        key = day_value if isinstance(day_value, str) else day_value.isoformat()
        trends.setdefault(key, {})[activity_type] = count
    return dict(sorted(trends.items()))


def peak_times(since, until):
    """[[hour, count], ...] sorted by hour ascending."""
    hour = extract("hour", Activity.occurred_at)
    rows = (
        db.session.query(hour, func.count(Activity.id))
        .filter(Activity.tenant_filter(), Activity.occurred_at.between(since, until))
        .group_by(hour)
        .all()
    )
    return sorted([int(h), count] for h, count in rows)


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────

def generate_stats(company):
    """Fixed stats bundle for a company's activity dashboard."""
    now = datetime.now(timezone.utc)
    today = _start_of_day(now)
    limit = current_app.config.get("ACTIVITY_RECENT_LIMIT", 10)

    with with_tenant(company):
        return {
            "total_activities": Activity.scoped().count(),
            "activities_today": _count_between(today, now),
            "active_users_today": _distinct_users_between(today, now),
            "activity_breakdown": activity_breakdown(),
            "recent_activities": [
                serialize_activity(a) for a in recent_activities(limit)
            ],
        }


def generate_overview(company):
    """Richer stats: weekly activity, most active users, trends, peak hours."""
    now = datetime.now(timezone.utc)
    today = _start_of_day(now)
    week_ago = now - TREND_WINDOW

    with with_tenant(company):
        company_id = require_tenant()
        return {
            "overview": {
                "total_activities": Activity.scoped().count(),
                "activities_today": _count_between(today, now),
                "active_users_today": _distinct_users_between(today, now),
                "activities_this_week": _count_between(week_ago, now),
            },
            "user_stats": {
                "total_users": User.visible()
                .filter(User.company_id == company_id)
                .count(),
                "active_users_this_week": _distinct_users_between(week_ago, now),
                "most_active_users": most_active_users(),
            },
            "activity_trends": activity_trends(week_ago, now),
            "peak_times": peak_times(week_ago, now),
        }
