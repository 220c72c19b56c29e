"""Activity summary: counts over a trailing window, grouped by a dimension.

    period:   hour | day | week | month   (unknown -> day)
    group_by: activity_type -> {"login": 3, ...}
              user          -> {"alice@example.com": 2, ...}
              hour          -> {9: 4, 14: 1}   (hour of day, int keys)
              anything else -> {"total": n}
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, extract, func

from activity_app.extensions import db
from activity_app.middleware.tenant import with_tenant
from activity_app.models.activity import Activity
from activity_app.models.user import User

PERIODS = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}


def window_for(period, now=None):
    """Return (start, end) for a period keyword ending at ``now``."""
    now = now or datetime.now(timezone.utc)
    return now - PERIODS.get(period, PERIODS["day"]), now


def _count_by_activity_type(window):
    rows = (
        db.session.query(Activity.activity_type, func.count(Activity.id))
        .filter(window)
        .group_by(Activity.activity_type)
        .all()
    )
    return {activity_type: count for activity_type, count in rows}


def _count_by_user(window):
    # Grouped by email; discarded users keep their history here.
    rows = (
        db.session.query(User.email, func.count(Activity.id))
        .select_from(Activity)
        .join(User, Activity.user_id == User.id)
        .filter(window)
        .group_by(User.email)
        .all()
    )
    return {email: count for email, count in rows}


def _count_by_hour(window):
    hour = extract("hour", Activity.occurred_at)
    rows = (
        db.session.query(hour, func.count(Activity.id))
        .filter(window)
        .group_by(hour)
        .all()
    )
    return {int(h): count for h, count in rows}


def _calculate(start, end, group_by):
    window = and_(Activity.tenant_filter(), Activity.between(start, end))

    if group_by == "activity_type":
        return _count_by_activity_type(window)
    if group_by == "user":
        return _count_by_user(window)
    if group_by == "hour":
        return _count_by_hour(window)
    return {"total": Activity.query.filter(window).count()}


def generate_summary(company, period="day", group_by="activity_type"):
    """Summarize a company's activities over the trailing ``period``.

    Returns:
        dict with period, group_by, start_date, end_date, data, generated_at.
    """
    start, end = window_for(period)
    with with_tenant(company):
        data = _calculate(start, end, group_by)

    return {
        "period": period,
        "group_by": group_by,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "data": data,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
