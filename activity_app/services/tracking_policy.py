"""Tracking policy: which activity types a company records.

Pure function of Company state:
    tracking_enabled false        -> nothing is tracked
    no enabled_activity_types     -> every known type is tracked
    enabled_activity_types given  -> only those (compared normalized)
"""

from activity_app.models.activity import TYPES


def normalize_type(activity_type):
    """Lower-cased string form; accepts enum members as well as strings."""
    value = getattr(activity_type, "value", activity_type)
    return str(value).strip().lower()


def is_enabled(company, activity_type):
    """Return True if ``company`` records activities of ``activity_type``."""
    if not company.tracking_enabled:
        return False

    allowed = company.enabled_activity_types
    if allowed is None:
        allowed = TYPES

    return normalize_type(activity_type) in {normalize_type(t) for t in allowed}
