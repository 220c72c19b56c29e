"""Activity tracker: the ingestion pipeline.

track() runs each event through:
    1. user present?                  -> "user_required"
    2. known activity type?           -> "invalid_type"
    3. bind the user's company as the ambient tenant
    4. tracking policy allows it?     -> "tracking_disabled"
    5. build the payload (enrich request info, then sanitize)
    6. load check: busy companies go through the deferred queue ("queued"),
       everyone else is written synchronously ("tracked")

Results are plain dicts: {"success": bool, "reason": str, ["record": Activity]}.
Rejections are expected and only logged at DEBUG. Anything unexpected is
rolled back, logged as a structured JSON error, and returned as a failure;
it never propagates to the caller. track_or_fail() is the raising variant.

The load check (count of the company's activities created in the last hour,
then branch) is a plain read followed by a decision. Concurrent callers near
the threshold can see the same count and pick different paths; the
threshold is a soft throttle, not admission control.
"""

import json
import logging
import traceback
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from ipaddress import AddressValueError, IPv4Address
from typing import Optional

import bleach
from flask import current_app

from activity_app.extensions import db
from activity_app.middleware.tenant import with_tenant, without_tenant
from activity_app.models.activity import TYPES, Activity, sanitize_metadata
from activity_app.models.user import User
from activity_app.services.activity_queue import get_activity_queue
from activity_app.services.tracking_policy import is_enabled

logger = logging.getLogger(__name__)

LOAD_WINDOW = timedelta(hours=1)


class TrackingError(RuntimeError):
    """Raised by track_or_fail() with the failure reason as its message."""


@dataclass(frozen=True)
class RequestInfo:
    """The three request attributes the tracker copies into metadata."""

    remote_addr: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    @classmethod
    def from_request(cls, request):
        """Build from a Flask request."""
        return cls(
            remote_addr=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            request_id=request.headers.get("X-Request-ID") or str(uuid.uuid4()),
        )


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def _result(success, reason, record=None):
    result = {"success": success, "reason": reason}
    if record is not None:
        result["record"] = record
    return result


def _rejected(reason, user_id=None, activity_type=None):
    logger.debug(f"Activity not tracked ({reason}): user={user_id} type={activity_type}")
    return _result(False, reason)


def _type_name(activity_type):
    return str(getattr(activity_type, "value", activity_type))


def anonymize_ip(ip):
    """Zero the last octet of an IPv4 address. None for anything else."""
    if not ip:
        return None
    try:
        IPv4Address(ip)
    except (AddressValueError, ValueError):
        return None
    first, second, third, _ = ip.split(".")
    return f"{first}.{second}.{third}.0"


def enrich_metadata(metadata, request_info=None):
    """Merge client address, user agent and request id into metadata."""
    enriched = dict(metadata or {})
    if request_info is None:
        return enriched

    ip_address = anonymize_ip(request_info.remote_addr)
    if ip_address:
        enriched["ip_address"] = ip_address
    else:
        enriched.pop("ip_address", None)

    if request_info.user_agent:
        user_agent = bleach.clean(request_info.user_agent, tags=[], strip=True).strip()
        if user_agent:
            enriched["user_agent"] = user_agent

    if request_info.request_id:
        enriched["request_id"] = str(request_info.request_id)

    return enriched


def build_payload(user, activity_type, metadata=None, request_info=None):
    """The record to persist, shared by the sync and queued paths."""
    return {
        "user_id": user.id,
        "company_id": user.company_id,
        "activity_type": activity_type,
        # Enrich first so anything enrichment adds is sanitized too.
        "metadata": sanitize_metadata(enrich_metadata(metadata, request_info)),
        "occurred_at": datetime.now(timezone.utc),
    }


def should_process_async(company):
    """True if the company logged more than the threshold in the last hour."""
    threshold = current_app.config["ACTIVITY_ASYNC_THRESHOLD"]
    cutoff = datetime.now(timezone.utc) - LOAD_WINDOW
    with with_tenant(company):
        recent = Activity.scoped().filter(Activity.created_at > cutoff).count()
    return recent > threshold


def _log_failure(error, user_id, company_id, activity_type):
    logger.error(json.dumps({
        "error": "Activity tracking failed",
        "user_id": user_id,
        "company_id": company_id,
        "activity_type": activity_type,
        "error_class": type(error).__name__,
        "error_message": str(error),
        "backtrace": traceback.format_tb(error.__traceback__)[-5:],
    }, default=str))


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────

def track(user, activity_type, metadata=None, request_info=None):
    """Record one activity for ``user``. Never raises for a bad event.

    Args:
        user: The acting User (its company becomes the tenant).
        activity_type: One of Activity.TYPES (string or enum member).
        metadata: Optional JSON-compatible dict.
        request_info: Optional RequestInfo to enrich metadata with.

    Returns:
        dict with "success", "reason" and, for synchronous writes, "record".
    """
    if user is None:
        return _rejected("user_required")

    activity_type = _type_name(activity_type)
    user_id, company_id = user.id, user.company_id

    if activity_type not in TYPES:
        return _rejected("invalid_type", user_id, activity_type)

    try:
        with with_tenant(company_id):
            if not is_enabled(user.company, activity_type):
                return _rejected("tracking_disabled", user_id, activity_type)

            payload = build_payload(user, activity_type, metadata, request_info)

            if should_process_async(company_id):
                get_activity_queue().enqueue(payload)
                return _result(True, "queued")

            activity = Activity.create_from_payload(payload)
            db.session.commit()
            return _result(True, "tracked", activity)
    except Exception as e:
        db.session.rollback()
        _log_failure(e, user_id, company_id, activity_type)
        return _result(False, str(e) or type(e).__name__)


def track_or_fail(user, activity_type, metadata=None, request_info=None):
    """Like track(), but raises TrackingError instead of returning a failure."""
    result = track(user, activity_type, metadata=metadata, request_info=request_info)
    if not result["success"]:
        raise TrackingError(result["reason"])
    return result


def _track_entry(entry):
    if not isinstance(entry, Mapping):
        return _result(False, "invalid entry")

    user_id = entry.get("user_id")
    try:
        user = db.session.get(User, str(user_id)) if user_id is not None else None
    except Exception as e:
        db.session.rollback()
        _log_failure(e, user_id, None, entry.get("activity_type"))
        return _result(False, str(e) or type(e).__name__)

    if user is None:
        return _result(False, "user not found")

    return track(user, entry.get("activity_type"), metadata=entry.get("metadata"))


def bulk_track(entries):
    """Track many activities, possibly for many companies.

    Each entry is {"user_id", "activity_type", "metadata"} and succeeds or
    fails on its own; the batch always runs to the end.

    Returns:
        {"total", "succeeded", "failed", "results"} with one result per entry.
    """
    entries = list(entries or [])
    with without_tenant():
        results = [_track_entry(entry) for entry in entries]

    succeeded = sum(1 for r in results if r["success"])
    return {
        "total": len(entries),
        "succeeded": succeeded,
        "failed": len(entries) - succeeded,
        "results": results,
    }
