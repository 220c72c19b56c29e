"""Sessions blueprint: /api/v1/login, /api/v1/logout

Development-grade login: looks the user up by email and issues a demo
bearer token. No password check. Emails are unique per company, so an email
shared across companies needs a "company" (name or id) in the body. Both endpoints record the matching
activity through the tracker, which binds the tenant itself.

Route Map:
  POST   /api/v1/login    Issue a demo token, track "login"
  DELETE /api/v1/logout   Track "logout"
"""

import logging
import time

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import or_

from activity_app.decorators import token_required
from activity_app.extensions import limiter
from activity_app.models.company import Company
from activity_app.models.user import User
from activity_app.services.activity_tracker import RequestInfo, track

logger = logging.getLogger(__name__)

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/v1")


def generate_token_for(user):
    """Demo token; not a real credential."""
    return f"demo-token-{user.id}-{int(time.time())}"


def _find_login_user(email, company):
    """The visible user with this email, narrowed to ``company`` if given.

    Emails are unique per company only. Returns (user, error_response).
    """
    query = User.visible().filter(User.email == email)
    if company:
        query = query.join(Company, User.company_id == Company.id).filter(
            or_(Company.id == company, Company.name == company)
        )
    matches = query.limit(2).all()
    if not matches:
        return None, (jsonify({"error": "Invalid credentials"}), 401)
    if len(matches) > 1:
        return None, (
            jsonify({"error": "Email is used by several companies; specify 'company'"}),
            400,
        )
    return matches[0], None


@sessions_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    company = (data.get("company") or "").strip()
    if not email:
        return jsonify({"error": "Invalid credentials"}), 401

    user, error = _find_login_user(email, company)
    if error is not None:
        return error

    result = track(
        user,
        "login",
        metadata={"login_method": "password"},
        request_info=RequestInfo.from_request(request),
    )
    if not result["success"]:
        logger.info(f"Login not tracked for user {user.id}: {result['reason']}")

    return jsonify({
        "message": "Login successful",
        "token": generate_token_for(user),
        "user": {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
        },
    }), 200


@sessions_bp.route("/logout", methods=["DELETE"])
@token_required
def logout():
    result = track(
        current_user._get_current_object(),
        "logout",
        request_info=RequestInfo.from_request(request),
    )
    if not result["success"]:
        logger.info(f"Logout not tracked for user {current_user.id}: {result['reason']}")

    return jsonify({"message": "Logout successful"}), 200
