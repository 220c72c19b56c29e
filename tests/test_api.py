"""HTTP API tests.

Tests:
- Login / logout issue tokens and record activities
- Admin endpoints enforce 401 / 403 and tenant scoping
- Listing filters, limits and bad input
- Summary, stats, overview and bulk endpoints
- Security headers and JSON error pages
"""

from datetime import datetime, timedelta, timezone

from activity_app.extensions import db
from activity_app.middleware.tenant import without_tenant
from activity_app.models.activity import Activity
from activity_app.services.provisioning_service import create_user


def _activities(**filters):
    with without_tenant():
        return Activity.scoped().filter_by(**filters).all()


class TestSessions:

    def test_login_returns_token_and_tracks(self, client, seed_data):
        bob = seed_data["bob"]
        response = client.post("/api/v1/login", json={"email": "Bob@Acme.test"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["token"].startswith(f"demo-token-{bob.id}-")
        assert data["user"]["email"] == "bob@acme.test"

        logins = _activities(user_id=bob.id, activity_type="login")
        assert len(logins) == 1
        metadata = logins[0].metadata_
        assert metadata["login_method"] == "password"
        assert metadata["ip_address"] == "127.0.0.0"
        assert metadata["request_id"]

    def test_login_forwards_request_id(self, client, seed_data):
        client.post(
            "/api/v1/login",
            json={"email": "bob@acme.test"},
            headers={"X-Request-ID": "trace-42"},
        )
        login = _activities(activity_type="login")[0]
        assert login.metadata_["request_id"] == "trace-42"

    def test_login_unknown_email(self, client, seed_data):
        response = client.post("/api/v1/login", json={"email": "nobody@acme.test"})
        assert response.status_code == 401
        assert _activities() == []

    def test_login_shared_email_needs_company(self, client, seed_data):
        twin = create_user(seed_data["globex"], "bob@acme.test", "Other Bob")
        db.session.commit()

        response = client.post("/api/v1/login", json={"email": "bob@acme.test"})
        assert response.status_code == 400
        assert "company" in response.get_json()["error"]
        assert _activities() == []

        response = client.post(
            "/api/v1/login", json={"email": "bob@acme.test", "company": "Globex"}
        )
        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == twin.id

        response = client.post(
            "/api/v1/login",
            json={"email": "bob@acme.test", "company": seed_data["acme"].id},
        )
        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == seed_data["bob"].id

    def test_login_wrong_company_rejected(self, client, seed_data):
        response = client.post(
            "/api/v1/login", json={"email": "bob@acme.test", "company": "Globex"}
        )
        assert response.status_code == 401

    def test_login_discarded_user_rejected(self, client, seed_data):
        response = client.post("/api/v1/login", json={"email": "dora@acme.test"})
        assert response.status_code == 401

    def test_login_when_tracking_disabled_still_succeeds(self, client, seed_data):
        response = client.post("/api/v1/login", json={"email": "quinn@quiet.test"})
        assert response.status_code == 200
        assert _activities() == []

    def test_logout_tracks(self, client, seed_data, auth_headers):
        bob = seed_data["bob"]
        response = client.delete("/api/v1/logout", headers=auth_headers(bob))

        assert response.status_code == 200
        assert len(_activities(user_id=bob.id, activity_type="logout")) == 1

    def test_logout_requires_token(self, client, seed_data):
        response = client.delete("/api/v1/logout")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}


class TestAdminAccess:

    def test_no_token(self, client, seed_data):
        response = client.get("/api/v1/admin/activities")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_malformed_token(self, client, seed_data):
        response = client.get(
            "/api/v1/admin/activities",
            headers={"Authorization": "Bearer something-else"},
        )
        assert response.status_code == 401

    def test_regular_user_forbidden(self, client, seed_data, auth_headers):
        response = client.get("/api/v1/admin/activities", headers=auth_headers(seed_data["bob"]))
        assert response.status_code == 403
        assert response.get_json() == {"error": "Forbidden"}

    def test_discarded_user_token_rejected(self, client, seed_data, auth_headers):
        dora = seed_data["dora"]
        response = client.get("/api/v1/admin/activities", headers=auth_headers(dora))
        assert response.status_code == 401


class TestActivityListing:

    def test_lists_only_own_company(self, client, seed_data, auth_headers, make_activity):
        mine = make_activity(seed_data["bob"])
        make_activity(seed_data["hank"])

        response = client.get("/api/v1/admin/activities", headers=auth_headers(seed_data["alice"]))

        assert response.status_code == 200
        activities = response.get_json()["activities"]
        assert [a["id"] for a in activities] == [mine.id]
        assert activities[0]["user"]["email"] == "bob@acme.test"

    def test_hides_sensitive_request_metadata(self, client, seed_data, auth_headers, make_activity):
        make_activity(seed_data["bob"], metadata={"ip_address": "1.2.3.0", "session_id": "s", "page": "p"})

        response = client.get("/api/v1/admin/activities", headers=auth_headers(seed_data["alice"]))

        assert response.get_json()["activities"][0]["metadata"] == {"page": "p"}

    def test_limit_and_filters(self, client, seed_data, auth_headers, make_activity):
        now = datetime.now(timezone.utc)
        for minutes in (1, 2, 3):
            make_activity(seed_data["bob"], "login", occurred_at=now - timedelta(minutes=minutes))
        make_activity(seed_data["carol"], "logout")

        response = client.get(
            "/api/v1/admin/activities",
            query_string={"user_id": seed_data["bob"].id, "activity_type": "login", "limit": 2},
            headers=auth_headers(seed_data["alice"]),
        )

        activities = response.get_json()["activities"]
        assert len(activities) == 2
        assert all(a["activity_type"] == "login" for a in activities)

    def test_date_range(self, client, seed_data, auth_headers, make_activity):
        make_activity(seed_data["bob"], occurred_at=datetime(2026, 4, 2, 8, tzinfo=timezone.utc))
        make_activity(seed_data["bob"], occurred_at=datetime(2026, 4, 5, 8, tzinfo=timezone.utc))

        response = client.get(
            "/api/v1/admin/activities",
            query_string={"start_date": "2026-04-01", "end_date": "2026-04-02"},
            headers=auth_headers(seed_data["alice"]),
        )

        activities = response.get_json()["activities"]
        assert len(activities) == 1
        assert activities[0]["occurred_at"].startswith("2026-04-02")

    def test_bad_date_is_400(self, client, seed_data, auth_headers):
        response = client.get(
            "/api/v1/admin/activities",
            query_string={"start_date": "garbage"},
            headers=auth_headers(seed_data["alice"]),
        )
        assert response.status_code == 400


class TestAggregateEndpoints:

    def test_summary_by_hour(self, client, seed_data, auth_headers, make_activity):
        moment = datetime.now(timezone.utc) - timedelta(hours=1)
        make_activity(seed_data["bob"], occurred_at=moment)

        response = client.get(
            "/api/v1/admin/activities/summary",
            query_string={"period": "day", "group_by": "hour"},
            headers=auth_headers(seed_data["alice"]),
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["group_by"] == "hour"
        assert data["data"] == {str(moment.hour): 1}

    def test_stats(self, client, seed_data, auth_headers, make_activity):
        make_activity(seed_data["bob"])
        make_activity(seed_data["hank"])

        response = client.get("/api/v1/admin/activities/stats", headers=auth_headers(seed_data["alice"]))

        data = response.get_json()
        assert data["total_activities"] == 1
        assert data["activity_breakdown"] == {"login": 1}

    def test_overview(self, client, seed_data, auth_headers, make_activity):
        make_activity(seed_data["hank"])

        response = client.get("/api/v1/admin/activities/overview", headers=auth_headers(seed_data["gina"]))

        data = response.get_json()
        assert data["overview"]["total_activities"] == 1
        assert data["user_stats"]["most_active_users"][0]["email"] == "hank@globex.test"


class TestBulkEndpoint:

    def test_admin_bulk(self, client, seed_data, auth_headers):
        response = client.post(
            "/api/v1/admin/activities/bulk",
            json={"activities": [
                {"user_id": seed_data["bob"].id, "activity_type": "login"},
                {"user_id": seed_data["hank"].id, "activity_type": "give_recognition",
                 "metadata": {"points": 5}},
                {"user_id": "ghost", "activity_type": "login"},
            ]},
            headers=auth_headers(seed_data["root"]),
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["total"] == 3
        assert data["succeeded"] == 2
        assert data["failed"] == 1
        assert data["results"][2] == {"success": False, "reason": "user not found"}
        assert "activity_id" in data["results"][0]

    def test_company_admin_forbidden(self, client, seed_data, auth_headers):
        response = client.post(
            "/api/v1/admin/activities/bulk",
            json={"activities": []},
            headers=auth_headers(seed_data["alice"]),
        )
        assert response.status_code == 403

    def test_bad_body(self, client, seed_data, auth_headers):
        response = client.post(
            "/api/v1/admin/activities/bulk",
            json={"activities": "nope"},
            headers=auth_headers(seed_data["root"]),
        )
        assert response.status_code == 400


class TestSecurityHeaders:

    def test_headers_on_json_responses(self, client, seed_data):
        response = client.post("/api/v1/login", json={"email": "bob@acme.test"})
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"

    def test_no_hsts_in_debug(self, client, seed_data):
        response = client.post("/api/v1/login", json={"email": "bob@acme.test"})
        assert response.headers.get("Strict-Transport-Security") is None

    def test_json_404(self, client, db_session):
        response = client.get("/api/v1/nothing-here")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}
        assert response.headers.get("X-Frame-Options") == "DENY"
