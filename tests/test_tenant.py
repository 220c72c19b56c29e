"""Tests for the tenant context.

Tests:
- with_tenant / without_tenant restore the previous state, even on error
- Tenant-scoped reads without a tenant raise NoTenantSet
- Cross-tenant isolation for scoped reads and plain Activity.query reads
- The NoTenantSet handler returns a JSON 404
"""

import pytest

from activity_app.extensions import db
from activity_app.middleware.tenant import (
    NoTenantSet,
    current_tenant_id,
    handle_no_tenant,
    require_tenant,
    tenant_is_unscoped,
    with_tenant,
    without_tenant,
)
from activity_app.models.activity import Activity


class TestTenantContext:

    def test_no_tenant_by_default(self, db_session):
        assert current_tenant_id() is None
        with pytest.raises(NoTenantSet):
            require_tenant()

    def test_with_tenant_sets_and_restores(self, seed_data):
        acme = seed_data["acme"]
        with with_tenant(acme):
            assert current_tenant_id() == acme.id
            assert require_tenant() == acme.id
        assert current_tenant_id() is None

    def test_accepts_company_id(self, seed_data):
        with with_tenant(seed_data["acme"].id):
            assert current_tenant_id() == seed_data["acme"].id

    def test_restores_after_exception(self, seed_data):
        acme, globex = seed_data["acme"], seed_data["globex"]
        with with_tenant(acme):
            with pytest.raises(RuntimeError):
                with with_tenant(globex):
                    assert current_tenant_id() == globex.id
                    raise RuntimeError("boom")
            assert current_tenant_id() == acme.id
        assert current_tenant_id() is None

    def test_without_tenant_restores(self, seed_data):
        acme = seed_data["acme"]
        with with_tenant(acme):
            with without_tenant():
                assert tenant_is_unscoped()
                assert require_tenant() is None
            assert current_tenant_id() == acme.id
            assert not tenant_is_unscoped()

    def test_with_tenant_inside_without_tenant(self, seed_data):
        globex = seed_data["globex"]
        with without_tenant():
            with with_tenant(globex):
                assert require_tenant() == globex.id
            assert tenant_is_unscoped()

    def test_none_company_rejected(self, db_session):
        with pytest.raises(ValueError):
            with with_tenant(None):
                pass


class TestScopedReads:

    def test_scoped_read_without_tenant_raises(self, seed_data, make_activity):
        make_activity(seed_data["bob"])
        with pytest.raises(NoTenantSet):
            Activity.scoped().all()

    def test_other_tenant_rows_invisible(self, seed_data, make_activity):
        foreign = make_activity(seed_data["hank"])

        with with_tenant(seed_data["acme"]):
            assert Activity.scoped().filter_by(id=foreign.id).first() is None

        with without_tenant():
            assert Activity.scoped().filter_by(id=foreign.id).first() is not None

    def test_scoped_counts_per_tenant(self, seed_data, make_activity):
        make_activity(seed_data["bob"])
        make_activity(seed_data["carol"])
        make_activity(seed_data["hank"])

        with with_tenant(seed_data["acme"]):
            assert Activity.scoped().count() == 2
        with with_tenant(seed_data["globex"]):
            assert Activity.scoped().count() == 1
        with without_tenant():
            assert Activity.scoped().count() == 3


class TestUnscopedQueries:
    """Plain Activity.query reads are scoped too, not just Activity.scoped()."""

    def test_plain_query_without_tenant_raises(self, seed_data, make_activity):
        make_activity(seed_data["bob"])
        make_activity(seed_data["hank"])
        with pytest.raises(NoTenantSet):
            Activity.query.all()
        with pytest.raises(NoTenantSet):
            Activity.query.count()

    def test_plain_query_filtered_to_tenant(self, seed_data, make_activity):
        mine = make_activity(seed_data["bob"])
        foreign = make_activity(seed_data["hank"])

        with with_tenant(seed_data["acme"]):
            ids = [a.id for a in Activity.query.all()]
            missing = Activity.query.filter_by(id=foreign.id).first()

        assert ids == [mine.id]
        assert missing is None

    def test_plain_query_spans_tenants_when_unscoped(self, seed_data, make_activity):
        make_activity(seed_data["bob"])
        make_activity(seed_data["hank"])
        with without_tenant():
            assert len(Activity.query.all()) == 2

    def test_loaded_rows_refresh_outside_tenant(self, seed_data, make_activity):
        activity = make_activity(seed_data["bob"], metadata={"page": "home"})
        db.session.expire(activity)
        assert activity.metadata_ == {"page": "home"}


class TestNoTenantHandler:

    def test_returns_json_404(self, app):
        with app.test_request_context("/api/v1/admin/activities"):
            response, status = handle_no_tenant(NoTenantSet())
        assert status == 404
        assert response.get_json() == {"error": "Company not found"}
