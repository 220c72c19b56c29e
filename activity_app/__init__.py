import os
import json
import logging

import click
from flask import Flask, jsonify

from activity_app.config import config_by_name
from activity_app.extensions import db, migrate, login_manager, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from activity_app import models  # noqa: F401

    # --- Tenant middleware ---
    from activity_app.middleware.tenant import init_tenant_middleware
    init_tenant_middleware(app)

    # --- Deferred activity queue ---
    from activity_app.services.activity_queue import init_activity_queue
    init_activity_queue(app)

    # --- Register blueprints ---
    from activity_app.blueprints.sessions import sessions_bp
    from activity_app.blueprints.admin import admin_bp

    app.register_blueprint(sessions_bp)
    app.register_blueprint(admin_bp)

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    def seed_demo():
        """Create demo companies, users and a spread of activities.

        Usage:
            flask seed-demo
        """
        from activity_app.models.company import Company
        from activity_app.services.activity_tracker import track
        from activity_app.services.provisioning_service import (
            create_company,
            create_user,
            discard_user,
        )

        if Company.query.filter_by(name="TechCorp").first():
            click.echo("Demo data already present, nothing to do.")
            return

        # --- 1. Companies ---
        techcorp = create_company("TechCorp")
        startup = create_company(
            "StartupInc",
            enabled_activity_types=["login", "logout", "profile_update"],
            retention_days=365,
        )
        enterprise = create_company("EnterpriseCo", tracking_enabled=False)

        # --- 2. Users ---
        alice = create_user(techcorp, "alice@techcorp.com", "Alice Admin", role="company_admin")
        bob = create_user(techcorp, "bob@techcorp.com", "Bob Builder")
        carol = create_user(techcorp, "carol@techcorp.com", "Carol Former")
        dave = create_user(startup, "dave@startup.com", "Dave Founder", role="company_admin")
        erin = create_user(enterprise, "erin@enterprise.com", "Erin Exec")
        root = create_user(techcorp, "root@platform.local", "Platform Admin", role="admin")
        db.session.commit()

        # --- 3. Activities ---
        tracked = 0
        for user, activity_type, metadata in [
            (alice, "login", {"login_method": "password"}),
            (alice, "give_recognition", {"recipient_id": bob.id, "points": 10}),
            (bob, "receive_recognition", {"giver_id": alice.id, "points": 10}),
            (bob, "profile_update", {"fields": ["avatar"]}),
            (carol, "login", {"login_method": "sso"}),
            (carol, "logout", {}),
            (dave, "login", {"login_method": "password"}),
            (dave, "give_recognition", {"points": 5}),  # not enabled for StartupInc
            (erin, "login", {}),  # tracking disabled for EnterpriseCo
            (root, "admin_action", {"action": "seed_demo"}),
        ]:
            result = track(user, activity_type, metadata=metadata)
            tracked += int(result["success"])
            click.echo(f"  {user.email:<24} {activity_type:<20} {result['reason']}")

        # --- 4. A discarded user keeps their history ---
        discard_user(carol)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Demo data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Companies:  {techcorp.name}, {startup.name}, {enterprise.name}")
        click.echo(f"  Activities: {tracked} tracked")
        click.echo(f"  Discarded:  {carol.email}")
        click.echo(f"  Log in as:  {alice.email} (company admin), {root.email} (admin)")
        click.echo("=" * 60)

    @app.cli.command("activity-dead-letters")
    @click.option("--limit", default=50, help="Maximum rows to show.")
    def activity_dead_letters(limit):
        """List activity writes the queue gave up on, newest first."""
        from activity_app.models.dead_letter import ActivityDeadLetter

        rows = (
            ActivityDeadLetter.query
            .order_by(ActivityDeadLetter.failed_at.desc())
            .limit(limit)
            .all()
        )
        if not rows:
            click.echo("No dead letters.")
            return

        for row in rows:
            payload = row.payload or {}
            click.echo(
                f"{row.failed_at}  {row.error_class} after {row.attempts} attempt(s)  "
                f"user={payload.get('user_id')} type={payload.get('activity_type')}"
            )
            if row.error_message:
                click.echo(f"    {row.error_message}")

    @app.cli.command("activity-stats")
    @click.option("--company", "company_name", required=True, help="Company name.")
    def activity_stats(company_name):
        """Print a company's activity overview as JSON.

        Usage:
            flask activity-stats --company TechCorp
        """
        from activity_app.models.company import Company
        from activity_app.services.activity_stats import generate_overview

        company = Company.query.filter_by(name=company_name).first()
        if company is None:
            raise click.ClickException(f"Company '{company_name}' not found.")

        click.echo(json.dumps(generate_overview(company), indent=2, default=str))
