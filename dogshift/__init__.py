import os
import logging

import click
from flask import Flask, jsonify

from dogshift.config import config_by_name
from dogshift.extensions import db, migrate, login_manager, csrf, limiter


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
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from dogshift import models  # noqa: F401

    # --- Register blueprints ---
    from dogshift.blueprints.webhooks import webhooks_bp
    from dogshift.blueprints.bookings import bookings_bp
    from dogshift.blueprints.host import host_bp
    from dogshift.blueprints.notifications import notifications_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(host_bp)
    app.register_blueprint(notifications_bp)

    # Exempt webhooks from CSRF — raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- Error handlers (JSON API) ---
    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"ok": False, "error": "FORBIDDEN"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"ok": False, "error": "NOT_FOUND"}), 404

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"ok": False, "error": "RATE_LIMITED"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"ok": False, "error": "INTERNAL_ERROR"}), 500

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
        # JSON API: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
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
    @click.option("--owner-email", default="owner@dogshift.local", help="Dog owner email")
    @click.option("--sitter-email", default="sitter@dogshift.local", help="Sitter email")
    @click.option("--stripe-account", default=None, help="Sitter's Stripe Connect account id")
    def seed_demo(owner_email, sitter_email, stripe_account):
        """Create a demo owner, sitter (with profile) and a pending booking.

        Usage:
            flask seed-demo
            flask seed-demo --stripe-account acct_123
        """
        from datetime import datetime, timedelta, timezone

        from dogshift.models.booking import Booking, BookingStatus
        from dogshift.models.sitter import SitterProfile
        from dogshift.models.user import User

        # --- 1. Owner ---
        owner = User.query.filter_by(email=owner_email).first()
        if owner:
            click.echo(f"Owner already exists: {owner_email}")
        else:
            owner = User(email=owner_email, name="Demo Owner")
            db.session.add(owner)
            db.session.flush()
            click.echo(f"Created owner: {owner_email}")

        # --- 2. Sitter + profile ---
        sitter = User.query.filter_by(email=sitter_email).first()
        if sitter:
            click.echo(f"Sitter already exists: {sitter_email}")
        else:
            sitter = User(email=sitter_email, name="Demo Sitter")
            db.session.add(sitter)
            db.session.flush()
            click.echo(f"Created sitter: {sitter_email}")

        profile = sitter.sitter_profile
        if profile is None:
            profile = SitterProfile(
                user_id=sitter.id,
                display_name="Demo Sitter",
                stripe_account_id=stripe_account,
                stripe_account_status="PENDING" if stripe_account else None,
            )
            db.session.add(profile)
            db.session.flush()

        # --- 3. Booking awaiting payment ---
        start = datetime.now(timezone.utc) + timedelta(days=7)
        booking = Booking(
            owner_id=owner.id,
            sitter_id=profile.id,
            amount=7000,
            currency="chf",
            status=BookingStatus.PENDING_PAYMENT,
            start_date=start,
            end_date=start + timedelta(days=2),
        )
        db.session.add(booking)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Owner:    {owner.email} (id: {owner.id})")
        click.echo(f"  Sitter:   {sitter.email} (profile: {profile.id})")
        click.echo(f"  Booking:  {booking.id} ({booking.amount / 100:.2f} {booking.currency.upper()})")
        click.echo(f"  Webhook metadata: bookingId={booking.id}")
        click.echo("=" * 60)

    @app.cli.command("reconcile-pending")
    @click.option("--older-than", default=15, show_default=True,
                  help="Only bookings pending for at least this many minutes.")
    @click.option("--dry-run", is_flag=True, help="List bookings without contacting Stripe.")
    def reconcile_pending(older_than, dry_run):
        """Resync bookings stuck in PENDING_PAYMENT from Stripe.

        Repairs bookings whose webhook was lost or failed: the checkout
        session / payment intent is fetched from Stripe and, if paid, run
        through the same reconciliation as the webhook.

        Usage:
            flask reconcile-pending
            flask reconcile-pending --older-than 60 --dry-run
        """
        from dogshift.services.booking_service import pending_bookings
        from dogshift.services.stripe_service import sync_booking_from_stripe

        bookings = pending_bookings(older_than)
        click.echo(f"{len(bookings)} booking(s) pending for more than {older_than} min")

        synced = 0
        for booking in bookings:
            if dry_run:
                click.echo(
                    f"  [dry-run] {booking.id} "
                    f"session={booking.stripe_session_id or '-'} "
                    f"intent={booking.stripe_payment_intent_id or '-'}"
                )
                continue

            result = sync_booking_from_stripe(booking)
            if result and result.get("changed"):
                synced += 1
                click.echo(f"  {booking.id} -> {result.get('status')}")
            else:
                click.echo(f"  {booking.id}: nothing to apply")

        if not dry_run:
            click.echo(f"Reconciled {synced} booking(s)")
