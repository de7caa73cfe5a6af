import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from app.config import config_by_name
from app.errors import APIError
from app.extensions import db, migrate, login_manager, limiter

logger = logging.getLogger(__name__)


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
        from app import models  # noqa: F401

    # --- Register blueprints ---
    from app.blueprints.auth import auth_bp
    from app.blueprints.payments import payments_bp
    from app.blueprints.orders import orders_bp
    from app.blueprints.subscriptions import subscriptions_bp
    from app.blueprints.webhooks import webhooks_bp
    from app.blueprints.messages import messages_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(subscriptions_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(messages_bp)

    # --- Health check ---
    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(APIError)
    def api_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({
            "success": False,
            "error": e.description or e.name,
            "code": e.name.upper().replace(" ", "_"),
        }), e.code

    @app.errorhandler(Exception)
    def server_error(e):
        logger.error(f"Unhandled error: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({
            "success": False,
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
        }), 500

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
        # JSON API: nothing should ever be rendered or framed
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

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@chat.local", help="Admin email")
    @click.option("--password", default="admin1234", help="Admin password")
    def seed_admin(email, password):
        """Create an admin user (needed to create subscription plans).

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from app.models.user import User

        existing = User.query.filter_by(email=email).first()
        if existing:
            existing.is_admin = True
            db.session.commit()
            click.echo(f"Admin user already exists: {email}")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Admin",
            is_admin=True,
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Created admin user: {email}")

    @app.cli.command("create-plan")
    @click.option("--name", required=True, help="Plan name shown at checkout")
    @click.option("--amount", required=True, type=int, help="Price in major units (e.g. NGN)")
    @click.option(
        "--interval",
        required=True,
        type=click.Choice(
            ["daily", "weekly", "monthly", "quarterly", "biannually", "annually"]
        ),
    )
    @click.option("--description", default=None)
    def create_plan(name, amount, interval, description):
        """Create a recurring plan in Paystack and store it locally.

        Usage:
            flask create-plan --name "Monthly Chat" --amount 3000 --interval monthly
        """
        from app.services.subscription_service import create_plan as _create_plan

        try:
            plan = _create_plan(
                name=name, amount=amount, interval=interval, description=description
            )
        except APIError as e:
            click.echo(f"ERROR: {e.message}")
            raise SystemExit(1)

        click.echo("")
        click.echo("=" * 60)
        click.echo("Subscription plan created!")
        click.echo("=" * 60)
        click.echo(f"  Plan ID:    {plan.id}")
        click.echo(f"  Plan code:  {plan.paystack_plan_code}")
        click.echo(f"  Amount:     {plan.amount} {plan.currency}")
        click.echo(f"  Interval:   {plan.interval}")
        click.echo("=" * 60)

    @app.cli.command("revoke-expired-access")
    @click.option("--dry-run", is_flag=True, help="List affected users without changing them.")
    def revoke_expired(dry_run):
        """Clear chat access for users whose daily/monthly grant has expired.

        The access check already revokes on read; this sweep keeps the
        has_chat_access flag accurate for users who haven't come back.

        Usage:
            flask revoke-expired-access
            flask revoke-expired-access --dry-run
        """
        from app.services.access_service import revoke_expired_access

        user_ids = revoke_expired_access(dry_run=dry_run)
        verb = "Would revoke" if dry_run else "Revoked"
        click.echo(f"{verb} chat access for {len(user_ids)} user(s)")
        for user_id in user_ids:
            click.echo(f"  {user_id}")

    @app.cli.command("access-history")
    @click.argument("email")
    @click.option("--limit", default=20, show_default=True)
    def access_history(email, limit):
        """Show a user's current chat access and recent audit trail.

        Usage:
            flask access-history ada@example.com
        """
        from app.models.user import User
        from app.services.access_service import check_chat_access
        from app.services.audit_service import history_for

        user = User.query.filter_by(email=email.lower().strip()).first()
        if user is None:
            click.echo(f"ERROR: no user with email {email}")
            raise SystemExit(1)

        status = check_chat_access(user.id)
        expiry = status.expiry_date.isoformat() if status.expiry_date else "never"
        click.echo(f"{user.email}: access={'yes' if status.has_access else 'no'} "
                   f"expires={expiry} reference={status.payment_reference or '-'}")
        for event in history_for(user.id, limit=limit):
            when = event.created_at.isoformat() if event.created_at else "?"
            metadata = event.metadata_ or {}
            click.echo(f"  {when}  {event.action}  {metadata}")
