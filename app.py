import click
from flask import Flask
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from models import db
from models.db import enable_sqlite_write_locking
from models.user import User, Role
from routes import health_bp, auth_bp, security_bp
from security.csrf import csrf_protect
from security.rbac import ADMIN
from security.services import init_security, get_failed_login_tracker, get_session_manager
from security.validation import ValidationError
from utils.auth_context import load_current_user
from utils.seed import seed_roles


def create_app(config_object=Config, geolocation=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(security_bp)

    # Database init
    db.init_app(app)
    with app.app_context():
        # Must run before the first connection is opened
        enable_sqlite_write_locking(db.engine)

    # Only trust X-Forwarded-For hops added by our own proxies
    proxy_count = app.config.get("TRUSTED_PROXY_COUNT", 0)
    if proxy_count:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_count)

    # Migrations
    Migrate(app, db)

    # Lockout tracker + session manager
    init_security(app, geolocation=geolocation, clock=clock)

    if app.config.get("TESTING"):
        with app.app_context():
            db.create_all()

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        seed_roles()

    # Order matters: CSRF needs to know whether a session was loaded
    app.before_request(load_current_user)
    app.before_request(csrf_protect)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name=ADMIN).first()
        if not admin_role:
            admin_role = Role(name=ADMIN)
            db.session.add(admin_role)

        if admin_role not in user.roles:
            user.roles.append(admin_role)
        db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("cleanup-sessions")
    def cleanup_sessions():
        """Terminate every expired session. Run this from cron or another scheduler."""
        count = get_session_manager().cleanup_expired_sessions()
        click.echo(f"Terminated {count} expired session(s)")

    @app.cli.command("unlock-account")
    @click.argument("identity")
    @click.option("--reason", default=None, help="Why the account is being unlocked.")
    def unlock_account(identity, reason):
        """Lift a brute-force lockout for an email/username."""
        try:
            marker = get_failed_login_tracker().unlock_account(identity, unlocked_by="cli", reason=reason)
        except ValidationError as exc:
            raise click.BadParameter(str(exc), param_hint="identity")
        click.echo(f"{marker.identity} unlocked")

    @app.cli.command("block-ip")
    @click.argument("ip")
    @click.option("--reason", default=None)
    @click.option("--unblock", is_flag=True, help="Remove the block instead.")
    def block_ip(ip, reason, unblock):
        """Block (or unblock) a source IP for login."""
        tracker = get_failed_login_tracker()
        if unblock:
            removed = tracker.unblock_ip(ip, unblocked_by="cli")
            click.echo(f"{ip} unblocked" if removed else f"{ip} was not blocked")
            return
        try:
            row = tracker.block_ip(ip, reason=reason, blocked_by="cli")
        except ValidationError as exc:
            raise click.BadParameter(str(exc), param_hint="ip")
        click.echo(f"{row.ip} blocked")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
