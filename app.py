import logging

import click
from flask import Flask, request, jsonify
from flask_migrate import Migrate

from config import Config
from routes import (
    health_bp,
    auth_bp,
    specialties_bp,
    doctors_bp,
    schedules_bp,
    availability_bp,
    appointments_bp,
)
from models import db
from models.user import User, Role, ROLE_ADMIN
from services.errors import SchedulingError
from security.csrf import csrf_protect
from security.session import load_current_user
from utils.logging import configure_logging
from utils.seed import seed_roles, seed_demo_data

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    for bp in (health_bp, auth_bp, specialties_bp, doctors_bp, schedules_bp, availability_bp, appointments_bp):
        app.register_blueprint(bp)

    db.init_app(app)
    Migrate(app, db)

    with app.app_context():
        if app.config.get("TESTING"):
            db.create_all()
        # idempotent, needs the schema from `flask db upgrade` outside tests
        seed_roles()

    # order matters: the CSRF check needs g.user
    app.before_request(load_current_user)
    app.before_request(csrf_protect)

    register_error_handlers(app)
    register_cli(app)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    return app


def register_error_handlers(app):
    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        # nothing half written survives a domain or store failure
        db.session.rollback()
        if exc.http_status >= 500:
            logger.error("%s on %s %s", exc.code, request.method, request.path)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify(
            error="Route not found",
            code="NOT_FOUND",
            details=f"{request.method} {request.path} does not exist",
        ), 404

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return jsonify(error="Method not allowed", code="METHOD_NOT_ALLOWED"), 405

    @app.errorhandler(500)
    def _internal_error(exc):
        db.session.rollback()
        logger.error("unhandled error on %s %s", request.method, request.path)
        return jsonify(error="Internal server error", code="INTERNAL_SERVER_ERROR"), 500


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Give an existing account the ADMIN role (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException(f"No user with email {email}")

        if not user.has_role(ROLE_ADMIN):
            user.roles.append(Role.query.filter_by(name=ROLE_ADMIN).one())
            db.session.commit()

        click.echo(f"{user.email} is ADMIN")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Load demo specialties, doctors, schedules and clinic hours."""
        if seed_demo_data():
            click.echo("Demo data loaded")
        else:
            click.echo("Specialties already present, nothing to do")


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5002)
