"""WeCarry application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify

from wecarry.config import config_by_name
from wecarry.core.bootstrap import build_core
from wecarry.core.errors import AppError
from wecarry.core.log import REPORTED, configure_logging, report_exception
from wecarry.extensions import init_extensions

_STATUS_BY_CATEGORY = {"User": 400, "Forbidden": 403, "NotFound": 404}


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the WeCarry Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    instance_root.mkdir(parents=True, exist_ok=True)

    # Normalize sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if db_uri and db_uri.startswith("sqlite:///"):
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = project_root / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    for key in ("CERT_FILE", "KEY_FILE"):
        path = Path(app.config[key])
        if not path.is_absolute():
            app.config[key] = str(project_root / path)

    configure_logging(app)
    init_extensions(app)
    _import_models()
    core = build_core(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from wecarry.scripts.commands import register_commands

    register_commands(app)

    if app.config.get("WORKER_AUTOSTART"):
        core.worker.start()

    return app


def _import_models() -> None:
    """Make every model known to the metadata before create_all / migrations."""
    from wecarry.core.users import models as user_models  # noqa: F401
    from wecarry.domains.requests import models as request_models  # noqa: F401
    from wecarry.domains.threads import models as thread_models  # noqa: F401


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from wecarry.core.auth.controllers import auth_bp  # local import to avoid circulars
    from wecarry.graphql.views import graphql_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(graphql_bp)


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from flask import request
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AppError)
    def _app_error(exc: AppError):
        key, category = exc.public()
        status = _STATUS_BY_CATEGORY.get(category.value, 500)
        if status == 500:
            app.logger.error("Internal error: %r", exc, exc_info=exc, extra=REPORTED)
            report_exception(request=request)
        return jsonify({"ok": False, "error": key.value}), status

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc, extra=REPORTED)
        report_exception(request=request)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "ErrorUnknownError"}, 500
