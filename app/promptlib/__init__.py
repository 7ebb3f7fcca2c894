import logging
from datetime import timedelta

from flask import Flask, g, jsonify, render_template, request, session
from dotenv import load_dotenv

from app.promptlib import models as _models  # noqa: F401  (registers every table on Base.metadata)
from app.promptlib.config import load_config
from app.promptlib.db import init_db, teardown_db_session
from app.promptlib.routes import bp as routes_bp
from app.promptlib.auth import bp as auth_bp, load_current_user
from app.promptlib.admin import bp as admin_bp
from app.promptlib.middleware import init_middleware
from app.promptlib.sitemap import bp as sitemap_bp
from app.promptlib.modules.directory.routes import api_bp as directory_api_bp, bp as directory_bp, init_directory
from app.promptlib.modules.submissions.routes import bp as submissions_bp
from app.promptlib.modules.moderation.admin import bp as moderation_bp
from app.promptlib.modules.blogs.routes import bp as blogs_bp
from app.promptlib.modules.blogs.admin import bp as blogs_admin_bp
from app.promptlib.utils import from_epoch_ms

logger = logging.getLogger(__name__)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.promptlib.security import csrf_required, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_roles() -> dict:
        from app.promptlib.rbac import user_has_permission
        from app.promptlib.roles import primary_role, role_badge_variant, role_display_name, visible_routes

        user = getattr(g, "current_user", None)
        role = primary_role(user)

        def has_perm(key: str) -> bool:
            return user_has_permission(user, key)

        return {
            "has_perm": has_perm,
            "current_role": role,
            "current_role_name": role_display_name(role),
            "current_role_badge": role_badge_variant(role),
            "nav_routes": visible_routes(user is not None, role),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "—"
        if isinstance(value, (int, float)):
            value = from_epoch_ms(value)
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        session.permanent = True
        if csrf_required(request) and not validate_csrf(request):
            app.logger.warning("CSRF rejected: %s %s", request.method, request.path)
            if _wants_json():
                return jsonify({"error": "CSRF token missing or invalid."}), 400
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_directory(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(sitemap_bp)
    app.register_blueprint(directory_bp)
    app.register_blueprint(directory_api_bp, url_prefix="/api")
    app.register_blueprint(submissions_bp)
    app.register_blueprint(blogs_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(moderation_bp, url_prefix="/admin")
    app.register_blueprint(blogs_admin_bp, url_prefix="/admin")

    # Order matters: the route guard reads g.current_user.
    app.before_request(load_current_user)
    init_middleware(app)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Not found."}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _wants_json():
            return jsonify({"error": "Internal server error.", "request_id": rid}), 500
        return render_template("errors/500.html", request_id=rid), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    logger.info("create_app() complete; app ready to serve")
    return app
