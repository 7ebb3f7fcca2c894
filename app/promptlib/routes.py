from flask import Blueprint, current_app, g, render_template, request
from sqlalchemy.exc import SQLAlchemyError

from app.promptlib.db import db_session, rollback_quietly
from app.promptlib.modules.directory.service import get_featured_prompts, list_categories

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    featured, categories = [], []
    try:
        featured = get_featured_prompts(s)
        categories = list_categories(s)
    except SQLAlchemyError:
        current_app.logger.exception("Home page queries failed (request_id=%s)", getattr(g, "request_id", None))
        rollback_quietly(s)
    unauthorized = (request.args.get("error") or "") == "unauthorized"
    return render_template(
        "public/index.html",
        featured=featured,
        categories=categories,
        unauthorized=unauthorized,
    )


@bp.get("/privacy")
def privacy():
    return render_template("public/privacy.html")


@bp.get("/terms")
def terms():
    return render_template("public/terms.html")


@bp.get("/subscribe")
def subscribe():
    return render_template("public/subscribe.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200
