from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy import text

from app.promptlib.db import db_session
from app.promptlib.models import AuditEvent, User
from app.promptlib.modules.blogs.models import BlogPost
from app.promptlib.modules.directory.models import Category
from app.promptlib.modules.moderation.service import ModerationError, set_user_role, status_counts
from app.promptlib.rbac import require_permission
from app.promptlib.roles import ROLES, primary_role, role_badge_variant, role_display_name

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    status = {"db_connected": False, "db_error": None}
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except Exception as e:
        status["db_error"] = str(e)

    counts = status_counts(s)
    totals = {
        "categories": s.query(Category).count(),
        "users": s.query(User).count(),
        "blogs_published": s.query(BlogPost).filter(BlogPost.published.is_(True)).count(),
    }
    recent_events = s.query(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(10).all()
    return render_template(
        "admin/index.html",
        system_status=status,
        counts=counts,
        totals=totals,
        recent_events=recent_events,
    )


@bp.get("/users")
@require_permission("users.manage")
def users_list():
    s = db_session()
    q = (request.args.get("q") or "").strip().lower()
    query = s.query(User)
    if q:
        query = query.filter(User.email.like(f"%{q}%"))
    users = query.order_by(User.email.asc()).limit(500).all()
    rows = []
    for u in users:
        role = primary_role(u)
        rows.append({"user": u, "role": role, "role_name": role_display_name(role), "badge": role_badge_variant(role)})
    return render_template("admin/users/list.html", rows=rows, roles=ROLES, q=q)


@bp.post("/users/<int:user_id>/role")
@require_permission("users.manage")
def users_set_role(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if not target:
        abort(404)
    role_key = (request.form.get("role") or "").strip().lower()
    try:
        set_user_role(s, target, role_key, _current_user())
    except ModerationError as e:
        flash(str(e), "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash(f"{target.email} is now {role_display_name(role_key)}.", "success")
    return redirect(url_for("admin.users_list"))


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    """
    Audit trail (last 200 events) with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=request.args.get("date_from") or "",
        date_to=request.args.get("date_to") or "",
    )
