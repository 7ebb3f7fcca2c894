from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.promptlib.db import db_session
from app.promptlib.models import User
from app.promptlib.modules.directory.models import Category, Prompt
from app.promptlib.modules.submissions.service import create_submission, validate_submission
from app.promptlib.rbac import require_login
from app.promptlib.roles import primary_role, role_badge_variant, role_display_name

bp = Blueprint("submissions", __name__)

_FORM_FIELDS = ("title", "content", "category", "excerpt", "tags")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _category_choices(s) -> list[Category]:
    return sorted(s.query(Category).all(), key=lambda c: c.name.casefold())


@bp.get("/submit")
@require_login
def submit_get():
    s = db_session()
    return render_template("submissions/submit.html", categories=_category_choices(s), form={})


@bp.post("/submit")
@require_login
def submit_post():
    s = db_session()
    u = _current_user()
    payload = {k: request.form.get(k) or "" for k in _FORM_FIELDS}

    categories = _category_choices(s)
    errors = validate_submission(payload, {c.category_id for c in categories})
    if errors:
        for e in errors:
            flash(e, "danger")
        # Re-render so the member keeps what they typed.
        return render_template("submissions/submit.html", categories=categories, form=payload), 400

    p = create_submission(s, payload, u)
    s.commit()
    flash("Thanks! Your prompt was submitted and is awaiting review.", "success")
    return redirect(url_for("submissions.profile", submitted=p.id))


@bp.get("/profile")
@require_login
def profile():
    s = db_session()
    u = _current_user()
    role = primary_role(u)
    submissions = (
        s.query(Prompt)
        .filter(Prompt.author_user_id == u.id)
        .order_by(Prompt.created_at.desc(), Prompt.id.desc())
        .all()
    )
    return render_template(
        "submissions/profile.html",
        user=u,
        role=role,
        role_name=role_display_name(role),
        role_badge=role_badge_variant(role),
        submissions=submissions,
    )
