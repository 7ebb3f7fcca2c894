from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy.orm import Session

from app.promptlib.db import db_session
from app.promptlib.models import User
from app.promptlib.modules.directory.models import PROMPT_STATUSES, Category, Prompt
from app.promptlib.modules.directory.service import list_categories
from app.promptlib.modules.moderation.service import (
    ModerationError,
    approve_prompt,
    create_category,
    delete_prompt,
    reject_prompt,
    status_counts,
    toggle_featured,
    update_category,
    validate_category_payload,
)
from app.promptlib.rbac import require_permission
from app.promptlib.utils import parse_positive_int

bp = Blueprint("moderation", __name__)

PER_PAGE = 50


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_prompt_or_404(s: Session, prompt_id: int) -> Prompt:
    p = s.get(Prompt, prompt_id)
    if not p:
        abort(404)
    return p


def _get_category_or_404(s: Session, category_pk: int) -> Category:
    c = s.get(Category, category_pk)
    if not c:
        abort(404)
    return c


def _back_to_queue(p: Prompt | None = None):
    nxt = (request.form.get("next") or "").strip()
    if nxt.startswith("/admin/"):
        return redirect(nxt)
    if p is not None:
        return redirect(url_for("moderation.prompt_detail", prompt_id=p.id))
    return redirect(url_for("moderation.prompts_list"))


@bp.get("/prompts")
@require_permission("prompts.moderate")
def prompts_list():
    s = db_session()
    status = (request.args.get("status") or "pending").strip().lower()
    if status not in PROMPT_STATUSES and status != "all":
        flash(f"Unknown status {status!r}; showing pending.", "danger")
        status = "pending"
    q_text = (request.args.get("q") or "").strip()
    page = parse_positive_int(request.args.get("page")) or 1

    query = s.query(Prompt)
    if status != "all":
        query = query.filter(Prompt.status == status)
    if q_text:
        like = f"%{q_text}%"
        query = query.filter((Prompt.title.ilike(like)) | (Prompt.author_name.ilike(like)))

    total = query.count()
    # Oldest first for the pending queue so nothing waits forever.
    order = Prompt.created_at.asc() if status == "pending" else Prompt.created_at.desc()
    prompts = query.order_by(order, Prompt.id.asc()).offset((page - 1) * PER_PAGE).limit(PER_PAGE).all()

    return render_template(
        "admin/prompts/list.html",
        prompts=prompts,
        status=status,
        statuses=PROMPT_STATUSES,
        counts=status_counts(s),
        q=q_text,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * PER_PAGE < total,
    )


@bp.get("/prompts/<int:prompt_id>")
@require_permission("prompts.moderate")
def prompt_detail(prompt_id: int):
    s = db_session()
    p = _get_prompt_or_404(s, prompt_id)
    category = s.query(Category).filter(Category.category_id == p.category).one_or_none()
    return render_template("admin/prompts/detail.html", prompt=p, category=category)


@bp.post("/prompts/<int:prompt_id>/approve")
@require_permission("prompts.moderate")
def prompt_approve(prompt_id: int):
    s = db_session()
    p = _get_prompt_or_404(s, prompt_id)
    try:
        approve_prompt(s, p, _current_user())
    except ModerationError as e:
        flash(str(e), "danger")
        return _back_to_queue(p)
    s.commit()
    flash(f"Approved “{p.title}”.", "success")
    return _back_to_queue(p)


@bp.post("/prompts/<int:prompt_id>/reject")
@require_permission("prompts.moderate")
def prompt_reject(prompt_id: int):
    s = db_session()
    p = _get_prompt_or_404(s, prompt_id)
    try:
        reject_prompt(s, p, _current_user(), request.form.get("reason"))
    except ModerationError as e:
        flash(str(e), "danger")
        return _back_to_queue(p)
    s.commit()
    flash(f"Rejected “{p.title}”.", "success")
    return _back_to_queue(p)


@bp.post("/prompts/<int:prompt_id>/feature")
@require_permission("prompts.moderate")
def prompt_feature(prompt_id: int):
    s = db_session()
    p = _get_prompt_or_404(s, prompt_id)
    try:
        toggle_featured(s, p, _current_user())
    except ModerationError as e:
        flash(str(e), "danger")
        return _back_to_queue(p)
    s.commit()
    flash("Featured." if p.featured else "No longer featured.", "success")
    return _back_to_queue(p)


@bp.post("/prompts/<int:prompt_id>/delete")
@require_permission("prompts.delete")
def prompt_delete(prompt_id: int):
    s = db_session()
    p = _get_prompt_or_404(s, prompt_id)
    title = p.title
    delete_prompt(s, p, _current_user(), request.form.get("reason"))
    s.commit()
    flash(f"Deleted “{title}”.", "success")
    return redirect(url_for("moderation.prompts_list"))


@bp.get("/categories")
@require_permission("categories.manage")
def categories_list():
    s = db_session()
    counts = {c.category_id: c.prompt_count for c in list_categories(s)}
    categories = sorted(s.query(Category).all(), key=lambda c: c.name.casefold())
    return render_template("admin/categories/list.html", categories=categories, counts=counts)


@bp.get("/categories/new")
@require_permission("categories.manage")
def categories_new_get():
    return render_template("admin/categories/edit.html", category=None)


@bp.post("/categories/new")
@require_permission("categories.manage")
def categories_new_post():
    s = db_session()
    payload = {k: request.form.get(k) for k in ("category_id", "name", "description", "icon")}
    errors = validate_category_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("moderation.categories_new_get"))
    c = create_category(s, payload, _current_user())
    s.commit()
    flash(f"Category “{c.name}” created.", "success")
    return redirect(url_for("moderation.categories_list"))


@bp.get("/categories/<int:category_pk>/edit")
@require_permission("categories.manage")
def categories_edit_get(category_pk: int):
    s = db_session()
    c = _get_category_or_404(s, category_pk)
    return render_template("admin/categories/edit.html", category=c)


@bp.post("/categories/<int:category_pk>/edit")
@require_permission("categories.manage")
def categories_edit_post(category_pk: int):
    s = db_session()
    c = _get_category_or_404(s, category_pk)
    payload = {k: request.form.get(k) for k in ("name", "description", "icon")}
    payload["category_id"] = c.category_id
    errors = validate_category_payload(s, payload, existing=c)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("moderation.categories_edit_get", category_pk=c.id))
    update_category(s, c, payload, _current_user())
    s.commit()
    flash("Category updated.", "success")
    return redirect(url_for("moderation.categories_list"))
