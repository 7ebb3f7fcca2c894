from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.promptlib.db import db_session
from app.promptlib.models import User
from app.promptlib.modules.blogs.models import BlogPost
from app.promptlib.modules.blogs.service import save_blog_post, set_published, validate_blog_payload
from app.promptlib.rbac import require_permission

bp = Blueprint("blogs_admin", __name__)

_FIELDS = ("title", "slug", "excerpt", "body")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_post_or_404(s, post_id: int) -> BlogPost:
    post = s.get(BlogPost, post_id)
    if not post:
        abort(404)
    return post


@bp.get("/blogs")
@require_permission("blogs.manage")
def list_posts():
    s = db_session()
    posts = s.query(BlogPost).order_by(BlogPost.created_at.desc(), BlogPost.id.desc()).all()
    return render_template("admin/blogs/list.html", posts=posts)


@bp.get("/blogs/new")
@require_permission("blogs.manage")
def new_post_get():
    return render_template("admin/blogs/edit.html", post=None)


@bp.post("/blogs/new")
@require_permission("blogs.manage")
def new_post_post():
    s = db_session()
    payload = {k: request.form.get(k) for k in _FIELDS}
    errors = validate_blog_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("blogs_admin.new_post_get"))
    post = save_blog_post(s, payload, _current_user())
    s.commit()
    flash("Draft saved.", "success")
    return redirect(url_for("blogs_admin.edit_post_get", post_id=post.id))


@bp.get("/blogs/<int:post_id>/edit")
@require_permission("blogs.manage")
def edit_post_get(post_id: int):
    s = db_session()
    return render_template("admin/blogs/edit.html", post=_get_post_or_404(s, post_id))


@bp.post("/blogs/<int:post_id>/edit")
@require_permission("blogs.manage")
def edit_post_post(post_id: int):
    s = db_session()
    post = _get_post_or_404(s, post_id)
    payload = {k: request.form.get(k) for k in _FIELDS}
    errors = validate_blog_payload(s, payload, existing=post)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("blogs_admin.edit_post_get", post_id=post.id))
    save_blog_post(s, payload, _current_user(), post=post)
    s.commit()
    flash("Post updated.", "success")
    return redirect(url_for("blogs_admin.edit_post_get", post_id=post.id))


@bp.post("/blogs/<int:post_id>/publish")
@require_permission("blogs.manage")
def publish_post(post_id: int):
    s = db_session()
    post = _get_post_or_404(s, post_id)
    publish = (request.form.get("published") or "1").strip() == "1"
    set_published(s, post, publish, _current_user())
    s.commit()
    flash("Published." if publish else "Unpublished.", "success")
    return redirect(url_for("blogs_admin.list_posts"))
