from flask import Blueprint, abort, render_template

from app.promptlib.db import db_session
from app.promptlib.modules.blogs.service import get_published, list_published

bp = Blueprint("blogs", __name__)


@bp.get("/blogs")
def blog_index():
    s = db_session()
    return render_template("blogs/index.html", posts=list_published(s))


@bp.get("/blogs/<slug>")
def blog_detail(slug: str):
    s = db_session()
    post = get_published(s, slug)
    if post is None:
        abort(404)
    return render_template("blogs/detail.html", post=post)
