from __future__ import annotations

from typing import TYPE_CHECKING

from app.promptlib.audit import record_event
from app.promptlib.modules.blogs.models import BlogPost
from app.promptlib.utils import is_valid_slug, slugify, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptlib.models import User


def list_published(s: "Session", *, limit: int | None = None) -> list[BlogPost]:
    q = s.query(BlogPost).filter(BlogPost.published.is_(True)).order_by(BlogPost.created_at.desc(), BlogPost.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_published(s: "Session", slug: str) -> BlogPost | None:
    return s.query(BlogPost).filter(BlogPost.slug == slug, BlogPost.published.is_(True)).one_or_none()


def validate_blog_payload(s: "Session", payload: dict, existing: BlogPost | None = None) -> list[str]:
    errors = []
    title = (payload.get("title") or "").strip()
    slug = (payload.get("slug") or "").strip().lower() or slugify(title)
    if not title:
        errors.append("Title is required.")
    if not is_valid_slug(slug):
        errors.append("Slug must use lowercase letters, digits and single dashes.")
    else:
        clash = s.query(BlogPost).filter(BlogPost.slug == slug).one_or_none()
        if clash is not None and clash is not existing:
            errors.append("Another post already uses that slug.")
    if len((payload.get("excerpt") or "").strip()) > 300:
        errors.append("Excerpt must be 300 characters or fewer.")
    return errors


def save_blog_post(s: "Session", payload: dict, user: "User", post: BlogPost | None = None) -> BlogPost:
    title = (payload.get("title") or "").strip()
    fields = {
        "title": title,
        "slug": (payload.get("slug") or "").strip().lower() or slugify(title),
        "excerpt": (payload.get("excerpt") or "").strip(),
        "body": (payload.get("body") or "").strip(),
    }
    if post is None:
        post = BlogPost(created_by_user_id=user.id, created_at=utcnow(), published=False, **fields)
        s.add(post)
        s.flush()
        action = "blog.create"
    else:
        for k, v in fields.items():
            setattr(post, k, v)
        post.updated_at = utcnow()
        action = "blog.update"
    record_event(s, actor=user, action=action, entity_type="BlogPost", entity_id=str(post.id), metadata={"slug": post.slug})
    return post


def set_published(s: "Session", post: BlogPost, published: bool, user: "User") -> BlogPost:
    post.published = published
    post.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="blog.publish" if published else "blog.unpublish",
        entity_type="BlogPost",
        entity_id=str(post.id),
        metadata={"slug": post.slug},
    )
    return post
