"""
sitemap.xml for search engines: static pages, approved prompts, published blogs.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from flask import Blueprint, Response, current_app, g, render_template, request
from sqlalchemy.exc import SQLAlchemyError

from app.promptlib.db import db_session, rollback_quietly
from app.promptlib.modules.blogs.models import BlogPost
from app.promptlib.modules.blogs.service import list_published
from app.promptlib.modules.directory.models import Prompt
from app.promptlib.modules.directory.service import list_approved_for_sitemap
from app.promptlib.utils import iso_utc_ms

bp = Blueprint("sitemap", __name__)

SITEMAP_PROMPT_LIMIT = 1000
SITEMAP_CACHE_CONTROL = "public, max-age=3600"

# (path, changefreq, priority)
STATIC_PAGES = (
    ("/", "daily", 1.0),
    ("/directory", "daily", 0.9),
    ("/blogs", "weekly", 0.8),
    ("/submit", "monthly", 0.5),
)


@dataclass(frozen=True)
class SitemapItem:
    url: str
    last_mod: str | None = None
    change_freq: str | None = None
    priority: float | None = None

    @property
    def priority_text(self) -> str | None:
        if not self.priority:
            return None
        return f"{self.priority:g}"


def normalize_site_url(site_url: str) -> str:
    return (site_url or "").rstrip("/")


def build_sitemap_items(site_url: str, prompts: Iterable[Prompt], blogs: Iterable[BlogPost]) -> list[SitemapItem]:
    base = normalize_site_url(site_url)
    items = [SitemapItem(url=f"{base}{path}", change_freq=freq, priority=prio) for path, freq, prio in STATIC_PAGES]
    for p in prompts:
        if not p.id:
            continue
        items.append(
            SitemapItem(
                url=f"{base}/directory/{p.id}",
                last_mod=iso_utc_ms(p.updated_at or p.created_at),
                change_freq="weekly",
                priority=0.7,
            )
        )
    for post in blogs:
        if not post.slug:
            continue
        items.append(
            SitemapItem(
                url=f"{base}/blogs/{post.slug}",
                last_mod=iso_utc_ms(post.updated_at or post.created_at),
                change_freq="monthly",
                priority=0.7,
            )
        )
    return items


def render_sitemap(items: list[SitemapItem]) -> str:
    return render_template("sitemap.xml", items=items)


@bp.get("/sitemap.xml")
def sitemap_xml():
    site_url = current_app.config.get("SITE_URL") or request.host_url

    prompts: list[Prompt] = []
    blogs: list[BlogPost] = []
    s = db_session()
    try:
        prompts = list_approved_for_sitemap(s, limit=SITEMAP_PROMPT_LIMIT)
        blogs = list_published(s)
    except SQLAlchemyError:
        current_app.logger.exception("Error fetching data for sitemap (request_id=%s)", getattr(g, "request_id", None))
        rollback_quietly(s)

    body = render_sitemap(build_sitemap_items(site_url, prompts, blogs))
    return Response(
        body,
        mimetype="application/xml",
        headers={"Cache-Control": SITEMAP_CACHE_CONTROL},
    )
