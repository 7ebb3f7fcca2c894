"""
Request/response hooks shared by every blueprint.

``guard_protected_routes`` runs before the view: members-only paths send
anonymous visitors to sign in, and ``/admin`` additionally checks the admin
role in the database. ``apply_cache_headers`` runs after the view and sets
``Vary``/``Cache-Control`` for public pages.
"""
from __future__ import annotations

import logging

from flask import Flask, Response, g, redirect, request
from sqlalchemy.exc import SQLAlchemyError

from app.promptlib.db import db_session
from app.promptlib.models import Role, UserRole
from app.promptlib.rbac import login_redirect
from app.promptlib.roles import ROLE_ADMIN

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/profile", "/submit", "/admin")
ADMIN_PREFIXES = ("/admin",)
# Never publicly cached: per-user pages and pages carrying a CSRF token for sign-in.
PRIVATE_PREFIXES = ("/admin", "/profile", "/submit", "/auth")

UNAUTHORIZED_URL = "/?error=unauthorized"

COMPRESSIBLE_TYPES = ("text/", "application/json", "application/javascript", "application/xml")

CACHE_HOME = "public, max-age=3600, s-maxage=3600, stale-while-revalidate=86400"
CACHE_DETAIL = "public, max-age=3600, s-maxage=7200, stale-while-revalidate=604800"
CACHE_BLOG_INDEX = "public, max-age=1800, s-maxage=1800, stale-while-revalidate=86400"
CACHE_LEGAL = "public, max-age=604800, s-maxage=604800, immutable"
CACHE_DEFAULT = "public, max-age=1800, s-maxage=3600, stale-while-revalidate=86400"


def is_protected_path(path: str) -> bool:
    return path.startswith(PROTECTED_PREFIXES)


def is_admin_path(path: str) -> bool:
    return path.startswith(ADMIN_PREFIXES)


def cache_control_for(path: str) -> str | None:
    """Cache-Control value for a public path, or None to leave the response alone."""
    if path.startswith(PRIVATE_PREFIXES):
        return None
    if path in ("/", "/directory"):
        return CACHE_HOME
    if path.startswith(("/blogs/", "/directory/")):
        return CACHE_DETAIL
    if path == "/blogs":
        return CACHE_BLOG_INDEX
    if path in ("/privacy", "/terms"):
        return CACHE_LEGAL
    if path.startswith("/sitemap.xml"):
        return None
    return CACHE_DEFAULT


def is_compressible(content_type: str | None) -> bool:
    ct = content_type or ""
    return any(marker in ct for marker in COMPRESSIBLE_TYPES)


def lookup_role_keys(user_id: int) -> set[str]:
    s = db_session()
    rows = s.query(Role.key).join(UserRole, UserRole.role_id == Role.id).filter(UserRole.user_id == user_id).all()
    return {key for (key,) in rows}


def guard_protected_routes():
    path = request.path
    if not is_protected_path(path):
        return None

    user = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return login_redirect()

    if is_admin_path(path):
        try:
            role_keys = lookup_role_keys(user.id)
        except SQLAlchemyError:
            logger.exception("Admin role lookup failed (user_id=%s request_id=%s)", user.id, getattr(g, "request_id", None))
            return redirect(UNAUTHORIZED_URL)
        if ROLE_ADMIN not in role_keys:
            logger.warning("Non-admin blocked from %s (user_id=%s)", path, user.id)
            return redirect(UNAUTHORIZED_URL)
    return None


def apply_cache_headers(response: Response) -> Response:
    if is_compressible(response.content_type):
        response.vary.add("Accept-Encoding")

    # Signed-in pages carry per-user nav and the CSRF token.
    if request.method not in ("GET", "HEAD") or getattr(g, "current_user", None) is not None:
        return response
    value = cache_control_for(request.path)
    if value:
        response.headers["Cache-Control"] = value
    return response


def init_middleware(app: Flask) -> None:
    app.before_request(guard_protected_routes)
    app.after_request(apply_cache_headers)
