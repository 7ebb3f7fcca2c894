"""
Role helpers for templates and access checks.

Two roles exist: ``user`` (every signed-in member) and ``admin``. A signed-out
visitor has no role (``None``) and is shown as a guest.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.promptlib.models import User

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

ADMIN_FEATURES = {
    "APPROVE_PROMPTS": "approve_prompts",
    "MANAGE_USERS": "manage_users",
    "VIEW_ANALYTICS": "view_analytics",
    "EDIT_ANY_PROMPT": "edit_any_prompt",
    "DELETE_ANY_PROMPT": "delete_any_prompt",
}

_DISPLAY_NAMES = {ROLE_ADMIN: "Administrator", ROLE_USER: "Member"}
_BADGE_VARIANTS = {ROLE_ADMIN: "default", ROLE_USER: "secondary"}

BASE_ROUTES = ("/", "/directory", "/subscribe")
MEMBER_ROUTES = ("/submit", "/profile")
ADMIN_ROUTES = ("/admin",)


def primary_role(user: "User | None") -> str | None:
    """Role key for a user loaded from the database; admin wins over user."""
    if user is None or not user.is_active:
        return None
    keys = {r.key for r in (user.roles or [])}
    if ROLE_ADMIN in keys:
        return ROLE_ADMIN
    return ROLE_USER


def is_admin(role: str | None) -> bool:
    return role == ROLE_ADMIN


def has_role(user_role: str | None, required_role: str) -> bool:
    if required_role == ROLE_ADMIN:
        return is_admin(user_role)
    return user_role in ROLES


def role_display_name(role: str | None) -> str:
    return _DISPLAY_NAMES.get(role or "", "Guest")


def role_badge_variant(role: str | None) -> str:
    return _BADGE_VARIANTS.get(role or "", "outline")


def can_access_admin_feature(user_role: str | None, feature: str) -> bool:
    return is_admin(user_role) and feature in ADMIN_FEATURES.values()


def visible_routes(is_authenticated: bool, user_role: str | None) -> list[str]:
    routes = list(BASE_ROUTES)
    if not is_authenticated:
        return routes
    routes.extend(MEMBER_ROUTES)
    if is_admin(user_role):
        routes.extend(ADMIN_ROUTES)
    return routes
