from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.promptlib.audit import record_event
from app.promptlib.modules.directory.models import PROMPT_STATUSES, Category, Prompt
from app.promptlib.roles import ROLE_ADMIN, ROLE_USER, ROLES
from app.promptlib.utils import is_valid_slug, slugify, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptlib.models import User

logger = logging.getLogger(__name__)

ROLE_NAMES = {ROLE_ADMIN: "Administrator", ROLE_USER: "Member"}


class ModerationError(ValueError):
    pass


def status_counts(s: "Session") -> dict[str, int]:
    rows = s.query(Prompt.status, func.count(Prompt.id)).group_by(Prompt.status).all()
    counts = {status: 0 for status in PROMPT_STATUSES}
    counts.update({str(st): int(n or 0) for st, n in rows})
    return counts


def _set_status(s: "Session", p: Prompt, status: str, user: "User", action: str, reason: str | None = None) -> Prompt:
    old = p.status
    p.status = status
    p.rejection_reason = reason if status == "rejected" else None
    if status != "approved":
        p.featured = False
    p.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action=action,
        entity_type="Prompt",
        entity_id=str(p.id),
        reason=reason,
        metadata={"from": old, "to": status, "title": p.title},
    )
    logger.info("Prompt %s moderated %s -> %s by user_id=%s", p.id, old, status, user.id)
    return p


def approve_prompt(s: "Session", p: Prompt, user: "User") -> Prompt:
    if p.status == "approved":
        raise ModerationError("Prompt is already approved.")
    return _set_status(s, p, "approved", user, "prompt.approve")


def reject_prompt(s: "Session", p: Prompt, user: "User", reason: str | None = None) -> Prompt:
    if p.status == "rejected":
        raise ModerationError("Prompt is already rejected.")
    reason = (reason or "").strip() or None
    if reason and len(reason) > 512:
        raise ModerationError("Reason must be 512 characters or fewer.")
    return _set_status(s, p, "rejected", user, "prompt.reject", reason)


def toggle_featured(s: "Session", p: Prompt, user: "User") -> Prompt:
    if p.status != "approved":
        raise ModerationError("Only approved prompts can be featured.")
    p.featured = not p.featured
    p.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="prompt.feature" if p.featured else "prompt.unfeature",
        entity_type="Prompt",
        entity_id=str(p.id),
        metadata={"title": p.title},
    )
    return p


def delete_prompt(s: "Session", p: Prompt, user: "User", reason: str | None = None) -> None:
    record_event(
        s,
        actor=user,
        action="prompt.delete",
        entity_type="Prompt",
        entity_id=str(p.id),
        reason=(reason or "").strip() or None,
        metadata={"title": p.title, "status": p.status, "category": p.category},
    )
    s.delete(p)


def validate_category_payload(s: "Session", payload: dict, existing: Category | None = None) -> list[str]:
    errors = []
    name = (payload.get("name") or "").strip()
    slug = (payload.get("category_id") or "").strip().lower() or slugify(name)
    if not name:
        errors.append("Name is required.")
    if not slug or not is_valid_slug(slug):
        errors.append("Slug must use lowercase letters, digits and single dashes.")
    elif len(slug) > 64:
        errors.append("Slug must be 64 characters or fewer.")
    else:
        clash = s.query(Category).filter(Category.category_id == slug).one_or_none()
        if clash is not None and clash is not existing:
            errors.append("A category with that slug already exists.")
    return errors


def create_category(s: "Session", payload: dict, user: "User") -> Category:
    name = (payload.get("name") or "").strip()
    now = utcnow()
    c = Category(
        category_id=(payload.get("category_id") or "").strip().lower() or slugify(name),
        name=name,
        description=(payload.get("description") or "").strip(),
        icon=(payload.get("icon") or "").strip(),
        prompt_count=0,
        created_at=now,
        updated_at=now,
    )
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="category.create",
        entity_type="Category",
        entity_id=c.category_id,
        metadata={"name": c.name},
    )
    return c


def update_category(s: "Session", c: Category, payload: dict, user: "User") -> Category:
    """Update display fields. The slug is immutable because prompts reference it."""
    changes = {}
    for key in ("name", "description", "icon"):
        new = (payload.get(key) or "").strip()
        if new != (getattr(c, key) or ""):
            changes[key] = {"old": getattr(c, key), "new": new}
            setattr(c, key, new)
    if changes:
        c.updated_at = utcnow()
        record_event(
            s,
            actor=user,
            action="category.update",
            entity_type="Category",
            entity_id=c.category_id,
            metadata={"changes": changes},
        )
    return c


def set_user_role(s: "Session", target: "User", role_key: str, actor: "User") -> "User":
    from app.promptlib.models import Role

    if role_key not in ROLES:
        raise ModerationError(f"Unknown role {role_key!r}.")
    if target.id == actor.id and role_key != ROLE_ADMIN:
        raise ModerationError("You cannot remove your own admin role.")

    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role is None:
        role = Role(key=role_key, name=ROLE_NAMES[role_key])
        s.add(role)
    old_keys = sorted(r.key for r in target.roles)
    target.roles = [r for r in target.roles if r.key not in ROLES] + [role]
    record_event(
        s,
        actor=actor,
        action="user.set_role",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"from": old_keys, "to": role_key},
    )
    return target
