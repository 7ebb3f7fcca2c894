from __future__ import annotations

import re
from typing import TYPE_CHECKING

from app.promptlib.audit import record_event
from app.promptlib.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptlib.models import User
    from app.promptlib.modules.directory.models import Prompt

TITLE_MAX = 200
CONTENT_MIN = 20
CONTENT_MAX = 20000
EXCERPT_MAX = 160
TAG_MAX_LENGTH = 32
MAX_TAGS = 10


def parse_tags(raw: str | None) -> list[str]:
    """Comma-separated tags → trimmed, lower-cased, de-duplicated, in input order."""
    tags: list[str] = []
    for part in (raw or "").split(","):
        tag = re.sub(r"\s+", " ", part).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def make_excerpt(content: str, limit: int = EXCERPT_MAX) -> str:
    text = re.sub(r"\s+", " ", content or "").strip()
    if len(text) <= limit:
        return text
    cut = text[: limit - 1].rstrip()
    # Prefer breaking on a word boundary when one is reasonably close.
    space = cut.rfind(" ")
    if space >= limit // 2:
        cut = cut[:space]
    return cut.rstrip(" ,.;:") + "…"


def validate_submission(payload: dict, category_ids: set[str]) -> list[str]:
    """Returns a list of human-readable errors; empty means valid."""
    errors = []
    title = (payload.get("title") or "").strip()
    content = (payload.get("content") or "").strip()
    category = (payload.get("category") or "").strip()
    excerpt = (payload.get("excerpt") or "").strip()
    tags = parse_tags(payload.get("tags"))

    if not title:
        errors.append("Title is required.")
    elif len(title) > TITLE_MAX:
        errors.append(f"Title must be {TITLE_MAX} characters or fewer.")
    if len(content) < CONTENT_MIN:
        errors.append(f"Prompt text must be at least {CONTENT_MIN} characters.")
    elif len(content) > CONTENT_MAX:
        errors.append(f"Prompt text must be {CONTENT_MAX} characters or fewer.")
    if not category:
        errors.append("Choose a category.")
    elif category not in category_ids:
        errors.append("Unknown category.")
    if len(excerpt) > EXCERPT_MAX:
        errors.append(f"Summary must be {EXCERPT_MAX} characters or fewer.")
    if len(tags) > MAX_TAGS:
        errors.append(f"Use at most {MAX_TAGS} tags.")
    if any(len(t) > TAG_MAX_LENGTH for t in tags):
        errors.append(f"Tags must be {TAG_MAX_LENGTH} characters or fewer.")
    return errors


def create_submission(s: "Session", payload: dict, user: "User") -> "Prompt":
    """Create a pending prompt authored by ``user``. Caller validates and commits."""
    from app.promptlib.modules.directory.models import Prompt

    content = (payload.get("content") or "").strip()
    p = Prompt(
        title=(payload.get("title") or "").strip(),
        content=content,
        excerpt=(payload.get("excerpt") or "").strip() or make_excerpt(content),
        category=(payload.get("category") or "").strip(),
        author_user_id=user.id,
        author_name=user.public_name,
        status="pending",
        featured=False,
        usage_count=0,
        execution_count=0,
        created_at=utcnow(),
    )
    p.tags = parse_tags(payload.get("tags"))
    s.add(p)
    s.flush()

    record_event(
        s,
        actor=user,
        action="prompt.submit",
        entity_type="Prompt",
        entity_id=str(p.id),
        metadata={"title": p.title, "category": p.category, "tags": p.tags},
    )
    return p
