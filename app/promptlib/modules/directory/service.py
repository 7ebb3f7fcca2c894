"""
Read side of the prompt directory.

Two queries feed the directory page:

* ``get_directory_boot_data`` hydrates the sidebar and the "newest" strip in
  one pass: every category with its approved-prompt count recomputed from the
  prompts table, plus the three newest approved prompts.
* ``get_approved_prompts`` returns one page of approved prompts for the
  current category/search/sort selection, with ``total_count`` and
  ``total_pages``.

Clamping an out-of-range page is the caller's job; this module only rejects
arguments that can never be valid (``page < 1``, ``limit < 1``).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from app.promptlib.models import User
from app.promptlib.modules.directory.models import Category, Prompt
from app.promptlib.roles import is_admin, primary_role
from app.promptlib.utils import epoch_ms, utcnow

logger = logging.getLogger(__name__)

RECENT_PROMPTS_LIMIT = 3
FEATURED_PROMPTS_LIMIT = 6
MAX_PAGE_LIMIT = 1000

SORT_USAGE = "usage"
SORT_RECENT = "recent"
SORT_FEATURED = "featured"
SORT_OPTIONS = (SORT_USAGE, SORT_RECENT, SORT_FEATURED)
SORT_ALIASES = {"popular": SORT_USAGE}

USAGE_KINDS = ("copy", "execute")

# Default ordering: popularity decays with age (hours), like a "hot" ranking.
_RANK_GRAVITY = 1.5
_RANK_AGE_OFFSET_HOURS = 2.0


@dataclass(frozen=True)
class CategorySummary:
    category_id: str
    name: str
    description: str
    icon: str
    prompt_count: int
    created_at: int | None = None
    updated_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "promptCount": self.prompt_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategorySummary":
        return cls(
            category_id=str(data["categoryId"]),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            icon=str(data.get("icon") or ""),
            prompt_count=int(data.get("promptCount") or 0),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass(frozen=True)
class PromptSummary:
    id: int
    title: str
    excerpt: str
    category: str
    author_name: str
    usage_count: int
    execution_count: int
    tags: tuple[str, ...]
    created_at: int
    featured: bool = False

    @classmethod
    def from_prompt(cls, p: Prompt) -> "PromptSummary":
        return cls(
            id=p.id,
            title=p.title,
            excerpt=p.excerpt,
            category=p.category,
            author_name=p.author_name,
            usage_count=p.usage_count or 0,
            execution_count=p.execution_count or 0,
            tags=tuple(p.tags),
            created_at=epoch_ms(p.created_at) or 0,
            featured=bool(p.featured),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "excerpt": self.excerpt,
            "category": self.category,
            "authorName": self.author_name,
            "usageCount": self.usage_count,
            "executionCount": self.execution_count,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "featured": self.featured,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptSummary":
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            excerpt=str(data.get("excerpt") or ""),
            category=str(data.get("category") or ""),
            author_name=str(data.get("authorName") or ""),
            usage_count=int(data.get("usageCount") or 0),
            execution_count=int(data.get("executionCount") or 0),
            tags=tuple(str(t) for t in (data.get("tags") or [])),
            created_at=int(data.get("createdAt") or 0),
            featured=bool(data.get("featured")),
        )


@dataclass(frozen=True)
class BootMeta:
    category_count: int
    recent_count: int
    generated_at: int

    def to_dict(self) -> dict[str, int]:
        return {
            "categoryCount": self.category_count,
            "recentCount": self.recent_count,
            "generatedAt": self.generated_at,
        }


@dataclass(frozen=True)
class DirectoryBootData:
    categories: list[CategorySummary]
    recent_prompts: list[PromptSummary]
    meta: BootMeta

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [c.to_dict() for c in self.categories],
            "recentPrompts": [p.to_dict() for p in self.recent_prompts],
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DirectoryBootData":
        categories = [CategorySummary.from_dict(c) for c in data.get("categories") or []]
        recent = [PromptSummary.from_dict(p) for p in data.get("recentPrompts") or []]
        meta = data.get("meta") or {}
        return cls(
            categories=categories,
            recent_prompts=recent,
            meta=BootMeta(
                category_count=int(meta.get("categoryCount", len(categories))),
                recent_count=int(meta.get("recentCount", len(recent))),
                generated_at=int(meta.get("generatedAt") or 0),
            ),
        )


@dataclass(frozen=True)
class PromptPage:
    prompts: list[PromptSummary]
    total_count: int
    total_pages: int
    page: int
    limit: int
    sort: str | None = None
    filters: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompts": [p.to_dict() for p in self.prompts],
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "page": self.page,
            "limit": self.limit,
        }


def _approved(s: Session) -> Query:
    return s.query(Prompt).filter(Prompt.status == "approved")


def approved_counts_by_category(s: Session) -> dict[str, int]:
    rows = (
        s.query(Prompt.category, func.count(Prompt.id))
        .filter(Prompt.status == "approved")
        .group_by(Prompt.category)
        .all()
    )
    return {str(cat): int(cnt or 0) for cat, cnt in rows}


def list_categories(s: Session) -> list[CategorySummary]:
    """All categories ordered by name, each with a freshly counted approved total."""
    counts = approved_counts_by_category(s)
    categories = sorted(s.query(Category).all(), key=lambda c: (c.name.casefold(), c.category_id))
    return [
        CategorySummary(
            category_id=c.category_id,
            name=c.name,
            description=c.description or "",
            icon=c.icon or "",
            prompt_count=counts.get(c.category_id, 0),
            created_at=epoch_ms(c.created_at),
            updated_at=epoch_ms(c.updated_at),
        )
        for c in categories
    ]


def get_directory_boot_data(s: Session, *, now: datetime | None = None) -> DirectoryBootData:
    categories = list_categories(s)
    newest = (
        _approved(s)
        .order_by(Prompt.created_at.desc(), Prompt.id.desc())
        .limit(RECENT_PROMPTS_LIMIT)
        .all()
    )
    recent = [PromptSummary.from_prompt(p) for p in newest]
    return DirectoryBootData(
        categories=categories,
        recent_prompts=recent,
        meta=BootMeta(
            category_count=len(categories),
            recent_count=len(recent),
            generated_at=epoch_ms(now or utcnow()) or 0,
        ),
    )


def normalize_sort(sort: str | None) -> str | None:
    """Map a requested sort to a known key; None means the default ranking."""
    key = (sort or "").strip().lower()
    if not key or key == "default":
        return None
    key = SORT_ALIASES.get(key, key)
    if key not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort {sort!r}. Use one of: {', '.join(SORT_OPTIONS)}, or default.")
    return key


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def default_rank_score(p: Prompt, now: datetime) -> float:
    popularity = (p.usage_count or 0) + (p.execution_count or 0)
    age_hours = max((now - p.created_at).total_seconds() / 3600.0, 0.0)
    return (popularity + 1) / math.pow(age_hours + _RANK_AGE_OFFSET_HOURS, _RANK_GRAVITY)


def total_pages_for(total_count: int, limit: int) -> int:
    return math.ceil(total_count / limit) if total_count else 0


def get_approved_prompts(
    s: Session,
    *,
    category: str | None = None,
    search: str | None = None,
    sort: str | None = None,
    limit: int = 50,
    page: int = 1,
    now: datetime | None = None,
) -> PromptPage:
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}.")
    if page < 1:
        raise ValueError("page must be 1 or greater.")
    sort_key = normalize_sort(sort)

    q = _approved(s)
    filters: dict[str, str] = {}
    category = (category or "").strip()
    if category:
        q = q.filter(Prompt.category == category)
        filters["category"] = category
    term = " ".join((search or "").split())
    if term:
        like = f"%{_escape_like(term)}%"
        q = q.filter(
            or_(
                Prompt.title.ilike(like, escape="\\"),
                Prompt.excerpt.ilike(like, escape="\\"),
                Prompt.content.ilike(like, escape="\\"),
                Prompt.tags_text.like(f"%{_escape_like(term.lower())}%", escape="\\"),
            )
        )
        filters["search"] = term

    total = q.order_by(None).count()
    offset = (page - 1) * limit

    if sort_key is None:
        ref = now or utcnow()
        ranked = sorted(
            q.order_by(None).with_entities(
                Prompt.id, Prompt.usage_count, Prompt.execution_count, Prompt.created_at
            ).all(),
            key=lambda r: (default_rank_score(r, ref), r.created_at, r.id),
            reverse=True,
        )
        page_ids = [r.id for r in ranked[offset : offset + limit]]
        by_id = {p.id: p for p in s.query(Prompt).filter(Prompt.id.in_(page_ids)).all()} if page_ids else {}
        rows = [by_id[i] for i in page_ids if i in by_id]
    else:
        if sort_key == SORT_USAGE:
            q = q.order_by(Prompt.usage_count.desc(), Prompt.created_at.desc(), Prompt.id.desc())
        elif sort_key == SORT_FEATURED:
            q = q.order_by(Prompt.featured.desc(), Prompt.created_at.desc(), Prompt.id.desc())
        else:
            q = q.order_by(Prompt.created_at.desc(), Prompt.id.desc())
        rows = q.offset(offset).limit(limit).all()

    return PromptPage(
        prompts=[PromptSummary.from_prompt(p) for p in rows],
        total_count=total,
        total_pages=total_pages_for(total, limit),
        page=page,
        limit=limit,
        sort=sort_key,
        filters=filters,
    )


def get_featured_prompts(s: Session, *, limit: int = FEATURED_PROMPTS_LIMIT) -> list[PromptSummary]:
    rows = (
        _approved(s)
        .filter(Prompt.featured.is_(True))
        .order_by(Prompt.created_at.desc(), Prompt.id.desc())
        .limit(limit)
        .all()
    )
    return [PromptSummary.from_prompt(p) for p in rows]


def list_approved_for_sitemap(s: Session, *, limit: int = MAX_PAGE_LIMIT) -> list[Prompt]:
    return _approved(s).order_by(Prompt.created_at.desc(), Prompt.id.desc()).limit(limit).all()


def can_view_prompt(prompt: Prompt, user: User | None) -> bool:
    if prompt.is_approved:
        return True
    if user is None:
        return False
    return prompt.author_user_id == user.id or is_admin(primary_role(user))


def record_prompt_usage(s: Session, prompt: Prompt, kind: str) -> Prompt:
    """Bump a usage counter in SQL so concurrent requests don't lose increments."""
    if kind not in USAGE_KINDS:
        raise ValueError(f"Unknown usage kind {kind!r}. Use one of: {', '.join(USAGE_KINDS)}.")
    if not prompt.is_approved:
        raise ValueError("Only approved prompts track usage.")
    column = Prompt.usage_count if kind == "copy" else Prompt.execution_count
    s.query(Prompt).filter(Prompt.id == prompt.id).update({column: column + 1}, synchronize_session=False)
    s.flush()
    s.refresh(prompt)
    logger.info("Prompt usage recorded (prompt_id=%s kind=%s)", prompt.id, kind)
    return prompt
