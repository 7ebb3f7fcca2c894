from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.promptlib.models import Base, User
from app.promptlib.utils import utcnow

PROMPT_STATUSES = ("pending", "approved", "rejected")


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Public slug; prompts refer to categories by this value.
    category_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # Denormalized counter kept for legacy imports; reads always recompute.
    prompt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class Prompt(Base):
    __tablename__ = "prompts"
    __table_args__ = (
        Index("idx_prompts_status", "status"),
        Index("idx_prompts_status_created", "status", "created_at"),
        Index("idx_prompts_category", "category"),
        CheckConstraint("status IN ('pending','approved','rejected')", name="ck_prompts_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    # Lowercased tag values, one per line; searched instead of the JSON text.
    tags_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    author_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    author_name: Mapped[str] = mapped_column(String(128), nullable=False, default="Anonymous")

    # pending -> approved | rejected
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    rejection_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    author: Mapped[User | None] = relationship("User", lazy="selectin")

    @property
    def tags(self) -> list[str]:
        try:
            value = json.loads(self.tags_json or "[]")
        except json.JSONDecodeError:
            return []
        return [str(t) for t in value] if isinstance(value, list) else []

    @tags.setter
    def tags(self, value: list[str]) -> None:
        tags = [str(t) for t in (value or [])]
        self.tags_json = json.dumps(tags, ensure_ascii=False)
        self.tags_text = "\n".join(t.lower() for t in tags)

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"
