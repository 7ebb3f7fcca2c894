"""
Directory view state: what the visitor selected, and which copy of the boot data
the page renders from.

Selection state round-trips through the query string (``category``, ``q``,
``sort``, ``page``) so a reload or a shared link reproduces the same view.

Boot data can come from three places, tried in order: the live query for this
request, the last live result if it is still fresh (5 minutes by default), and
the snapshot file exported at release time.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from app.promptlib.modules.directory.service import (
    SORT_ALIASES,
    SORT_OPTIONS,
    DirectoryBootData,
    PromptPage,
    PromptSummary,
)
from app.promptlib.utils import parse_positive_int

logger = logging.getLogger(__name__)

PAGE_WINDOW_SIZE = 5
DEFAULT_BOOT_CACHE_TTL_SECONDS = 300

SOURCE_LIVE = "live"
SOURCE_CACHE = "cache"
SOURCE_INITIAL = "initial"

# Options shown in the sort dropdown; "popular" is sent to the listing as "usage".
SORT_CHOICES = (
    ("", "Default"),
    ("popular", "Popularity"),
    ("recent", "Recent"),
    ("featured", "Featured"),
)
SORT_LABELS = {
    "popular": "Sorting by popularity",
    "usage": "Sorting by popularity",
    "recent": "Sorting by most recent",
    "featured": "Sorting by featured",
}


def _is_known_sort(sort: str) -> bool:
    return sort in SORT_OPTIONS or sort in SORT_ALIASES


@dataclass(frozen=True)
class DirectoryState:
    categories: tuple[str, ...] = ()
    search: str = ""
    sort: str = ""
    page: int = 1

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "DirectoryState":
        raw_category = args.get("category") or ""
        categories = tuple(dict.fromkeys(c.strip() for c in raw_category.split(",") if c.strip()))
        search = (args.get("q") or "").strip()
        sort = (args.get("sort") or "").strip().lower()
        if not _is_known_sort(sort):
            sort = ""
        page = parse_positive_int(args.get("page")) or 1
        return cls(categories=categories, search=search, sort=sort, page=page)

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.categories:
            params["category"] = ",".join(self.categories)
        if self.search:
            params["q"] = self.search
        if self.sort:
            params["sort"] = self.sort
        if self.page > 1:
            params["page"] = str(self.page)
        return params

    def to_query_string(self) -> str:
        return urlencode(self.to_params())

    def href(self, path: str = "/directory") -> str:
        qs = self.to_query_string()
        return f"{path}?{qs}" if qs else path

    @property
    def has_filters(self) -> bool:
        return bool(self.categories or self.search)

    @property
    def is_default_view(self) -> bool:
        return not self.categories and not self.search and not self.sort and self.page == 1

    @property
    def query_category(self) -> str | None:
        # Listing filters by a single category: the first one selected.
        return self.categories[0] if self.categories else None

    @property
    def query_sort(self) -> str | None:
        return SORT_ALIASES.get(self.sort, self.sort) or None

    @property
    def sort_label(self) -> str | None:
        return SORT_LABELS.get(self.sort)

    def with_search(self, search: str) -> "DirectoryState":
        return replace(self, search=(search or "").strip(), page=1)

    def with_sort(self, sort: str) -> "DirectoryState":
        sort = (sort or "").strip().lower()
        return replace(self, sort=sort if _is_known_sort(sort) else "", page=1)

    def toggle_category(self, category_id: str) -> "DirectoryState":
        if category_id in self.categories:
            categories = tuple(c for c in self.categories if c != category_id)
        else:
            categories = self.categories + (category_id,)
        return replace(self, categories=categories, page=1)

    def cleared(self) -> "DirectoryState":
        return DirectoryState()

    def go_to_page(self, page: int, total_pages: int) -> "DirectoryState":
        """Move to ``page`` if it lies within [1, total_pages]; otherwise stay put."""
        if 1 <= page <= max(total_pages, 1):
            return replace(self, page=page)
        return self

    def clamped(self, total_pages: int) -> "DirectoryState":
        last = max(total_pages, 1)
        if self.page > last:
            return replace(self, page=last)
        return self


def page_window(current: int, total_pages: int, size: int = PAGE_WINDOW_SIZE) -> list[int]:
    """Page numbers for the pager: at most ``size`` links centred on ``current``."""
    if total_pages <= 0:
        return []
    if total_pages <= size:
        return list(range(1, total_pages + 1))
    half = size // 2
    if current <= half + 1:
        start = 1
    elif current >= total_pages - half:
        start = total_pages - size + 1
    else:
        start = current - half
    return list(range(start, start + size))


class BootDataCache:
    """Most recent live boot data, trusted for ``ttl_seconds`` after it was stored."""

    def __init__(self, ttl_seconds: int = DEFAULT_BOOT_CACHE_TTL_SECONDS, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: tuple[DirectoryBootData, float] | None = None

    def put(self, data: DirectoryBootData) -> None:
        with self._lock:
            self._entry = (data, self._clock())

    def get(self) -> DirectoryBootData | None:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        data, stored_at = entry
        if self._clock() - stored_at < self.ttl_seconds:
            return data
        return None

    def clear(self) -> None:
        with self._lock:
            self._entry = None


@dataclass(frozen=True)
class DirectorySnapshot:
    """Initial payload exported ahead of time; used only when the database is unavailable."""

    boot: DirectoryBootData | None = None
    prompts: tuple[PromptSummary, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "boot": self.boot.to_dict() if self.boot else None,
            "prompts": [p.to_dict() for p in self.prompts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DirectorySnapshot":
        boot = data.get("boot")
        return cls(
            boot=DirectoryBootData.from_dict(boot) if boot else None,
            prompts=tuple(PromptSummary.from_dict(p) for p in data.get("prompts") or []),
        )


def load_snapshot(path: str | Path | None) -> DirectorySnapshot:
    if not path:
        return DirectorySnapshot()
    p = Path(path)
    if not p.exists():
        logger.warning("Directory snapshot not found at %s; continuing without it", p)
        return DirectorySnapshot()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
        return DirectorySnapshot.from_dict(raw)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error("Directory snapshot at %s is unreadable: %s", p, e)
        return DirectorySnapshot()


def write_snapshot(path: str | Path, snapshot: DirectorySnapshot) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(snapshot.to_dict(), indent=2, sort_keys=True), encoding="utf-8")


def resolve_boot_data(
    live: DirectoryBootData | None,
    cached: DirectoryBootData | None,
    initial: DirectoryBootData | None,
) -> tuple[DirectoryBootData | None, str | None]:
    """Pick live, then cached, then initial boot data; returns (data, source)."""
    for data, source in ((live, SOURCE_LIVE), (cached, SOURCE_CACHE), (initial, SOURCE_INITIAL)):
        if data is not None:
            return data, source
    return None, None


def resolve_prompt_list(
    result: PromptPage | None,
    initial_prompts: tuple[PromptSummary, ...] | list[PromptSummary],
    state: DirectoryState,
) -> list[PromptSummary]:
    if result is not None:
        return list(result.prompts)
    # Snapshot prompts only describe the unfiltered first page.
    if initial_prompts and state.page == 1 and not state.search and not state.categories:
        return list(initial_prompts)
    return []
