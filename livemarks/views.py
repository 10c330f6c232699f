from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from .model import Bookmark, Folder

SORT_FIELDS = ("created_at", "title", "url")
SORT_ORDERS = ("asc", "desc")

RECENT_WINDOW = timedelta(days=7)
TOP_N = 5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class BrowseQuery:
    folder_id: Optional[str] = None
    favorites_only: bool = False
    search: str = ""
    tag: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    include_archived: bool = True

    def __post_init__(self) -> None:
        if self.sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
        if self.sort_order not in SORT_ORDERS:
            raise ValueError("sort_order must be 'asc' or 'desc'")


@dataclass
class Stats:
    total: int = 0
    favorites: int = 0
    folders: int = 0
    added_this_week: int = 0
    tags: List[str] = field(default_factory=list)
    tag_counts: List[Tuple[str, int]] = field(default_factory=list)
    most_visited: List[Bookmark] = field(default_factory=list)
    recently_visited: List[Bookmark] = field(default_factory=list)


def matches_search(b: Bookmark, query: str) -> bool:
    q = (query or "").strip().lower()
    if not q:
        return True
    if q in b.title.lower() or q in b.url.lower():
        return True
    if b.description and q in b.description.lower():
        return True
    return any(q in t.lower() for t in b.tags)


def filter_bookmarks(bookmarks: Iterable[Bookmark], query: BrowseQuery) -> List[Bookmark]:
    out = list(bookmarks)
    if query.folder_id:
        out = [b for b in out if b.folder_id == query.folder_id]
    if query.favorites_only:
        out = [b for b in out if b.is_favorite]
    if not query.include_archived:
        out = [b for b in out if not b.is_archived]
    if query.search:
        out = [b for b in out if matches_search(b, query.search)]
    if query.tag:
        out = [b for b in out if query.tag in b.tags]

    if query.sort_by == "title":
        key = lambda b: b.title.lower()  # noqa: E731
    elif query.sort_by == "url":
        key = lambda b: b.url.lower()  # noqa: E731
    else:
        key = lambda b: b.created_at  # noqa: E731
    out.sort(key=key, reverse=(query.sort_order == "desc"))
    return out


def collection_stats(
    bookmarks: Sequence[Bookmark],
    folders: Sequence[Folder],
    now: Optional[datetime] = None,
) -> Stats:
    now = now or datetime.now(timezone.utc)
    counts: Counter[str] = Counter()
    for b in bookmarks:
        counts.update(b.tags)

    tags: List[str] = []
    for b in bookmarks:
        for t in b.tags:
            if t not in tags:
                tags.append(t)

    return Stats(
        total=len(bookmarks),
        favorites=sum(1 for b in bookmarks if b.is_favorite),
        folders=len(folders),
        added_this_week=sum(1 for b in bookmarks if _aware(now) - _aware(b.created_at) < RECENT_WINDOW),
        tags=tags,
        tag_counts=sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])),
        most_visited=sorted(bookmarks, key=lambda b: b.visit_count or 0, reverse=True)[:TOP_N],
        recently_visited=sorted(bookmarks, key=lambda b: _aware(b.last_visited) if b.last_visited else _EPOCH, reverse=True)[:TOP_N],
    )


def _aware(dt: datetime) -> datetime:
    # Rows written without an offset are UTC.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def view_title(folders: Iterable[Folder], folder_id: Optional[str], favorites_only: bool) -> str:
    if favorites_only:
        return "Favorites"
    if folder_id:
        for f in folders:
            if f.id == folder_id:
                return f.name or "Folder"
        return "Folder"
    return "All Bookmarks"
