from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .domain import favicon_url, suggest_title
from .events import parse_record
from .log import get_logger
from .model import BOOKMARKS, FOLDERS, Bookmark, Folder, Reminder
from .store import StoreClient
from .url_norm import ensure_scheme, is_valid_url

log = get_logger(__name__)

DEFAULT_FAVICON_TEMPLATE = "https://www.google.com/s2/favicons?domain={host}&sz=64"
DEFAULT_FOLDER_COLOR = "#6366f1"

REMINDERS_TABLE = "reminders"

_BOOKMARK_EDITABLE = {"url", "title", "description", "folder_id", "tags", "is_favorite", "og_image"}


class Library:
    """Write operations for one owner's bookmarks and folders.

    Writes go straight to the datastore. Local collections learn about them
    through the change feed or the next snapshot load, never from here.
    """

    def __init__(
        self,
        client: StoreClient,
        owner_id: str,
        *,
        favicon_template: str = DEFAULT_FAVICON_TEMPLATE,
        default_folder_color: str = DEFAULT_FOLDER_COLOR,
    ):
        if not owner_id:
            raise ValueError("owner id is required")
        self.client = client
        self.owner_id = owner_id
        self.favicon_template = favicon_template
        self.default_folder_color = default_folder_color

    async def add_bookmark(
        self,
        url: str,
        title: Optional[str] = None,
        *,
        description: Optional[str] = None,
        folder_id: Optional[str] = None,
        tags: Iterable[str] = (),
        is_favorite: bool = False,
    ) -> Bookmark:
        final_url = clean_url(url)
        title = (title or "").strip() or suggest_title(final_url)
        if not title:
            raise ValueError("URL and title are required")
        row = {
            "url": final_url,
            "title": title,
            "description": _blank_to_none(description),
            "folder_id": folder_id or None,
            "tags": clean_tags(tags),
            "is_favorite": bool(is_favorite),
            "user_id": self.owner_id,
            "favicon": favicon_url(final_url, self.favicon_template),
        }
        created = await self.client.insert(BOOKMARKS.table, [row])
        log.info("Added bookmark %s", final_url)
        return parse_record(Bookmark, _first(created, "bookmark insert"))

    async def update_bookmark(self, bookmark_id: str, **changes: Any) -> Optional[Bookmark]:
        unknown = set(changes) - _BOOKMARK_EDITABLE
        if unknown:
            raise ValueError(f"unsupported bookmark fields: {', '.join(sorted(unknown))}")
        patch: Dict[str, Any] = dict(changes)
        if "url" in patch:
            patch["url"] = clean_url(patch["url"])
        if "title" in patch:
            patch["title"] = (patch["title"] or "").strip()
            if not patch["title"]:
                raise ValueError("URL and title are required")
        if "description" in patch:
            patch["description"] = _blank_to_none(patch["description"])
        if "tags" in patch:
            patch["tags"] = clean_tags(patch["tags"] or ())
        if not patch:
            return None
        row = await self.client.update(BOOKMARKS.table, bookmark_id, patch)
        return parse_record(Bookmark, row) if row else None

    async def toggle_favorite(self, bookmark: Bookmark) -> Optional[Bookmark]:
        row = await self.client.update(BOOKMARKS.table, bookmark.id, {"is_favorite": not bookmark.is_favorite})
        return parse_record(Bookmark, row) if row else None

    async def record_visit(self, bookmark: Bookmark, now: Optional[datetime] = None) -> Optional[Bookmark]:
        when = now or datetime.now(timezone.utc)
        row = await self.client.update(
            BOOKMARKS.table,
            bookmark.id,
            {"visit_count": (bookmark.visit_count or 0) + 1, "last_visited": when.isoformat()},
        )
        return parse_record(Bookmark, row) if row else None

    async def set_archived(self, bookmark_id: str, archived: bool) -> Optional[Bookmark]:
        row = await self.client.update(BOOKMARKS.table, bookmark_id, {"is_archived": bool(archived)})
        return parse_record(Bookmark, row) if row else None

    async def delete_bookmark(self, bookmark_id: str) -> None:
        await self.client.delete(BOOKMARKS.table, bookmark_id)
        log.info("Deleted bookmark %s", bookmark_id)

    async def set_reminder(self, bookmark: Bookmark, remind_at: datetime) -> Reminder:
        if remind_at.tzinfo is None:
            remind_at = remind_at.replace(tzinfo=timezone.utc)
        row = {
            "bookmark_id": bookmark.id,
            "user_id": bookmark.user_id,
            "remind_at": remind_at.isoformat(),
        }
        created = await self.client.insert(REMINDERS_TABLE, [row])
        log.info("Reminder set for %s at %s", bookmark.title, remind_at.isoformat())
        return parse_record(Reminder, _first(created, "reminder insert"))

    async def create_folder(
        self,
        name: str,
        *,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Folder:
        name = (name or "").strip()
        if not name:
            raise ValueError("folder name is required")
        row: Dict[str, Any] = {
            "name": name,
            "color": color or self.default_folder_color,
            "user_id": self.owner_id,
        }
        # Left out so the column default applies.
        if icon:
            row["icon"] = icon
        if parent_id:
            row["parent_id"] = parent_id
        created = await self.client.insert(FOLDERS.table, [row])
        log.info("Created folder %s", name)
        return parse_record(Folder, _first(created, "folder insert"))

    async def update_folder(
        self,
        folder_id: str,
        *,
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Folder]:
        patch: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValueError("folder name is required")
            patch["name"] = name.strip()
        if color:
            patch["color"] = color
        if not patch:
            return None
        row = await self.client.update(FOLDERS.table, folder_id, patch)
        return parse_record(Folder, row) if row else None

    async def delete_folder(self, folder_id: str) -> None:
        await self.client.delete(FOLDERS.table, folder_id)
        log.info("Deleted folder %s", folder_id)

    async def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert import rows for this owner; rows with unusable URLs are skipped."""
        batch: List[Dict[str, Any]] = []
        skipped = 0
        for r in rows:
            try:
                url = clean_url(str(r.get("url") or ""))
            except ValueError:
                skipped += 1
                continue
            row = {
                "url": url,
                "title": (str(r.get("title") or "").strip() or suggest_title(url) or url),
                "description": _blank_to_none(r.get("description")),
                "folder_id": r.get("folder_id") or None,
                "tags": clean_tags(r.get("tags") or ()),
                "is_favorite": bool(r.get("is_favorite", False)),
                "user_id": self.owner_id,
                "favicon": favicon_url(url, self.favicon_template),
            }
            if r.get("created_at"):
                row["created_at"] = r["created_at"]
            batch.append(row)
        if skipped:
            log.warning("Skipped %d import rows without a usable URL.", skipped)
        if not batch:
            return 0
        created = await self.client.insert(BOOKMARKS.table, batch)
        log.info("Imported %d bookmarks.", len(created) or len(batch))
        return len(created) or len(batch)


def clean_url(url: str) -> str:
    final_url = ensure_scheme(url)
    if not final_url or not is_valid_url(final_url):
        raise ValueError(f"not a valid URL: {url!r}")
    return final_url


def clean_tags(tags: Iterable[str]) -> List[str]:
    if isinstance(tags, str):
        tags = tags.replace(";", ",").split(",")
    out: List[str] = []
    seen = set()
    for t in tags:
        s = str(t).strip()
        if not s or s.lower() in seen:
            continue
        seen.add(s.lower())
        out.append(s)
    return out


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _first(rows: List[Dict[str, Any]], what: str) -> Dict[str, Any]:
    if not rows:
        raise RuntimeError(f"{what} returned no rows")
    return rows[0]
