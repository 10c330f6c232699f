from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Tuple

from .feed import ChangeFeed
from .log import get_logger
from .model import BOOKMARKS, FOLDERS, Bookmark, Folder
from .sync import DEFAULT_POLL_INTERVAL_S, FetchRows, LiveCollection
from .views import SORT_FIELDS, SORT_ORDERS, BrowseQuery, Stats, collection_stats, filter_bookmarks, view_title

log = get_logger(__name__)


class Dashboard:
    """Shared browse state for one signed-in user.

    Holds the live folder and bookmark collections plus the current
    selection. Collections are read-only from outside; they change only
    through their snapshot loads and change events. Selection state changes
    only through the setters here.
    """

    def __init__(
        self,
        fetch: FetchRows,
        feed: ChangeFeed,
        *,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        self.on_change = on_change
        self.folders: LiveCollection[Folder] = LiveCollection(
            FOLDERS, fetch, feed, poll_interval_s=poll_interval_s, on_change=self._folders_changed
        )
        self.bookmarks: LiveCollection[Bookmark] = LiveCollection(
            BOOKMARKS, fetch, feed, poll_interval_s=poll_interval_s, on_change=self._bookmarks_changed
        )
        self.owner_id: Optional[str] = None
        self.selected_folder_id: Optional[str] = None
        self.show_favorites = False
        self.search_query = ""
        self.selected_tag: Optional[str] = None
        self.sort_by = "created_at"
        self.sort_order = "desc"

    def open(self, owner_id: str) -> None:
        if self.owner_id is not None:
            self.close()
        self.owner_id = owner_id
        self.folders.start(owner_id)
        self.bookmarks.start(owner_id)

    def close(self) -> None:
        self.folders.stop()
        self.bookmarks.stop()
        self.owner_id = None

    async def refresh(self) -> None:
        await asyncio.gather(self.folders.reload(), self.bookmarks.reload())

    def select_folder(self, folder_id: Optional[str]) -> None:
        if folder_id is not None and self.folders.get(folder_id) is None:
            raise KeyError(folder_id)
        self.selected_folder_id = folder_id
        if folder_id is not None:
            self.show_favorites = False

    def set_show_favorites(self, value: bool) -> None:
        self.show_favorites = bool(value)
        if self.show_favorites:
            self.selected_folder_id = None

    def set_search(self, query: str) -> None:
        self.search_query = query or ""

    def select_tag(self, tag: Optional[str]) -> None:
        self.selected_tag = tag or None

    def set_sort(self, sort_by: str, sort_order: str) -> None:
        if sort_by not in SORT_FIELDS or sort_order not in SORT_ORDERS:
            raise ValueError(f"invalid sort: {sort_by} {sort_order}")
        self.sort_by = sort_by
        self.sort_order = sort_order

    def query(self) -> BrowseQuery:
        return BrowseQuery(
            folder_id=self.selected_folder_id,
            favorites_only=self.show_favorites,
            search=self.search_query,
            tag=self.selected_tag,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
        )

    def visible_bookmarks(self) -> List[Bookmark]:
        return filter_bookmarks(self.bookmarks.items, self.query())

    def stats(self) -> Stats:
        return collection_stats(self.bookmarks.items, self.folders.items)

    def title(self) -> str:
        return view_title(self.folders.items, self.selected_folder_id, self.show_favorites)

    def folder_name(self, folder_id: Optional[str]) -> str:
        if not folder_id:
            return ""
        f = self.folders.get(folder_id)
        return f.name if f else ""

    def _folders_changed(self, folders: Tuple[Folder, ...]) -> None:
        if self.selected_folder_id and all(f.id != self.selected_folder_id for f in folders):
            log.info("Selected folder %s no longer exists; showing all bookmarks.", self.selected_folder_id)
            self.selected_folder_id = None
        if self.on_change:
            self.on_change("folders")

    def _bookmarks_changed(self, _bookmarks: Tuple[Bookmark, ...]) -> None:
        if self.on_change:
            self.on_change("bookmarks")
