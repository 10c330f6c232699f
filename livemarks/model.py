from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union


@dataclass(frozen=True)
class Bookmark:
    id: str
    user_id: str
    url: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    favicon: Optional[str] = None
    folder_id: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    is_favorite: bool = False
    og_image: Optional[str] = None
    visit_count: int = 0
    last_visited: Optional[datetime] = None
    is_archived: bool = False


@dataclass(frozen=True)
class Folder:
    id: str
    user_id: str
    name: str
    color: str
    icon: str
    created_at: datetime
    updated_at: datetime
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class Reminder:
    id: str
    user_id: str
    bookmark_id: str
    remind_at: datetime
    created_at: Optional[datetime] = None


Record = Union[Bookmark, Folder]
R = TypeVar("R", Bookmark, Folder)


@dataclass(frozen=True)
class CollectionSpec(Generic[R]):
    """How one synced table is fetched, ordered and merged."""

    name: str
    table: str
    record_type: Type[R]
    order_column: str
    descending: bool
    sort_key: Callable[[R], object]
    # False: inserts go to the front (newest-first collections).
    resort_on_insert: bool

    def sort(self, records: Sequence[R]) -> List[R]:
        return sorted(records, key=self.sort_key, reverse=self.descending)


FOLDERS: CollectionSpec[Folder] = CollectionSpec(
    name="folders",
    table="folders",
    record_type=Folder,
    order_column="name",
    descending=False,
    sort_key=lambda f: f.name.casefold(),
    resort_on_insert=True,
)

BOOKMARKS: CollectionSpec[Bookmark] = CollectionSpec(
    name="bookmarks",
    table="bookmarks",
    record_type=Bookmark,
    order_column="created_at",
    descending=True,
    sort_key=lambda b: b.created_at,
    resort_on_insert=False,
)
