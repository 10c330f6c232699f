from datetime import datetime, timedelta, timezone

import pytest

from livemarks.model import Bookmark, Folder
from livemarks.views import BrowseQuery, collection_stats, filter_bookmarks, matches_search, view_title

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)


def _bm(bid, title, *, days_ago=0, url=None, tags=(), folder_id=None, fav=False, visits=0, visited=None, desc=None, archived=False):
    t = NOW - timedelta(days=days_ago)
    return Bookmark(
        id=bid,
        user_id="u1",
        url=url or f"https://{bid}.example/",
        title=title,
        created_at=t,
        updated_at=t,
        description=desc,
        folder_id=folder_id,
        tags=tuple(tags),
        is_favorite=fav,
        visit_count=visits,
        last_visited=visited,
        is_archived=archived,
    )


def _folder(fid, name):
    return Folder(id=fid, user_id="u1", name=name, color="#fff", icon="folder", created_at=NOW, updated_at=NOW)


BOOKMARKS = [
    _bm("a", "alpha Docs", days_ago=1, tags=("python", "docs"), folder_id="f1", fav=True, visits=5, visited=NOW - timedelta(hours=1)),
    _bm("b", "Beta", days_ago=10, tags=("news",), desc="Daily Python digest", visits=9),
    _bm("c", "gamma", days_ago=3, url="https://zzz.example/", tags=("python",), folder_id="f1", archived=True, visited=NOW - timedelta(days=2)),
]


def test_default_query_sorts_newest_first():
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery())] == ["a", "c", "b"]


def test_folder_favorite_and_archive_filters():
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(folder_id="f1"))] == ["a", "c"]
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(favorites_only=True))] == ["a"]
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(folder_id="f1", include_archived=False))] == ["a"]


def test_search_matches_title_url_description_and_tags_case_insensitively():
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(search="PYTHON"))] == ["a", "c", "b"]
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(search="zzz"))] == ["c"]
    assert matches_search(BOOKMARKS[1], "digest")
    assert matches_search(BOOKMARKS[1], "  ")
    assert not matches_search(BOOKMARKS[1], "docs")


def test_tag_filter_is_exact():
    assert [b.id for b in filter_bookmarks(BOOKMARKS, BrowseQuery(tag="python"))] == ["a", "c"]
    assert filter_bookmarks(BOOKMARKS, BrowseQuery(tag="pyth")) == []


def test_sort_by_title_and_url():
    q = BrowseQuery(sort_by="title", sort_order="asc")
    assert [b.title for b in filter_bookmarks(BOOKMARKS, q)] == ["alpha Docs", "Beta", "gamma"]
    q = BrowseQuery(sort_by="url", sort_order="desc")
    assert [b.id for b in filter_bookmarks(BOOKMARKS, q)] == ["c", "b", "a"]


def test_invalid_sort_is_rejected():
    with pytest.raises(ValueError):
        BrowseQuery(sort_by="visits")
    with pytest.raises(ValueError):
        BrowseQuery(sort_order="up")


def test_collection_stats():
    s = collection_stats(BOOKMARKS, [_folder("f1", "Dev")], now=NOW)
    assert s.total == 3
    assert s.favorites == 1
    assert s.folders == 1
    assert s.added_this_week == 2
    assert s.tags == ["python", "docs", "news"]
    assert s.tag_counts == [("python", 2), ("docs", 1), ("news", 1)]
    assert [b.id for b in s.most_visited] == ["b", "a", "c"]
    assert [b.id for b in s.recently_visited] == ["a", "c", "b"]


def test_view_title():
    folders = [_folder("f1", "Dev")]
    assert view_title(folders, None, False) == "All Bookmarks"
    assert view_title(folders, "f1", False) == "Dev"
    assert view_title(folders, "gone", False) == "Folder"
    assert view_title(folders, "f1", True) == "Favorites"
