import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from livemarks.events import parse_record
from livemarks.library import Library, clean_tags, clean_url
from livemarks.model import Bookmark, Reminder
from livemarks.store import StoreClient

NOW = "2026-02-09T10:00:00+00:00"


class _EchoStore:
    """Datastore stub: echoes written rows back with server-side defaults filled in."""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content) if request.content else None
        if request.method == "POST":
            out = []
            for i, row in enumerate(body):
                filled = {"id": f"new{i}", "created_at": NOW, "updated_at": NOW, "icon": "folder", **row}
                out.append(filled)
            return httpx.Response(201, json=out)
        if request.method == "PATCH":
            base = _bookmark_row()
            return httpx.Response(200, json=[{**base, **body}])
        return httpx.Response(204)


def _bookmark_row(**over):
    row = {
        "id": "b1",
        "user_id": "u1",
        "url": "https://example.com/",
        "title": "Example",
        "tags": [],
        "is_favorite": False,
        "visit_count": 2,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(over)
    return row


def _run(fn):
    store = _EchoStore()

    async def scenario():
        async with StoreClient("https://db.example.co", "k", transport=httpx.MockTransport(store)) as client:
            return await fn(Library(client, "u1"))

    return asyncio.run(scenario()), store


def test_add_bookmark_fills_scheme_title_tags_and_favicon():
    b, store = _run(
        lambda lib: lib.add_bookmark(
            "github.com/alfa/repo?utm_source=mail&tab=readme",
            description="   ",
            tags=[" dev ", "Dev", "", "code"],
            is_favorite=True,
        )
    )
    assert b.url == "https://github.com/alfa/repo?utm_source=mail&tab=readme"
    assert b.title == "Github"
    assert b.description is None
    assert b.tags == ("dev", "code")
    assert b.is_favorite is True
    assert b.favicon == "https://www.google.com/s2/favicons?domain=github.com&sz=64"
    sent = json.loads(store.requests[0].content)[0]
    assert sent["user_id"] == "u1"
    assert sent["folder_id"] is None


def test_add_bookmark_rejects_missing_url():
    with pytest.raises(ValueError):
        _run(lambda lib: lib.add_bookmark("   ", "Title"))


def test_update_bookmark_validates_fields():
    with pytest.raises(ValueError):
        _run(lambda lib: lib.update_bookmark("b1", user_id="u2"))
    with pytest.raises(ValueError):
        _run(lambda lib: lib.update_bookmark("b1", title="  "))

    b, store = _run(lambda lib: lib.update_bookmark("b1", url="example.org", tags="a; b ,a"))
    assert b.url == "https://example.org"
    assert b.tags == ("a", "b")
    assert store.requests[0].url.params["id"] == "eq.b1"


def test_toggle_favorite_and_record_visit():
    current = parse_record(Bookmark, _bookmark_row())
    when = datetime(2026, 2, 10, 8, 0, tzinfo=timezone.utc)

    fav, store = _run(lambda lib: lib.toggle_favorite(current))
    assert fav.is_favorite is True
    assert json.loads(store.requests[0].content) == {"is_favorite": True}

    visited, store = _run(lambda lib: lib.record_visit(current, now=when))
    assert visited.visit_count == 3
    assert visited.last_visited == when


def test_archive_and_delete():
    archived, store = _run(lambda lib: lib.set_archived("b1", True))
    assert archived.is_archived is True

    _none, store = _run(lambda lib: lib.delete_bookmark("b1"))
    assert store.requests[0].method == "DELETE"


def test_create_and_update_folder():
    f, store = _run(lambda lib: lib.create_folder("  Reading  "))
    assert f.name == "Reading"
    assert f.color == "#6366f1"
    sent = json.loads(store.requests[0].content)[0]
    assert "icon" not in sent

    with pytest.raises(ValueError):
        _run(lambda lib: lib.create_folder(" "))
    with pytest.raises(ValueError):
        _run(lambda lib: lib.update_folder("f1", name=""))

    res, store = _run(lambda lib: lib.update_folder("f1"))
    assert res is None
    assert store.requests == []


def test_import_rows_skips_unusable_urls():
    rows = [
        {"url": "example.com/a", "title": "", "tags": ["x"]},
        {"url": "", "title": "no url"},
        {"url": "https://example.com/b", "title": "B", "created_at": NOW},
    ]
    n, store = _run(lambda lib: lib.import_rows(rows))
    assert n == 2
    sent = json.loads(store.requests[0].content)
    assert [r["url"] for r in sent] == ["https://example.com/a", "https://example.com/b"]
    assert sent[0]["title"] == "Example"
    assert sent[1]["created_at"] == NOW
    assert all(r["user_id"] == "u1" for r in sent)


def test_set_reminder_writes_reminder_row_for_bookmark_owner():
    current = parse_record(Bookmark, _bookmark_row())
    when = datetime(2026, 3, 1, 9, 30)

    r, store = _run(lambda lib: lib.set_reminder(current, when))
    req = store.requests[0]
    assert req.method == "POST"
    assert req.url.path == "/rest/v1/reminders"
    assert json.loads(req.content) == [
        {"bookmark_id": "b1", "user_id": "u1", "remind_at": "2026-03-01T09:30:00+00:00"}
    ]
    assert isinstance(r, Reminder)
    assert r.id == "new0"
    assert r.bookmark_id == "b1"
    assert r.remind_at == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def test_clean_helpers():
    assert clean_url(" example.com/?fbclid=1#top ") == "https://example.com/?fbclid=1#top"
    with pytest.raises(ValueError):
        clean_url("https://")
    assert clean_tags("a,b;;A") == ["a", "b"]
