import csv
import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from livemarks.model import Bookmark, Folder
from livemarks.transfer import CSV_HEADER, detect_format, export_csv, export_json, parse_import

T = datetime(2026, 2, 9, 10, 0, tzinfo=timezone.utc)

FOLDERS = [Folder(id="f1", user_id="u1", name="Dev, Tools", color="#fff", icon="folder", created_at=T, updated_at=T)]

BOOKMARKS = [
    Bookmark(
        id="b1",
        user_id="u1",
        url="https://example.com/?q=a,b",
        title='Say "hi", world',
        created_at=T,
        updated_at=T,
        description="line one",
        folder_id="f1",
        tags=("x", "y"),
    ),
    Bookmark(id="b2", user_id="u1", url="https://other.example/", title="Other", created_at=T, updated_at=T),
]


def test_export_csv_quotes_fields_and_resolves_folder_names():
    text = export_csv(BOOKMARKS, FOLDERS)
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == CSV_HEADER
    assert rows[1] == ['Say "hi", world', "https://example.com/?q=a,b", "line one", "x;y", "Dev, Tools", T.isoformat()]
    assert rows[2][3:5] == ["", ""]


def test_csv_export_can_be_imported_back():
    rows = parse_import(export_csv(BOOKMARKS, FOLDERS), "csv", FOLDERS)
    assert rows[0]["title"] == 'Say "hi", world'
    assert rows[0]["url"] == "https://example.com/?q=a,b"
    assert rows[0]["tags"] == ["x", "y"]
    assert rows[0]["folder_id"] == "f1"
    assert rows[1]["description"] is None
    assert rows[1]["folder_id"] is None


def test_export_json_and_import_with_unknown_folder_ids():
    data = json.loads(export_json(BOOKMARKS))
    assert data[0]["tags"] == ["x", "y"]
    assert data[0]["folder_id"] == "f1"

    data[1]["folder_id"] = "someone-elses-folder"
    data.append({"title": "no url"})
    rows = parse_import(json.dumps(data), "json", FOLDERS)
    assert len(rows) == 2
    assert rows[0]["folder_id"] == "f1"
    assert rows[1]["folder_id"] is None


def test_json_import_prefers_folder_name():
    rows = parse_import(json.dumps([{"url": "https://a/", "folder": "Dev, Tools"}]), "json", FOLDERS)
    assert rows[0]["folder_id"] == "f1"


def test_json_import_must_be_an_array():
    with pytest.raises(ValueError):
        parse_import('{"url": "https://a/"}', "json", FOLDERS)


def test_detect_format():
    assert detect_format(Path("x/bookmarks.CSV")) == "csv"
    assert detect_format(Path("bookmarks.json")) == "json"
    with pytest.raises(ValueError):
        detect_format(Path("bookmarks.html"))
