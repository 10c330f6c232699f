from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from .events import dump_record
from .log import get_logger
from .model import Bookmark, Folder

log = get_logger(__name__)

CSV_HEADER = ["Title", "URL", "Description", "Tags", "Folder", "Created At"]
TAG_SEP = ";"


def detect_format(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".json":
        return "json"
    if suffix == ".csv":
        return "csv"
    raise ValueError(f"unsupported import/export format: {path.name} (use .csv or .json)")


def export_csv(bookmarks: Iterable[Bookmark], folders: Sequence[Folder]) -> str:
    names = {f.id: f.name for f in folders}
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(CSV_HEADER)
    for b in bookmarks:
        w.writerow(
            [
                b.title,
                b.url,
                b.description or "",
                TAG_SEP.join(b.tags),
                names.get(b.folder_id or "", ""),
                b.created_at.isoformat(),
            ]
        )
    return buf.getvalue()


def export_json(bookmarks: Iterable[Bookmark]) -> str:
    return json.dumps([dump_record(b) for b in bookmarks], ensure_ascii=False, indent=2) + "\n"


def parse_import(text: str, fmt: str, folders: Sequence[Folder]) -> List[Dict[str, Any]]:
    """Turn an export file back into insert-ready rows (without owner)."""
    by_name = {f.name: f.id for f in folders}
    if fmt == "json":
        rows = _rows_from_json(text, by_name)
    elif fmt == "csv":
        rows = _rows_from_csv(text, by_name)
    else:
        raise ValueError(f"unsupported import format: {fmt}")

    out = [r for r in rows if (r.get("url") or "").strip()]
    if len(out) < len(rows):
        log.warning("Ignored %d import rows without a URL.", len(rows) - len(out))
    return out


def _rows_from_json(text: str, by_name: Dict[str, str]) -> List[Dict[str, Any]]:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("JSON import must be an array of bookmarks")
    rows: List[Dict[str, Any]] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        folder_id = item.get("folder_id")
        # Ids from another account do not resolve; fall back to the folder name when present.
        if item.get("folder") and item["folder"] in by_name:
            folder_id = by_name[item["folder"]]
        elif folder_id not in by_name.values():
            folder_id = None
        rows.append(
            {
                "title": item.get("title") or "",
                "url": item.get("url") or "",
                "description": item.get("description"),
                "tags": list(item.get("tags") or []),
                "folder_id": folder_id,
                "is_favorite": bool(item.get("is_favorite", False)),
                "created_at": item.get("created_at"),
            }
        )
    return rows


def _rows_from_csv(text: str, by_name: Dict[str, str]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    reader = csv.DictReader(io.StringIO(text))
    for rec in reader:
        tags = [t.strip() for t in (rec.get("Tags") or "").split(TAG_SEP) if t.strip()]
        rows.append(
            {
                "title": (rec.get("Title") or "").strip(),
                "url": (rec.get("URL") or "").strip(),
                "description": (rec.get("Description") or "").strip() or None,
                "tags": tags,
                "folder_id": by_name.get((rec.get("Folder") or "").strip()),
                "created_at": (rec.get("Created At") or "").strip() or None,
            }
        )
    return rows
