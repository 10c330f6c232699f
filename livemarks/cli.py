from __future__ import annotations

import argparse
import asyncio
import json
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from . import __version__
from .config import Settings, load_settings
from .dashboard import Dashboard
from .events import MalformedEvent, dump_record, parse_record
from .feed import LocalFeed
from .library import Library
from .log import LogConfig, get_logger, setup_logging
from .model import BOOKMARKS, FOLDERS, Bookmark, Folder
from .store import StoreClient, StoreError
from .transfer import detect_format, export_csv, export_json, parse_import
from .views import SORT_FIELDS, SORT_ORDERS, BrowseQuery, collection_stats, filter_bookmarks, view_title

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="livemarks",
        description="Personal bookmark manager (folders, tags, favorites) on a hosted datastore.",
    )
    p.add_argument("-V", "--version", action="version", version=f"livemarks {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    ls = sub.add_parser("list", help="List bookmarks.")
    ls.add_argument("--folder", default=None, help="Only bookmarks in this folder (name).")
    ls.add_argument("--favorites", action="store_true", help="Only favorites.")
    ls.add_argument("--search", default="", help="Match title, URL, description or tags.")
    ls.add_argument("--tag", default=None, help="Only bookmarks with this tag.")
    ls.add_argument("--sort", default="created_at", choices=SORT_FIELDS)
    ls.add_argument("--order", default="desc", choices=SORT_ORDERS)
    ls.add_argument("--hide-archived", action="store_true", help="Leave out archived bookmarks.")
    ls.add_argument("--json", action="store_true", help="Print JSON instead of text rows.")

    add = sub.add_parser("add", help="Add a bookmark.")
    add.add_argument("url")
    add.add_argument("--title", default=None, help="Defaults to a name derived from the domain.")
    add.add_argument("--description", default=None)
    add.add_argument("--tag", action="append", default=[], help="Tag (repeatable).")
    add.add_argument("--folder", default=None, help="Folder name.")
    add.add_argument("--favorite", action="store_true")

    rm = sub.add_parser("rm", help="Delete a bookmark.")
    rm.add_argument("bookmark_id")

    fav = sub.add_parser("fav", help="Toggle a bookmark's favorite flag.")
    fav.add_argument("bookmark_id")

    visit = sub.add_parser("visit", help="Count a visit to a bookmark and print its URL.")
    visit.add_argument("bookmark_id")

    arc = sub.add_parser("archive", help="Archive a bookmark.")
    arc.add_argument("bookmark_id")
    arc.add_argument("--undo", action="store_true", help="Restore from the archive.")

    rem = sub.add_parser("remind", help="Set a reminder for a bookmark.")
    rem.add_argument("bookmark_id")
    rem.add_argument("at", help="ISO date/time, e.g. 2026-03-01T09:30 (UTC unless an offset is given).")

    sub.add_parser("folders", help="List folders.")

    mk = sub.add_parser("mkdir", help="Create a folder.")
    mk.add_argument("name")
    mk.add_argument("--color", default=None)
    mk.add_argument("--icon", default=None)

    rmd = sub.add_parser("rmdir", help="Delete a folder (name or id).")
    rmd.add_argument("folder")

    sub.add_parser("stats", help="Collection statistics.")

    exp = sub.add_parser("export", help="Export bookmarks to CSV or JSON.")
    exp.add_argument("--out", required=True, help="Output path (.csv or .json).")
    exp.add_argument("--format", default=None, choices=("csv", "json"), help="Overrides the file suffix.")

    imp = sub.add_parser("import", help="Import bookmarks from a CSV or JSON export.")
    imp.add_argument("path")
    imp.add_argument("--format", default=None, choices=("csv", "json"), help="Overrides the file suffix.")

    w = sub.add_parser("watch", help="Keep folders and bookmarks in sync and report changes.")
    w.add_argument("--duration", type=float, default=0.0, help="Seconds to run (0 = until interrupted).")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    if not cfg.user_id:
        log.error("No user id configured. Set LIVEMARKS_USER_ID or user_id in the config file.")
        return 2

    try:
        return asyncio.run(_dispatch(args, cfg))
    except StoreError as e:
        log.error("Datastore request failed: %s", e)
        return 2
    except ValueError as e:
        log.error("%s", e)
        return 2
    except KeyboardInterrupt:
        return 130


async def _dispatch(args, cfg: Settings) -> int:
    async with _open_client(cfg) as client:
        if args.cmd == "watch":
            return await _cmd_watch(args, cfg, client)
        lib = Library(
            client,
            cfg.user_id,
            favicon_template=cfg.favicon_template,
            default_folder_color=cfg.default_folder_color,
        )
        if args.cmd == "list":
            return await _cmd_list(args, cfg, client)
        if args.cmd == "add":
            return await _cmd_add(args, cfg, client, lib)
        if args.cmd == "rm":
            await lib.delete_bookmark(args.bookmark_id)
            return 0
        if args.cmd in ("fav", "visit", "remind"):
            return await _cmd_touch(args, cfg, client, lib)
        if args.cmd == "archive":
            b = await lib.set_archived(args.bookmark_id, not args.undo)
            if b is None:
                log.error("Bookmark not found: %s", args.bookmark_id)
                return 2
            return 0
        if args.cmd == "folders":
            folders, bookmarks = await _load(client, cfg.user_id)
            for f in folders:
                n = sum(1 for b in bookmarks if b.folder_id == f.id)
                print(f"{f.id}\t{f.name}\t{f.color}\t{n}")
            return 0
        if args.cmd == "mkdir":
            f = await lib.create_folder(args.name, color=args.color, icon=args.icon)
            print(f.id)
            return 0
        if args.cmd == "rmdir":
            return await _cmd_rmdir(args, cfg, client, lib)
        if args.cmd == "stats":
            return await _cmd_stats(cfg, client)
        if args.cmd == "export":
            return await _cmd_export(args, cfg, client)
        if args.cmd == "import":
            return await _cmd_import(args, cfg, client, lib)
    return 2


def _open_client(cfg: Settings) -> StoreClient:
    return StoreClient.from_settings(cfg)


async def _load(client: StoreClient, owner_id: str) -> Tuple[List[Folder], List[Bookmark]]:
    folder_rows, bookmark_rows = await asyncio.gather(
        client.fetch_collection(FOLDERS, owner_id),
        client.fetch_collection(BOOKMARKS, owner_id),
    )
    return (
        FOLDERS.sort(_parse_rows(Folder, folder_rows)),
        BOOKMARKS.sort(_parse_rows(Bookmark, bookmark_rows)),
    )


def _parse_rows(record_type, rows: Sequence[dict]) -> list:
    out = []
    for row in rows:
        try:
            out.append(parse_record(record_type, row))
        except MalformedEvent as e:
            log.warning("Skipping malformed %s row: %s", record_type.__name__.lower(), e)
    return out


def _folder_id_by_name(folders: Sequence[Folder], name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    for f in folders:
        if f.name == name or f.id == name:
            return f.id
    lowered = name.casefold()
    for f in folders:
        if f.name.casefold() == lowered:
            return f.id
    raise ValueError(f"no such folder: {name}")


async def _cmd_list(args, cfg: Settings, client: StoreClient) -> int:
    folders, bookmarks = await _load(client, cfg.user_id)
    query = BrowseQuery(
        folder_id=_folder_id_by_name(folders, args.folder),
        favorites_only=args.favorites,
        search=args.search,
        tag=args.tag,
        sort_by=args.sort,
        sort_order=args.order,
        include_archived=not args.hide_archived,
    )
    rows = filter_bookmarks(bookmarks, query)
    if args.json:
        print(json.dumps([dump_record(b) for b in rows], ensure_ascii=False, indent=2))
        return 0

    names = {f.id: f.name for f in folders}
    log.info("%s: %d bookmarks", view_title(folders, query.folder_id, query.favorites_only), len(rows))
    for b in rows:
        star = "*" if b.is_favorite else " "
        tags = ",".join(b.tags)
        print(f"{b.id}\t{star}\t{b.title}\t{b.url}\t{names.get(b.folder_id or '', '')}\t{tags}")
    return 0


async def _cmd_add(args, cfg: Settings, client: StoreClient, lib: Library) -> int:
    folder_id = None
    if args.folder:
        folders, _ = await _load(client, cfg.user_id)
        folder_id = _folder_id_by_name(folders, args.folder)
    b = await lib.add_bookmark(
        args.url,
        args.title,
        description=args.description,
        folder_id=folder_id,
        tags=args.tag,
        is_favorite=args.favorite,
    )
    print(b.id)
    return 0


async def _cmd_touch(args, cfg: Settings, client: StoreClient, lib: Library) -> int:
    _, bookmarks = await _load(client, cfg.user_id)
    current = next((b for b in bookmarks if b.id == args.bookmark_id), None)
    if current is None:
        log.error("Bookmark not found: %s", args.bookmark_id)
        return 2
    if args.cmd == "fav":
        updated = await lib.toggle_favorite(current)
        log.info("Favorite %s: %s", "on" if updated and updated.is_favorite else "off", current.title)
    elif args.cmd == "remind":
        try:
            when = datetime.fromisoformat(args.at)
        except ValueError:
            raise ValueError(f"not an ISO date/time: {args.at!r}") from None
        r = await lib.set_reminder(current, when)
        print(f"{r.id}\t{r.remind_at.isoformat()}")
    else:
        await lib.record_visit(current)
        print(current.url)
    return 0


async def _cmd_rmdir(args, cfg: Settings, client: StoreClient, lib: Library) -> int:
    folders, _ = await _load(client, cfg.user_id)
    folder_id = _folder_id_by_name(folders, args.folder)
    await lib.delete_folder(folder_id)
    return 0


async def _cmd_stats(cfg: Settings, client: StoreClient) -> int:
    folders, bookmarks = await _load(client, cfg.user_id)
    s = collection_stats(bookmarks, folders)
    print(f"Total bookmarks:\t{s.total}")
    print(f"Favorites:\t{s.favorites}")
    print(f"Folders:\t{s.folders}")
    print(f"Added this week:\t{s.added_this_week}")
    if s.tag_counts:
        print("Tags:\t" + ", ".join(f"{t} ({n})" for t, n in s.tag_counts))
    for b in s.most_visited:
        if b.visit_count:
            print(f"Most visited:\t{b.visit_count}\t{b.title}")
    return 0


async def _cmd_export(args, cfg: Settings, client: StoreClient) -> int:
    out_path = Path(args.out)
    fmt = args.format or detect_format(out_path)
    folders, bookmarks = await _load(client, cfg.user_id)
    text = export_csv(bookmarks, folders) if fmt == "csv" else export_json(bookmarks)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")
    log.info("Exported %d bookmarks to %s", len(bookmarks), out_path)
    return 0


async def _cmd_import(args, cfg: Settings, client: StoreClient, lib: Library) -> int:
    path = Path(args.path)
    if not path.exists():
        log.error("Input file not found: %s", path)
        return 2
    fmt = args.format or detect_format(path)
    folders, _ = await _load(client, cfg.user_id)
    try:
        rows = parse_import(path.read_text(encoding="utf-8"), fmt, folders)
    except json.JSONDecodeError as e:
        log.error("Failed to parse %s: %s", path, e)
        return 2
    n = await lib.import_rows(rows)
    print(n)
    return 0


async def _cmd_watch(args, cfg: Settings, client: StoreClient) -> int:
    t0 = time.time()

    def _report(what: str) -> None:
        if what == "folders":
            log.info("Folders: %d", len(dash.folders))
        else:
            log.info("Bookmarks: %d", len(dash.bookmarks))

    # A CLI process has no realtime transport: the feed never confirms, so both collections poll.
    feed = LocalFeed()
    dash = Dashboard(client.fetch_collection, feed, poll_interval_s=cfg.poll_interval_s, on_change=_report)
    dash.open(cfg.user_id)
    log.info("Watching (polling every %.1fs).", cfg.poll_interval_s)
    try:
        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        dash.close()
    log.info("Done in %d ms.", int((time.time() - t0) * 1000))
    return 0
