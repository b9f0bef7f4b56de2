#!/usr/bin/env python3
# scanner.py – rev-d2  (2026-10-19)
"""
Media-directory discovery.

• Depth-first walk, entries in name order, symlinked directories followed
  (each directory visited once, so link loops end the branch).
• A `Folder.jpg` inside a directory becomes the cover of that directory's
  tracks – and only of that directory's, never of its siblings.
• Only .mp3 / .m4a / .aac files end up in the playlist; other images are
  recognised as cover candidates but never wired into items.
• Unreadable entries are logged & skipped; only an unreadable root is fatal.
"""

from __future__ import annotations
import logging, os
from typing  import Callable, Iterator, List, Optional, Set, Tuple

from mutagen import File as MFile

import playlist
from playlist import NodeKind, PlaylistItem, PlaylistStore

log = logging.getLogger(__name__)

AUDIO_EXTS = {".mp3", ".m4a", ".aac"}
COVER_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".heic", ".webp"}
COVER_NAME = "Folder.jpg"

ErrorCallback = Callable[[str, OSError], None]


class ScanError(Exception):
    """The root directory could not be read."""
    def __init__(self, path: str, cause: OSError):
        super().__init__(f"cannot scan {path!r}: {cause}")
        self.path  = path
        self.cause = cause

# ───────────────────────── helpers ────────────────────────────────
class _Frame:
    """One directory on the walk stack, with the cover its tracks inherit."""
    __slots__ = ("path", "entries", "cover")

    def __init__(self, path: str, entries: List[os.DirEntry]):
        self.path    = path
        self.entries = iter(entries)
        self.cover   = _probe_cover(entries)


def _ext(name: str) -> str:
    """Suffix from the last dot on, lowercased: ".mp3" → ".mp3", "noext" → ""."""
    dot = name.rfind(".")
    return name[dot:].lower() if dot >= 0 else ""

def _list_dir(path: str) -> List[os.DirEntry]:
    with os.scandir(path) as it:
        return sorted(it, key=lambda e: e.name)

def _probe_cover(entries: List[os.DirEntry]) -> str:
    want = COVER_NAME.lower()
    for e in entries:
        if e.name.lower() != want:
            continue
        try:
            if e.is_file():
                return e.path
        except OSError as err:
            log.warning("cover %s not readable: %s", e.path, err)
    return ""

def _log_node_error(path: str, err: OSError) -> None:
    log.error("on %s: %s – skipping", path, err)

def _read_tags(path: str) -> Tuple[str, float]:
    """Return (title, duration in seconds); blanks when mutagen can't tell."""
    try:
        audio = MFile(path, easy=True)
    except Exception as e:
        log.debug("no tags for %s: %s", path, e)
        return "", 0.0
    if audio is None:
        return "", 0.0
    title = ""
    if audio.tags:
        vals  = audio.tags.get("title") or [""]
        title = str(vals[0]).strip()
    duration = float(getattr(audio.info, "length", 0.0) or 0.0)
    return title, duration

def _make_item(entry: os.DirEntry, cover: str, read_tags: bool) -> Optional[PlaylistItem]:
    try:
        st   = entry.stat()
        kind = NodeKind.of(entry)
    except OSError as e:
        log.error("stat() failed on %s: %s", entry.path, e)
        return None
    if not kind & NodeKind.FILE:
        log.debug("skipping %s: not a regular file (%s)", entry.path, kind)
        return None
    title, duration = _read_tags(entry.path) if read_tags else ("", 0.0)
    return PlaylistItem(path=entry.path, cover=cover,
                        modified_at=st.st_mtime, size_bytes=st.st_size,
                        checked=True, node_kind=kind,
                        title=title, duration=duration)

def _enter(entry: os.DirEntry, visited: Set[Tuple[int, int]],
           on_error: ErrorCallback) -> Optional[_Frame]:
    try:
        st  = entry.stat()
        key = (st.st_dev, st.st_ino)
        if key in visited:
            log.warning("skipping %s: directory already visited", entry.path)
            return None
        entries = _list_dir(entry.path)
    except OSError as e:
        on_error(entry.path, e)
        return None
    visited.add(key)
    return _Frame(entry.path, entries)

# ───────────────────────── public API ─────────────────────────────
def iter_playlist(root, *, on_error: Optional[ErrorCallback] = None,
                  read_tags: bool = True) -> Iterator[PlaylistItem]:
    """Yield a PlaylistItem for every audio file below *root*, depth-first.

    Paths are joined onto *root* as given, so a relative root yields
    root-relative paths. Raises ScanError (on first iteration) when the
    root itself can't be listed.
    """
    root     = os.fspath(root)
    on_error = on_error or _log_node_error
    try:
        st      = os.stat(root)
        entries = _list_dir(root)
    except OSError as e:
        raise ScanError(root, e) from e

    visited = {(st.st_dev, st.st_ino)}
    stack   = [_Frame(root, entries)]
    while stack:
        frame = stack[-1]
        entry = next(frame.entries, None)
        if entry is None:
            stack.pop()                 # leaving the directory drops its cover
            continue

        try:
            is_dir = entry.is_dir()     # follows symlinks
        except OSError as e:
            on_error(entry.path, e)
            continue
        if is_dir:
            sub = _enter(entry, visited, on_error)
            if sub is not None:
                stack.append(sub)
            continue

        ext = _ext(entry.name)
        if not ext:
            continue
        if ext in AUDIO_EXTS:
            item = _make_item(entry, frame.cover, read_tags)
            if item is not None:
                yield item
        elif ext in COVER_EXTS:
            log.debug("image %s ignored (only %s sets a cover)", entry.path, COVER_NAME)


def scan(root, **kw) -> List[PlaylistItem]:
    """Materialise iter_playlist() into a list."""
    items = list(iter_playlist(root, **kw))
    log.info("%d entries found under %s", len(items), root)
    for i, it in enumerate(items):
        log.debug("%d: %r", i, it)
    return items

def rescan(root, store: Optional[PlaylistStore] = None, **kw) -> List[PlaylistItem]:
    """Scan *root* and swap the result into *store* (the process playlist by default).

    The store is only touched once the walk has finished, so a failed scan
    leaves the previous playlist in place.
    """
    store = store if store is not None else playlist.store
    items = scan(root, **kw)
    store.replace(items)
    return items
