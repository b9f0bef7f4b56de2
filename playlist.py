#!/usr/bin/env python3
# playlist.py – rev-p3  (2026-10-19)
"""
Playlist items & the process-wide playlist store.

• PlaylistItem carries one audio file plus what the scanner inferred
  (cover, mtime, size, node kind, tag title/duration).
• PlaylistStore is replaced wholesale by every scan; readers always get a
  snapshot so a rescan can never pull the list out from under playback.
"""

from __future__ import annotations
import enum, os, stat, threading
from typing  import Iterable, Iterator, List, Tuple

# ────────────────────────── node kind ─────────────────────────────
class NodeKind(enum.Flag):
    NONE    = 0
    FILE    = enum.auto()
    DIR     = enum.auto()
    SYMLINK = enum.auto()
    DEVICE  = enum.auto()

    @classmethod
    def from_modes(cls, lmode: int, mode: int | None = None) -> "NodeKind":
        """Build from an lstat mode and (for symlinks) the followed stat mode."""
        kind = cls.NONE
        if stat.S_ISLNK(lmode):
            kind |= cls.SYMLINK
            if mode is None:        # dangling link
                return kind
        else:
            mode = lmode
        if stat.S_ISREG(mode):
            kind |= cls.FILE
        if stat.S_ISDIR(mode):
            kind |= cls.DIR
        if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
            kind |= cls.DEVICE
        return kind

    @classmethod
    def of(cls, entry: os.DirEntry) -> "NodeKind":
        lmode = entry.stat(follow_symlinks=False).st_mode
        mode  = None
        if stat.S_ISLNK(lmode):
            try:
                mode = entry.stat().st_mode
            except OSError:
                pass
        return cls.from_modes(lmode, mode)

# ────────────────────────── data class ────────────────────────────
class PlaylistItem:
    __slots__ = ("path", "cover", "modified_at", "size_bytes", "checked",
                 "node_kind", "title", "duration")

    def __init__(self, *, path: str, cover: str = "", modified_at: float = 0.0,
                 size_bytes: int = 0, checked: bool = True,
                 node_kind: NodeKind = NodeKind.FILE,
                 title: str = "", duration: float = 0.0):
        if not path:
            raise ValueError("playlist item needs a path")
        if size_bytes < 0:
            raise ValueError(f"negative size for {path!r}: {size_bytes}")
        self.path        = path
        self.cover       = cover
        self.modified_at = modified_at
        self.size_bytes  = size_bytes
        self.checked     = checked
        self.node_kind   = node_kind
        self.title       = title
        self.duration    = duration

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def key(self) -> Tuple:
        """Content identity, ignoring the modification timestamp."""
        return (self.path, self.cover, self.size_bytes, self.checked,
                self.node_kind, self.title, self.duration)

    def __eq__(self, other):
        if not isinstance(other, PlaylistItem):
            return NotImplemented
        return self.key() == other.key() and self.modified_at == other.modified_at

    def copy(self, **changes) -> "PlaylistItem":
        fields = {k: getattr(self, k) for k in self.__slots__}
        fields.update(changes)
        return PlaylistItem(**fields)

    def __str__(self):
        return self.path

    def __repr__(self):
        flag = "x" if self.checked else " "
        return f"<PlaylistItem [{flag}] {self.path!r} cover={self.cover!r}>"

# ────────────────────────── store ─────────────────────────────────
class PlaylistStore:
    """Ordered playlist guarded by a lock; reads hand out immutable snapshots."""

    def __init__(self, items: Iterable[PlaylistItem] = ()):
        self._lock  = threading.Lock()
        self._items: Tuple[PlaylistItem, ...] = tuple(items)

    def snapshot(self) -> Tuple[PlaylistItem, ...]:
        with self._lock:
            return self._items

    def replace(self, items: Iterable[PlaylistItem]) -> None:
        new = tuple(items)
        with self._lock:
            self._items = new

    def clear(self) -> None:
        self.replace(())

    def checked(self) -> List[PlaylistItem]:
        return [it for it in self.snapshot() if it.checked]

    def set_checked(self, path: str, checked: bool) -> None:
        # items are swapped, not mutated: snapshots already handed out stay as they were
        with self._lock:
            for i, it in enumerate(self._items):
                if it.path == path:
                    self._items = (*self._items[:i], it.copy(checked=checked),
                                   *self._items[i+1:])
                    return
        raise KeyError(path)

    def __len__(self):
        return len(self.snapshot())

    def __bool__(self):
        return bool(self.snapshot())

    def __iter__(self) -> Iterator[PlaylistItem]:
        return iter(self.snapshot())

    def __repr__(self):
        return f"<PlaylistStore ({len(self)} items)>"


# the playlist of the running process, replaced by every scan
store = PlaylistStore()
