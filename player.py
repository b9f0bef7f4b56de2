#!/usr/bin/env python3
# player.py – rev-v2  (2026-10-19)
"""
Headless libVLC list player.

• One libVLC instance, list player and media list per `play()` call
• Only *checked* playlist items are queued, in playlist order
• `play()` blocks until VLC reports the list as played, the optional
  timeout expires, or the optional cancel event is set
• Every failure is a PlaybackError naming the step (init / build / attach /
  play / wait); native objects are released exactly once on every path
"""

from __future__ import annotations
import contextlib, logging, threading, time
from typing  import Callable, Iterable, List, Optional

import vlc

from playlist import PlaylistItem

log = logging.getLogger(__name__)

# ───────────────────────────────── libVLC CLI options
BASE_OPTS = ["--no-video", "--quiet"]
AOUT_OPTS: dict[str, list[str]] = {
    "default": [],
    "pulse"  : ["--aout=pulse"],
    "alsa"   : ["--aout=alsa"],
    "dummy"  : ["--aout=dummy"],      # no sound card (CI, containers)
}


class PlaybackError(RuntimeError):
    def __init__(self, step: str, cause: Optional[BaseException] = None,
                 detail: str = ""):
        super().__init__(f"{step}: {detail or cause}")
        self.step  = step
        self.cause = cause

class PlaybackTimeout(PlaybackError):
    pass

# ─────────────────────────────── helpers
def _step(step: str, fn: Callable, *args):
    """Call into libVLC, re-raising anything as PlaybackError(step)."""
    try:
        return fn(*args)
    except PlaybackError:
        raise
    except Exception as e:
        raise PlaybackError(step, e) from e

def _quietly(what: str, fn: Callable, *args) -> None:
    try:
        fn(*args)
    except Exception as e:
        log.warning("releasing %s failed: %s", what, e)

def _close_list_player(lp) -> None:
    _quietly("list player (stop)", lp.stop)
    _quietly("list player", lp.release)


class VLCPlaylistPlayer:
    POLL = 0.25          # seconds between cancel / deadline checks

    def __init__(self, *, aout: str = "default", timeout: Optional[float] = None):
        """*timeout* is the default wait policy for play(); None waits forever."""
        if aout not in AOUT_OPTS:
            raise ValueError(f"invalid output mode: {aout}")
        self.aout    = aout
        self.timeout = timeout

    def instance_opts(self) -> List[str]:
        return [*BASE_OPTS, *AOUT_OPTS[self.aout]]

    # ─────────────────────────────── playback
    def play(self, items: Iterable[PlaylistItem], *,
             timeout: Optional[float] = None,
             cancel: Optional[threading.Event] = None) -> int:
        """Play every checked item of *items* to the end; return how many were queued."""
        wanted  = [it for it in items if it.checked]
        timeout = self.timeout if timeout is None else timeout
        if not wanted:
            raise PlaybackError("build", detail="no checked items in playlist")

        with contextlib.ExitStack() as stack:
            # callbacks unwind in reverse: list player, media list, instance
            instance = _step("init", vlc.Instance, self.instance_opts())
            if instance is None:
                raise PlaybackError("init", detail="libVLC returned no instance")
            stack.callback(_quietly, "instance", instance.release)

            mlist = _step("build", instance.media_list_new)
            stack.callback(_quietly, "media list", mlist.release)
            lplayer = _step("build", instance.media_list_player_new)
            stack.callback(_close_list_player, lplayer)

            self._fill(instance, mlist, wanted)
            log.info("%d entries from playlist added to streamer", len(wanted))

            done = threading.Event()
            _step("attach", lplayer.set_media_list, mlist)
            events = _step("attach", lplayer.event_manager)
            _step("attach", events.event_attach,
                  vlc.EventType.MediaListPlayerPlayed, lambda *_: done.set())
            stack.callback(_quietly, "end-of-list listener",
                           events.event_detach, vlc.EventType.MediaListPlayerPlayed)

            _step("play", lplayer.play)
            if self._wait(done, timeout, cancel):
                log.info("playlist finished (%d entries)", len(wanted))
            return len(wanted)

    def _fill(self, instance, mlist, wanted: List[PlaylistItem]) -> None:
        _step("build", mlist.lock)          # libVLC wants the list locked while adding
        try:
            self._add_all(instance, mlist, wanted)
        finally:
            _quietly("media list lock", mlist.unlock)

    def _add_all(self, instance, mlist, wanted: List[PlaylistItem]) -> None:
        for n, it in enumerate(wanted):
            where = f"entry #{n} {it.path!r}"
            media = _step("build", instance.media_new_path, it.path)
            if media is None:
                raise PlaybackError("build", detail=f"{where}: libVLC could not open it")
            try:
                rc = _step("build", mlist.add_media, media)
            finally:
                _quietly(where, media.release)    # the list keeps its own reference
            if rc != 0:
                raise PlaybackError("build", detail=f"{where}: media list refused it")

    def _wait(self, done: threading.Event, timeout: Optional[float],
              cancel: Optional[threading.Event]) -> bool:
        """True when VLC signalled the end of the list, False when cancelled."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while not done.wait(self.POLL):
            if cancel is not None and cancel.is_set():
                log.info("playback cancelled")
                return False
            if deadline is not None and time.monotonic() >= deadline:
                raise PlaybackTimeout("wait", detail=f"list not finished after {timeout}s")
        return True
