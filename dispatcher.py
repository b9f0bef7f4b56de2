#!/usr/bin/env python3
# dispatcher.py – rev-x2  (2026-10-19)
"""
Hand the current playlist to a streaming backend without blocking the caller.

    idle → validating → rejected            (NoPlaylistError, nothing started)
                      → dispatched → running → finished | failed

Backends
• "vlc"      – VLCPlaylistPlayer plays every checked item (background thread)
• "restream" – ffmpeg pushes one file to the ingest server; start errors
               are raised here, the exit status lands on the job

The playlist is copied at dispatch time, so a rescan running alongside
never changes what an already-dispatched job plays.
"""

from __future__ import annotations
import logging, threading, uuid
from typing  import Dict, Optional

import playlist
from playlist import PlaylistStore
from player   import VLCPlaylistPlayer
from restream import RestreamLauncher, RestreamError

log = logging.getLogger(__name__)

BACKENDS = ("vlc", "restream")


class NoPlaylistError(LookupError):
    pass

# ───────────────────────── job handle ─────────────────────────────
class StreamJob:
    DISPATCHED, RUNNING, FINISHED, FAILED = "dispatched", "running", "finished", "failed"

    def __init__(self, backend: str):
        self.id      = uuid.uuid4().hex
        self.backend = backend
        self.state   = self.DISPATCHED
        self.error:  Optional[BaseException] = None
        self.value   = None
        self._done   = threading.Event()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job ended; False if *timeout* passed first."""
        return self._done.wait(timeout)

    def result(self, timeout: Optional[float] = None):
        """Return the backend's result, re-raising its error."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"stream job {self.id} still {self.state}")
        if self.error is not None:
            raise self.error
        return self.value

    def as_dict(self) -> Dict:
        return {"id": self.id, "backend": self.backend, "state": self.state,
                "error": str(self.error) if self.error else None}

    def _run(self, fn, *args, **kw) -> None:
        self.state = self.RUNNING
        try:
            self.value = fn(*args, **kw)
        except Exception as e:
            log.error("stream job %s (%s) failed: %s", self.id, self.backend, e)
            self.error = e
            self.state = self.FAILED
        else:
            log.info("stream job %s (%s) finished", self.id, self.backend)
            self.state = self.FINISHED
        finally:
            self._done.set()

    def __repr__(self):
        return f"<StreamJob {self.id[:8]} {self.backend} {self.state}>"

# ───────────────────────── dispatcher ─────────────────────────────
class StreamDispatcher:
    MAX_JOBS = 256       # finished jobs beyond this are forgotten, oldest first

    def __init__(self, store: Optional[PlaylistStore] = None, *,
                 player: Optional[VLCPlaylistPlayer] = None,
                 launcher: Optional[RestreamLauncher] = None):
        self.store    = store if store is not None else playlist.store
        self.player   = player or VLCPlaylistPlayer()
        self.launcher = launcher
        self._jobs: Dict[str, StreamJob] = {}
        self._lock    = threading.Lock()

    def dispatch(self, backend: str = "vlc", *, path: Optional[str] = None,
                 timeout: Optional[float] = None) -> StreamJob:
        """Start *backend* on the current playlist and return its job at once."""
        if backend not in BACKENDS:
            raise ValueError(f"unknown backend: {backend!r}")
        items = self.store.snapshot()
        if not items:
            raise NoPlaylistError("empty playlist – scan a media directory first")
        log.info("streaming %d playlist entries via %s", len(items), backend)

        job = StreamJob(backend)
        if backend == "vlc":
            target, args = self.player.play, (items,)
            kw = {"timeout": timeout}
        else:
            rjob   = self._launch(items, path)      # start errors reach the caller
            target, args, kw = self._await_restream, (rjob, timeout), {}

        with self._lock:
            self._prune()
            self._jobs[job.id] = job
        threading.Thread(target=job._run, args=(target, *args), kwargs=kw,
                         name=f"stream-{job.id[:8]}", daemon=True).start()
        return job

    def status(self, job_id: str) -> Dict:
        with self._lock:
            return self._jobs[job_id].as_dict()

    def jobs(self) -> Dict[str, StreamJob]:
        with self._lock:
            return dict(self._jobs)

    def _prune(self) -> None:
        # caller holds self._lock; running jobs are never dropped
        finished = [jid for jid, j in self._jobs.items() if j.done()]
        for jid in finished[:max(0, len(self._jobs) - self.MAX_JOBS + 1)]:
            del self._jobs[jid]

    # ─────────────────────────────── restream helpers
    def _launch(self, items, path: Optional[str]):
        if self.launcher is None:
            raise RestreamError("restream backend not configured")
        if path is None:
            first = next((it for it in items if it.checked), None)
            if first is None:
                raise NoPlaylistError("no checked entry to restream")
            path = first.path
        return self.launcher.launch(path)

    @staticmethod
    def _await_restream(rjob, timeout: Optional[float]) -> int:
        rjob.wait(timeout)
        if not rjob.done():
            rjob.kill()
            rjob.wait()
            raise RestreamError(f"{rjob.path}: timed out after {timeout}s, ffmpeg killed")
        if rjob.error is not None:
            raise rjob.error
        return rjob.returncode
