#!/usr/bin/env python3
# restream.py – rev-f4  (2026-10-19)
"""
Push a single file to the ingest server through ffmpeg.

Ingest URL:  <streamer_url>/<basename>?lal_secret=<md5(master_key + basename)>

The process is started in the caller's thread, so a missing binary or a bad
path is reported right away; waiting for it to exit happens on a daemon
thread of its own and only ends up in the log and on the returned job.
"""

from __future__ import annotations
import hashlib, logging, os, subprocess, threading
from typing  import List, Optional
from urllib.parse import quote

log = logging.getLogger(__name__)

SECRET_PARAM = "lal_secret"
MUX_DELAY    = "0.1"
CONTAINER    = "flv"


class RestreamError(RuntimeError):
    pass

# ───────────────────────── signing ────────────────────────────────
def sign(master_key: str, basename: str) -> str:
    return hashlib.md5((master_key + basename).encode("utf-8")).hexdigest()

def ingest_url(streamer_url: str, path: str, master_key: str) -> str:
    base = os.path.basename(path)
    return (f"{streamer_url.rstrip('/')}/{quote(base)}"
            f"?{SECRET_PARAM}={sign(master_key, base)}")

def build_command(ffmpeg: str, path: str, url: str) -> List[str]:
    return [
        ffmpeg,
        "-hide_banner", "-loglevel", "error",   # keep the piped stderr small
        "-re",                         # read input at native rate
        "-i", path,
        "-c:a", "copy", "-c:v", "copy", # passthrough, no re-encode
        "-f", CONTAINER,
        "-muxdelay", MUX_DELAY,
        url,
    ]

# ───────────────────────── job handle ─────────────────────────────
class RestreamJob:
    """A running ffmpeg process; `wait()` blocks until it has exited."""

    def __init__(self, proc: subprocess.Popen, path: str, url: str):
        self.proc        = proc
        self.path        = path
        self.url         = url
        self.returncode: Optional[int] = None
        self.error:      Optional[BaseException] = None
        self._done       = threading.Event()

    @property
    def pid(self) -> int:
        return self.proc.pid

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Return the exit code, or None if *timeout* passed first."""
        if not self._done.wait(timeout):
            return None
        return self.returncode

    def kill(self) -> None:
        """Kill ffmpeg; the reaper thread then records the exit."""
        if not self.done():
            log.warning("killing ffmpeg (pid %d) on %s", self.pid, self.path)
            self.proc.kill()

    def _finish(self, returncode: Optional[int], error: Optional[BaseException] = None):
        self.returncode = returncode
        self.error      = error
        self._done.set()

    def __repr__(self):
        state = "running" if not self.done() else f"rc={self.returncode}"
        return f"<RestreamJob pid={self.pid} {os.path.basename(self.path)!r} {state}>"

# ───────────────────────── launcher ───────────────────────────────
class RestreamLauncher:
    def __init__(self, ffmpeg: str, streamer_url: str, master_key: str, *,
                 timeout: Optional[float] = None):
        self.ffmpeg       = ffmpeg
        self.streamer_url = streamer_url
        self.master_key   = master_key
        self.timeout      = timeout         # None → wait for ffmpeg forever

    def command_for(self, path: str) -> List[str]:
        if not self.master_key:
            raise RestreamError("no master key configured")
        if not self.streamer_url:
            raise RestreamError("no streamer URL configured")
        return build_command(self.ffmpeg, path,
                             ingest_url(self.streamer_url, path, self.master_key))

    def launch(self, path: str) -> RestreamJob:
        """Start ffmpeg on *path* and return without waiting for it."""
        cmd = self.command_for(path)
        log.debug("filename to stream: %r", path)
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL,
                                    stdout=subprocess.DEVNULL,
                                    stderr=subprocess.PIPE)
        except OSError as e:
            log.error("could not start %s: %s", self.ffmpeg, e)
            raise RestreamError(f"could not start {self.ffmpeg!r}: {e}") from e

        job = RestreamJob(proc, path, cmd[-1])
        log.info("restreaming %s (pid %d)", os.path.basename(path), proc.pid)
        threading.Thread(target=self._reap, args=(job,),
                         name=f"restream-{proc.pid}", daemon=True).start()
        return job

    def _reap(self, job: RestreamJob) -> None:
        try:
            _, err = job.proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            job.proc.kill()
            job.proc.communicate()
            log.error("%s: ffmpeg still running after %ss – killed",
                      job.path, self.timeout)
            job._finish(job.proc.returncode,
                        RestreamError(f"timed out after {self.timeout}s"))
            return
        except Exception as e:
            log.exception("waiting for ffmpeg on %s failed", job.path)
            job._finish(None, e)
            return

        rc = job.proc.returncode
        if rc == 0:
            log.info("✅ finished streaming %s", job.path)
            job._finish(rc)
        else:
            tail = (err or b"").decode("utf-8", errors="replace").strip()[-500:]
            log.error("error while running %s on %s (exit %s): %s",
                      self.ffmpeg, job.path, rc, tail)
            job._finish(rc, RestreamError(f"ffmpeg exited with {rc}"))
