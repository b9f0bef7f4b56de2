#!/usr/bin/env python3
# main.py – rev-c5  (2026-10-19)
"""
StreamDude
──────────
Index a media directory and stream it – from the command line.

    streamdude scan     DIR               list what would be played
    streamdude stream   DIR [--timeout S] scan, then play via libVLC
    streamdude restream FILE [--timeout S] push one file through ffmpeg

Secrets (master key, streamer URL) come from the config file or from
STREAMDUDE_MASTER_KEY / STREAMDUDE_STREAMER_URL.
"""

from __future__ import annotations
import argparse, logging, sys
from pathlib import Path
from typing  import List, Optional

import scanner, storage

log = logging.getLogger("streamdude")


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

def _parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="streamdude", description="Index a media directory and stream it.")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    ap.add_argument("--config", type=Path, help="config file (default: %(default)s)",
                    default=storage.CFG_FILE)
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("scan", help="scan a media directory and print the playlist")
    p.add_argument("dir", nargs="?", help="media directory (default: config media_dir)")

    p = sub.add_parser("stream", help="scan, then play the playlist through libVLC")
    p.add_argument("dir", nargs="?", help="media directory (default: config media_dir)")
    p.add_argument("--timeout", type=float, help="give up after S seconds")

    p = sub.add_parser("restream", help="restream one file through ffmpeg")
    p.add_argument("file")
    p.add_argument("--timeout", type=float, help="kill ffmpeg after S seconds")
    return ap

def _media_dir(args, cfg) -> str:
    d = args.dir or cfg["media_dir"]
    if not d:
        raise SystemExit("❌ no media directory given (argument or media_dir in config)")
    return d

# ─────────────────────────────── commands
def cmd_scan(args, cfg) -> int:
    for it in scanner.rescan(_media_dir(args, cfg)):
        cover = f"  [{it.cover}]" if it.cover else ""
        print(f"{it.path}{cover}")
    return 0

def cmd_stream(args, cfg) -> int:
    from dispatcher import StreamDispatcher, NoPlaylistError
    from player     import VLCPlaylistPlayer

    scanner.rescan(_media_dir(args, cfg))
    timeout = args.timeout if args.timeout is not None else cfg["playback_timeout"]
    disp    = StreamDispatcher(player=VLCPlaylistPlayer(aout=cfg["aout"]))
    try:
        job = disp.dispatch("vlc", timeout=timeout)
    except NoPlaylistError as e:
        log.error("%s", e)
        return 1
    print(f"stream started ({job.id})")
    job.wait()
    return 0 if job.state == job.FINISHED else 1

def cmd_restream(args, cfg) -> int:
    from restream import RestreamLauncher, RestreamError

    timeout  = args.timeout if args.timeout is not None else cfg["restream_timeout"]
    launcher = RestreamLauncher(cfg["ffmpeg"], cfg["streamer_url"], cfg["master_key"],
                                timeout=timeout)
    try:
        job = launcher.launch(args.file)
    except RestreamError as e:
        log.error("%s", e)
        return 1
    print(f"restreaming {args.file} (pid {job.pid})")
    return 0 if job.wait() == 0 else 1

COMMANDS = {"scan": cmd_scan, "stream": cmd_stream, "restream": cmd_restream}


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    cfg  = storage.load(args.config)
    _setup_logging(cfg["log_level"], args.verbose)
    try:
        return COMMANDS[args.cmd](args, cfg)
    except scanner.ScanError as e:
        log.error("%s", e)
        return 2
    except KeyboardInterrupt:
        return 130

if __name__ == "__main__":
    sys.exit(main())
