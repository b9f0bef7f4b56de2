#!/usr/bin/env python3
# storage.py – rev-c7 (2026-10-19)

r"""
Resilient configuration helper
══════════════════════════════
* One config file per user
  – Windows  : %APPDATA%\StreamDude\config.json
  – macOS/*nix: ~/.config/streamdude/config.json
* Atomic writes; a .bak copy is kept and used when the main file is corrupt
* Environment wins over the file for the deployment secrets:
  STREAMDUDE_MASTER_KEY, STREAMDUDE_STREAMER_URL, STREAMDUDE_FFMPEG,
  STREAMDUDE_MEDIA_DIR – and those values are never written back to disk.
"""

from __future__ import annotations
import json, logging, os, shutil
from pathlib import Path
from typing  import Any, Dict, Optional

log = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────
# 1. resolve canonical config path
# ────────────────────────────────────────────────────────────
if os.name == "nt":
    _appdata = Path(os.getenv("APPDATA") or Path.home() / "AppData" / "Roaming")
    CFG_DIR  = _appdata / "StreamDude"
else:
    CFG_DIR  = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "streamdude"

CFG_FILE = CFG_DIR / "config.json"

ENV_OVERRIDES = {
    "master_key"  : "STREAMDUDE_MASTER_KEY",
    "streamer_url": "STREAMDUDE_STREAMER_URL",
    "ffmpeg"      : "STREAMDUDE_FFMPEG",
    "media_dir"   : "STREAMDUDE_MEDIA_DIR",
}

# ────────────────────────────────────────────────────────────
# 2. atomic writer (+ backup)
# ────────────────────────────────────────────────────────────
def _bak(path: Path) -> Path:
    return path.with_suffix(".bak")

def _atomic_write(path: Path, data: Any) -> None:
    """Write *data* as UTF-8 JSON atomically and keep a .bak copy."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    if path.exists():
        shutil.copy2(path, _bak(path))
    tmp.replace(path)

# ────────────────────────────────────────────────────────────
# 3. helpers
# ────────────────────────────────────────────────────────────
def defaults() -> Dict:
    return {
        "version":          1,
        "media_dir":        "",
        "ffmpeg":           shutil.which("ffmpeg") or "/usr/local/bin/ffmpeg",
        "streamer_url":     "",
        "master_key":       "",
        "aout":             "default",
        "playback_timeout": None,       # seconds; None → wait for the list forever
        "restream_timeout": None,       # seconds; None → wait for ffmpeg forever
        "log_level":        "INFO",
    }

def _load_json(path: Path) -> Dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        log.warning("config %s unreadable: %s", path, e)
        return None
    if not isinstance(data, dict):
        log.warning("config %s is not a JSON object – ignored", path)
        return None
    return data

# ────────────────────────────────────────────────────────────
# 4. public API
# ────────────────────────────────────────────────────────────
def load(path: Optional[Path] = None, environ=None) -> Dict:
    """Return the configuration: defaults ← file (or its .bak) ← environment."""
    path    = Path(path) if path else CFG_FILE
    environ = os.environ if environ is None else environ

    data = _load_json(path)
    if data is None and _bak(path).exists():
        data = _load_json(_bak(path))
        if data is not None:
            log.warning("restored %s from backup", path)
            shutil.copy2(_bak(path), path)

    cfg = defaults()
    cfg.update(data or {})
    for key, var in ENV_OVERRIDES.items():
        if environ.get(var):
            cfg[key] = environ[var]
    return cfg


def save(cfg: Dict, path: Optional[Path] = None, environ=None) -> None:
    """Write *cfg* to disk, safely, leaving env-provided secrets out."""
    path    = Path(path) if path else CFG_FILE
    environ = os.environ if environ is None else environ
    state   = dict(cfg)
    on_disk = _load_json(path) or {}
    for key, var in ENV_OVERRIDES.items():
        if environ.get(var) and state.get(key) == environ[var]:
            if key in on_disk:
                state[key] = on_disk[key]
            else:
                state.pop(key, None)
    state["version"] = 1
    _atomic_write(path, state)
