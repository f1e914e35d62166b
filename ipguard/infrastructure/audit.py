"""Append-only audit log for block administration and escalations.

Writes newline-delimited JSON entries to `logs/audit.log` (directory
overridable with AUDIT_LOG_DIR). Thread-safe via a module-level lock.
"""
import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path

_LOCK = threading.Lock()

ROOT = Path(__file__).resolve().parent.parent.parent
LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", "") or ROOT / "logs")
LOG_FILE = LOG_DIR / "audit.log"


def _ensure_dir():
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def log_event(action: str, actor_id: str | None, payload: dict | None = None) -> None:
    _ensure_dir()
    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "actor_id": actor_id,
        "payload": payload or {},
    }
    with _LOCK:
        with open(LOG_FILE, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")


def log_block_event(action: str, block, actor_id: str | None = None) -> None:
    """Record a block lifecycle event (created, escalated)."""
    log_event(action, actor_id, block.to_dict())
