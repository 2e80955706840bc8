"""Append-only JSONL usage log of CLI invocations.

Disabled with DENVIG_CLI_LOGS_ENABLED=0; DENVIG_CLI_LOGS_PATH overrides the file.
Write failures are logged at debug level and never change the command outcome.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import StoreRoot

logger = logging.getLogger(__name__)


def is_cli_logging_enabled() -> bool:
    return str(os.getenv("DENVIG_CLI_LOGS_ENABLED") or "").strip() != "0"


def get_cli_logs_path(root: StoreRoot) -> Path:
    raw = str(os.getenv("DENVIG_CLI_LOGS_PATH") or "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return root.logs_dir / "cli.jsonl"


def append_cli_log(root: StoreRoot, entry: Dict[str, Any]) -> None:
    if not is_cli_logging_enabled():
        return
    path = get_cli_logs_path(root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.debug("Could not write CLI usage log %s: %s", path, e)


class CliLogTracker:
    """Times one invocation; `finish(status)` writes the entry."""

    def __init__(self, root: StoreRoot, *, command: str, path: Optional[str] = None):
        self.root = root
        self.command = command
        self.path = path or os.getcwd()
        self._started = time.monotonic()

    def finish(self, status: int) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z"),
            "command": self.command,
            "path": self.path,
            "duration": int((time.monotonic() - self._started) * 1000),
            "status": int(status),
        }
        append_cli_log(self.root, entry)
        return entry
