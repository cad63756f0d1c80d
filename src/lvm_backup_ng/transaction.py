"""JSON-lines transaction log of snapshot and transfer operations.

Each record is one line of JSON with a timestamp, the pid, the action and
its status. Logging is disabled until set_transaction_log() is given a path.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_transaction_log_path: Optional[Path] = None


def set_transaction_log(path) -> None:
    """Enable logging to ``path``, or disable it with None."""
    global _transaction_log_path
    if path is None:
        _transaction_log_path = None
        return
    _transaction_log_path = Path(path)
    try:
        _transaction_log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Cannot create transaction log directory: %s", e)


def log_transaction(
    action: str,
    status: str,
    volume: Optional[str] = None,
    snapshot: Optional[str] = None,
    destination: Optional[str] = None,
    duration_seconds: Optional[float] = None,
    error: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Append a transaction record, never raising on write errors."""
    if _transaction_log_path is None:
        return

    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pid": os.getpid(),
        "action": action,
        "status": status,
    }
    optional = {
        "volume": volume,
        "snapshot": snapshot,
        "destination": destination,
        "duration_seconds": (
            round(duration_seconds, 3) if duration_seconds is not None else None
        ),
        "error": error,
        "details": details,
    }
    record.update({key: value for key, value in optional.items() if value is not None})

    try:
        with open(_transaction_log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
    except OSError as e:
        logger.warning(
            "Could not write transaction log %s: %s", _transaction_log_path, e
        )
