"""In-memory recommendation history, the default history sink of the pipeline."""
from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..recommendations.pipeline import HistoryRecord

MAX_PER_USER = 50

_history: dict[str, list["HistoryRecord"]] = defaultdict(list)
_lock = threading.Lock()


def record_history(record: "HistoryRecord") -> None:
    key = record.user_id or "anonymous"
    with _lock:
        entries = _history[key]
        entries.append(record)
        del entries[:-MAX_PER_USER]


def get_history(user_id: str | None = None) -> list["HistoryRecord"]:
    """Most recent first."""
    with _lock:
        return list(reversed(_history.get(user_id or "anonymous", [])))


def clear_history() -> None:
    with _lock:
        _history.clear()
