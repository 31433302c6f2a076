"""Local verification history.

Every submitted job is recorded so its status can be rechecked later:

    HistoryStore          - abstract upsert/get/list/delete contract
    SQLHistoryStore       - SQLite file via SQLAlchemy (~/.voyager/history.db)
    InMemoryHistoryStore  - dict-based store for tests / disabled history
"""

from voyager.history.models import HistoryStats, JobRecord
from voyager.history.store import (
    HistoryStore,
    InMemoryHistoryStore,
    SQLHistoryStore,
    open_history_store,
)

__all__ = [
    "HistoryStats",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JobRecord",
    "SQLHistoryStore",
    "open_history_store",
]
