"""Memory store: JSON record files with keyword search.

Layout:
    ~/.gmem/memory/
    ├── default-global-gmem-recoder.json   # One JSON array of records per category
    ├── rust-global-gmem-recoder.json
    ├── global-memory-recorder.json        # Legacy single-file store (read by organize)
    ├── .copilot-memory.cli.lock           # Write locks, one per lock kind
    ├── .copilot-memory.interactive.lock
    ├── .copilot-memory.mcp.lock
    └── .organize_timestamp                # Last run of the background organizer
"""

from gmem.memory.lock import LockKind
from gmem.memory.record import CompressResult, MemoryRecord, SearchHit, StoreStats
from gmem.memory.store import MemoryStore

__all__ = [
    "CompressResult",
    "LockKind",
    "MemoryRecord",
    "MemoryStore",
    "SearchHit",
    "StoreStats",
]
