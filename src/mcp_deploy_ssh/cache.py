"""Cache of established connections keyed by environment name and server index."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator

from .types import Connection

CacheKey = tuple[str, int]


@dataclass
class PooledConnection:
    """A connection in the cache with its live session."""

    connection: Connection
    session: Any
    connected_at: datetime
    last_activity: datetime

    @property
    def key(self) -> CacheKey:
        return self.connection.name, self.connection.server_index


class ConnectionCache:
    """Holds connected entries until they are explicitly purged."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, PooledConnection] = {}

    def get(self, name: str, index: int) -> PooledConnection | None:
        return self._entries.get((name, index))

    def put(self, name: str, index: int, entry: PooledConnection) -> None:
        self._entries[(name, index)] = entry

    def purge(self, name: str, index: int) -> PooledConnection | None:
        """Remove one entry, returning it so the caller can close its session."""
        return self._entries.pop((name, index), None)

    def purge_all(self) -> list[PooledConnection]:
        entries = list(self._entries.values())
        self._entries.clear()
        return entries

    def entries(self) -> Iterator[PooledConnection]:
        return iter(list(self._entries.values()))

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
