"""Read-through cache of query results with optimistic patches.

Each cached collection keeps the rows last read from the database
(``committed``) apart from the local changes not yet confirmed by a fresh
read (``pending``). What callers see is always ``reconcile(committed,
pending)``, so a collection is either exactly the committed rows or exactly
the committed rows with every pending patch applied.

Entries expire after a TTL so writes made outside this process are picked
up, and the oldest entry is dropped once the cache reaches its capacity.
"""
import copy
import logging
import threading
import time

from labtracker.config import QUERY_CACHE_MAX_SIZE, QUERY_CACHE_TTL

logger = logging.getLogger(__name__)


class RemoveRow:
    """Drop the row with the given id"""

    def __init__(self, row_id):
        self.row_id = row_id

    def apply(self, rows):
        return [row for row in rows if row.get("id") != self.row_id]

    def __repr__(self):
        return f"RemoveRow({self.row_id!r})"


class PatchRow:
    """Overwrite fields of the row with the given id"""

    def __init__(self, row_id, fields):
        self.row_id = row_id
        self.fields = dict(fields)

    def apply(self, rows):
        return [
            dict(row, **self.fields) if row.get("id") == self.row_id else row
            for row in rows
        ]

    def __repr__(self):
        return f"PatchRow({self.row_id!r}, {self.fields!r})"


def reconcile(committed, pending):
    if committed is None:
        return None
    rows = list(committed)
    for patch in pending:
        rows = patch.apply(rows)
    return rows


class CachedCollection:
    def __init__(self):
        self.committed = None
        self.pending = []
        self.stale = True
        self.expires_at = 0.0
        # bumped to make any fetch started earlier discard its result
        self.generation = 0

    def visible(self):
        return reconcile(self.committed, self.pending)


def _matches(key, prefix):
    return tuple(key[:len(prefix)]) == tuple(prefix)


class QueryCache:
    def __init__(self, max_size: int = 500, default_ttl: float = 30, clock=None):
        self._entries = {}
        self._lock = threading.RLock()
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock or time.time

    def _entry(self, key):
        entry = self._entries.get(key)
        if entry is None:
            # Drop oldest entry when at capacity
            if self._entries and len(self._entries) >= self.max_size:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                logger.debug(f"Evicted cached collection {oldest_key}")
            entry = CachedCollection()
            self._entries[key] = entry
        return entry

    def _is_fresh(self, entry):
        return (
            not entry.stale
            and entry.committed is not None
            and self._clock() < entry.expires_at
        )

    def _commit(self, entry, rows):
        entry.committed = list(rows)
        entry.pending = []
        entry.stale = False
        entry.expires_at = self._clock() + self.default_ttl

    def keys(self, prefix=()):
        with self._lock:
            return [key for key in self._entries if _matches(key, prefix)]

    def get(self, key):
        """Visible rows for `key`, or None when nothing was fetched yet"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return copy.deepcopy(entry.visible())

    def is_stale(self, key):
        with self._lock:
            entry = self._entries.get(key)
            return entry is None or not self._is_fresh(entry)

    def get_or_fetch(self, key, fetcher):
        """Return cached rows, calling `fetcher()` when missing or stale.

        The fetch runs outside the lock. If the key was cancelled while the
        fetch was in flight the result is thrown away and the current
        visible rows are returned instead.
        """
        with self._lock:
            entry = self._entry(key)
            if self._is_fresh(entry):
                return copy.deepcopy(entry.visible())
            generation = entry.generation

        rows = fetcher()

        with self._lock:
            entry = self._entry(key)
            if entry.generation != generation:
                logger.info(f"Discarding cancelled fetch for {key}")
                visible = entry.visible()
                return copy.deepcopy(visible if visible is not None else rows)
            self._commit(entry, rows)
            return copy.deepcopy(entry.visible())

    def set(self, key, rows):
        with self._lock:
            self._commit(self._entry(key), rows)

    def cancel_refetch(self, prefix):
        with self._lock:
            for key in self.keys(prefix):
                self._entries[key].generation += 1

    def snapshot(self, prefix):
        with self._lock:
            return {
                key: (copy.deepcopy(self._entries[key].committed), list(self._entries[key].pending))
                for key in self.keys(prefix)
            }

    def restore(self, snapshot):
        """Put back exactly what `snapshot` captured (full replace)"""
        with self._lock:
            for key, (committed, pending) in snapshot.items():
                entry = self._entry(key)
                entry.committed = committed
                entry.pending = list(pending)

    def apply_patch(self, prefix, patch):
        with self._lock:
            for key in self.keys(prefix):
                entry = self._entries[key]
                if entry.committed is not None:
                    entry.pending.append(patch)

    def invalidate(self, prefix=()):
        with self._lock:
            for key in self.keys(prefix):
                self._entries[key].stale = True

    def clear(self):
        with self._lock:
            self._entries.clear()


query_cache = QueryCache(max_size=QUERY_CACHE_MAX_SIZE, default_ttl=QUERY_CACHE_TTL)
