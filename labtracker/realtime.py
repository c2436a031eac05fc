"""In-process feed of row changes on watched tables.

SQLAlchemy mapper events publish one change per inserted, updated or
deleted row. Subscribers react to every change; nothing is batched.
"""
from collections import defaultdict, namedtuple
from sqlalchemy import event
import logging
import threading

logger = logging.getLogger(__name__)

Change = namedtuple("Change", ["table", "event", "row_id", "row"])

ROW_EVENTS = {
    "after_insert": "INSERT",
    "after_update": "UPDATE",
    "after_delete": "DELETE",
}


class ChangeFeed:
    def __init__(self):
        self._subscribers = defaultdict(list)
        self._lock = threading.Lock()
        self._watched = set()

    def subscribe(self, table, callback):
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return unsubscribe

    def publish(self, change):
        with self._lock:
            callbacks = list(self._subscribers.get(change.table, []))
        for callback in callbacks:
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Change subscriber failed for {change.table}: {e}", exc_info=True)

    def watch(self, model):
        """Publish changes of `model` rows; safe to call more than once"""
        table = model.__tablename__
        if table in self._watched:
            return
        self._watched.add(table)
        for event_name, kind in ROW_EVENTS.items():
            event.listen(model, event_name, self._handler(table, kind))

    def _handler(self, table, kind):
        def handle(mapper, connection, target):
            row = {"id": target.id, "status": getattr(target, "status", None),
                   "user_id": getattr(target, "user_id", None), "lab_id": getattr(target, "lab_id", None)}
            self.publish(Change(table, kind, target.id, row))
        return handle


change_feed = ChangeFeed()
