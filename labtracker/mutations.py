"""Quote mutations applied optimistically to the query cache.

Every mutation follows the same steps: cancel pending refetches of the
quote collections, snapshot them, patch them locally, then write to the
database. A failed write puts the snapshot back untouched. Either way the
collections are marked stale so the next read goes to the database.
"""
from labtracker.cache import RemoveRow, PatchRow
from labtracker.errors import BadRequest
from labtracker.statuses import is_valid_status
from labtracker import repository as default_repository
import logging

logger = logging.getLogger(__name__)

QUOTES_PREFIX = ("quotes",)


class QuoteMutations:
    def __init__(self, cache, repository=None, prefix=QUOTES_PREFIX):
        self.cache = cache
        self.repository = repository or default_repository
        self.prefix = prefix

    def _run_optimistic(self, patches, remote_write, description):
        self.cache.cancel_refetch(self.prefix)
        snapshot = self.cache.snapshot(self.prefix)
        for patch in patches:
            self.cache.apply_patch(self.prefix, patch)
        try:
            return remote_write()
        except Exception as e:
            logger.error(f"{description} failed, rolling back cache: {e}")
            self.cache.restore(snapshot)
            raise
        finally:
            self.cache.invalidate(self.prefix)

    def delete_quote(self, quote_id):
        return self._run_optimistic(
            [RemoveRow(quote_id)],
            lambda: self.repository.delete_quote(quote_id),
            f"Delete of quote {quote_id}",
        )

    def bulk_delete_quotes(self, quote_ids):
        quote_ids = list(quote_ids)
        return self._run_optimistic(
            [RemoveRow(quote_id) for quote_id in quote_ids],
            lambda: self.repository.delete_quotes(quote_ids),
            f"Bulk delete of {len(quote_ids)} quotes",
        )

    def update_quote_status(self, quote_id, status):
        if not is_valid_status(status):
            raise BadRequest(f"Unknown quote status: {status}")
        return self._run_optimistic(
            [PatchRow(quote_id, {"status": status})],
            lambda: self.repository.update_quote_status(quote_id, status),
            f"Status update of quote {quote_id} to {status}",
        )

    def update_quote(self, quote_id, updates):
        if "status" in updates and not is_valid_status(updates["status"]):
            raise BadRequest(f"Unknown quote status: {updates['status']}")
        return self._run_optimistic(
            [PatchRow(quote_id, updates)],
            lambda: self.repository.update_quote(quote_id, updates),
            f"Update of quote {quote_id}",
        )
