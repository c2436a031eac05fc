import pytest

from labtracker.cache import QueryCache
from labtracker.errors import BadRequest
from labtracker.models import QuoteItem, Quote, db
from labtracker.mutations import QuoteMutations
from labtracker import repository

from conftest import add_quote, add_item

KEY = ("quotes", "u1", False)


class FakeRepository:
    """In-memory stand-in for the database side of the mutations"""

    def __init__(self, rows, fail=False):
        self.rows = [dict(r) for r in rows]
        self.fail = fail
        self.calls = []

    def list_quotes(self):
        return [dict(r) for r in self.rows]

    def delete_quote(self, quote_id):
        self.calls.append(("delete_items", quote_id))
        if self.fail:
            raise RuntimeError("network down")
        self.calls.append(("delete_quote", quote_id))
        self.rows = [r for r in self.rows if r["id"] != quote_id]

    def delete_quotes(self, quote_ids):
        if self.fail:
            raise RuntimeError("network down")
        self.rows = [r for r in self.rows if r["id"] not in quote_ids]

    def update_quote_status(self, quote_id, status):
        return self.update_quote(quote_id, {"status": status})

    def update_quote(self, quote_id, updates):
        if self.fail:
            raise RuntimeError("network down")
        for r in self.rows:
            if r["id"] == quote_id:
                r.update(updates)
                return dict(r)


def initial_rows():
    return [
        {"id": "q1", "status": "draft"},
        {"id": "q2", "status": "approved_payment_pending"},
        {"id": "q3", "status": "completed"},
    ]


def setup(fail=False):
    cache = QueryCache()
    repo = FakeRepository(initial_rows(), fail=fail)
    cache.get_or_fetch(KEY, repo.list_quotes)
    return cache, repo, QuoteMutations(cache, repo)


def test_failed_delete_restores_snapshot_exactly():
    cache, repo, mutations = setup(fail=True)
    before = cache.get(KEY)

    with pytest.raises(RuntimeError):
        mutations.delete_quote("q2")

    assert cache.get(KEY) == before
    assert [r["id"] for r in cache.get(KEY)] == ["q1", "q2", "q3"]
    # step one failed, so the quote itself was never deleted
    assert repo.calls == [("delete_items", "q2")]
    assert cache.is_stale(KEY)


def test_successful_delete_removes_row_and_marks_stale():
    cache, repo, mutations = setup()

    mutations.delete_quote("q1")

    assert [r["id"] for r in cache.get(KEY)] == ["q2", "q3"]
    assert cache.is_stale(KEY)
    fresh = cache.get_or_fetch(KEY, repo.list_quotes)
    assert [r["id"] for r in fresh] == ["q2", "q3"]


def test_status_update_is_visible_before_and_after_refetch():
    cache, repo, mutations = setup()

    mutations.update_quote_status("q2", "paid")
    assert cache.get(KEY)[1]["status"] == "paid"

    fresh = cache.get_or_fetch(KEY, repo.list_quotes)
    assert fresh[1]["status"] == "paid"


def test_failed_update_rolls_back():
    cache, repo, mutations = setup(fail=True)

    with pytest.raises(RuntimeError):
        mutations.update_quote("q1", {"notes": "rush", "status": "sent_to_vendor"})

    assert cache.get(KEY) == initial_rows()


def test_unknown_status_rejected_before_any_change():
    cache, repo, mutations = setup()

    with pytest.raises(BadRequest):
        mutations.update_quote_status("q1", "teleported")

    assert cache.get(KEY) == initial_rows()
    assert not cache.is_stale(KEY)


def test_failed_bulk_delete_restores_all_rows():
    cache, repo, mutations = setup(fail=True)

    with pytest.raises(RuntimeError):
        mutations.bulk_delete_quotes(["q1", "q3"])

    assert cache.get(KEY) == initial_rows()


def test_repository_delete_removes_items_then_quote(app, lab):
    quote = add_quote("u1", lab)
    add_item(quote, additional_samples=1)
    add_item(quote, product_name="BPC-157")

    repository.delete_quote(quote.id)

    assert QuoteItem.query.filter_by(quote_id=quote.id).count() == 0
    assert db.session.get(Quote, quote.id) is None


def test_repository_delete_aborts_when_items_fail(app, lab, monkeypatch):
    quote = add_quote("u1", lab)
    add_item(quote)
    quote_id = quote.id

    def broken_flush(*args, **kwargs):
        raise RuntimeError("flush failed")

    monkeypatch.setattr(db.session, "flush", broken_flush)
    with pytest.raises(RuntimeError):
        repository.delete_quote(quote_id)
    monkeypatch.undo()

    assert db.session.get(Quote, quote_id) is not None
    assert QuoteItem.query.filter_by(quote_id=quote_id).count() == 1
