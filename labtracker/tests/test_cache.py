from labtracker.cache import QueryCache, RemoveRow, PatchRow, reconcile


def rows():
    return [
        {"id": "q1", "status": "draft"},
        {"id": "q2", "status": "paid"},
        {"id": "q3", "status": "in_transit"},
    ]


def test_reconcile_applies_patches_in_order():
    committed = rows()
    visible = reconcile(committed, [PatchRow("q2", {"status": "shipped"}), RemoveRow("q1")])
    assert visible == [{"id": "q2", "status": "shipped"}, {"id": "q3", "status": "in_transit"}]
    # committed rows are left alone
    assert committed == rows()


def test_reconcile_without_committed_rows():
    assert reconcile(None, [RemoveRow("q1")]) is None


def test_get_or_fetch_caches_until_invalidated():
    cache = QueryCache()
    calls = []

    def fetch():
        calls.append(1)
        return rows()

    assert cache.get_or_fetch(("quotes", "u1"), fetch) == rows()
    assert cache.get_or_fetch(("quotes", "u1"), fetch) == rows()
    assert len(calls) == 1

    cache.invalidate(("quotes",))
    assert cache.is_stale(("quotes", "u1"))
    cache.get_or_fetch(("quotes", "u1"), fetch)
    assert len(calls) == 2


def test_returned_rows_are_copies():
    cache = QueryCache()
    result = cache.get_or_fetch(("quotes",), rows)
    result[0]["status"] = "mutated"
    assert cache.get(("quotes",))[0]["status"] == "draft"


def test_restore_puts_back_exact_snapshot():
    cache = QueryCache()
    cache.set(("quotes", "u1"), rows())
    snapshot = cache.snapshot(("quotes",))

    cache.apply_patch(("quotes",), RemoveRow("q2"))
    assert [r["id"] for r in cache.get(("quotes", "u1"))] == ["q1", "q3"]

    cache.restore(snapshot)
    assert cache.get(("quotes", "u1")) == rows()


def test_patch_only_touches_matching_prefix():
    cache = QueryCache()
    cache.set(("quotes", "u1"), rows())
    cache.set(("lab-quotes", "lab1"), rows())

    cache.apply_patch(("quotes",), PatchRow("q1", {"status": "sent_to_vendor"}))

    assert cache.get(("quotes", "u1"))[0]["status"] == "sent_to_vendor"
    assert cache.get(("lab-quotes", "lab1"))[0]["status"] == "draft"


def test_cancelled_fetch_does_not_overwrite_cache():
    cache = QueryCache()
    cache.set(("quotes", "u1"), rows())
    cache.invalidate(("quotes",))

    def slow_fetch():
        # a mutation starts while this read is in flight
        cache.cancel_refetch(("quotes",))
        cache.apply_patch(("quotes",), RemoveRow("q1"))
        return rows()

    result = cache.get_or_fetch(("quotes", "u1"), slow_fetch)

    assert [r["id"] for r in result] == ["q2", "q3"]
    assert [r["id"] for r in cache.get(("quotes", "u1"))] == ["q2", "q3"]


def test_fresh_fetch_clears_pending_patches():
    cache = QueryCache()
    cache.set(("quotes", "u1"), rows())
    cache.apply_patch(("quotes",), PatchRow("q1", {"status": "paid"}))
    cache.invalidate(("quotes",))

    fresh = [{"id": "q1", "status": "completed"}]
    assert cache.get_or_fetch(("quotes", "u1"), lambda: fresh) == fresh


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = QueryCache(default_ttl=30, clock=clock)
    calls = []

    def fetch():
        calls.append(1)
        return rows()

    cache.get_or_fetch(("quotes", "u1"), fetch)
    clock.now += 29
    cache.get_or_fetch(("quotes", "u1"), fetch)
    assert len(calls) == 1
    assert not cache.is_stale(("quotes", "u1"))

    clock.now += 2
    assert cache.is_stale(("quotes", "u1"))
    cache.get_or_fetch(("quotes", "u1"), fetch)
    assert len(calls) == 2


def test_oldest_entry_is_dropped_at_capacity():
    cache = QueryCache(max_size=2)
    cache.set(("lab-quotes", "a"), rows())
    cache.set(("lab-quotes", "b"), rows())
    cache.set(("lab-quotes", "c"), rows())

    assert cache.keys() == [("lab-quotes", "b"), ("lab-quotes", "c")]
    assert cache.get(("lab-quotes", "a")) is None
