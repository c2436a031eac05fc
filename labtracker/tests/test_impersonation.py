from labtracker.impersonation import (
    ImpersonationSession, ImpersonationBroadcaster, CUSTOMER_KEYS, LAB_KEYS,
)


def new_session():
    storage = {}
    broadcaster = ImpersonationBroadcaster()
    return storage, broadcaster, ImpersonationSession(storage, broadcaster)


def test_customer_impersonation():
    storage, _, session = new_session()
    user = session.start_customer("c1", "c1@example.com", "Casey")

    assert user.type == "customer"
    assert user.id == "c1"
    assert session.is_impersonating_customer
    assert storage["impersonatedCustomerEmail"] == "c1@example.com"


def test_lab_impersonation_clears_customer_keys():
    storage, _, session = new_session()
    session.start_customer("c1", "c1@example.com", None)
    session.start_lab("lab1", "Acme Labs", "admin")

    assert not any(key in storage for key in CUSTOMER_KEYS)
    current = session.current()
    assert current.type == "lab"
    assert current.lab_name == "Acme Labs"
    assert current.lab_role == "admin"


def test_customer_impersonation_clears_lab_keys():
    storage, _, session = new_session()
    session.start_lab("lab1", "Acme Labs", "member")
    session.start_customer("c1", "c1@example.com", "Casey")

    assert not any(key in storage for key in LAB_KEYS)
    assert session.current().type == "customer"


def test_stop_clears_everything():
    storage, _, session = new_session()
    session.start_lab("lab1", "Acme Labs")
    session.stop()

    assert storage == {}
    assert session.current() is None
    assert not session.is_impersonating


def test_changes_are_broadcast_to_subscribers():
    _, broadcaster, session = new_session()
    seen = []
    other = []
    unsubscribe = broadcaster.subscribe(seen.append)
    broadcaster.subscribe(lambda user: other.append(user.type if user else None))

    session.start_customer("c1", "c1@example.com", None)
    session.start_lab("lab1", "Acme Labs")
    unsubscribe()
    session.stop()

    assert [u.type for u in seen] == ["customer", "lab"]
    assert other == ["customer", "lab", None]


def test_failing_subscriber_does_not_block_others():
    _, broadcaster, session = new_session()
    seen = []

    def broken(user):
        raise RuntimeError("boom")

    broadcaster.subscribe(broken)
    broadcaster.subscribe(seen.append)
    session.start_customer("c1", "c1@example.com", None)

    assert len(seen) == 1


def test_sessions_share_state_through_storage():
    storage, broadcaster, session = new_session()
    session.start_customer("c1", "c1@example.com", "Casey")

    other_view = ImpersonationSession(storage, broadcaster)
    assert other_view.current().id == "c1"


def test_incomplete_keys_mean_no_impersonation():
    storage, _, session = new_session()
    storage["impersonatedCustomerId"] = "c1"
    assert session.current() is None
