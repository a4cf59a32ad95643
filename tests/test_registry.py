"""Channel binding registry tests."""

from __future__ import annotations

from bridge.registry import InMemoryBindingStore
from bridge.schemas import ChannelBinding


def test_get_returns_stored_binding_until_replaced() -> None:
    store = InMemoryBindingStore()
    first = ChannelBinding(ticket_id="1", contact_id="c1", user_id="U1")
    second = ChannelBinding(ticket_id="2", contact_id="c2", user_id="U1")

    store.put("C1", first)
    assert store.get("C1") == first

    store.put("C1", second)
    assert store.get("C1") == second
    assert len(store) == 1


def test_remove_is_idempotent() -> None:
    store = InMemoryBindingStore()
    store.put("C1", ChannelBinding(ticket_id="1"))

    assert store.remove("C1") is True
    assert store.get("C1") is None
    assert store.remove("C1") is False


def test_all_returns_snapshot() -> None:
    store = InMemoryBindingStore()
    store.put("C1", ChannelBinding(ticket_id="1"))

    snapshot = store.all()
    store.put("C2", ChannelBinding(ticket_id="2"))

    assert list(snapshot) == ["C1"]
    assert set(store.all()) == {"C1", "C2"}


def test_empty_store_has_zero_length() -> None:
    assert len(InMemoryBindingStore()) == 0
