import json
from unittest.mock import MagicMock

import pytest

from blockportal.config import Settings
from blockportal.errors import BackendUnavailable, LedgerCorrupted, LedgerUnavailable
from blockportal.slotstore import MemorySlotStore, SupabaseSlotStore, build_slot_store


def test_memory_store_returns_copies(clock):
    store = MemorySlotStore(clock=clock)
    store.put("k", {"n": 1})
    got = store.get("k")
    got["n"] = 99
    assert store.get("k") == {"n": 1}


def test_memory_store_sweeps_stale_slots(clock):
    store = MemorySlotStore(ttl_sec=60, clock=clock)
    store.put("old", {"n": 1})
    clock.advance(61)
    store.put("new", {"n": 2})
    assert store.get("old") is None
    assert store.get("new") == {"n": 2}


def test_memory_store_delete_missing_key_is_noop():
    store = MemorySlotStore()
    store.delete("nothing")
    assert store.get("nothing") is None


def test_supabase_store_round_trip(backend):
    store = SupabaseSlotStore(backend)
    store.put("attempts:alice", {"failure_count": 1})
    store.put("attempts:alice", {"failure_count": 2})
    assert store.get("attempts:alice") == {"failure_count": 2}
    assert len(backend.tables["login_attempts"]) == 1
    store.delete("attempts:alice")
    assert store.get("attempts:alice") is None


def test_supabase_store_decodes_json_text(backend):
    backend.tables["login_attempts"] = [{"key": "k", "value": json.dumps({"failure_count": 3})}]
    assert SupabaseSlotStore(backend).get("k") == {"failure_count": 3}


@pytest.mark.parametrize("value", ["{not json", "[1, 2]", 7])
def test_supabase_store_rejects_malformed_values(backend, value):
    backend.tables["login_attempts"] = [{"key": "k", "value": value}]
    with pytest.raises(LedgerCorrupted):
        SupabaseSlotStore(backend).get("k")


@pytest.mark.parametrize("method, args", [
    ("get", ("k",)),
    ("put", ("k", {"failure_count": 1})),
    ("delete", ("k",)),
])
def test_supabase_store_outage_is_ledger_unavailable(method, args):
    backend = MagicMock()
    backend.select.side_effect = BackendUnavailable()
    backend.upsert.side_effect = BackendUnavailable()
    backend.delete.side_effect = BackendUnavailable()
    with pytest.raises(LedgerUnavailable):
        getattr(SupabaseSlotStore(backend), method)(*args)


def test_build_slot_store_picks_backend(backend):
    assert isinstance(build_slot_store(Settings(ledger_backend="memory"), backend), MemorySlotStore)
    assert isinstance(build_slot_store(Settings(ledger_backend="supabase"), backend), SupabaseSlotStore)


def test_memory_ttl_never_undercuts_lockout(backend):
    settings = Settings(ledger_backend="memory", ledger_ttl_sec=10)
    store = build_slot_store(settings, backend)
    assert store.ttl_sec == settings.login_policy.lockout_seconds
    assert build_slot_store(Settings(ledger_backend="memory", ledger_ttl_sec=7200), backend).ttl_sec == 7200


def test_active_lockout_survives_short_ttl_setting(backend, clock):
    settings = Settings(ledger_backend="memory", ledger_ttl_sec=10)
    store = build_slot_store(settings, backend)
    store._clock = clock
    store.put("attempts:alice", {"failure_count": 5, "lockout_until": clock() + 100})
    clock.advance(60)
    assert store.get("attempts:alice")["failure_count"] == 5
