import asyncio
import threading

import pytest

from conftest import FailingStore, InMemoryStore
from app.models.user import CachedRoleEntry
from app.services.session import (
    AuthSessionStream,
    AuthState,
    MemoryRoleCache,
    Principal,
    SessionFlags,
    SessionRegistry,
    SessionResolver,
    lookup_role,
    resolve_once,
)

NOW = 1_800_000_000.0  # seconds
NOW_MS = NOW * 1000


class FakeScheduler:
    def __init__(self):
        self.calls = []

    def call_later(self, delay, callback):
        handle = _Handle(delay, callback)
        self.calls.append(handle)
        return handle


class _Handle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


def cache_with(uid, role, age_ms):
    cache = MemoryRoleCache(ttl=300, clock=lambda: NOW)
    cache.entry = CachedRoleEntry(uid=uid, role=role, timestamp=NOW_MS - age_ms)
    return cache


def store_with(**roles):
    store = InMemoryStore()
    for uid, role in roles.items():
        store.set_document("users", uid, {"email": f"{uid}@example.com", "role": role})
    store.reads.clear()
    return store


def build(store, cache, required_role=None, flags=None):
    stream = AuthSessionStream()
    navigations = []
    scheduler = FakeScheduler()
    resolver = SessionResolver(
        stream, store, cache, navigations.append,
        flags=flags, redirect_to="/login", required_role=required_role,
        grace_delay=1.0, scheduler=scheduler,
    ).start()
    return stream, resolver, navigations, scheduler


def publish(stream, principal):
    asyncio.run(stream.publish(principal))


# --- ROLE CACHE ---

def test_cache_answers_only_for_its_uid_within_ttl():
    cache = cache_with("u1", "Admin", age_ms=60_000)
    assert cache.get("u1") == "Admin"
    assert cache.get("u2") is None

    assert cache_with("u1", "Admin", age_ms=400_000).get("u1") is None
    assert cache_with("u1", "Admin", age_ms=300_000).get("u1") is None


def test_cache_put_and_invalidate():
    cache = MemoryRoleCache(ttl=300, clock=lambda: NOW)
    cache.put("u1", "Staff")
    assert cache.entry == CachedRoleEntry(uid="u1", role="Staff", timestamp=NOW_MS)
    cache.invalidate()
    assert cache.entry is None
    assert cache.get("u1") is None


def test_lookup_role_treats_store_failure_as_absent():
    cache = cache_with("u1", "Admin", age_ms=400_000)
    assert lookup_role(FailingStore(), cache, "u1") is None
    assert cache.entry is None


# --- RESOLVER ---

def test_initial_state_is_loading():
    _, resolver, _, _ = build(InMemoryStore(), MemoryRoleCache())
    assert resolver.state.loading is True
    assert resolver.state.user is None


def test_fresh_cache_entry_authorizes_without_store_query():
    store = store_with()
    stream, resolver, navigations, _ = build(store, cache_with("u1", "Admin", 60_000), required_role="Admin")

    publish(stream, Principal("u1", "u1@example.com"))

    assert store.reads == []
    assert navigations == []
    assert resolver.state.role == "Admin"
    assert resolver.state.user.uid == "u1"
    assert resolver.state.loading is False


def test_expired_cache_entry_queries_store_and_refreshes_cache():
    store = store_with(u1="Admin")
    cache = cache_with("u1", "Admin", 400_000)
    stream, resolver, navigations, _ = build(store, cache, required_role="Admin")

    publish(stream, Principal("u1"))

    assert store.reads == [("users", "u1")]
    assert cache.entry.timestamp == NOW_MS
    assert resolver.state.role == "Admin"
    assert navigations == []


def test_cache_entry_for_another_uid_is_a_miss():
    store = store_with(u1="Staff")
    cache = cache_with("u2", "Admin", 1_000)
    stream, resolver, _, _ = build(store, cache)

    publish(stream, Principal("u1"))

    assert store.reads == [("users", "u1")]
    assert resolver.state.role == "Staff"
    assert cache.entry.uid == "u1"


def test_missing_profile_clears_cache_and_redirects():
    cache = cache_with("u2", "Admin", 1_000)
    stream, resolver, navigations, _ = build(store_with(), cache)

    publish(stream, Principal("u1"))

    assert cache.entry is None
    assert navigations == ["/login"]
    assert resolver.state.loading is False
    assert resolver.state.user is None


def test_store_failure_behaves_like_missing_profile():
    cache = cache_with("u1", "Admin", 400_000)
    stream, resolver, navigations, _ = build(FailingStore(), cache)

    publish(stream, Principal("u1"))

    assert cache.entry is None
    assert navigations == ["/login"]
    assert resolver.state.loading is False


@pytest.mark.parametrize("required", ["Admin", ["Admin", "Receptionist"]])
def test_wrong_role_redirects_without_populating_state(required):
    stream, resolver, navigations, _ = build(store_with(u1="Staff"), MemoryRoleCache(clock=lambda: NOW), required_role=required)

    publish(stream, Principal("u1"))

    assert navigations == ["/login"]
    assert resolver.state.user is None
    assert resolver.state.role is None
    assert resolver.state.loading is False


def test_role_set_membership_authorizes():
    stream, resolver, navigations, _ = build(
        store_with(u1="Receptionist"), MemoryRoleCache(clock=lambda: NOW), required_role=["Admin", "Receptionist"]
    )
    publish(stream, Principal("u1"))
    assert navigations == []
    assert resolver.state.role == "Receptionist"


def test_sign_out_redirects_after_grace_delay_if_still_signed_out():
    cache = cache_with("u1", "Admin", 1_000)
    stream, resolver, navigations, scheduler = build(store_with(), cache)

    publish(stream, None)

    assert cache.entry is None
    assert resolver.state.loading is False
    assert navigations == []
    assert [c.delay for c in scheduler.calls] == [1.0]

    scheduler.calls[0].fire()
    assert navigations == ["/login"]


def test_sign_in_during_grace_delay_prevents_redirect():
    stream, resolver, navigations, scheduler = build(store_with(u1="Staff"), MemoryRoleCache(clock=lambda: NOW))

    publish(stream, None)
    pending = scheduler.calls[0]
    publish(stream, Principal("u1"))
    pending.fire()

    assert navigations == []
    assert resolver.state.role == "Staff"


def test_grace_check_reads_current_session_state():
    stream, _, navigations, scheduler = build(store_with(), MemoryRoleCache())

    publish(stream, None)
    stream.current = Principal("u1")  # signed back in elsewhere before the timer fired
    scheduler.calls[0].callback()

    assert navigations == []


def test_skip_redirect_flag_suppresses_navigation():
    flags = SessionFlags()
    cache = cache_with("u1", "Admin", 1_000)
    stream, resolver, navigations, scheduler = build(store_with(), cache, flags=flags)

    with flags.skipping_auth_redirect():
        publish(stream, None)

    assert cache.entry is None
    assert resolver.state.loading is False
    assert scheduler.calls == []
    assert navigations == []


def test_reauthenticating_state_suppresses_navigation():
    stream, _, navigations, scheduler = build(store_with(), MemoryRoleCache())

    with stream.reauthenticating():
        publish(stream, None)

    assert scheduler.calls == []
    assert navigations == []
    assert not stream.is_reauthenticating


def test_close_unsubscribes_and_cancels_pending_redirect():
    stream, resolver, navigations, scheduler = build(store_with(u1="Staff"), MemoryRoleCache())

    publish(stream, None)
    resolver.close()
    scheduler.calls[0].fire()
    publish(stream, Principal("u1"))

    assert scheduler.calls[0].cancelled
    assert navigations == []
    assert resolver.state.user is None


def test_listeners_see_every_state_change():
    stream, resolver, _, _ = build(store_with(u1="Staff"), MemoryRoleCache())
    seen = []
    resolver.listeners.append(lambda state: seen.append((state.role, state.loading)))

    publish(stream, Principal("u1"))

    assert seen == [("Staff", False)]


# --- SERVER-SIDE SESSIONS ---

def test_resolve_once_reports_redirect_for_missing_principal():
    context = SessionRegistry().get("token")
    state, redirect = asyncio.run(resolve_once(context, store_with(), None, redirect_to="/"))
    assert redirect == "/"
    assert state.user is None


def test_resolve_once_authorizes_and_leaves_no_subscribers():
    context = SessionRegistry().get("token")
    state, redirect = asyncio.run(resolve_once(context, store_with(u1="Admin"), Principal("u1"), required_role="Admin"))
    assert redirect is None
    assert state.role == "Admin"
    assert context.stream._subscriptions == []


def test_registry_scopes_contexts_per_token_and_evicts_oldest():
    registry = SessionRegistry(max_sessions=2)
    first = registry.get("a")
    assert registry.get("a") is first
    registry.get("b")
    registry.get("c")
    assert registry.get("a") is not first


# --- OVERLAPPING EVENTS ---

class SlowStore(InMemoryStore):
    """Holds every profile read until `release` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_document(self, collection, document_id):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().get_document(collection, document_id)


async def _while_lookup_blocked(store, first, then):
    """Publishes `first`, runs `then()` while its profile read is in flight, then lets the read finish."""
    pending = asyncio.ensure_future(first())
    while not store.entered.is_set():
        await asyncio.sleep(0.01)
    await then()
    store.release.set()
    await pending


def test_sign_out_during_role_lookup_wins():
    store = SlowStore()
    store.set_document("users", "u1", {"email": "u1@example.com", "role": "Staff"})
    cache = MemoryRoleCache(clock=lambda: NOW)
    stream, resolver, navigations, scheduler = build(store, cache)

    asyncio.run(_while_lookup_blocked(
        store,
        lambda: stream.publish(Principal("u1")),
        lambda: stream.publish(None),
    ))

    assert stream.current is None
    assert resolver.state == AuthState(user=None, role=None, loading=False)
    assert cache.entry is None
    assert [c.delay for c in scheduler.calls] == [1.0]
    assert navigations == []


def test_newer_sign_in_is_not_overwritten_by_stale_lookup():
    store = SlowStore()
    store.set_document("users", "u1", {"email": "u1@example.com", "role": "Staff"})
    cache = cache_with("u2", "Admin", 1_000)
    stream, resolver, navigations, _ = build(store, cache)

    asyncio.run(_while_lookup_blocked(
        store,
        lambda: stream.publish(Principal("u1")),
        lambda: stream.publish(Principal("u2")),
    ))

    assert resolver.state.user == Principal("u2")
    assert resolver.state.role == "Admin"
    assert cache.entry.uid == "u2"
    assert navigations == []
