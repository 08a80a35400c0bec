"""
Session / role resolution.

A resolver listens to an auth-session stream, works out the signed-in
principal's role (from a short-lived role cache, or the users collection on
a miss) and either publishes {user, role, loading} or sends the caller to the
fallback path.
"""
import asyncio
import hashlib
import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union

from starlette.concurrency import run_in_threadpool

from app.core.config import AUTH_REDIRECT_GRACE_SECONDS, ROLE_CACHE_TTL_SECONDS
from app.core.rbac import RoleRequirement, role_satisfies
from app.models.user import CachedRoleEntry

logger = logging.getLogger("fleet.session")

SKIP_AUTH_REDIRECT = "skipAuthRedirect"

# --- 1. ROLE CACHE ---

class RoleCache(Protocol):
    def get(self, uid: str) -> Optional[str]: ...
    def put(self, uid: str, role: str) -> None: ...
    def invalidate(self) -> None: ...

class MemoryRoleCache:
    """
    Holds a single {uid, role, timestamp} entry.
    An entry only answers for its own uid and only while younger than the TTL.
    """

    def __init__(self, ttl: float = ROLE_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self.entry: Optional[CachedRoleEntry] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def get(self, uid: str) -> Optional[str]:
        entry = self.entry
        if entry is None or entry.uid != uid:
            return None
        if self._now_ms() - entry.timestamp >= self.ttl * 1000:
            return None
        return entry.role

    def put(self, uid: str, role: str) -> None:
        self.entry = CachedRoleEntry(uid=uid, role=role, timestamp=self._now_ms())

    def invalidate(self) -> None:
        self.entry = None

# --- 2. SESSION-SCOPED FLAGS ---

class SessionFlags:
    """Ephemeral per-session flags (the skip-redirect switch lives here)."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    @property
    def skip_auth_redirect(self) -> bool:
        return self._values.get(SKIP_AUTH_REDIRECT) == "true"

    @contextmanager
    def skipping_auth_redirect(self):
        self.set(SKIP_AUTH_REDIRECT, "true")
        try:
            yield self
        finally:
            self.remove(SKIP_AUTH_REDIRECT)

# --- 3. AUTH SESSION STREAM ---

@dataclass(frozen=True)
class Principal:
    uid: str
    email: Optional[str] = None

SessionCallback = Callable[[Optional[Principal]], Union[None, Awaitable[None]]]

class Subscription:
    def __init__(self, stream: "AuthSessionStream", callback: SessionCallback):
        self._stream = stream
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._stream._remove(self)

class AuthSessionStream:
    """
    Delivers sign-in state changes to subscribers.

    `reauthenticating()` marks a credential change in progress; resolvers do
    not redirect on sign-out events published while it is active.
    """

    def __init__(self):
        self.current: Optional[Principal] = None
        self._subscriptions: List[Subscription] = []
        self._reauth_depth = 0

    def subscribe(self, callback: SessionCallback) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, principal: Optional[Principal]) -> None:
        self.current = principal
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            result = subscription.callback(principal)
            if asyncio.iscoroutine(result):
                await result

    @property
    def is_reauthenticating(self) -> bool:
        return self._reauth_depth > 0

    @contextmanager
    def reauthenticating(self):
        self._reauth_depth += 1
        try:
            yield self
        finally:
            self._reauth_depth -= 1

# --- 4. ROLE LOOKUP ---

def fetch_role(store, uid: str) -> Optional[str]:
    """Reads users/{uid}. A missing document and a failed read both give None."""
    try:
        user_doc = store.get_document("users", uid)
    except Exception as e:
        logger.error(f"Error fetching user data for {uid}: {e}")
        return None
    if not user_doc:
        return None
    return user_doc.get("role") or None

def lookup_role(store, cache: RoleCache, uid: str) -> Optional[str]:
    """
    Role for `uid`: cache first, then users/{uid}.
    No role drops the cache; a found role refreshes it.
    """
    role = cache.get(uid)
    if role is not None:
        return role

    role = fetch_role(store, uid)
    if role is None:
        cache.invalidate()
        return None
    cache.put(uid, role)
    return role

# --- 5. RESOLVER ---

class AsyncioScheduler:
    def call_later(self, delay: float, callback: Callable[[], Any]):
        return asyncio.get_running_loop().call_later(delay, callback)

@dataclass
class AuthState:
    user: Optional[Principal] = None
    role: Optional[str] = None
    loading: bool = True

class SessionResolver:
    def __init__(
        self,
        stream: AuthSessionStream,
        store,
        cache: RoleCache,
        navigate: Callable[[str], Any],
        flags: Optional[SessionFlags] = None,
        redirect_to: str = "/",
        required_role: RoleRequirement = None,
        grace_delay: float = AUTH_REDIRECT_GRACE_SECONDS,
        scheduler=None,
    ):
        self.stream = stream
        self.store = store
        self.cache = cache
        self.navigate = navigate
        self.flags = flags or SessionFlags()
        self.redirect_to = redirect_to
        self.required_role = required_role
        self.grace_delay = grace_delay
        self.scheduler = scheduler or AsyncioScheduler()

        self.state = AuthState()
        self.listeners: List[Callable[[AuthState], Any]] = []
        self._subscription: Optional[Subscription] = None
        self._pending_redirect = None
        self._closed = False
        self._event_seq = 0

    def start(self) -> "SessionResolver":
        self._subscription = self.stream.subscribe(self.handle)
        return self

    def close(self) -> None:
        self._closed = True
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._cancel_pending_redirect()

    def _cancel_pending_redirect(self) -> None:
        if self._pending_redirect is not None:
            self._pending_redirect.cancel()
            self._pending_redirect = None

    def _update(self, **changes) -> None:
        for key, value in changes.items():
            setattr(self.state, key, value)
        for listener in self.listeners:
            listener(self.state)

    def _redirect(self) -> None:
        if self._closed:
            return
        logger.info(f"Redirecting to {self.redirect_to}")
        self.navigate(self.redirect_to)

    def _redirect_if_still_signed_out(self) -> None:
        self._pending_redirect = None
        if self.stream.current is None:
            self._redirect()

    async def handle(self, principal: Optional[Principal]) -> None:
        if self._closed:
            return
        self._event_seq += 1
        seq = self._event_seq
        self._cancel_pending_redirect()

        if principal is None:
            self.cache.invalidate()
            self._update(loading=False)
            if not self.flags.skip_auth_redirect and not self.stream.is_reauthenticating:
                self._pending_redirect = self.scheduler.call_later(
                    self.grace_delay, self._redirect_if_still_signed_out
                )
            return

        role = self.cache.get(principal.uid)
        if role is None:
            role = await run_in_threadpool(fetch_role, self.store, principal.uid)
            # A later event (sign-out, another user) owns the state now.
            if self._closed or seq != self._event_seq:
                return
            if role is None:
                self.cache.invalidate()
                self._update(loading=False)
                self._redirect()
                return
            self.cache.put(principal.uid, role)

        if not role_satisfies(role, self.required_role):
            logger.warning(f"{principal.uid} with role {role} denied; requires {self.required_role}")
            self._update(loading=False)
            self._redirect()
            return

        self._update(user=principal, role=role, loading=False)

# --- 6. SERVER-SIDE SESSIONS ---

class _FiredHandle:
    def cancel(self) -> None:
        pass

class ImmediateScheduler:
    """Runs deferred checks at once; a request cannot wait out a grace period."""

    def call_later(self, delay: float, callback: Callable[[], Any]):
        callback()
        return _FiredHandle()

@dataclass
class SessionContext:
    cache: MemoryRoleCache = field(default_factory=MemoryRoleCache)
    flags: SessionFlags = field(default_factory=SessionFlags)
    stream: AuthSessionStream = field(default_factory=AuthSessionStream)

async def resolve_once(
    context: SessionContext,
    store,
    principal: Optional[Principal],
    required_role: RoleRequirement = None,
    redirect_to: str = "/",
) -> Tuple[AuthState, Optional[str]]:
    """
    Runs one session event through a short-lived resolver.
    Returns the resulting state and the redirect target, if any.
    """
    redirects: List[str] = []
    resolver = SessionResolver(
        context.stream,
        store,
        context.cache,
        redirects.append,
        flags=context.flags,
        redirect_to=redirect_to,
        required_role=required_role,
        grace_delay=0,
        scheduler=ImmediateScheduler(),
    ).start()
    try:
        await context.stream.publish(principal)
    finally:
        resolver.close()
    return resolver.state, (redirects[0] if redirects else None)

class SessionRegistry:
    """One SessionContext per session token, least recently used dropped first."""

    def __init__(self, max_sessions: int = 1024, cache_factory: Callable[[], MemoryRoleCache] = MemoryRoleCache):
        self.max_sessions = max_sessions
        self.cache_factory = cache_factory
        self._sessions: "OrderedDict[str, SessionContext]" = OrderedDict()

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> SessionContext:
        key = self._key(token)
        context = self._sessions.get(key)
        if context is None:
            context = SessionContext(cache=self.cache_factory())
            self._sessions[key] = context
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(key)
        return context

    def discard(self, token: str) -> None:
        context = self._sessions.pop(self._key(token), None)
        if context is not None:
            context.cache.invalidate()
