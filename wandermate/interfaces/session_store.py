# interfaces/session_store.py
"""
Session State Management

Owns every Session. Mutation only happens inside with_lock(), which
serializes messages for the same session, hands the callback a private
working copy and commits it only when the callback returns normally.
"""

import asyncio
import inspect
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import redis.asyncio as aioredis
from loguru import logger

from ..errors import ConcurrencyTimeout
from ..schemas.agent_schemas import AutonomyLevel, Session, utc_now

SessionCallback = Callable[[Session], Union[Any, Awaitable[Any]]]


class SessionStore:
    """
    Session store with per-session asyncio locks.

    Sessions are persisted as JSON, in Redis (with TTL) when available,
    otherwise in process memory.
    """

    def __init__(
        self,
        backend: str = "memory",
        redis_url: Optional[str] = None,
        ttl_hours: int = 24,
        lock_timeout: float = 5.0,
        default_autonomy: AutonomyLevel = AutonomyLevel.ASSISTED,
        default_language: str = "en"
    ):
        self.backend = backend
        self.redis_url = redis_url
        self.ttl_seconds = ttl_hours * 3600
        self.lock_timeout = lock_timeout
        self.default_autonomy = default_autonomy
        self.default_language = default_language

        self.redis_client: Optional[aioredis.Redis] = None
        self._memory_store: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def connect(self):
        """Connect to Redis when configured, falling back to memory."""
        if self.backend != "redis" or not self.redis_url:
            logger.info("SessionStore using in-memory backend")
            return

        try:
            client = aioredis.from_url(self.redis_url, decode_responses=True)
            await client.ping()
            self.redis_client = client
            logger.info(f"SessionStore connected to Redis at {self.redis_url}")
        except Exception as e:
            logger.warning(f"Redis connection failed, using in-memory store: {e}")
            self.redis_client = None

    async def close(self):
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None

    @property
    def is_redis(self) -> bool:
        return self.redis_client is not None

    def _get_key(self, session_id: str) -> str:
        return f"session:{session_id}"

    # ============================================
    # Storage
    # ============================================

    async def _load(self, session_id: str) -> Optional[Session]:
        raw = None
        if self.redis_client:
            raw = await self.redis_client.get(self._get_key(session_id))
        else:
            raw = self._memory_store.get(session_id)

        if not raw:
            return None
        return Session.model_validate_json(raw)

    async def _save(self, session: Session):
        raw = session.model_dump_json()
        if self.redis_client:
            await self.redis_client.setex(self._get_key(session.session_id), self.ttl_seconds, raw)
        else:
            self._memory_store[session.session_id] = raw

    def _new_session(self, session_id: str) -> Session:
        return Session(
            session_id=session_id,
            autonomy_level=self.default_autonomy,
            language=self.default_language
        )

    @staticmethod
    def new_session_id() -> str:
        return f"sess_{uuid.uuid4().hex[:12]}"

    # ============================================
    # Public API
    # ============================================

    async def get(self, session_id: str) -> Optional[Session]:
        """Read-only copy of the committed session, or None."""
        return await self._load(session_id)

    async def get_or_create(self, session_id: Optional[str] = None) -> Session:
        """Return the committed session, creating it if needed."""
        session_id = session_id or self.new_session_id()
        return await self.with_lock(session_id, lambda session: session.model_copy(deep=True))

    async def with_lock(self, session_id: str, fn: SessionCallback, create: bool = True) -> Any:
        """
        Run fn on a working copy of the session while holding its lock.

        Args:
            session_id: Session to mutate
            fn: Sync or async callable receiving the working copy
            create: Create the session when it does not exist

        Returns:
            Whatever fn returns

        Raises:
            ConcurrencyTimeout: the lock was not acquired within lock_timeout
            KeyError: the session does not exist and create is False
        """
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1

        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Lock timeout for session {session_id} after {self.lock_timeout}s")
                raise ConcurrencyTimeout(session_id, self.lock_timeout)

            try:
                committed = await self._load(session_id)
                if committed is None:
                    if not create:
                        raise KeyError(session_id)
                    committed = self._new_session(session_id)
                    logger.info(f"Created new session: {session_id}")

                working = committed.model_copy(deep=True)
                result = fn(working)
                if inspect.isawaitable(result):
                    result = await result

                # A commit that has started finishes even if the caller is cancelled
                await asyncio.shield(self._save(working))
                return result
            finally:
                lock.release()
        finally:
            self._drop_lock_user(session_id)

    def _drop_lock_user(self, session_id: str):
        """Forget the lock once nobody holds or waits for it."""
        users = self._lock_users.get(session_id, 1) - 1
        if users > 0:
            self._lock_users[session_id] = users
        else:
            self._lock_users.pop(session_id, None)
            self._locks.pop(session_id, None)

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    async def delete(self, session_id: str):
        if self.redis_client:
            await self.redis_client.delete(self._get_key(session_id))
        self._memory_store.pop(session_id, None)
        logger.info(f"Deleted session: {session_id}")

    async def evict_expired(self, now: Optional[datetime] = None) -> int:
        """
        Drop in-memory sessions idle longer than the TTL.
        Redis expires keys itself. Sessions with a holder or waiter on their lock are kept.
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=self.ttl_seconds)
        evicted = 0

        for session_id, raw in list(self._memory_store.items()):
            if session_id in self._lock_users:
                continue
            session = Session.model_validate_json(raw)
            if session.last_activity < cutoff:
                del self._memory_store[session_id]
                evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} expired sessions")
        return evicted

    def __len__(self) -> int:
        return len(self._memory_store)


def create_session_store(config=None) -> SessionStore:
    """Build a store from settings."""
    from ..config import settings
    config = config or settings
    return SessionStore(
        backend=config.SESSION_BACKEND,
        redis_url=config.redis_url,
        ttl_hours=config.SESSION_TTL_HOURS,
        lock_timeout=config.SESSION_LOCK_TIMEOUT,
        default_autonomy=AutonomyLevel.parse(config.DEFAULT_AUTONOMY_LEVEL),
        default_language=config.DEFAULT_LANGUAGE
    )
