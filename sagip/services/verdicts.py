"""Session store for current verification verdicts.

A verdict is a transient judgment: it lives for one moderation session
(``ttl_seconds``) and is recomputed on demand.  Each candidate has at
most one current verdict; storing a new one replaces the old one.

Two backends share one small async interface:

* :class:`InMemoryVerdictBackend` -- process-local dict with lazy TTL
  expiry (default);
* :class:`RedisVerdictBackend` -- ``redis.asyncio`` with native key
  expiry, so several API workers see the same verdicts.

:class:`VerdictStore` prefers Redis when configured and degrades to the
in-memory backend while Redis is unreachable, probing it again every
``reprobe_seconds``.  Verdicts written during an outage stay in memory;
a moderator re-verifies if one goes missing after Redis returns.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog

from sagip.models.directory import VerificationVerdict

logger = structlog.get_logger(__name__)

_KEY_PREFIX = "sagip:verdict:"


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class VerdictBackend(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class InMemoryVerdictBackend:
    """Dict of ``key -> (expires_at, payload)`` guarded by an asyncio lock."""

    __slots__ = ("_clock", "_data", "_lock")

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[float, bytes]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() > expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    @property
    def size(self) -> int:
        return len(self._data)


class RedisVerdictBackend:
    """Redis-backed verdicts using ``redis.asyncio`` with connection pooling."""

    __slots__ = ("_pool", "_redis")

    def __init__(self, url: str, *, max_connections: int = 10) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()


# ---------------------------------------------------------------------------
# VerdictStore
# ---------------------------------------------------------------------------


class VerdictStore:
    """Current verdict per candidate, Redis first with in-memory fallback.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of a stored verdict (one moderation session).
    redis_url:
        Redis connection string; empty or ``None`` keeps everything
        in-process.
    reprobe_seconds:
        Delay before an unreachable Redis is pinged again.
    clock:
        Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: int = 3_600,
        redis_url: str | None = None,
        reprobe_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._fallback: VerdictBackend = InMemoryVerdictBackend()
        self._redis: RedisVerdictBackend | None = None
        self._redis_available = False
        self._reprobe_seconds = reprobe_seconds
        self._clock = clock
        self._next_probe_at: float | None = None

        if redis_url:
            try:
                self._redis = RedisVerdictBackend(redis_url)
            except Exception:
                logger.warning("verdicts.redis_init_failed", redis_url=redis_url)
                self._redis = None

    @property
    def backend_name(self) -> str:
        return "redis" if self._redis_available else "memory"

    def _probe_due(self) -> bool:
        return self._next_probe_at is None or self._clock() >= self._next_probe_at

    def _schedule_probe(self) -> None:
        self._next_probe_at = self._clock() + self._reprobe_seconds

    async def _op(self, method: str, key: str, *args: Any) -> Any:
        """Run *method* on Redis when reachable, otherwise on the fallback."""
        if self._redis is not None and not self._redis_available and self._probe_due():
            self._redis_available = await self._redis.ping()
            if self._redis_available:
                logger.info("verdicts.redis_connected")
            else:
                self._schedule_probe()
                logger.warning("verdicts.redis_unavailable_using_memory", retry_in=self._reprobe_seconds)

        if self._redis_available and self._redis is not None:
            try:
                return await getattr(self._redis, method)(key, *args)
            except Exception:
                logger.warning("verdicts.redis_op_failed", method=method, key=key)
                self._redis_available = False
                self._schedule_probe()

        return await getattr(self._fallback, method)(key, *args)

    async def put(self, verdict: VerificationVerdict) -> None:
        """Make *verdict* the current one for its candidate."""
        payload = orjson.dumps(verdict.model_dump(mode="json"))
        await self._op("set", _KEY_PREFIX + verdict.candidate_id, payload, self._ttl)

    async def get(self, candidate_id: str) -> VerificationVerdict | None:
        raw = await self._op("get", _KEY_PREFIX + candidate_id)
        if raw is None:
            return None
        try:
            return VerificationVerdict.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValueError):
            logger.warning("verdicts.corrupt_payload", candidate_id=candidate_id)
            return None

    async def discard(self, candidate_id: str) -> None:
        await self._op("delete", _KEY_PREFIX + candidate_id)

    async def close(self) -> None:
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
