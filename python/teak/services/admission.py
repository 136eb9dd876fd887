"""Token-bucket admission limiter.

Guards how fast new work may be scheduled (card creation, external API
calls). Each (kind, identifier) pair owns a bucket holding up to
``capacity`` tokens that refills continuously at ``refill_per_minute``.

Buckets live in an in-process store (tests, single-process dev) or in Redis
(shared across API workers). Redis updates are optimistic (WATCH/MULTI) and
the limiter fails open when Redis is unavailable.

Redis keys:
- admission:{kind}:{identifier} - hash {tokens, updated_at} in epoch ms
"""

import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis

from teak.config import Settings, get_settings
from teak.errors import ApiErrorCode, InvalidRequestError
from teak.logging import get_logger
from teak.services.redact import safe_kv

logger = get_logger(__name__)

MAX_WATCH_RETRIES = 5


@dataclass(frozen=True)
class BucketConfig:
    capacity: int
    refill_per_minute: float

    @property
    def refill_per_ms(self) -> float:
        return self.refill_per_minute / 60_000


@dataclass(frozen=True)
class AdmissionDecision:
    """ok=False always carries a retry_at (epoch ms) strictly in the future."""

    ok: bool
    retry_at: int | None = None

    def to_dict(self) -> dict:
        data: dict = {"ok": self.ok}
        if self.retry_at is not None:
            data["retry_at"] = self.retry_at
        return data


DEFAULT_LIMITS: dict[str, BucketConfig] = {
    "card_creation": BucketConfig(capacity=30, refill_per_minute=30),
    "external_api": BucketConfig(capacity=60, refill_per_minute=60),
}


@dataclass
class BucketState:
    tokens: float
    updated_at: int


def take_tokens(
    state: BucketState | None, config: BucketConfig, count: int, now_ms: int
) -> tuple[BucketState, AdmissionDecision]:
    """Refill the bucket up to now and try to take ``count`` tokens.

    Returns:
        The new bucket state and the decision. A denied request leaves the
        (refilled) token count untouched.
    """
    if state is None:
        tokens = float(config.capacity)
    else:
        elapsed = max(0, now_ms - state.updated_at)
        tokens = min(float(config.capacity), state.tokens + elapsed * config.refill_per_ms)

    if tokens >= count:
        return BucketState(tokens - count, now_ms), AdmissionDecision(ok=True)

    deficit = count - tokens
    if config.refill_per_ms <= 0:
        wait_ms = 60_000
    else:
        wait_ms = max(1, math.ceil(deficit / config.refill_per_ms))
    return BucketState(tokens, now_ms), AdmissionDecision(ok=False, retry_at=now_ms + wait_ms)


class BucketStore(ABC):
    @abstractmethod
    def consume(
        self, key: str, config: BucketConfig, count: int, now_ms: int
    ) -> AdmissionDecision: ...


class InMemoryBucketStore(BucketStore):
    """Process-local buckets guarded by a lock."""

    def __init__(self):
        self._buckets: dict[str, BucketState] = {}
        self._lock = threading.Lock()

    def consume(self, key: str, config: BucketConfig, count: int, now_ms: int) -> AdmissionDecision:
        with self._lock:
            state, decision = take_tokens(self._buckets.get(key), config, count, now_ms)
            self._buckets[key] = state
            return decision


class RedisBucketStore(BucketStore):
    """Buckets shared through Redis; fails open on Redis errors."""

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    def consume(self, key: str, config: BucketConfig, count: int, now_ms: int) -> AdmissionDecision:
        redis_key = f"admission:{key}"
        # Keep idle buckets around until they would have refilled completely.
        ttl_ms = max(60_000, math.ceil(config.capacity / max(config.refill_per_ms, 1e-9)))

        try:
            for _ in range(MAX_WATCH_RETRIES):
                with self._redis.pipeline() as pipe:
                    try:
                        pipe.watch(redis_key)
                        raw = pipe.hgetall(redis_key)
                        state = _decode_state(raw)
                        new_state, decision = take_tokens(state, config, count, now_ms)
                        pipe.multi()
                        pipe.hset(
                            redis_key,
                            mapping={
                                "tokens": repr(new_state.tokens),
                                "updated_at": str(new_state.updated_at),
                            },
                        )
                        pipe.pexpire(redis_key, ttl_ms)
                        pipe.execute()
                        return decision
                    except redis.WatchError:
                        continue
        except redis.RedisError as e:
            logger.warning("admission_redis_unavailable", error=str(e))
            return AdmissionDecision(ok=True)

        logger.warning("admission_contention_exhausted", key=redis_key)
        return AdmissionDecision(ok=True)


def _decode_state(raw: dict) -> BucketState | None:
    if not raw:
        return None
    values = {
        (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
        for k, v in raw.items()
    }
    try:
        return BucketState(float(values["tokens"]), int(values["updated_at"]))
    except (KeyError, ValueError):
        return None


class TokenBucketLimiter:
    """Admission checks per operation kind."""

    def __init__(
        self,
        store: BucketStore | None = None,
        limits: dict[str, BucketConfig] | None = None,
    ):
        self._store = store or InMemoryBucketStore()
        self._limits = dict(limits or DEFAULT_LIMITS)

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._limits)

    def check(
        self, kind: str, identifier: str, count: int = 1, now: int | None = None
    ) -> AdmissionDecision:
        """Take ``count`` tokens from the (kind, identifier) bucket.

        Args:
            kind: Operation kind, e.g. "card_creation".
            identifier: Who is being limited (user id, API key id).
            count: Tokens requested.
            now: Current time in epoch ms (defaults to the wall clock).

        Raises:
            InvalidRequestError: If the kind is unknown or count is not positive.
        """
        config = self._limits.get(kind)
        if config is None:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_LIMIT_KIND, f"Unknown admission kind: {kind}"
            )
        if count < 1:
            raise InvalidRequestError(message="count must be at least 1")

        now_ms = now if now is not None else int(time.time() * 1000)
        decision = self._store.consume(f"{kind}:{identifier}", config, count, now_ms)
        if not decision.ok:
            logger.warning(
                "admission.blocked",
                **safe_kv(limit_kind=kind, retry_in_ms=decision.retry_at - now_ms),
            )
        return decision


def build_admission_limiter(
    redis_client: redis.Redis | None = None, settings: Settings | None = None
) -> TokenBucketLimiter:
    """Limiter with the card creation bucket sized from settings."""
    settings = settings or get_settings()
    limits = dict(DEFAULT_LIMITS)
    limits["card_creation"] = BucketConfig(
        capacity=settings.card_creation_capacity,
        refill_per_minute=settings.card_creation_per_minute,
    )
    store = RedisBucketStore(redis_client) if redis_client is not None else InMemoryBucketStore()
    return TokenBucketLimiter(store=store, limits=limits)


_admission_limiter: TokenBucketLimiter | None = None


def get_admission_limiter() -> TokenBucketLimiter:
    """Get the global admission limiter (in-memory until one is set)."""
    global _admission_limiter
    if _admission_limiter is None:
        _admission_limiter = TokenBucketLimiter()
    return _admission_limiter


def set_admission_limiter(limiter: TokenBucketLimiter | None) -> None:
    """Set the global admission limiter (app startup, tests)."""
    global _admission_limiter
    _admission_limiter = limiter
