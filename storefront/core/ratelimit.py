import logging
from fastapi import Depends, HTTPException, Request
from redis import Redis
from redis.exceptions import RedisError
from jwt import PyJWTError
from storefront.core.config import settings
from storefront.security.utils import decode_token

log = logging.getLogger(__name__)

_client: Redis | None = None

def redis_client() -> Redis:
    global _client
    if _client is None:
        _client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client

def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"

def _client_key(request: Request, per_user: bool) -> str:
    """Key for the caller: the token's user id when ``per_user`` and the token
    decodes, the client IP otherwise."""
    if per_user:
        auth = request.headers.get("Authorization") or ""
        if auth.lower().startswith("bearer "):
            try:
                uid = decode_token(auth.split(" ", 1)[1]).get("uid")
            except PyJWTError:
                uid = None
            if uid is not None:
                return f"user:{uid}"
    return f"ip:{_client_ip(request)}"

def hit(r: Redis, key: str, limit: int, window: int) -> tuple[bool, int]:
    """Fixed-window counter. Returns (allowed, seconds until the window resets)."""
    pipe = r.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl is None or ttl < 0:
        r.expire(key, window)
        ttl = window
    return count <= limit, ttl

def rate_limit(scope: str, limit_setting: str, per_user: bool = False):
    """Dependency factory; the limit is read from settings at request time.
    Anonymous scopes such as login are always keyed by IP."""
    def _checker(request: Request, r: Redis = Depends(redis_client)):
        if not settings.RATE_LIMIT_ENABLED:
            return
        limit = getattr(settings, limit_setting)
        key = f"ratelimit:{scope}:{_client_key(request, per_user)}"
        try:
            allowed, retry_after = hit(r, key, limit, settings.RATE_LIMIT_WINDOW_SECONDS)
        except RedisError as e:
            # the limiter fails open
            log.warning("rate limiter unavailable: %s", e)
            return
        if not allowed:
            log.warning("rate limit exceeded scope=%s path=%s", scope, request.url.path)
            raise HTTPException(status_code=429, detail="Too many requests, please try again later.",
                                headers={"Retry-After": str(retry_after)})
    return _checker
