"""
Rate Limited Cache
==================

Request governor untuk ERP API: one FIFO work queue with a minimum spacing
between dispatched requests, plus a short-lived response cache.
"""

import asyncio
import copy
import hashlib
import json
import logging
import re
import time
from collections import deque
from datetime import datetime
from typing import Dict, Any, Optional, Callable

import httpx

from ..exceptions import (
    ApiError, UnauthorizedError, ForbiddenError, RateLimitedError, QueueFullError
)
from ...models.base import utcnow

_BLOCKED_UNTIL_RE = re.compile(r"until\s+(\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(?::\d{2})?)", re.IGNORECASE)

AUTH_ERROR_CODES = {'ERROR_INVALID_API_KEY', 'ERROR_USER_TOKEN_INVALID'}
FORBIDDEN_ERROR_CODES = {'ERROR_PERMISSION_DENIED'}

def credential_prefix(credential: str) -> str:
    return f"{(credential or '')[:5]}..."

def parse_blocked_until(message: str) -> Optional[datetime]:
    """Extract the unblock instant from a "token blocked ... until <ts>" message."""
    match = _BLOCKED_UNTIL_RE.search(message or '')
    if not match:
        return None
    try:
        return datetime.fromisoformat(match.group(1))
    except ValueError:
        return None

def is_rate_limit_message(message: str) -> bool:
    lowered = (message or '').lower()
    return 'query limit exceeded' in lowered or 'token blocked' in lowered

class RateLimitedCache:
    """
    Serial request dispatcher.

    Every outbound request waits in a single FIFO deque and a single worker
    task dispatches them one by one, at least `min_interval` seconds apart.
    Cache hits bypass the queue entirely.
    """

    def __init__(self, api_url: str, min_interval: float = 1.0, cache_ttl: float = 60.0,
                 max_queue_depth: int = 500, timeout: float = 30.0,
                 transport: httpx.AsyncBaseTransport = None,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], datetime] = utcnow):
        self.api_url = api_url
        self.min_interval = min_interval
        self.cache_ttl = cache_ttl
        self.max_queue_depth = max_queue_depth
        self._clock = clock
        self._now = now
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._queue = deque()
        self._worker: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._last_request_time: Optional[float] = None
        self._cache: Dict[str, tuple] = {}
        self._blocked_until: Dict[str, datetime] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def cache_key(self, credential: str, method: str, params: Dict[str, Any]) -> str:
        fingerprint = hashlib.sha256((credential or '').encode()).hexdigest()[:16]
        raw = f"{fingerprint}|{method}|{json.dumps(params, sort_keys=True, default=str)}"
        return hashlib.sha256(raw.encode()).hexdigest()

    async def call(self, credential: str, method: str, params: Dict[str, Any] = None,
                   use_cache: bool = True) -> Dict[str, Any]:
        params = params or {}
        self._raise_if_blocked(credential)

        key = self.cache_key(credential, method, params)
        if use_cache:
            cached = self._cache_get(key)
            if cached is not None:
                self.logger.debug(f"Cache hit for {method} ({credential_prefix(credential)})")
                return copy.deepcopy(cached)

        if len(self._queue) >= self.max_queue_depth:
            raise QueueFullError(len(self._queue), self.max_queue_depth)

        future = asyncio.get_running_loop().create_future()
        self._queue.append((credential, method, params, future))
        self._idle.clear()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

        response = await future
        if use_cache:
            self._cache[key] = (self._clock() + self.cache_ttl, response)
        return copy.deepcopy(response)

    async def drain(self):
        """Wait until every queued request has been dispatched."""
        await self._idle.wait()

    async def aclose(self):
        await self.drain()
        await self._http.aclose()

    def clear_cache(self):
        self._cache.clear()

    def _cache_get(self, key: str):
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, response = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        return response

    def _raise_if_blocked(self, credential: str):
        until = self._blocked_until.get(credential)
        if until is None:
            return
        if self._now() < until:
            raise RateLimitedError(f"Token blocked until {until.isoformat(sep=' ')}", blocked_until=until)
        del self._blocked_until[credential]

    async def _run(self):
        try:
            while self._queue:
                credential, method, params, future = self._queue.popleft()
                if future.done():
                    continue
                while True:
                    delay = self._next_slot_delay()
                    if delay <= 0:
                        break
                    await asyncio.sleep(delay)
                try:
                    result = await self._dispatch(credential, method, params)
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            self._idle.set()

    def _next_slot_delay(self) -> float:
        if self._last_request_time is None:
            return 0
        return self._last_request_time + self.min_interval - self._clock()

    async def _dispatch(self, credential: str, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        # a queued request may find its token blocked by an earlier response
        self._raise_if_blocked(credential)
        self._last_request_time = self._clock()
        prefix = credential_prefix(credential)
        self.logger.info(f"ERP request {method} ({prefix}) params={sorted(params)}")

        try:
            response = await self._http.post(
                self.api_url,
                headers={'X-BLToken': credential},
                data={'method': method, 'parameters': json.dumps(params)},
            )
        except httpx.TimeoutException as e:
            self.logger.error(f"ERP request {method} ({prefix}) timed out: {e}")
            raise ApiError(f"Request {method} timed out")
        except httpx.HTTPError as e:
            self.logger.error(f"ERP request {method} ({prefix}) failed: {e}")
            raise ApiError(f"Request {method} failed: {e}")

        body = None
        try:
            body = response.json()
        except ValueError:
            if response.is_success:
                raise ApiError(f"Invalid JSON in {method} response", status_code=response.status_code)

        status_code = response.status_code
        self.logger.info(
            f"ERP response {method} ({prefix}) http={status_code} "
            f"status={(body or {}).get('status') if isinstance(body, dict) else None}"
        )

        if status_code == 401:
            raise UnauthorizedError(remote_code=self._remote_code(body))
        if status_code == 403:
            raise ForbiddenError(remote_code=self._remote_code(body))
        if status_code == 429:
            message = self._remote_message(body) or 'Query limit exceeded'
            raise self._rate_limited(credential, message, status_code, self._remote_code(body))
        if not response.is_success:
            raise ApiError(self._remote_message(body) or f"HTTP error {status_code}",
                           status_code=status_code, remote_code=self._remote_code(body))
        if not isinstance(body, dict):
            raise ApiError(f"Unexpected {method} response shape", status_code=status_code)
        if body.get('status') == 'ERROR':
            raise self._classify_error(credential, body, status_code)
        return body

    def _classify_error(self, credential: str, body: Dict[str, Any], status_code: int) -> ApiError:
        code = body.get('error_code')
        message = body.get('error_message') or 'Unknown ERP API error'
        if code in AUTH_ERROR_CODES:
            return UnauthorizedError(message, status_code=status_code, remote_code=code)
        if code in FORBIDDEN_ERROR_CODES:
            return ForbiddenError(message, status_code=status_code, remote_code=code)
        if is_rate_limit_message(message):
            return self._rate_limited(credential, message, status_code, code)
        return ApiError(message, status_code=status_code, remote_code=code)

    def _rate_limited(self, credential, message, status_code, code) -> RateLimitedError:
        until = parse_blocked_until(message)
        if until is not None:
            self._blocked_until[credential] = until
        self.logger.warning(f"ERP rate limit hit ({credential_prefix(credential)}), blocked until {until}")
        return RateLimitedError(message, blocked_until=until, status_code=status_code, remote_code=code)

    @staticmethod
    def _remote_code(body):
        return body.get('error_code') if isinstance(body, dict) else None

    @staticmethod
    def _remote_message(body):
        return body.get('error_message') if isinstance(body, dict) else None
