"""
Client Pool
===========

Owns every long-lived HTTP client. Built once by the app factory (or a CLI
command), handed to services, closed on shutdown.
"""

import logging
from typing import Dict, Optional

import httpx

from .rate_limited_cache import RateLimitedCache
from .erp_client import ExternalOrderClient
from .automation_client import AutomationClient

logger = logging.getLogger(__name__)

class ClientPool:
    def __init__(self, settings, transport: httpx.AsyncBaseTransport = None):
        self.settings = settings
        self._transport = transport
        self._caches: Dict[str, RateLimitedCache] = {}
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared client for carrier and automation calls."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT_SECONDS, transport=self._transport)
        return self._http

    def erp_client(self, credential: str, inventory_id: str = None) -> ExternalOrderClient:
        """One RateLimitedCache (queue + cache) per credential; clients are cheap views over it."""
        cache = self._caches.get(credential)
        if cache is None:
            cache = RateLimitedCache(
                api_url=self.settings.ERP_API_URL,
                min_interval=self.settings.ERP_MIN_REQUEST_INTERVAL,
                cache_ttl=self.settings.ERP_CACHE_TTL,
                max_queue_depth=self.settings.ERP_MAX_QUEUE_DEPTH,
                timeout=self.settings.HTTP_TIMEOUT_SECONDS,
                transport=self._transport,
            )
            self._caches[credential] = cache
        return ExternalOrderClient(cache, credential, inventory_id=inventory_id)

    def automation_client(self, base_url: str = None, api_key: str = None) -> AutomationClient:
        return AutomationClient(self.http, base_url=base_url, api_key=api_key,
                                default_timeout=self.settings.AUTOMATION_TIMEOUT_SECONDS)

    async def aclose(self):
        for cache in self._caches.values():
            await cache.aclose()
        self._caches.clear()
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        logger.info("Client pool closed")
