from .rate_limited_cache import RateLimitedCache
from .erp_client import ExternalOrderClient
from .automation_client import AutomationClient
from .client_pool import ClientPool
from .polling import wait_for_completion

__all__ = ['RateLimitedCache', 'ExternalOrderClient', 'AutomationClient', 'ClientPool', 'wait_for_completion']
