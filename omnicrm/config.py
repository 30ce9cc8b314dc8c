# omnicrm/config.py
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./omnicrm.db"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]
    ALLOWED_HOSTS: List[str] = ["*"]

    # ERP (order/inventory platform)
    ERP_API_URL: str = "https://api.baselinker.com/connector.php"
    ERP_MIN_REQUEST_INTERVAL: float = 1.0   # seconds between dispatched requests
    ERP_CACHE_TTL: float = 60.0             # seconds
    ERP_MAX_QUEUE_DEPTH: int = 500
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Reconciliation
    SYNC_LEASE_SECONDS: int = 30 * 60
    ORDERS_PAGE_SIZE: int = 100
    INVENTORY_MAX_PAGES: int = 10
    DEFAULT_COUNTRY_CODE: str = "55"

    # Event queue
    EVENT_AUTO_RETRIES: int = 0
    EVENT_RETRY_BASE_SECONDS: float = 30.0

    # Carrier tracking
    TRACKING_STALE_HOURS: float = 6.0
    TRACKING_REQUEST_DELAY: float = 1.0
    CORREIOS_API_URL: str = "https://api-labs.wonca.com.br/wonca.labs.v1.LabsService/Track"
    CORREIOS_API_KEY: Optional[str] = None
    JADLOG_API_URL: str = "https://prd-traffic.jadlogtech.com.br/embarcador/api/tracking/consultar"
    JADLOG_TOKEN: Optional[str] = None

    # Workflow automation
    AUTOMATION_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding='utf-8', extra='ignore')

def configure_logging(level: str = None):
    """Configure root logging once for app and CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

settings = Settings()
