"""
OmniCRM Services Module
=======================

Services layer untuk sync core.
Menggunakan dependency injection pattern untuk service management
"""

from .base import BaseService, transactional
from .exceptions import *  # noqa: F401,F403

# Tenant Domain
from .tenant import CredentialService

# Warehouse Domain
from .warehouse import WarehousePolicyService, StockLedgerService, StockService

# Sync Domain
from .sync import (
    CheckpointService, SyncStatusService, ReconciliationService, JournalPoller
)

# Queue Domain
from .queue import EventQueueService

# Messaging Domain
from .messaging import WebhookService

# Shipping Domain
from .shipping import TrackingService

# Integration Domain
from .integration import ClientPool

__all__ = [
    # Base Classes
    'BaseService', 'transactional',

    'CredentialService',
    'WarehousePolicyService', 'StockLedgerService', 'StockService',
    'CheckpointService', 'SyncStatusService', 'ReconciliationService', 'JournalPoller',
    'EventQueueService', 'WebhookService', 'TrackingService', 'ClientPool',
    'ServiceRegistry', 'create_service_registry',
]


class ServiceRegistry:
    """
    Service Registry untuk dependency injection
    Mengelola lifecycle dan dependencies antar services
    """

    def __init__(self, db_session, client_pool: ClientPool, settings, current_user: str = None):
        self.db_session = db_session
        self.client_pool = client_pool
        self.settings = settings
        self.current_user = current_user
        self._services = {}

        # Initialize core services first
        self._init_core_services()

        # Initialize domain services
        self._init_domain_services()

    def _init_core_services(self):
        """Initialize core services yang diperlukan services lain"""
        self._services['credential'] = CredentialService(
            db_session=self.db_session,
            current_user=self.current_user
        )

        self._services['policy'] = WarehousePolicyService(
            db_session=self.db_session,
            current_user=self.current_user
        )

        self._services['ledger'] = StockLedgerService(
            db_session=self.db_session,
            current_user=self.current_user
        )

        self._services['checkpoint'] = CheckpointService(
            db_session=self.db_session,
            lease_seconds=self.settings.SYNC_LEASE_SECONDS,
            current_user=self.current_user
        )

        self._services['sync_status'] = SyncStatusService(
            db_session=self.db_session,
            current_user=self.current_user
        )

    def _init_domain_services(self):
        """Initialize domain services dengan dependencies"""
        self._services['stock'] = StockService(
            db_session=self.db_session,
            policy_service=self._services['policy'],
            ledger_service=self._services['ledger'],
            credential_service=self._services['credential'],
            client_pool=self.client_pool,
            current_user=self.current_user
        )

        self._services['reconciliation'] = ReconciliationService(
            db_session=self.db_session,
            client_pool=self.client_pool,
            credential_service=self._services['credential'],
            checkpoint_service=self._services['checkpoint'],
            status_service=self._services['sync_status'],
            policy_service=self._services['policy'],
            ledger_service=self._services['ledger'],
            settings=self.settings,
            current_user=self.current_user
        )

        self._services['event_queue'] = EventQueueService(
            db_session=self.db_session,
            reconciliation_service=self._services['reconciliation'],
            credential_service=self._services['credential'],
            client_pool=self.client_pool,
            max_auto_retries=self.settings.EVENT_AUTO_RETRIES,
            retry_base_seconds=self.settings.EVENT_RETRY_BASE_SECONDS,
            current_user=self.current_user
        )

        self._services['journal'] = JournalPoller(
            db_session=self.db_session,
            client_pool=self.client_pool,
            credential_service=self._services['credential'],
            checkpoint_service=self._services['checkpoint'],
            status_service=self._services['sync_status'],
            event_queue_service=self._services['event_queue'],
            current_user=self.current_user
        )

        self._services['webhook'] = WebhookService(
            db_session=self.db_session,
            event_queue_service=self._services['event_queue'],
            country_code=self.settings.DEFAULT_COUNTRY_CODE,
            current_user=self.current_user
        )

        self._services['tracking'] = TrackingService(
            db_session=self.db_session,
            client_pool=self.client_pool,
            settings=self.settings,
            current_user=self.current_user
        )

    @property
    def credential_service(self) -> CredentialService:
        return self._services['credential']

    @property
    def policy_service(self) -> WarehousePolicyService:
        return self._services['policy']

    @property
    def ledger_service(self) -> StockLedgerService:
        return self._services['ledger']

    @property
    def stock_service(self) -> StockService:
        return self._services['stock']

    @property
    def checkpoint_service(self) -> CheckpointService:
        return self._services['checkpoint']

    @property
    def sync_status_service(self) -> SyncStatusService:
        return self._services['sync_status']

    @property
    def reconciliation_service(self) -> ReconciliationService:
        """Get ReconciliationService - Most critical service"""
        return self._services['reconciliation']

    @property
    def event_queue_service(self) -> EventQueueService:
        return self._services['event_queue']

    @property
    def journal_poller(self) -> JournalPoller:
        return self._services['journal']

    @property
    def webhook_service(self) -> WebhookService:
        return self._services['webhook']

    @property
    def tracking_service(self) -> TrackingService:
        return self._services['tracking']


# Factory function untuk easy service registry creation
def create_service_registry(db_session, client_pool: ClientPool, settings,
                            current_user: str = None) -> ServiceRegistry:
    """Factory function untuk membuat ServiceRegistry"""
    return ServiceRegistry(db_session, client_pool, settings, current_user)
