from .status_mapping import map_order_status, ORDER_STATUS_MAP, DEFAULT_ORDER_STATUS
from .checkpoint_service import CheckpointService
from .sync_status_service import SyncStatusService
from .reconciliation_service import ReconciliationService, SyncStats
from .journal_poller import JournalPoller, journal_event_name, RELEVANT_LOG_TYPES

__all__ = [
    'map_order_status', 'ORDER_STATUS_MAP', 'DEFAULT_ORDER_STATUS',
    'CheckpointService', 'SyncStatusService', 'ReconciliationService', 'SyncStats',
    'JournalPoller', 'journal_event_name', 'RELEVANT_LOG_TYPES',
]
