from .policy_service import WarehousePolicyService, PolicyDecision, evaluate_policy, READ, WRITE
from .ledger_service import StockLedgerService, ACTION_TYPES
from .stock_service import StockService

__all__ = [
    'WarehousePolicyService', 'PolicyDecision', 'evaluate_policy', 'READ', 'WRITE',
    'StockLedgerService', 'ACTION_TYPES', 'StockService',
]
