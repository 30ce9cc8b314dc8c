"""
Warehouse Policy Service
========================

Per-warehouse gate for stock reads and writes. `evaluate_policy` is pure;
the service only loads bindings and logs refusals.
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from sqlalchemy import select

from ..base import BaseService, transactional
from ..exceptions import PolicyDenied, ValidationError
from ...models import WarehouseBinding, SYNC_DIRECTIONS

READ = 'read'
WRITE = 'write'

@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str
    warehouse_id: str
    direction: str

def evaluate_policy(binding: Optional[WarehouseBinding], direction: str, stock_write: bool = True,
                    warehouse_id: str = None) -> PolicyDecision:
    """
    Decide whether `direction` is allowed for a warehouse.

    Writes: denied when inactive, when stock writes are disabled (for stock
    writes) and when the warehouse is read_only. Reads: denied for
    write_only warehouses. Without a binding reads pass and writes are
    denied as not_configured.
    """
    if direction not in (READ, WRITE):
        raise ValidationError(f"Unknown direction '{direction}'", field='direction')
    warehouse_id = warehouse_id or (binding.warehouse_id if binding is not None else None)

    def decide(allowed, reason):
        return PolicyDecision(allowed, reason, warehouse_id, direction)

    if binding is None:
        return decide(direction == READ, 'allowed' if direction == READ else 'not_configured')

    if direction == WRITE:
        if not binding.is_active:
            return decide(False, 'inactive')
        if stock_write and not binding.allow_stock_updates:
            return decide(False, 'stock_updates_disabled')
        if binding.sync_direction == 'read_only':
            return decide(False, 'read_only')
        return decide(True, 'allowed')

    if binding.sync_direction == 'write_only':
        return decide(False, 'write_only')
    return decide(True, 'allowed')

class WarehousePolicyService(BaseService):
    """Service untuk warehouse sync policy"""

    async def get_binding(self, workspace_id: int, warehouse_id: str) -> Optional[WarehouseBinding]:
        return await self._first(select(WarehouseBinding).filter(
            WarehouseBinding.workspace_id == workspace_id,
            WarehouseBinding.warehouse_id == str(warehouse_id)
        ))

    async def list_bindings(self, workspace_id: int) -> List[WarehouseBinding]:
        result = await self.db_session.execute(
            select(WarehouseBinding)
            .filter(WarehouseBinding.workspace_id == workspace_id)
            .order_by(WarehouseBinding.warehouse_id)
        )
        return list(result.scalars().all())

    async def check(self, workspace_id: int, warehouse_id: str, direction: str,
                    stock_write: bool = True) -> PolicyDecision:
        binding = await self.get_binding(workspace_id, warehouse_id)
        decision = evaluate_policy(binding, direction, stock_write, warehouse_id=str(warehouse_id))
        if not decision.allowed:
            self.logger.info(
                f"Policy denies {direction} on warehouse {warehouse_id} "
                f"(workspace {workspace_id}): {decision.reason}"
            )
        return decision

    async def enforce(self, workspace_id: int, warehouse_id: str, direction: str,
                      stock_write: bool = True) -> PolicyDecision:
        decision = await self.check(workspace_id, warehouse_id, direction, stock_write)
        if not decision.allowed:
            raise PolicyDenied(warehouse_id, direction, decision.reason)
        return decision

    @transactional
    async def upsert_binding(self, workspace_id: int, warehouse_id: str,
                             data: Dict[str, Any]) -> WarehouseBinding:
        direction = data.get('sync_direction')
        if direction is not None and direction not in SYNC_DIRECTIONS:
            raise ValidationError(f"Invalid sync_direction '{direction}'", field='sync_direction')

        binding = await self.get_binding(workspace_id, warehouse_id)
        if binding is None:
            binding = WarehouseBinding(workspace_id=workspace_id, warehouse_id=str(warehouse_id))
            self.db_session.add(binding)
        for key in ('name', 'code', 'is_active', 'allow_stock_updates', 'sync_direction'):
            if data.get(key) is not None:
                setattr(binding, key, data[key])
        await self.db_session.flush()
        self.logger.info(f"Warehouse binding {warehouse_id} saved for workspace {workspace_id}")
        return binding
