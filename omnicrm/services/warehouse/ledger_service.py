"""
Stock Change Ledger Service
===========================

Append-only audit trail untuk semua stock mutations.

`record` never commits: the entry is flushed inside the caller's transaction
so a ledger failure rolls back the stock mutation it describes.
"""

from typing import Dict, Any, Optional

from sqlalchemy import select

from ..base import BaseService, serialize_items
from ..exceptions import ValidationError
from ...models import StockChangeEntry
from ...schemas import StockChangeEntrySchema

ACTION_TYPES = ('add', 'remove', 'adjust', 'transfer_in', 'transfer_out', 'sync', 'sale', 'return')

def action_for_reference(reference_type: Optional[str], quantity_change: int) -> str:
    if reference_type == 'purchase':
        return 'add'
    if reference_type == 'transfer':
        return 'transfer_in' if quantity_change >= 0 else 'transfer_out'
    if reference_type == 'return':
        return 'return'
    return 'adjust'

class StockLedgerService(BaseService):

    async def record(self, workspace_id: int, sku: str, warehouse_id: str,
                     previous_quantity: int, new_quantity: int, action_type: str,
                     source: str, quantity_change: int = None, reason: str = None,
                     actor: str = None, reference_id: str = None, reference_type: str = None,
                     extra: Dict[str, Any] = None) -> StockChangeEntry:
        if quantity_change is None:
            quantity_change = new_quantity - previous_quantity
        if previous_quantity + quantity_change != new_quantity:
            raise ValidationError(
                f"Ledger entry for {sku} is inconsistent: "
                f"{previous_quantity} + {quantity_change} != {new_quantity}",
                field='quantity_change'
            )
        if action_type not in ACTION_TYPES:
            raise ValidationError(f"Unknown action_type '{action_type}'", field='action_type')
        if not source:
            raise ValidationError("Ledger source is required", field='source')

        entry = StockChangeEntry(
            workspace_id=workspace_id,
            sku=sku,
            warehouse_id=str(warehouse_id),
            action_type=action_type,
            source=source,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            quantity_change=quantity_change,
            reason=reason,
            actor=actor or self.current_user,
            reference_id=str(reference_id) if reference_id is not None else None,
            reference_type=reference_type,
            extra=extra,
        )
        self.db_session.add(entry)
        await self.db_session.flush()
        self.logger.info(
            f"Stock {action_type} {sku}@{warehouse_id}: {previous_quantity} -> {new_quantity} ({source})"
        )
        return entry

    async def list_entries(self, workspace_id: int, sku: str = None, warehouse_id: str = None,
                           source: str = None, action_type: str = None,
                           page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        query = select(StockChangeEntry).filter(StockChangeEntry.workspace_id == workspace_id)
        query = self._apply_filters(query, StockChangeEntry, {
            'sku': sku, 'warehouse_id': warehouse_id, 'source': source, 'action_type': action_type
        })
        query = query.order_by(StockChangeEntry.id.desc())
        result = await self._paginate_query(query, page, per_page)
        return {
            'items': serialize_items(StockChangeEntrySchema, result['items']),
            'pagination': result['pagination']
        }
