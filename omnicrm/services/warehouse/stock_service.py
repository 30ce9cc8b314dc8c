"""
Stock Service
=============

Warehouse-scoped stock writes. Order of operations per adjustment:
policy check, local quantity + ledger entry (flushed), relative remote
change, commit. Any failure rolls the whole unit back.
"""

from typing import Dict, Any, Optional

from sqlalchemy import select

from ..base import BaseService, transactional
from ..exceptions import ValidationError, NotFoundError, PolicyDenied
from .policy_service import WRITE
from .ledger_service import action_for_reference
from ...models import Product, ProductStock, utcnow

class StockService(BaseService):

    def __init__(self, db_session, policy_service, ledger_service, credential_service,
                 client_pool, current_user: str = None):
        super().__init__(db_session, current_user)
        self.policy = policy_service
        self.ledger = ledger_service
        self.credentials = credential_service
        self.client_pool = client_pool

    async def get_stock(self, workspace_id: int, sku: str, warehouse_id: str) -> Optional[ProductStock]:
        return await self._first(select(ProductStock).filter(
            ProductStock.workspace_id == workspace_id,
            ProductStock.sku == sku,
            ProductStock.warehouse_id == str(warehouse_id)
        ))

    async def _resolve_product(self, workspace_id: int, sku: str, product_id: str = None) -> Product:
        query = select(Product).filter(Product.workspace_id == workspace_id)
        if product_id:
            query = query.filter(Product.external_id == str(product_id))
        else:
            query = query.filter(Product.sku == sku)
        product = await self._first(query)
        if product is None:
            raise NotFoundError('Product', product_id or sku)
        return product

    @transactional
    async def adjust_stock(self, workspace_id: int, sku: str, warehouse_id: str,
                           quantity_change: int = None, new_quantity: int = None,
                           action_type: str = None, reason: str = None, product_id: str = None,
                           reference_id: str = None, reference_type: str = None,
                           extra: Dict[str, Any] = None) -> Dict[str, Any]:
        """Apply a relative change (or a target quantity) to one SKU in one warehouse."""
        if (quantity_change is None) == (new_quantity is None):
            raise ValidationError("Provide exactly one of quantity_change or new_quantity")

        try:
            await self.policy.enforce(workspace_id, warehouse_id, WRITE, stock_write=True)
        except PolicyDenied as e:
            return {
                'applied': False,
                'sku': sku,
                'warehouse_id': str(warehouse_id),
                'reason': e.reason,
            }

        product = await self._resolve_product(workspace_id, sku, product_id)
        stock = await self.get_stock(workspace_id, sku, warehouse_id)
        previous = stock.quantity if stock is not None else 0
        if quantity_change is None:
            quantity_change = new_quantity - previous
        target = previous + quantity_change
        if target < 0:
            raise ValidationError(f"Stock for {sku} cannot go below zero ({previous} {quantity_change:+d})",
                                  field='quantity_change')
        if quantity_change == 0:
            return {'applied': False, 'sku': sku, 'warehouse_id': str(warehouse_id), 'reason': 'no_change',
                    'previous_quantity': previous, 'new_quantity': previous}

        if stock is None:
            stock = ProductStock(workspace_id=workspace_id, product_id=product.id, sku=sku,
                                 warehouse_id=str(warehouse_id), quantity=0)
            self.db_session.add(stock)
        stock.quantity = target
        stock.synced_at = utcnow()
        entry = await self.ledger.record(
            workspace_id=workspace_id,
            sku=sku,
            warehouse_id=warehouse_id,
            previous_quantity=previous,
            new_quantity=target,
            quantity_change=quantity_change,
            action_type=action_type or action_for_reference(reference_type, quantity_change),
            source=reference_type or 'system',
            reason=reason,
            reference_id=reference_id,
            reference_type=reference_type,
            extra=extra,
        )

        client = await self.credentials.get_erp_client(workspace_id, self.client_pool)
        if quantity_change > 0:
            await client.add_quantity(product.external_id, warehouse_id, quantity_change)
        else:
            await client.remove_quantity(product.external_id, warehouse_id, -quantity_change)

        self.logger.info(f"Stock {sku}@{warehouse_id} {previous} -> {target} pushed to ERP")
        return {
            'applied': True,
            'sku': sku,
            'warehouse_id': str(warehouse_id),
            'previous_quantity': previous,
            'new_quantity': target,
            'quantity_change': quantity_change,
            'ledger_entry_id': entry.id,
        }

    async def set_stock(self, workspace_id: int, sku: str, warehouse_id: str, new_quantity: int,
                        **kwargs) -> Dict[str, Any]:
        """Move stock to an absolute value; sent to the ERP as the equivalent relative change."""
        if new_quantity is None or new_quantity < 0:
            raise ValidationError("new_quantity must be zero or positive", field='new_quantity')
        return await self.adjust_stock(workspace_id, sku, warehouse_id, new_quantity=new_quantity, **kwargs)
