"""
ERP Order Client
================

Typed facade over the ERP JSON-RPC style API. Every method only names the
remote method and its parameter shape; transport, spacing, caching and error
typing live in RateLimitedCache.
"""

from typing import Dict, Any, List, Optional

from .rate_limited_cache import RateLimitedCache, credential_prefix
from ..exceptions import ApiError, ValidationError

class ExternalOrderClient:
    """ERP client bound to one tenant credential"""

    def __init__(self, cache: RateLimitedCache, credential: str, inventory_id: Optional[str] = None):
        self.cache = cache
        self.credential = credential
        self.inventory_id = inventory_id

    def __repr__(self):
        return f'<ExternalOrderClient {credential_prefix(self.credential)}>'

    async def _call(self, method: str, params: Dict[str, Any] = None, use_cache: bool = True):
        return await self.cache.call(self.credential, method, params or {}, use_cache=use_cache)

    def _inventory(self, inventory_id):
        inventory_id = inventory_id or self.inventory_id
        if not inventory_id:
            raise ValidationError("Inventory ID not configured", field='inventory_id')
        return inventory_id

    async def test_connection(self) -> Dict[str, Any]:
        try:
            await self._call('getInventories', use_cache=False)
            return {'success': True}
        except ApiError as e:
            return {'success': False, 'message': e.message, 'error_code': e.error_code}

    # Orders
    async def get_orders(self, date_from: int = None, id_from: int = None, status_id: int = None,
                         get_unconfirmed_orders: bool = True, use_cache: bool = True) -> List[Dict[str, Any]]:
        params = {'get_unconfirmed_orders': get_unconfirmed_orders}
        if date_from is not None:
            params['date_from'] = date_from
        if id_from is not None:
            params['id_from'] = id_from
        if status_id is not None:
            params['status_id'] = status_id
        result = await self._call('getOrders', params, use_cache=use_cache)
        return result.get('orders') or []

    async def get_order(self, order_id, use_cache: bool = False) -> Optional[Dict[str, Any]]:
        result = await self._call('getOrders', {'order_id': int(order_id), 'get_unconfirmed_orders': True},
                                  use_cache=use_cache)
        orders = result.get('orders') or []
        return orders[0] if orders else None

    async def get_order_details(self, order_id) -> Dict[str, Any]:
        return await self._call('getOrderDetails', {'order_id': order_id})

    async def get_order_status_list(self) -> List[Dict[str, Any]]:
        result = await self._call('getOrderStatusList')
        return result.get('statuses') or []

    async def get_order_sources(self) -> Dict[str, Any]:
        result = await self._call('getOrderSources')
        return result.get('sources') or {}

    async def get_journal_list(self, last_log_id: int = 0, logs_types: List[int] = None,
                               order_id: int = None) -> List[Dict[str, Any]]:
        params = {}
        if last_log_id:
            params['last_log_id'] = last_log_id
        if logs_types:
            params['logs_types'] = logs_types
        if order_id:
            params['order_id'] = order_id
        result = await self._call('getJournalList', params, use_cache=False)
        return result.get('logs') or []

    # Inventory
    async def get_inventories(self) -> List[Dict[str, Any]]:
        result = await self._call('getInventories')
        return result.get('inventories') or []

    async def get_inventory_warehouses(self) -> List[Dict[str, Any]]:
        result = await self._call('getInventoryWarehouses')
        return result.get('warehouses') or []

    async def get_inventory_products_list(self, inventory_id=None, page: int = 1,
                                          **filters) -> Dict[str, Any]:
        params = {'inventory_id': self._inventory(inventory_id), 'page': page}
        params.update({k: v for k, v in filters.items() if v is not None})
        result = await self._call('getInventoryProductsList', params)
        return result.get('products') or {}

    async def get_inventory_products_data(self, product_ids: List, inventory_id=None) -> Dict[str, Any]:
        result = await self._call('getInventoryProductsData', {
            'inventory_id': self._inventory(inventory_id),
            'products': [int(p) if str(p).isdigit() else p for p in product_ids],
        })
        return result.get('products') or {}

    async def get_inventory_products_prices(self, inventory_id=None, page: int = 1) -> Dict[str, Any]:
        result = await self._call('getInventoryProductsPrices',
                                  {'inventory_id': self._inventory(inventory_id), 'page': page})
        return result.get('products') or {}

    async def get_inventory_products_quantity(self, inventory_id=None, page: int = 1) -> Dict[str, Any]:
        result = await self._call('getInventoryProductsQuantity',
                                  {'inventory_id': self._inventory(inventory_id), 'page': page})
        return result.get('products') or {}

    async def update_inventory_products_quantity(self, products: Dict[str, Dict[str, int]],
                                                 inventory_id=None) -> Dict[str, Any]:
        """Absolute stock write: {product_id: {warehouse_id: quantity}}. Never cached."""
        return await self._call('updateInventoryProductsQuantity', {
            'inventory_id': self._inventory(inventory_id),
            'products': products,
        }, use_cache=False)

    async def _change_quantity(self, product_id, warehouse_id: str, change: int, inventory_id=None):
        return await self._call('updateInventoryProductsQuantity', {
            'inventory_id': self._inventory(inventory_id),
            'products': [{
                'product_id': str(product_id),
                'warehouse_id': str(warehouse_id),
                'change': change,
            }],
        }, use_cache=False)

    async def add_quantity(self, product_id, warehouse_id: str, quantity: int, inventory_id=None):
        """Relative increase; the remote side applies `change: +n`."""
        if quantity <= 0:
            raise ValidationError("Quantity to add must be positive", field='quantity')
        return await self._change_quantity(product_id, warehouse_id, quantity, inventory_id)

    async def remove_quantity(self, product_id, warehouse_id: str, quantity: int, inventory_id=None):
        """Relative decrease; the remote side applies `change: -n`."""
        if quantity <= 0:
            raise ValidationError("Quantity to remove must be positive", field='quantity')
        return await self._change_quantity(product_id, warehouse_id, -quantity, inventory_id)
