"""
Reconciliation Service
======================

CRITICAL SERVICE untuk ERP synchronization.

Each run covers one entity kind (orders, customers, inventory) for one
tenant: fetch the delta since the checkpoint, normalize, resolve identity,
upsert only what changed, and advance the checkpoint only when the whole
batch went through.
"""

from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError

from ..base import BaseService
from ..exceptions import (
    CRMException, ApiError, RateLimitedError, NotFoundError, ValidationError
)
from ..warehouse.policy_service import READ
from .status_mapping import map_order_status
from ...models import Client, Order, OrderItem, Product, ProductStock, SYNC_KINDS, utcnow
from ...schemas.remote import RemoteOrder, RemoteOrderItem, RemoteCustomer, RemoteProduct, iter_products

def to_epoch(value: Optional[datetime]) -> int:
    if value is None:
        return 0
    return int(value.replace(tzinfo=timezone.utc).timestamp())

class SyncStats:
    """Outcome counters and collected per-entity errors for one run"""

    def __init__(self, kind: str):
        self.kind = kind
        self.counts = Counter()
        self.errors: List[Dict[str, Any]] = []

    def record(self, outcome: str):
        self.counts[outcome] += 1

    def fail(self, entity: str, external_id, exc: Exception):
        self.counts['failed'] += 1
        self.errors.append({
            'kind': self.kind,
            'entity': entity,
            'external_id': str(external_id) if external_id is not None else None,
            'error_code': getattr(exc, 'error_code', None) or exc.__class__.__name__,
            'message': getattr(exc, 'message', None) or str(exc),
            'timestamp': utcnow().isoformat(),
        })

    @property
    def failed(self) -> int:
        return self.counts['failed']

    def summary(self) -> Dict[str, int]:
        return {key: self.counts[key] for key in ('created', 'updated', 'unchanged', 'skipped', 'failed')}

class ReconciliationService(BaseService):
    """CRITICAL SERVICE untuk ERP Reconciliation"""

    def __init__(self, db_session, client_pool, credential_service, checkpoint_service,
                 status_service, policy_service, ledger_service, settings, current_user: str = None):
        super().__init__(db_session, current_user)
        self.client_pool = client_pool
        self.credentials = credential_service
        self.checkpoints = checkpoint_service
        self.status = status_service
        self.policy = policy_service
        self.ledger = ledger_service
        self.country_code = settings.DEFAULT_COUNTRY_CODE
        self.page_size = settings.ORDERS_PAGE_SIZE
        self.inventory_max_pages = settings.INVENTORY_MAX_PAGES

    async def sync_all(self, workspace_id: int) -> Dict[str, Any]:
        return {kind: await self.sync(workspace_id, kind) for kind in SYNC_KINDS}

    async def sync(self, workspace_id: int, kind: str) -> Dict[str, Any]:
        """Run one single-flight sync batch for (workspace, kind)."""
        if kind not in SYNC_KINDS:
            raise ValidationError(f"Unknown sync kind '{kind}'", field='kind')

        batch_started_at = utcnow()
        if not await self.checkpoints.acquire(workspace_id, kind, batch_started_at):
            return {'success': False, 'status': 'skipped', 'kind': kind, 'reason': 'already_syncing'}

        stats = SyncStats(kind)
        fatal: Optional[Dict[str, Any]] = None
        final_state = 'idle'
        run_status = 'completed'

        try:
            await self.status.mark_syncing(workspace_id)
            client = await self.credentials.get_erp_client(workspace_id, self.client_pool)
            last_synced_at, _ = await self.checkpoints.get_position(workspace_id, kind)
            handler = {
                'orders': self._sync_orders,
                'customers': self._sync_customers,
                'inventory': self._sync_inventory,
            }[kind]
            await handler(workspace_id, client, last_synced_at, stats)
            await self.db_session.commit()
        except RateLimitedError as e:
            await self.db_session.commit()
            run_status = 'rate_limited'
            fatal = self._fatal_entry(kind, e, transient=True)
            self.logger.warning(f"Sync {kind} for workspace {workspace_id} paused: {e.message}")
        except CRMException as e:
            await self.db_session.commit()
            final_state, run_status = 'error', 'error'
            fatal = self._fatal_entry(kind, e)
            self.logger.error(f"Sync {kind} for workspace {workspace_id} aborted: {e.message}")
        except Exception as e:
            await self.db_session.rollback()
            await self.checkpoints.release(workspace_id, kind)
            await self.status.finish(workspace_id, kind, 'error', [self._fatal_entry(kind, e)],
                                     failed_count=stats.failed)
            self.logger.exception(f"Sync {kind} for workspace {workspace_id} crashed")
            raise

        advanced = fatal is None and stats.failed == 0
        if run_status == 'completed' and stats.failed:
            run_status = 'partial'
        await self.checkpoints.release(workspace_id, kind, advance_to=batch_started_at if advanced else None)

        errors = stats.errors + ([fatal] if fatal else [])
        counts = stats.summary()
        await self.status.finish(workspace_id, kind, final_state, errors,
                                 updated_count=counts['created'] + counts['updated'],
                                 failed_count=counts['failed'])
        await self.status.log_operation(workspace_id, f"{kind.upper()}_SYNC", run_status.upper(), {
            **counts, 'checkpoint_advanced': advanced, 'errors': errors[:20]
        })
        self.logger.info(f"Sync {kind} for workspace {workspace_id} {run_status}: {counts}")

        result = {
            'success': run_status == 'completed',
            'status': run_status,
            'kind': kind,
            **counts,
            'errors': errors,
            'checkpoint_advanced': advanced,
        }
        if fatal and fatal.get('blocked_until'):
            result['blocked_until'] = fatal['blocked_until']
        return result

    def _fatal_entry(self, kind: str, exc: Exception, transient: bool = False) -> Dict[str, Any]:
        entry = {
            'kind': kind,
            'entity': None,
            'external_id': None,
            'error_code': getattr(exc, 'error_code', None) or exc.__class__.__name__,
            'message': getattr(exc, 'message', None) or str(exc),
            'fatal': not transient,
            'timestamp': utcnow().isoformat(),
        }
        blocked_until = getattr(exc, 'blocked_until', None)
        if blocked_until is not None:
            entry['blocked_until'] = blocked_until.isoformat()
        return entry

    async def _run_entity(self, stats: SyncStats, entity: str, external_id, func, *args):
        """Upsert one entity inside a SAVEPOINT; per-entity failures are collected, remote failures abort."""
        try:
            async with self.db_session.begin_nested():
                outcome = await func(*args)
        except ApiError:
            raise
        except (CRMException, SQLAlchemyError) as e:
            stats.fail(entity, external_id, e)
            self.logger.warning(f"Skipping {entity} {external_id}: {e}")
            return None
        stats.record(outcome)
        return outcome

    # Fetch

    async def _status_names(self, client) -> Dict[str, str]:
        statuses = await client.get_order_status_list()
        return {str(s.get('id')): s.get('name') for s in statuses if isinstance(s, dict) and s.get('id') is not None}

    async def _fetch_orders(self, client, since: Optional[datetime]) -> List[Dict[str, Any]]:
        """All orders changed since the checkpoint, paged by id_from until a short page."""
        date_from = to_epoch(since)
        orders: List[Dict[str, Any]] = []
        id_from = None
        while True:
            page = await client.get_orders(date_from=date_from, id_from=id_from, use_cache=False)
            orders.extend(page)
            numeric_ids = [int(o['order_id']) for o in page
                           if isinstance(o, dict) and str(o.get('order_id', '')).isdigit()]
            if len(page) < self.page_size or not numeric_ids:
                break
            next_id = max(numeric_ids) + 1
            if id_from is not None and next_id <= id_from:
                break
            id_from = next_id
        return orders

    # Orders

    async def _sync_orders(self, workspace_id: int, client, since, stats: SyncStats):
        status_names = await self._status_names(client)
        for payload in await self._fetch_orders(client, since):
            external_id = payload.get('order_id') if isinstance(payload, dict) else None
            await self._run_entity(stats, 'order', external_id,
                                   self._upsert_order, workspace_id, payload, status_names)

    async def _upsert_order(self, workspace_id: int, payload: Dict[str, Any],
                            status_names: Dict[str, str]) -> str:
        remote = RemoteOrder.from_payload(payload, country_code=self.country_code, status_names=status_names)
        order = await self._first(select(Order).filter(
            Order.workspace_id == workspace_id,
            Order.external_id == remote.external_id
        ))
        client = None
        if remote.customer is not None:
            client, _ = await self._resolve_client(workspace_id, remote.customer)
        elif order is None:
            # no contact key to link a client to
            return 'skipped'

        values = {
            'status': map_order_status(remote.raw_status),
            'raw_status': remote.raw_status,
            'total_amount': remote.total_amount,
            'currency': remote.currency,
            'order_date': remote.order_date,
            'remote_payload': remote.raw,
        }
        if client is not None:
            values['client_id'] = client.id

        if order is None:
            order = Order(workspace_id=workspace_id, external_id=remote.external_id, **values)
            self.db_session.add(order)
            await self.db_session.flush()
            await self._replace_order_items(workspace_id, order, remote.items)
            return 'created'
        changed = self._apply_changes(order, values)
        if await self._replace_order_items(workspace_id, order, remote.items):
            changed = True
        return 'updated' if changed else 'unchanged'

    @staticmethod
    def _item_signature(position, external_id, product_id, sku, name, quantity, unit_price, tax_rate):
        cents = Decimal('0.01')
        return (position, external_id, product_id, sku, name, quantity,
                Decimal(unit_price or 0).quantize(cents), Decimal(tax_rate or 0).quantize(cents))

    async def _replace_order_items(self, workspace_id: int, order: Order, items: List[RemoteOrderItem]) -> bool:
        """Replace the order lines when they differ from the remote ones. True when they changed."""
        result = await self.db_session.execute(
            select(OrderItem).filter(OrderItem.order_id == order.id).order_by(OrderItem.position)
        )
        existing = list(result.scalars().all())
        current = [self._item_signature(i.position, i.external_id, i.product_external_id, i.sku, i.name,
                                        i.quantity, i.unit_price, i.tax_rate) for i in existing]
        wanted = [self._item_signature(i.position, i.external_id, i.product_id, i.sku, i.name,
                                       i.quantity, i.unit_price, i.tax_rate) for i in items]
        if current == wanted:
            return False

        for item in existing:
            await self.db_session.delete(item)
        for item in items:
            self.db_session.add(OrderItem(
                workspace_id=workspace_id,
                order_id=order.id,
                position=item.position,
                external_id=item.external_id,
                product_external_id=item.product_id,
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                gross_amount=item.gross_amount,
                tax_amount=item.tax_amount,
            ))
        await self.db_session.flush()
        return True

    # Customers

    async def _sync_customers(self, workspace_id: int, client, since, stats: SyncStats):
        for payload in await self._fetch_orders(client, since):
            external_id = payload.get('order_id') if isinstance(payload, dict) else None
            await self._run_entity(stats, 'customer', external_id,
                                   self._upsert_customer, workspace_id, payload)

    async def _upsert_customer(self, workspace_id: int, payload: Dict[str, Any]) -> str:
        if not isinstance(payload, dict):
            raise ValidationError("Customer payload must be an object")
        email = payload.get('email')
        phone = payload.get('phone')
        if not (email or phone):
            return 'skipped'
        remote = RemoteCustomer.from_payload(payload, country_code=self.country_code)
        if not remote.has_contact:
            return 'skipped'
        _, outcome = await self._resolve_client(workspace_id, remote)
        return outcome

    async def _resolve_client(self, workspace_id: int, remote: RemoteCustomer):
        """External ID first, then email OR phone within the tenant, else insert."""
        client = None
        if remote.external_id:
            client = await self._first(select(Client).filter(
                Client.workspace_id == workspace_id,
                Client.external_id == remote.external_id
            ))
        if client is None:
            conditions = []
            if remote.email:
                conditions.append(Client.email == remote.email)
            if remote.phone:
                conditions.append(Client.phone == remote.phone)
            if conditions:
                client = await self._first(
                    select(Client)
                    .filter(Client.workspace_id == workspace_id, or_(*conditions))
                    .order_by(Client.id)
                )

        values = {'name': remote.name, 'metadata_': {'erp_data': remote.address}}
        if remote.email:
            values['email'] = remote.email
        if remote.phone:
            values['phone'] = remote.phone

        if client is None:
            client = Client(workspace_id=workspace_id, external_id=remote.external_id, source='erp', **values)
            self.db_session.add(client)
            await self.db_session.flush()
            return client, 'created'

        if remote.external_id and not client.external_id:
            values['external_id'] = remote.external_id
        return client, ('updated' if self._apply_changes(client, values) else 'unchanged')

    # Inventory

    async def _sync_inventory(self, workspace_id: int, client, since, stats: SyncStats):
        if not client.inventory_id:
            raise NotFoundError('Inventory', f"workspace {workspace_id}",
                                details={'hint': "set inventory_id in the ERP credential scope"})
        for page in range(1, self.inventory_max_pages + 1):
            items = iter_products(await client.get_inventory_products_list(page=page))
            if not items:
                break
            ids = [item.get('id') for item in items if isinstance(item, dict) and item.get('id')]
            details = await client.get_inventory_products_data(ids) if ids else {}
            if not isinstance(details, dict):
                details = {}
            for item in items:
                external_id = item.get('id') if isinstance(item, dict) else None
                await self._run_entity(stats, 'product', external_id,
                                       self._upsert_listed_product, workspace_id, item, details)

    async def _upsert_listed_product(self, workspace_id: int, item, details: Dict[str, Any]) -> str:
        """Listing entry merged over its detail record."""
        if not isinstance(item, dict):
            raise ValidationError("Product payload must be an object")
        detail = details.get(str(item.get('id'))) or {}
        if not isinstance(detail, dict):
            raise ValidationError(f"Product {item.get('id')} details must be an object", field='details')
        return await self._upsert_product(workspace_id, {**detail, **item})

    async def _upsert_product(self, workspace_id: int, payload: Dict[str, Any]) -> str:
        remote = RemoteProduct.from_payload(payload)
        product = await self._first(select(Product).filter(
            Product.workspace_id == workspace_id,
            Product.external_id == remote.external_id
        ))
        values = {
            'sku': remote.sku,
            'ean': remote.ean,
            'name': remote.name,
            'price': remote.price,
            'remote_payload': remote.raw,
        }
        if product is None:
            product = Product(workspace_id=workspace_id, external_id=remote.external_id, **values)
            self.db_session.add(product)
            await self.db_session.flush()
            outcome = 'created'
        else:
            outcome = 'updated' if self._apply_changes(product, values) else 'unchanged'

        stock_changed = False
        for warehouse_id, quantity in remote.stock.items():
            if await self._apply_remote_stock(workspace_id, product, warehouse_id, quantity):
                stock_changed = True
        if stock_changed and outcome == 'unchanged':
            outcome = 'updated'
        return outcome

    async def _apply_remote_stock(self, workspace_id: int, product: Product, warehouse_id: str,
                                  quantity: int) -> bool:
        """Mirror one remote warehouse quantity locally, with a ledger entry. True when it changed."""
        if not product.sku:
            return False
        decision = await self.policy.check(workspace_id, warehouse_id, READ)
        if not decision.allowed:
            return False

        stock = await self._first(select(ProductStock).filter(
            ProductStock.workspace_id == workspace_id,
            ProductStock.sku == product.sku,
            ProductStock.warehouse_id == str(warehouse_id)
        ))
        previous = stock.quantity if stock is not None else 0
        if stock is not None and previous == quantity:
            return False
        if stock is None:
            stock = ProductStock(workspace_id=workspace_id, product_id=product.id, sku=product.sku,
                                 warehouse_id=str(warehouse_id), quantity=0)
            self.db_session.add(stock)
        stock.quantity = quantity
        stock.synced_at = utcnow()
        if previous != quantity:
            await self.ledger.record(
                workspace_id=workspace_id,
                sku=product.sku,
                warehouse_id=warehouse_id,
                previous_quantity=previous,
                new_quantity=quantity,
                action_type='sync',
                source='erp_sync',
                reason='Inventory reconciliation',
                reference_id=product.external_id,
                reference_type='product',
            )
        else:
            await self.db_session.flush()
        return True

    @staticmethod
    def _apply_changes(entity, values: Dict[str, Any]) -> bool:
        changed = False
        for key, value in values.items():
            if getattr(entity, key) != value:
                setattr(entity, key, value)
                changed = True
        return changed

    # Single entity (event queue)

    async def reconcile_order(self, workspace_id: int, order_id) -> Dict[str, Any]:
        """Re-sync one order right now; errors propagate to the caller."""
        client = await self.credentials.get_erp_client(workspace_id, self.client_pool)
        payload = await client.get_order(order_id)
        if payload is None:
            raise NotFoundError('Order', order_id)
        status_names = await self._status_names(client)
        try:
            outcome = await self._upsert_order(workspace_id, payload, status_names)
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise
        self.logger.info(f"Order {order_id} reconciled for workspace {workspace_id}: {outcome}")
        return {'entity': 'order', 'external_id': str(order_id), 'outcome': outcome}

    async def reconcile_product(self, workspace_id: int, product_id) -> Dict[str, Any]:
        client = await self.credentials.get_erp_client(workspace_id, self.client_pool)
        details = await client.get_inventory_products_data([product_id])
        data = details.get(str(product_id)) if isinstance(details, dict) else None
        if not data:
            raise NotFoundError('Product', product_id)
        if not isinstance(data, dict):
            raise ValidationError(f"Product {product_id} details must be an object", field='details')
        try:
            outcome = await self._upsert_product(workspace_id, {'id': str(product_id), **data})
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise
        self.logger.info(f"Product {product_id} reconciled for workspace {workspace_id}: {outcome}")
        return {'entity': 'product', 'external_id': str(product_id), 'outcome': outcome}
