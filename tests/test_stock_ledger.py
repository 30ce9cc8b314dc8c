import httpx
import pytest
from sqlalchemy import select

from omnicrm.models import Product, ProductStock, StockChangeEntry, LedgerImmutableError
from omnicrm.services.exceptions import ValidationError, NotFoundError, ApiError

@pytest.fixture
async def product(session, workspace_id):
    product = Product(workspace_id=workspace_id, external_id='55', sku='SKU-1', name='Caneca')
    session.add(product)
    await session.commit()
    return product

async def bind(services, workspace_id, warehouse_id='bl_1', **data):
    values = {'sync_direction': 'bidirectional', 'allow_stock_updates': True}
    values.update(data)
    await services.policy_service.upsert_binding(workspace_id, warehouse_id, values)

async def ledger(session):
    return (await session.execute(select(StockChangeEntry).order_by(StockChangeEntry.id))).scalars().all()

async def test_adjustment_writes_ledger_and_relative_remote_change(services, remote, workspace_id, product, session):
    await bind(services, workspace_id)
    remote.on('updateInventoryProductsQuantity', {'warnings': {}})

    added = await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=5,
                                                      reason='Recebimento')
    removed = await services.stock_service.set_stock(workspace_id, 'SKU-1', 'bl_1', 2)

    assert added['applied'] is True
    assert (added['previous_quantity'], added['new_quantity']) == (0, 5)
    assert removed['quantity_change'] == -3
    changes = [call['products'][0]['change'] for call in remote.calls_to('updateInventoryProductsQuantity')]
    assert changes == [5, -3]
    assert remote.calls_to('updateInventoryProductsQuantity')[0]['inventory_id'] == '307'

    entries = await ledger(session)
    assert [(e.previous_quantity, e.new_quantity, e.quantity_change) for e in entries] == [(0, 5, 5), (5, 2, -3)]
    assert entries[0].actor == 'tester'
    assert entries[0].reason == 'Recebimento'
    stock = await services.stock_service.get_stock(workspace_id, 'SKU-1', 'bl_1')
    assert stock.quantity == 2

async def test_read_only_warehouse_never_receives_writes(services, remote, workspace_id, product, session):
    await bind(services, workspace_id, sync_direction='read_only')

    result = await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=5)

    assert result == {'applied': False, 'sku': 'SKU-1', 'warehouse_id': 'bl_1', 'reason': 'read_only'}
    assert 'updateInventoryProductsQuantity' not in remote.methods()
    assert await ledger(session) == []

async def test_inactive_write_only_warehouse_never_receives_writes(services, remote, workspace_id, product):
    await bind(services, workspace_id, sync_direction='write_only', is_active=False)

    result = await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=1)

    assert result['reason'] == 'inactive'
    assert remote.methods() == []

async def test_unbound_warehouse_is_not_configured(services, remote, workspace_id, product):
    result = await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_9', quantity_change=1)

    assert result['applied'] is False
    assert result['reason'] == 'not_configured'
    assert remote.methods() == []

async def test_remote_failure_rolls_back_stock_and_ledger(services, remote, workspace_id, product, session):
    await bind(services, workspace_id)
    remote.on('updateInventoryProductsQuantity', httpx.Response(500, text='boom'))

    with pytest.raises(ApiError):
        await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=3)

    assert await ledger(session) == []
    assert (await session.execute(select(ProductStock))).scalars().all() == []

async def test_stock_cannot_go_negative(services, remote, workspace_id, product):
    await bind(services, workspace_id)

    with pytest.raises(ValidationError):
        await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=-1)
    assert remote.methods() == []

async def test_exactly_one_quantity_argument_is_required(services, workspace_id):
    with pytest.raises(ValidationError):
        await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1')
    with pytest.raises(ValidationError):
        await services.stock_service.adjust_stock(workspace_id, 'SKU-1', 'bl_1', quantity_change=1,
                                                  new_quantity=1)

async def test_unknown_product_is_not_found(services, workspace_id):
    await bind(services, workspace_id)

    with pytest.raises(NotFoundError):
        await services.stock_service.adjust_stock(workspace_id, 'NOPE', 'bl_1', quantity_change=1)

async def test_ledger_rejects_inconsistent_entry(services, workspace_id):
    with pytest.raises(ValidationError):
        await services.ledger_service.record(workspace_id, 'SKU-1', 'bl_1', previous_quantity=3,
                                             new_quantity=10, quantity_change=5, action_type='adjust',
                                             source='system')

async def test_ledger_rejects_unknown_action(services, workspace_id):
    with pytest.raises(ValidationError):
        await services.ledger_service.record(workspace_id, 'SKU-1', 'bl_1', previous_quantity=0,
                                             new_quantity=1, action_type='teleport', source='system')

async def test_ledger_entries_are_append_only(services, workspace_id, session):
    entry = await services.ledger_service.record(workspace_id, 'SKU-1', 'bl_1', previous_quantity=0,
                                                 new_quantity=4, action_type='add', source='purchase')
    await session.commit()
    entry_id = entry.id

    entry.reason = 'edited'
    with pytest.raises(LedgerImmutableError):
        await session.flush()
    await session.rollback()

    entry = await session.get(StockChangeEntry, entry_id, populate_existing=True)
    assert entry.reason is None
    await session.delete(entry)
    with pytest.raises(LedgerImmutableError):
        await session.flush()
    await session.rollback()

async def test_ledger_listing_filters_by_sku(services, workspace_id, session):
    for sku in ('SKU-1', 'SKU-2', 'SKU-1'):
        await services.ledger_service.record(workspace_id, sku, 'bl_1', previous_quantity=0,
                                             new_quantity=1, action_type='sync', source='erp_sync')
    await session.commit()

    result = await services.ledger_service.list_entries(workspace_id, sku='SKU-1')

    assert result['pagination']['total'] == 2
    assert all(item['sku'] == 'SKU-1' for item in result['items'])
