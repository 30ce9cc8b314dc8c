import httpx
import pytest

from omnicrm.services.exceptions import ValidationError

async def test_pool_shares_one_cache_per_credential(client_pool):
    first = client_pool.erp_client('token-a')
    second = client_pool.erp_client('token-a', inventory_id='307')
    other = client_pool.erp_client('token-b')

    assert first.cache is second.cache
    assert other.cache is not first.cache
    assert second.inventory_id == '307'

async def test_get_orders_builds_params_and_unwraps_list(client_pool, remote):
    remote.on('getOrders', {'orders': [{'order_id': 1}, {'order_id': 2}]})
    client = client_pool.erp_client('token-a')

    orders = await client.get_orders(date_from=1700000000, id_from=10)

    assert [o['order_id'] for o in orders] == [1, 2]
    assert remote.calls_to('getOrders') == [
        {'get_unconfirmed_orders': True, 'date_from': 1700000000, 'id_from': 10}
    ]

async def test_status_list_is_cached_but_journal_is_not(client_pool, remote):
    remote.on('getOrderStatusList', {'statuses': [{'id': 7, 'name': 'Shipped'}]})
    remote.on('getJournalList', {'logs': []})
    client = client_pool.erp_client('token-a')

    await client.get_order_status_list()
    await client.get_order_status_list()
    await client.get_journal_list(last_log_id=5, logs_types=[1, 18])
    await client.get_journal_list(last_log_id=5, logs_types=[1, 18])

    assert remote.methods() == ['getOrderStatusList', 'getJournalList', 'getJournalList']
    assert remote.calls_to('getJournalList')[0] == {'last_log_id': 5, 'logs_types': [1, 18]}

async def test_get_order_returns_first_match_or_none(client_pool, remote):
    remote.on('getOrders', lambda params: {'orders': [{'order_id': params['order_id']}]
                                           if params['order_id'] == 100 else []})
    client = client_pool.erp_client('token-a')

    assert (await client.get_order(100))['order_id'] == 100
    assert await client.get_order(101) is None

async def test_add_and_remove_quantity_send_relative_changes(client_pool, remote):
    remote.on('updateInventoryProductsQuantity', {'warnings': {}})
    client = client_pool.erp_client('token-a', inventory_id='307')

    await client.add_quantity('55', 'bl_1', 4)
    await client.remove_quantity('55', 'bl_1', 3)

    changes = remote.calls_to('updateInventoryProductsQuantity')
    assert [c['products'][0]['change'] for c in changes] == [4, -3]
    assert all(c['inventory_id'] == '307' for c in changes)
    assert changes[0]['products'][0]['warehouse_id'] == 'bl_1'

async def test_quantity_changes_must_be_positive(client_pool, remote):
    client = client_pool.erp_client('token-a', inventory_id='307')

    with pytest.raises(ValidationError):
        await client.add_quantity('55', 'bl_1', 0)
    with pytest.raises(ValidationError):
        await client.remove_quantity('55', 'bl_1', -2)
    assert remote.calls == []

async def test_inventory_calls_need_an_inventory_id(client_pool, remote):
    client = client_pool.erp_client('token-a')

    with pytest.raises(ValidationError):
        await client.get_inventory_products_list()
    assert remote.calls == []

async def test_connection_check_reports_auth_failure(client_pool, remote):
    remote.on('getInventories', httpx.Response(200, json={
        'status': 'ERROR', 'error_code': 'ERROR_INVALID_API_KEY', 'error_message': 'Invalid key'
    }))
    client = client_pool.erp_client('token-a')

    result = await client.test_connection()

    assert result == {'success': False, 'message': 'ERP: Invalid key', 'error_code': 'UNAUTHORIZED'}

async def test_catalog_wrappers_unwrap_payloads(client_pool, remote):
    remote.on('getInventories', {'inventories': [{'inventory_id': 307}]})
    remote.on('getInventoryWarehouses', {'warehouses': [{'warehouse_id': 'bl_1'}]})
    remote.on('getOrderSources', {'sources': {'shop': {'1': 'Loja'}}})
    remote.on('getOrderDetails', {'order_id': 9, 'products': []})
    remote.on('getInventoryProductsPrices', {'products': {'55': {'prices': {'1': 29.9}}}})
    remote.on('getInventoryProductsQuantity', {'products': {'55': {'stock': {'bl_1': 4}}}})
    remote.on('updateInventoryProductsQuantity', {'counter': 1})
    client = client_pool.erp_client('token-a', inventory_id='307')

    assert await client.get_inventories() == [{'inventory_id': 307}]
    assert await client.get_inventory_warehouses() == [{'warehouse_id': 'bl_1'}]
    assert await client.get_order_sources() == {'shop': {'1': 'Loja'}}
    assert (await client.get_order_details(9))['order_id'] == 9
    assert await client.get_inventory_products_prices() == {'55': {'prices': {'1': 29.9}}}
    assert await client.get_inventory_products_quantity(page=2) == {'55': {'stock': {'bl_1': 4}}}
    await client.update_inventory_products_quantity({'55': {'bl_1': 10}})

    assert remote.calls_to('getInventoryProductsQuantity') == [{'inventory_id': '307', 'page': 2}]
    assert remote.calls_to('updateInventoryProductsQuantity') == [
        {'inventory_id': '307', 'products': {'55': {'bl_1': 10}}}
    ]

async def test_clear_cache_forces_a_new_request(client_pool, remote):
    remote.on('getOrderStatusList', {'statuses': []})
    client = client_pool.erp_client('token-a')

    await client.get_order_status_list()
    client.cache.clear_cache()
    await client.get_order_status_list()

    assert remote.methods() == ['getOrderStatusList', 'getOrderStatusList']
