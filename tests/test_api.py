import httpx
import pytest

from omnicrm import create_app, status_for
from omnicrm.database import get_db_session
from omnicrm.services.exceptions import (
    PolicyDenied, RateLimitedError, NotFoundError, WaitTimeoutError, UnauthorizedError
)

@pytest.fixture
async def api(settings, client_pool, session):
    app = create_app(settings, client_pool=client_pool)

    async def override_session():
        yield session

    app.dependency_overrides[get_db_session] = override_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

@pytest.mark.parametrize('exc,status_code', [
    (NotFoundError('Order', 1), 404),
    (PolicyDenied('bl_1', 'write', 'read_only'), 403),
    (RateLimitedError(), 429),
    (UnauthorizedError(), 401),
    (WaitTimeoutError('late'), 504),
])
def test_status_for(exc, status_code):
    assert status_for(exc) == status_code

async def test_health(api):
    response = await api.get("/health")

    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'
    assert response.headers['X-Request-ID']

async def test_sync_orders_endpoint(api, remote, workspace_id):
    remote.on('getOrderStatusList', {'statuses': []})
    remote.on('getOrders', {'orders': [{'order_id': 1, 'email': 'ana@example.com', 'delivery_fullname': 'Ana'}]})

    response = await api.post(f"/api/workspaces/{workspace_id}/sync/orders")

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['data']['status'] == 'completed'
    assert body['data']['created'] == 1

    status_response = await api.get(f"/api/workspaces/{workspace_id}/sync/status")
    data = status_response.json()['data']
    assert data['status']['status'] == 'idle'
    assert [c['kind'] for c in data['checkpoints']] == ['orders']

async def test_unknown_sync_kind_is_a_validation_error(api, workspace_id):
    response = await api.post(f"/api/workspaces/{workspace_id}/sync/invoices")

    assert response.status_code == 400
    body = response.json()
    assert body['success'] is False
    assert body['error_code'] == 'VALIDATION_ERROR'
    assert 'request_id' in body

async def test_missing_event_is_404(api, workspace_id):
    response = await api.get(f"/api/workspaces/{workspace_id}/events/999")

    assert response.status_code == 404
    assert response.json()['error_code'] == 'NOT_FOUND'

async def test_erp_webhook_requires_workspace_header(api, workspace_id):
    payload = {'event': 'new_order', 'order_id': 55}

    missing = await api.post("/api/webhooks/erp", json=payload)
    accepted = await api.post("/api/webhooks/erp", json=payload, headers={'X-Workspace-Id': str(workspace_id)})

    assert missing.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()['data']['queued'] is True

    events = await api.get(f"/api/workspaces/{workspace_id}/events", params={'status': 'pending'})
    body = events.json()
    assert body['pagination']['total'] == 1
    assert body['data'][0]['event_name'] == 'new_order'

async def test_warehouse_binding_and_denied_adjustment(api, remote, workspace_id):
    saved = await api.put(f"/api/workspaces/{workspace_id}/warehouses/bl_1",
                          json={'sync_direction': 'read_only', 'allow_stock_updates': True})
    assert saved.status_code == 200
    assert saved.json()['data']['sync_direction'] == 'read_only'

    policy = await api.get(f"/api/workspaces/{workspace_id}/warehouses/bl_1/policy", params={'direction': 'write'})
    assert policy.json()['data'] == {'allowed': False, 'reason': 'read_only', 'warehouse_id': 'bl_1',
                                     'direction': 'write'}

    adjusted = await api.post(f"/api/workspaces/{workspace_id}/stock/adjustments",
                              json={'sku': 'SKU-1', 'warehouse_id': 'bl_1', 'quantity_change': 3})
    assert adjusted.status_code == 201
    assert adjusted.json()['data']['applied'] is False
    assert remote.methods() == []

async def test_gateway_webhook_for_unknown_instance(api):
    response = await api.post("/api/webhooks/gateway", json={'event': 'CONNECTION_UPDATE', 'instance': 'nope'})

    assert response.status_code == 404
