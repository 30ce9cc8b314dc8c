import asyncio
import json

import httpx
import pytest

from omnicrm.services.exceptions import ExternalServiceError, WaitTimeoutError
from omnicrm.services.integration import AutomationClient, wait_for_completion

async def test_wait_returns_first_finished_result():
    states = iter(['running', 'running', 'success'])

    async def fetch():
        return next(states)

    assert await wait_for_completion(fetch, lambda s: s == 'success', timeout=1, interval=0.001) == 'success'

async def test_wait_times_out():
    async def fetch():
        return 'running'

    with pytest.raises(WaitTimeoutError) as exc_info:
        await wait_for_completion(fetch, lambda s: s == 'success', timeout=0.05, interval=0.01)

    assert exc_info.value.error_code == 'WAIT_TIMEOUT'

async def test_wait_bounds_a_slow_fetch_by_the_deadline():
    cancelled = []

    async def fetch():
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(1)
            raise
        return 'success'

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(WaitTimeoutError):
        await wait_for_completion(fetch, lambda s: s == 'success', timeout=0.05, interval=0.01)

    assert loop.time() - started < 1
    assert cancelled == [1]

async def test_wait_can_be_cancelled():
    cancel = asyncio.Event()
    calls = []

    async def fetch():
        calls.append(1)
        cancel.set()
        return 'running'

    with pytest.raises(asyncio.CancelledError):
        await wait_for_completion(fetch, lambda s: s == 'success', timeout=5, interval=1, cancel_event=cancel)

    assert len(calls) == 1

def automation_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))

async def test_trigger_webhook_joins_relative_path():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={'received': True})

    async with automation_http(handler) as http:
        client = AutomationClient(http, base_url='https://n8n.test/')
        result = await client.trigger_webhook('/crm-events', {'event': 'message_received'})

    assert result == {'success': True, 'data': {'received': True}}
    assert str(seen[0].url) == 'https://n8n.test/webhook/crm-events'
    assert json.loads(seen[0].content) == {'event': 'message_received'}

async def test_trigger_webhook_failure_raises():
    async with automation_http(lambda request: httpx.Response(404, json={'message': 'webhook not registered'})) as http:
        client = AutomationClient(http, base_url='https://n8n.test')
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.trigger_webhook('https://n8n.test/webhook/x', {})

    assert 'webhook not registered' in exc_info.value.message
    assert exc_info.value.status_code == 404

async def test_relative_webhook_without_base_url_raises():
    async with automation_http(lambda request: httpx.Response(200)) as http:
        with pytest.raises(ExternalServiceError):
            await AutomationClient(http).trigger_webhook('crm-events', {})

async def test_run_workflow_waits_for_execution():
    polls = iter(['running', 'success'])
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, request.headers.get('X-N8N-API-KEY')))
        if request.url.path.endswith('/execute'):
            return httpx.Response(200, json={'id': 'ex-1'})
        return httpx.Response(200, json={'id': 'ex-1', 'status': next(polls)})

    async with automation_http(handler) as http:
        client = AutomationClient(http, base_url='https://n8n.test', api_key='key-1', poll_interval=0.001)
        result = await client.run_workflow('wf-9', {'order_id': 1})

    assert result['status'] == 'success'
    assert seen[0] == ('POST', '/api/v1/workflows/wf-9/execute', 'key-1')
    assert [path for _, path, _ in seen[1:]] == ['/api/v1/executions/ex-1'] * 2

async def test_run_workflow_error_status_raises():
    def handler(request):
        if request.url.path.endswith('/execute'):
            return httpx.Response(200, json={'id': 'ex-2'})
        return httpx.Response(200, json={'id': 'ex-2', 'status': 'error'})

    async with automation_http(handler) as http:
        client = AutomationClient(http, base_url='https://n8n.test', poll_interval=0.001)
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.run_workflow('wf-9')

    assert exc_info.value.details['execution']['status'] == 'error'

async def test_run_workflow_times_out():
    def handler(request):
        if request.url.path.endswith('/execute'):
            return httpx.Response(200, json={'id': 'ex-3'})
        return httpx.Response(200, json={'id': 'ex-3', 'status': 'running'})

    async with automation_http(handler) as http:
        client = AutomationClient(http, base_url='https://n8n.test', poll_interval=0.01)
        with pytest.raises(WaitTimeoutError):
            await client.run_workflow('wf-9', timeout=0.05)
