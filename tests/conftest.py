import json
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy.pool import StaticPool

from omnicrm.config import Settings
from omnicrm.database import build_engine, build_sessionmaker
from omnicrm.models import Base
from omnicrm.services import ClientPool, create_service_registry

ERP_URL = "https://erp.test/connector.php"

class FakeRemote:
    """
    MockTransport handler standing in for every remote API.

    ERP calls are answered from `erp_responses` (method -> dict, callable or
    httpx.Response); any other host is routed to `hosts[host]`.
    """

    def __init__(self):
        self.erp_responses = {}
        self.hosts = {}
        self.calls = []
        self.requests = []

    def on(self, method, response):
        self.erp_responses[method] = response

    def methods(self):
        return [method for method, _, _ in self.calls]

    def calls_to(self, method):
        return [params for name, params, _ in self.calls if name == method]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.hosts:
            return self.hosts[host](request)

        form = parse_qs(request.content.decode())
        method = form['method'][0]
        params = json.loads(form['parameters'][0])
        self.calls.append((method, params, request.headers.get('X-BLToken')))

        response = self.erp_responses.get(method)
        if response is None:
            return httpx.Response(200, json={
                'status': 'ERROR', 'error_code': 'ERROR_UNKNOWN_METHOD',
                'error_message': f"Unknown method {method}",
            })
        if callable(response):
            response = response(params)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json={'status': 'SUCCESS', **response})

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        ERP_API_URL=ERP_URL,
        ERP_MIN_REQUEST_INTERVAL=0,
        ERP_CACHE_TTL=60,
        ORDERS_PAGE_SIZE=100,
        TRACKING_REQUEST_DELAY=0,
        CORREIOS_API_URL="https://correios.test/track",
        CORREIOS_API_KEY="correios-key",
        JADLOG_API_URL="https://jadlog.test/consultar",
        JADLOG_TOKEN="jadlog-token",
    )

@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
async def session(engine):
    async with build_sessionmaker(engine)() as session:
        yield session

@pytest.fixture
def remote():
    return FakeRemote()

@pytest.fixture
async def client_pool(settings, remote):
    pool = ClientPool(settings, transport=httpx.MockTransport(remote.handle))
    yield pool
    await pool.aclose()

@pytest.fixture
def services(session, client_pool, settings):
    return create_service_registry(session, client_pool, settings, current_user='tester')

@pytest.fixture
async def workspace_id(services):
    workspace = await services.credential_service.create_workspace("Acme")
    await services.credential_service.set_credential(
        workspace.id, 'erp', 'erp-token-123', scope={'inventory_id': '307'}
    )
    return workspace.id
