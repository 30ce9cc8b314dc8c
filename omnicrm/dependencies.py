"""
API Dependencies
================

FastAPI dependencies for the OmniCRM application.
"""

from fastapi import Depends, Header, Request

from .services import ServiceRegistry, ClientPool, create_service_registry
from .services.exceptions import ValidationError
from .database import get_db_session
from .config import settings

def get_client_pool(request: Request) -> ClientPool:
    """The pool built by the app factory."""
    return request.app.state.client_pool

# Dependency untuk get service registry
async def get_service_registry(
    request: Request,
    db_session = Depends(get_db_session),
    client_pool: ClientPool = Depends(get_client_pool)
) -> ServiceRegistry:
    """Get service registry untuk request ini"""
    return create_service_registry(
        db_session=db_session,
        client_pool=client_pool,
        settings=getattr(request.app.state, 'settings', settings),
    )

async def get_webhook_workspace(x_workspace_id: str = Header(None)) -> int:
    """Tenant of an ERP webhook, from the X-Workspace-Id header."""
    if not x_workspace_id or not x_workspace_id.isdigit():
        raise ValidationError("X-Workspace-Id header is required", field='X-Workspace-Id')
    return int(x_workspace_id)
