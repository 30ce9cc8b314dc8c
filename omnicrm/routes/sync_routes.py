from fastapi import APIRouter, Depends, status

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry
from ..services import ServiceRegistry
from ..schemas import SyncStatusSchema, SyncCheckpointSchema
from ..services.base import serialize_items

sync_router = APIRouter()

@sync_router.post(
    "",
    response_model=ResponseEnvelope,
    summary="Run every sync kind for a workspace"
)
async def run_full_sync(
    workspace_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    results = await services.reconciliation_service.sync_all(workspace_id)
    return APIResponse.success(data=results, message="Sync finished")

@sync_router.get(
    "/status",
    response_model=ResponseEnvelope,
    summary="Current sync status and checkpoints"
)
async def get_sync_status(
    workspace_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    sync_status = await services.sync_status_service.get_status(workspace_id)
    checkpoints = await services.checkpoint_service.list_checkpoints(workspace_id)
    return APIResponse.success(data={
        'status': SyncStatusSchema.model_validate(sync_status).model_dump(mode='json') if sync_status else None,
        'checkpoints': serialize_items(SyncCheckpointSchema, checkpoints),
    })

@sync_router.post(
    "/journal",
    response_model=ResponseEnvelope,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Pull the ERP journal into the event queue"
)
async def poll_journal(
    workspace_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.journal_poller.poll(workspace_id)
    return APIResponse.success(data=result, message="Journal polled")

@sync_router.post(
    "/{kind}",
    response_model=ResponseEnvelope,
    summary="Run one sync kind (orders, customers, inventory)"
)
async def run_sync(
    workspace_id: int,
    kind: str,
    services: ServiceRegistry = Depends(get_service_registry)
):
    """
    Single-flight: a run already in progress for the same kind is reported as skipped.
    """
    result = await services.reconciliation_service.sync(workspace_id, kind)
    return APIResponse.success(data=result, message=f"Sync {kind} {result['status']}")
