from fastapi import APIRouter, Depends, Query
from typing import Optional

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry
from ..services import ServiceRegistry
from ..schemas import QueueEventSchema

event_router = APIRouter()

@event_router.get(
    "",
    response_model=ResponseEnvelope,
    summary="List queued events"
)
async def list_events(
    workspace_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    event_name: Optional[str] = Query(None),
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.event_queue_service.list_events(
        workspace_id, status=status, event_name=event_name, page=page, per_page=per_page
    )
    return APIResponse.paginated(data=result['items'], pagination=result['pagination'])

@event_router.post(
    "/process",
    response_model=ResponseEnvelope,
    summary="Process due pending events"
)
async def process_events(
    workspace_id: int,
    limit: int = Query(50, ge=1, le=500),
    services: ServiceRegistry = Depends(get_service_registry)
):
    summary = await services.event_queue_service.process_pending(workspace_id, limit=limit)
    return APIResponse.success(data=summary, message="Events processed")

@event_router.get(
    "/{event_id}",
    response_model=ResponseEnvelope,
    summary="Get a single event"
)
async def get_event(
    workspace_id: int,
    event_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    event = await services.event_queue_service.get_event(workspace_id, event_id)
    return APIResponse.success(data=QueueEventSchema.model_validate(event).model_dump(mode='json'))

@event_router.post(
    "/{event_id}/retry",
    response_model=ResponseEnvelope,
    summary="Move a failed event back to pending"
)
async def retry_event(
    workspace_id: int,
    event_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    event = await services.event_queue_service.retry(workspace_id, event_id)
    return APIResponse.success(data=QueueEventSchema.model_validate(event).model_dump(mode='json'),
                               message="Event queued for retry")
