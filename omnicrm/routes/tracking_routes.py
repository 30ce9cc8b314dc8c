from fastapi import APIRouter, Depends, Query, Body, status
from typing import Optional

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry
from ..services import ServiceRegistry
from ..services.shipping import tracking_url
from ..schemas import TrackedShipmentSchema

tracking_router = APIRouter()

@tracking_router.get(
    "/lookup",
    response_model=ResponseEnvelope,
    summary="Track a code with a carrier"
)
async def track_code(
    workspace_id: int,
    carrier: str = Query(...),
    code: str = Query(...),
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.tracking_service.track(carrier, code)
    if result is None:
        return APIResponse.success(data=None, message="No tracking information yet")
    data = result.model_dump(mode='json')
    data['tracking_url'] = tracking_url(carrier, code)
    return APIResponse.success(data=data)

@tracking_router.get(
    "/shipments",
    response_model=ResponseEnvelope,
    summary="List tracked shipments"
)
async def list_shipments(
    workspace_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    kind: Optional[str] = Query(None),
    include_archived: bool = Query(False),
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.tracking_service.list_shipments(
        workspace_id, kind=kind, include_archived=include_archived, page=page, per_page=per_page
    )
    return APIResponse.paginated(data=result['items'], pagination=result['pagination'])

@tracking_router.post(
    "/shipments",
    response_model=ResponseEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Register a purchase, return or transfer for tracking"
)
async def create_shipment(
    workspace_id: int,
    kind: str = Body(..., embed=True),
    carrier: Optional[str] = Body(None, embed=True),
    tracking_code: Optional[str] = Body(None, embed=True),
    reference: Optional[str] = Body(None, embed=True),
    services: ServiceRegistry = Depends(get_service_registry)
):
    shipment = await services.tracking_service.create_shipment(
        workspace_id, kind, carrier=carrier, tracking_code=tracking_code, reference=reference
    )
    return APIResponse.success(data=TrackedShipmentSchema.model_validate(shipment).model_dump(mode='json'),
                               message="Shipment registered")

@tracking_router.post(
    "/shipments/{shipment_id}/refresh",
    response_model=ResponseEnvelope,
    summary="Refresh one shipment now"
)
async def refresh_shipment(
    workspace_id: int,
    shipment_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.tracking_service.refresh_shipment(workspace_id, shipment_id)
    return APIResponse.success(data=result)

@tracking_router.post(
    "/shipments/{shipment_id}/archive",
    response_model=ResponseEnvelope,
    summary="Stop tracking a shipment"
)
async def archive_shipment(
    workspace_id: int,
    shipment_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    shipment = await services.tracking_service.archive_shipment(workspace_id, shipment_id)
    return APIResponse.success(data=TrackedShipmentSchema.model_validate(shipment).model_dump(mode='json'),
                               message="Shipment archived")

@tracking_router.post(
    "/run",
    response_model=ResponseEnvelope,
    summary="Refresh every stale shipment of the workspace"
)
async def run_tracking_batch(
    workspace_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    summary = await services.tracking_service.run_batch(workspace_id)
    return APIResponse.success(data=summary, message="Tracking batch finished")
