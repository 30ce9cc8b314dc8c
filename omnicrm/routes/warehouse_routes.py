from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry
from ..services import ServiceRegistry
from ..services.base import serialize_items
from ..services.warehouse import READ, WRITE
from ..services.exceptions import ValidationError
from ..schemas import WarehouseBindingSchema, WarehouseBindingUpdateSchema

warehouse_router = APIRouter()

@warehouse_router.get(
    "",
    response_model=ResponseEnvelope,
    summary="List warehouse bindings"
)
async def list_bindings(
    workspace_id: int,
    services: ServiceRegistry = Depends(get_service_registry)
):
    bindings = await services.policy_service.list_bindings(workspace_id)
    return APIResponse.success(data=serialize_items(WarehouseBindingSchema, bindings))

@warehouse_router.put(
    "/{warehouse_id}",
    response_model=ResponseEnvelope,
    summary="Create or update a warehouse binding"
)
async def upsert_binding(
    workspace_id: int,
    warehouse_id: str,
    data: WarehouseBindingUpdateSchema,
    services: ServiceRegistry = Depends(get_service_registry)
):
    binding = await services.policy_service.upsert_binding(
        workspace_id, warehouse_id, data.model_dump(exclude_none=True)
    )
    return APIResponse.success(data=WarehouseBindingSchema.model_validate(binding).model_dump(mode='json'),
                               message="Warehouse binding saved")

@warehouse_router.get(
    "/{warehouse_id}/policy",
    response_model=ResponseEnvelope,
    summary="Evaluate the sync policy for a warehouse"
)
async def check_policy(
    workspace_id: int,
    warehouse_id: str,
    direction: str = Query(WRITE),
    stock_write: bool = Query(True),
    services: ServiceRegistry = Depends(get_service_registry)
):
    if direction not in (READ, WRITE):
        raise ValidationError(f"Invalid direction '{direction}'", field='direction')
    decision = await services.policy_service.check(workspace_id, warehouse_id, direction, stock_write)
    return APIResponse.success(data=asdict(decision))
