from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry
from ..services import ServiceRegistry
from ..schemas import StockAdjustmentSchema

stock_router = APIRouter()

@stock_router.post(
    "/adjustments",
    response_model=ResponseEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Adjust warehouse stock"
)
async def adjust_stock(
    workspace_id: int,
    adjustment: StockAdjustmentSchema,
    services: ServiceRegistry = Depends(get_service_registry)
):
    """
    Relative (`quantity_change`) or absolute (`new_quantity`) change. The
    warehouse policy is checked first; a denied change is reported, not applied.
    """
    result = await services.stock_service.adjust_stock(
        workspace_id, **adjustment.model_dump(exclude_none=True)
    )
    message = "Stock adjusted" if result.get('applied') else "Stock change not applied"
    return APIResponse.success(data=result, message=message)

@stock_router.get(
    "/ledger",
    response_model=ResponseEnvelope,
    summary="Stock change history"
)
async def list_ledger_entries(
    workspace_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    sku: Optional[str] = Query(None),
    warehouse_id: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    action_type: Optional[str] = Query(None),
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.ledger_service.list_entries(
        workspace_id, sku=sku, warehouse_id=warehouse_id, source=source,
        action_type=action_type, page=page, per_page=per_page
    )
    return APIResponse.paginated(data=result['items'], pagination=result['pagination'])
