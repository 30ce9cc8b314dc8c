from fastapi import APIRouter, Depends

from ..responses import APIResponse, ResponseEnvelope
from ..dependencies import get_service_registry, get_webhook_workspace
from ..services import ServiceRegistry
from ..schemas import GatewayWebhookSchema, ErpWebhookSchema

webhook_router = APIRouter()

@webhook_router.post(
    "/gateway",
    response_model=ResponseEnvelope,
    summary="Messaging gateway webhook"
)
async def gateway_webhook(
    payload: GatewayWebhookSchema,
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.webhook_service.handle_gateway_webhook(payload)
    return APIResponse.success(data=result, message="Webhook processed")

@webhook_router.post(
    "/erp",
    response_model=ResponseEnvelope,
    summary="ERP order webhook"
)
async def erp_webhook(
    payload: ErpWebhookSchema,
    workspace_id: int = Depends(get_webhook_workspace),
    services: ServiceRegistry = Depends(get_service_registry)
):
    result = await services.webhook_service.handle_erp_webhook(workspace_id, payload)
    return APIResponse.success(data=result, message="Webhook received")
