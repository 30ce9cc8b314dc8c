from .base import BaseSchema
from .remote import RemoteOrder, RemoteCustomer, RemoteProduct, normalize_phone, normalize_email
from .domain import (
    SyncStatusSchema, SyncCheckpointSchema, QueueEventSchema,
    StockChangeEntrySchema, StockAdjustmentSchema, WarehouseBindingSchema,
    WarehouseBindingUpdateSchema, TrackedShipmentSchema
)
from .tracking import TrackingEvent, TrackingResult
from .webhook import GatewayWebhookSchema, ErpWebhookSchema
