"""
Response and request schemas for the sync core resources.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Any, Dict, List, Literal

from .base import BaseSchema

class SyncStatusSchema(BaseSchema):
    workspace_id: int
    status: str
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    kind_states: Optional[Dict[str, str]] = None
    updated_count: int = 0
    failed_count: int = 0
    last_run_at: Optional[datetime] = None

class SyncCheckpointSchema(BaseSchema):
    workspace_id: int
    kind: str
    last_synced_at: Optional[datetime] = None
    cursor: int = 0
    is_syncing: bool = False

class QueueEventSchema(BaseSchema):
    workspace_id: int
    external_log_id: str
    event_type: int
    event_name: str
    order_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    status: str
    retry_count: int
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    available_at: Optional[datetime] = None

class StockChangeEntrySchema(BaseSchema):
    workspace_id: int
    sku: str
    warehouse_id: str
    action_type: str
    source: str
    previous_quantity: int
    new_quantity: int
    quantity_change: int
    reason: Optional[str] = None
    actor: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

class StockAdjustmentSchema(BaseModel):
    """Request to change warehouse stock by a relative delta or to an absolute value."""
    sku: str = Field(min_length=1)
    warehouse_id: str = Field(min_length=1)
    product_id: Optional[str] = None
    quantity_change: Optional[int] = None
    new_quantity: Optional[int] = Field(None, ge=0)
    action_type: str = 'adjust'
    reason: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

    @field_validator('quantity_change')
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError('quantity_change must not be zero')
        return v

class WarehouseBindingSchema(BaseSchema):
    workspace_id: int
    warehouse_id: str
    name: Optional[str] = None
    code: Optional[str] = None
    is_active: bool
    allow_stock_updates: bool
    sync_direction: str

class WarehouseBindingUpdateSchema(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    is_active: Optional[bool] = None
    allow_stock_updates: Optional[bool] = None
    sync_direction: Optional[Literal['read_only', 'write_only', 'bidirectional']] = None

class TrackedShipmentSchema(BaseSchema):
    workspace_id: int
    kind: str
    reference: Optional[str] = None
    carrier: Optional[str] = None
    tracking_code: Optional[str] = None
    status: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    posting_date: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    tracked_at: Optional[datetime] = None
    is_archived: bool = False
