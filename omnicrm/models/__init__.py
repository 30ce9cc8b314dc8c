from .base import Base, BaseModel, utcnow
from .tenant import Workspace, Credential
from .sync import SyncCheckpoint, SyncStatus, SyncLog, SYNC_KINDS
from .crm import Client, Order, OrderItem, Product, ProductStock
from .warehouse import WarehouseBinding, SYNC_DIRECTIONS
from .queue import QueueEvent, EVENT_STATUSES, TERMINAL_STATUSES
from .stock import StockChangeEntry, LedgerImmutableError
from .tracking import TrackedShipment, SHIPMENT_KINDS
from .messaging import WhatsAppInstance, Conversation, Message

__all__ = [
    'Base', 'BaseModel', 'utcnow',
    'Workspace', 'Credential',
    'SyncCheckpoint', 'SyncStatus', 'SyncLog', 'SYNC_KINDS',
    'Client', 'Order', 'OrderItem', 'Product', 'ProductStock',
    'WarehouseBinding', 'SYNC_DIRECTIONS',
    'QueueEvent', 'EVENT_STATUSES', 'TERMINAL_STATUSES',
    'StockChangeEntry', 'LedgerImmutableError',
    'TrackedShipment', 'SHIPMENT_KINDS',
    'WhatsAppInstance', 'Conversation', 'Message',
]
