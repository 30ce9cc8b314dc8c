from .sync_routes import sync_router
from .event_routes import event_router
from .stock_routes import stock_router
from .warehouse_routes import warehouse_router
from .tracking_routes import tracking_router
from .webhook_routes import webhook_router

__all__ = [
    'sync_router', 'event_router', 'stock_router', 'warehouse_router', 'tracking_router', 'webhook_router',
]
