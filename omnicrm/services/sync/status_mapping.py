"""
Order status mapping: ERP vocabulary -> local order status.
"""

from typing import Optional

ORDER_STATUSES = ('pending', 'processing', 'completed', 'cancelled')

# Anything not listed falls into DEFAULT_ORDER_STATUS.
ORDER_STATUS_MAP = {
    'paid': 'processing',
    'ready_for_shipping': 'processing',
    'shipped': 'completed',
    'delivered': 'completed',
    'cancelled': 'cancelled',
    'returned': 'cancelled',
}

DEFAULT_ORDER_STATUS = 'pending'

def normalize_status_key(raw: Optional[str]) -> str:
    """'Ready for shipping ' -> 'ready_for_shipping'"""
    return '_'.join(str(raw or '').strip().lower().replace('-', ' ').split())

def map_order_status(raw: Optional[str]) -> str:
    return ORDER_STATUS_MAP.get(normalize_status_key(raw), DEFAULT_ORDER_STATUS)
