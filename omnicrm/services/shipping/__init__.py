"""
Shipping Domain Services
========================

Services untuk carrier tracking
"""

from .carriers import CorreiosAdapter, JadlogAdapter, tracking_url, parse_carrier_datetime
from .tracking_service import TrackingService

__all__ = ['CorreiosAdapter', 'JadlogAdapter', 'tracking_url', 'parse_carrier_datetime', 'TrackingService']
