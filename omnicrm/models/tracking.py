from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, DateTime, JSON

from .base import BaseModel

SHIPMENT_KINDS = ('purchase', 'return', 'transfer')

class TrackedShipment(BaseModel):
    """A purchase, return or transfer travelling with a carrier."""
    __tablename__ = 'tracked_shipments'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    reference = Column(String(64))
    carrier = Column(String(60))
    tracking_code = Column(String(64), index=True)
    status = Column(String(255))
    estimated_delivery = Column(DateTime)
    posting_date = Column(DateTime)
    last_event_at = Column(DateTime)
    tracked_at = Column(DateTime)
    last_events = Column(JSON)
    is_archived = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f'<TrackedShipment {self.kind} {self.carrier} {self.tracking_code}>'
