from sqlalchemy import Column, String, Integer, ForeignKey, JSON, DateTime, Text, UniqueConstraint

from .base import BaseModel, utcnow

EVENT_STATUSES = ('pending', 'processing', 'completed', 'failed')
TERMINAL_STATUSES = ('completed', 'failed')

class QueueEvent(BaseModel):
    """Inbound platform event waiting to be processed."""
    __tablename__ = 'queue_events'
    __table_args__ = (UniqueConstraint('workspace_id', 'external_log_id', name='uq_event_log_id'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    external_log_id = Column(String(64), nullable=False)
    event_type = Column(Integer, default=0, nullable=False)
    event_name = Column(String(60), nullable=False, index=True)
    order_id = Column(String(64))
    payload = Column(JSON)
    status = Column(String(20), default='pending', nullable=False, index=True)
    retry_count = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)
    processed_at = Column(DateTime)
    available_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f'<QueueEvent {self.id} {self.event_name} {self.status}>'
