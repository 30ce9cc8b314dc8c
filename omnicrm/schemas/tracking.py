from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

class TrackingEvent(BaseModel):
    date: Optional[datetime] = None
    description: str = ''
    detail: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    carrier_code: Optional[str] = None

class TrackingResult(BaseModel):
    """Carrier-independent tracking shape. `events` is ordered newest first."""
    code: str
    carrier: str
    estimated_delivery: Optional[datetime] = None
    posting_date: Optional[datetime] = None
    current_status: Optional[str] = None
    events: List[TrackingEvent] = Field(default_factory=list)

    @property
    def last_event_at(self) -> Optional[datetime]:
        return self.events[0].date if self.events else None
