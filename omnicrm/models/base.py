from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

# Create a declarative base which all models will inherit from
Base = declarative_base()

def utcnow() -> datetime:
    """Naive UTC now. All stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

# Common columns for every table; abstract, never created as a table itself.
class BaseModel(Base):
    __abstract__ = True
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
