from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, UniqueConstraint

from .base import BaseModel

SYNC_DIRECTIONS = ('read_only', 'write_only', 'bidirectional')

class WarehouseBinding(BaseModel):
    """Sync policy for one external warehouse of a tenant."""
    __tablename__ = 'warehouse_bindings'
    __table_args__ = (UniqueConstraint('workspace_id', 'warehouse_id', name='uq_binding_warehouse'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False)
    name = Column(String(120))
    code = Column(String(50))
    is_active = Column(Boolean, default=True, nullable=False)
    allow_stock_updates = Column(Boolean, default=False, nullable=False)
    sync_direction = Column(String(20), default='bidirectional', nullable=False)

    def __repr__(self):
        return f'<WarehouseBinding {self.warehouse_id} {self.sync_direction}>'
