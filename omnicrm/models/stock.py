"""
Stock Ledger Model
==================

Append-only record of every stock mutation. Rows are never updated or deleted.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, JSON, Text, event

from .base import BaseModel

class StockChangeEntry(BaseModel):
    __tablename__ = 'stock_change_entries'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    sku = Column(String(100), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False, index=True)
    action_type = Column(String(30), nullable=False)  # add | remove | adjust | transfer_in | transfer_out | sync
    source = Column(String(30), nullable=False, index=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    quantity_change = Column(Integer, nullable=False)
    reason = Column(Text)
    actor = Column(String(100))
    reference_id = Column(String(64))
    reference_type = Column(String(50))
    extra = Column(JSON)

    def __repr__(self):
        return f'<StockChangeEntry {self.sku}@{self.warehouse_id} {self.previous_quantity}->{self.new_quantity}>'

class LedgerImmutableError(Exception):
    pass

@event.listens_for(StockChangeEntry, 'before_update')
def _reject_update(mapper, connection, target):
    raise LedgerImmutableError(f"StockChangeEntry {target.id} is append-only and cannot be updated")

@event.listens_for(StockChangeEntry, 'before_delete')
def _reject_delete(mapper, connection, target):
    raise LedgerImmutableError(f"StockChangeEntry {target.id} is append-only and cannot be deleted")
