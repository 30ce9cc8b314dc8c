"""
Sync Models
===========

Checkpoints, per-tenant sync status and the sync run log.
"""

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, JSON, DateTime, UniqueConstraint

from .base import BaseModel

SYNC_KINDS = ('orders', 'customers', 'inventory')

class SyncCheckpoint(BaseModel):
    """Last successfully synchronized instant per (workspace, kind)."""
    __tablename__ = 'sync_checkpoints'
    __table_args__ = (UniqueConstraint('workspace_id', 'kind', name='uq_checkpoint_kind'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    last_synced_at = Column(DateTime)
    cursor = Column(Integer, default=0, nullable=False)
    is_syncing = Column(Boolean, default=False, nullable=False)
    sync_started_at = Column(DateTime)

    def __repr__(self):
        return f'<SyncCheckpoint {self.workspace_id}:{self.kind} {self.last_synced_at}>'

class SyncStatus(BaseModel):
    __tablename__ = 'sync_statuses'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, unique=True)
    status = Column(String(10), default='idle', nullable=False)  # idle | syncing | error
    errors = Column(JSON, default=list)
    # kind -> idle | error for the last finished run of that kind
    kind_states = Column(JSON, default=dict)
    updated_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    last_run_at = Column(DateTime)

class SyncLog(BaseModel):
    """One row per sync run."""
    __tablename__ = 'sync_logs'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    operation_type = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    details = Column(JSON)
    executed_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f'<SyncLog {self.operation_type} - {self.status}>'
