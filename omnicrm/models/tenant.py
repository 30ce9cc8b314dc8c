"""
Tenant Models
=============

Workspace (tenant) and its per-provider credentials.
"""

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, JSON, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel

class Workspace(BaseModel):
    __tablename__ = 'workspaces'

    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    credentials = relationship('Credential', back_populates='workspace', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Workspace {self.id} {self.name}>'

class Credential(BaseModel):
    """Per-tenant secret for an external provider (erp, automation, evolution)."""
    __tablename__ = 'credentials'
    __table_args__ = (UniqueConstraint('workspace_id', 'provider', name='uq_credential_provider'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    provider = Column(String(30), nullable=False)
    secret = Column(Text, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    # capability flags and provider config (inventory_id, base_url, webhook_url ...)
    scope = Column(JSON, default=dict)

    workspace = relationship('Workspace', back_populates='credentials')

    @property
    def secret_prefix(self):
        return f"{(self.secret or '')[:5]}..."

    def __repr__(self):
        return f'<Credential {self.workspace_id}:{self.provider}>'
