"""
Credential Service
==================

Read access to per-tenant provider credentials, plus the admin writes used by the CLI.
"""

from typing import Dict, Any, Optional
from sqlalchemy import select

from ..base import BaseService, transactional
from ..exceptions import NotFoundError, ValidationError
from ...models import Workspace, Credential

PROVIDERS = ('erp', 'automation', 'evolution')

class CredentialService(BaseService):

    async def get_credential(self, workspace_id: int, provider: str) -> Credential:
        """Enabled credential for (workspace, provider), or NotFoundError."""
        credential = await self._first(select(Credential).filter(
            Credential.workspace_id == workspace_id,
            Credential.provider == provider
        ))
        if credential is None or not credential.enabled:
            raise NotFoundError('Credential', f"{workspace_id}:{provider}")
        return credential

    async def find_credential(self, workspace_id: int, provider: str) -> Optional[Credential]:
        try:
            return await self.get_credential(workspace_id, provider)
        except NotFoundError:
            return None

    async def get_erp_client(self, workspace_id: int, client_pool):
        """ERP client for the tenant, from the pool that owns its HTTP resources."""
        credential = await self.get_credential(workspace_id, 'erp')
        scope = credential.scope or {}
        return client_pool.erp_client(credential.secret, inventory_id=scope.get('inventory_id'))

    @transactional
    async def create_workspace(self, name: str) -> Workspace:
        if not name or not name.strip():
            raise ValidationError("Workspace name is required", field='name')
        workspace = Workspace(name=name.strip())
        self.db_session.add(workspace)
        await self.db_session.flush()
        self.logger.info(f"Workspace {workspace.id} created")
        return workspace

    @transactional
    async def set_credential(self, workspace_id: int, provider: str, secret: str,
                             scope: Dict[str, Any] = None, enabled: bool = True) -> Credential:
        if provider not in PROVIDERS:
            raise ValidationError(f"Unknown provider '{provider}'", field='provider')
        await self._get_or_404(Workspace, workspace_id)
        credential = await self._first(select(Credential).filter(
            Credential.workspace_id == workspace_id,
            Credential.provider == provider
        ))
        if credential is None:
            credential = Credential(workspace_id=workspace_id, provider=provider)
            self.db_session.add(credential)
        credential.secret = secret
        credential.enabled = enabled
        credential.scope = dict(scope or {})
        await self.db_session.flush()
        self.logger.info(f"Credential {provider} stored for workspace {workspace_id} ({credential.secret_prefix})")
        return credential
