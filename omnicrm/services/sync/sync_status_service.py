"""
Per-tenant sync status record and sync run log.

Every kind (orders, customers, inventory, journal) reports into the same
record. A kind only replaces its own errors, and the tenant-wide state is
recomputed from all kinds: `syncing` while any lease is held, `error`
while any kind's last run failed, `idle` otherwise.
"""

from typing import Dict, Any, List, Optional

from sqlalchemy import select

from ..base import BaseService
from ...models import SyncStatus, SyncLog, SyncCheckpoint, utcnow

MAX_STORED_ERRORS = 100

class SyncStatusService(BaseService):

    async def get_status(self, workspace_id: int) -> Optional[SyncStatus]:
        return await self._first(
            select(SyncStatus)
            .filter(SyncStatus.workspace_id == workspace_id)
            .execution_options(populate_existing=True)
        )

    async def _get_or_create(self, workspace_id: int) -> SyncStatus:
        status = await self.get_status(workspace_id)
        if status is None:
            status = SyncStatus(workspace_id=workspace_id, status='idle', errors=[], kind_states={},
                                updated_count=0, failed_count=0)
            self.db_session.add(status)
        return status

    async def mark_syncing(self, workspace_id: int):
        status = await self._get_or_create(workspace_id)
        status.status = 'syncing'
        await self.db_session.commit()

    async def finish(self, workspace_id: int, kind: str, state: str, errors: List[Dict[str, Any]],
                     updated_count: int = 0, failed_count: int = 0):
        """Record the outcome of one kind's run; errors of other kinds are kept."""
        status = await self._get_or_create(workspace_id)
        kind_states = dict(status.kind_states or {})
        kind_states[kind] = state
        kept = [e for e in (status.errors or []) if e.get('kind') != kind]

        status.kind_states = kind_states
        status.errors = (kept + list(errors))[:MAX_STORED_ERRORS]
        status.updated_count = updated_count
        status.failed_count = failed_count
        status.last_run_at = utcnow()
        status.status = await self._overall_state(workspace_id, kind_states)
        await self.db_session.commit()

    async def _overall_state(self, workspace_id: int, kind_states: Dict[str, str]) -> str:
        running = await self.db_session.execute(
            select(SyncCheckpoint.id)
            .filter(SyncCheckpoint.workspace_id == workspace_id, SyncCheckpoint.is_syncing.is_(True))
            .limit(1)
        )
        if running.first() is not None:
            return 'syncing'
        return 'error' if 'error' in kind_states.values() else 'idle'

    async def log_operation(self, workspace_id: int, operation_type: str, status: str,
                            details: Dict[str, Any]):
        """Log sync operation"""
        self.db_session.add(SyncLog(
            workspace_id=workspace_id,
            operation_type=operation_type,
            status=status,
            details=details,
            executed_at=utcnow()
        ))
        await self.db_session.commit()
