"""
Checkpoint Service
==================

Sync checkpoints and the single-flight lease per (workspace, kind).
"""

from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError

from ..base import BaseService
from ...models import SyncCheckpoint

class CheckpointService(BaseService):

    def __init__(self, db_session, lease_seconds: int = 1800, current_user: str = None):
        super().__init__(db_session, current_user)
        self.lease_seconds = lease_seconds

    async def _ensure(self, workspace_id: int, kind: str):
        exists = await self.db_session.execute(
            select(SyncCheckpoint.id).filter(SyncCheckpoint.workspace_id == workspace_id,
                                             SyncCheckpoint.kind == kind)
        )
        if exists.scalar() is not None:
            return
        self.db_session.add(SyncCheckpoint(workspace_id=workspace_id, kind=kind, cursor=0, is_syncing=False))
        try:
            await self.db_session.commit()
        except IntegrityError:
            # created concurrently by another run
            await self.db_session.rollback()

    async def acquire(self, workspace_id: int, kind: str, now: datetime) -> bool:
        """Take the lease with one conditional UPDATE; False when another run holds it."""
        await self._ensure(workspace_id, kind)
        stale_before = now - timedelta(seconds=self.lease_seconds)
        result = await self.db_session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.workspace_id == workspace_id, SyncCheckpoint.kind == kind)
            .where(or_(
                SyncCheckpoint.is_syncing.is_(False),
                SyncCheckpoint.sync_started_at.is_(None),
                SyncCheckpoint.sync_started_at < stale_before,
            ))
            .values(is_syncing=True, sync_started_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db_session.commit()
        acquired = result.rowcount == 1
        if not acquired:
            self.logger.info(f"Sync {kind} already running for workspace {workspace_id}, skipping")
        return acquired

    async def release(self, workspace_id: int, kind: str, advance_to: Optional[datetime] = None,
                      cursor: Optional[int] = None):
        """Drop the lease; optionally advance the checkpoint (never backwards) and cursor."""
        values = {'is_syncing': False, 'sync_started_at': None}
        current_at, current_cursor = await self.get_position(workspace_id, kind)
        if advance_to is not None and (current_at is None or advance_to > current_at):
            values['last_synced_at'] = advance_to
        if cursor is not None and cursor > (current_cursor or 0):
            values['cursor'] = cursor
        await self.db_session.execute(
            update(SyncCheckpoint)
            .where(SyncCheckpoint.workspace_id == workspace_id, SyncCheckpoint.kind == kind)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db_session.commit()

    async def get_position(self, workspace_id: int, kind: str):
        result = await self.db_session.execute(
            select(SyncCheckpoint.last_synced_at, SyncCheckpoint.cursor)
            .filter(SyncCheckpoint.workspace_id == workspace_id, SyncCheckpoint.kind == kind)
        )
        row = result.first()
        return (row[0], row[1]) if row else (None, 0)

    async def list_checkpoints(self, workspace_id: int) -> List[SyncCheckpoint]:
        result = await self.db_session.execute(
            select(SyncCheckpoint)
            .filter(SyncCheckpoint.workspace_id == workspace_id)
            .order_by(SyncCheckpoint.kind)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
