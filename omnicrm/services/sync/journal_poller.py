"""
Journal Poller
==============

Pulls the ERP event journal since the stored cursor and feeds each entry
into the event queue.
"""

from typing import Dict, Any

from ..base import BaseService
from ..exceptions import CRMException, RateLimitedError
from ...models import utcnow

JOURNAL_KIND = 'journal'

JOURNAL_EVENT_NAMES = {
    1: 'order_created',
    3: 'payment_received',
    4: 'order_removed',
    5: 'order_merged',
    6: 'order_split',
    7: 'invoice_created',
    8: 'receipt_created',
    9: 'package_created',
    10: 'package_deleted',
    11: 'delivery_updated',
    12: 'product_added',
    13: 'product_edited',
    14: 'product_removed',
    15: 'buyer_blacklisted',
    17: 'order_copied',
    18: 'status_changed',
    19: 'invoice_corrected',
    20: 'receipt_printed',
    21: 'invoice_cancelled',
}

# journal types worth reacting to
RELEVANT_LOG_TYPES = [1, 3, 7, 8, 9, 12, 13, 14, 18]

def journal_event_name(log_type) -> str:
    try:
        log_type = int(log_type)
    except (TypeError, ValueError):
        return f"unknown_event_{log_type}"
    return JOURNAL_EVENT_NAMES.get(log_type, f"unknown_event_{log_type}")

class JournalPoller(BaseService):

    def __init__(self, db_session, client_pool, credential_service, checkpoint_service,
                 status_service, event_queue_service, current_user: str = None):
        super().__init__(db_session, current_user)
        self.client_pool = client_pool
        self.credentials = credential_service
        self.checkpoints = checkpoint_service
        self.status = status_service
        self.event_queue = event_queue_service

    async def poll(self, workspace_id: int) -> Dict[str, Any]:
        started_at = utcnow()
        if not await self.checkpoints.acquire(workspace_id, JOURNAL_KIND, started_at):
            return {'success': False, 'status': 'skipped', 'reason': 'already_syncing'}

        enqueued = duplicates = 0
        try:
            client = await self.credentials.get_erp_client(workspace_id, self.client_pool)
            _, cursor = await self.checkpoints.get_position(workspace_id, JOURNAL_KIND)
            logs = await client.get_journal_list(last_log_id=cursor or 0, logs_types=RELEVANT_LOG_TYPES)

            max_log_id = cursor or 0
            for log in logs:
                log_id = int(log['log_id'])
                _, created = await self.event_queue.enqueue(
                    workspace_id,
                    external_log_id=log_id,
                    event_name=journal_event_name(log.get('log_type')),
                    event_type=log.get('log_type') or 0,
                    order_id=log.get('order_id'),
                    payload=log,
                    commit=False,
                )
                if created:
                    enqueued += 1
                else:
                    duplicates += 1
                max_log_id = max(max_log_id, log_id)
            await self.db_session.commit()
        except (CRMException, KeyError, ValueError, TypeError) as e:
            await self.db_session.rollback()
            await self.checkpoints.release(workspace_id, JOURNAL_KIND)
            state = 'idle' if isinstance(e, RateLimitedError) else 'error'
            message = getattr(e, 'message', None) or f"Malformed journal entry: {e!r}"
            await self.status.finish(workspace_id, JOURNAL_KIND, state, [{
                'kind': JOURNAL_KIND,
                'error_code': getattr(e, 'error_code', None) or e.__class__.__name__,
                'message': message,
                'timestamp': utcnow().isoformat(),
            }])
            self.logger.error(f"Journal poll for workspace {workspace_id} failed: {message}")
            return {'success': False, 'status': 'error', 'error': message}
        except Exception:
            await self.db_session.rollback()
            await self.checkpoints.release(workspace_id, JOURNAL_KIND)
            raise

        await self.checkpoints.release(workspace_id, JOURNAL_KIND, advance_to=started_at, cursor=max_log_id)
        await self.status.finish(workspace_id, JOURNAL_KIND, 'idle', [], updated_count=enqueued)
        self.logger.info(
            f"Journal poll for workspace {workspace_id}: {enqueued} new, {duplicates} duplicate, "
            f"cursor {max_log_id}"
        )
        return {'success': True, 'status': 'completed', 'enqueued': enqueued,
                'duplicates': duplicates, 'last_log_id': max_log_id}
