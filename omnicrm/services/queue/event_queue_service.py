"""
Event Queue Service
===================

Durable queue of inbound platform events.

Lifecycle: pending -> processing -> completed | failed, and failed -> pending
through an operator retry. `processed_at` is stamped once, on entering a
terminal state.
"""

from datetime import timedelta
from typing import Dict, Any, Optional, Tuple

from sqlalchemy import select, update

from ..base import BaseService, serialize_items
from ..exceptions import BusinessRuleError, NotFoundError, ValidationError
from ...models import QueueEvent, EVENT_STATUSES, utcnow
from ...schemas import QueueEventSchema

ORDER_EVENTS = {
    'order_created', 'payment_received', 'status_changed', 'invoice_created', 'receipt_created',
    'package_created', 'product_added', 'product_edited', 'product_removed',
    'new_order', 'order_updated', 'order_status_changed',
}
PRODUCT_EVENTS = {'inventory_product_changed', 'product_stock_changed'}
MESSAGE_EVENTS = {'message_received'}

class EventQueueService(BaseService):

    def __init__(self, db_session, reconciliation_service, credential_service, client_pool,
                 max_auto_retries: int = 0, retry_base_seconds: float = 30.0, current_user: str = None):
        super().__init__(db_session, current_user)
        self.reconciliation = reconciliation_service
        self.credentials = credential_service
        self.client_pool = client_pool
        self.max_auto_retries = max_auto_retries
        self.retry_base_seconds = retry_base_seconds

    async def enqueue(self, workspace_id: int, external_log_id, event_name: str, event_type: int = 0,
                      order_id=None, payload: Dict[str, Any] = None,
                      commit: bool = True) -> Tuple[QueueEvent, bool]:
        """Insert an event unless (workspace, external_log_id) is already queued. Returns (event, created)."""
        if not event_name:
            raise ValidationError("event_name is required", field='event_name')
        external_log_id = str(external_log_id)
        existing = await self._first(select(QueueEvent).filter(
            QueueEvent.workspace_id == workspace_id,
            QueueEvent.external_log_id == external_log_id
        ))
        if existing is not None:
            self.logger.debug(f"Event {external_log_id} already queued as {existing.id}")
            return existing, False

        now = utcnow()
        event = QueueEvent(
            workspace_id=workspace_id,
            external_log_id=external_log_id,
            event_type=int(event_type or 0),
            event_name=event_name,
            order_id=str(order_id) if order_id not in (None, '') else None,
            payload=payload or {},
            status='pending',
            retry_count=0,
            available_at=now,
        )
        self.db_session.add(event)
        await self.db_session.flush()
        if commit:
            await self.db_session.commit()
        self.logger.info(f"Queued event {event.id} {event_name} (log {external_log_id})")
        return event, True

    async def claim(self, event_id: int) -> Optional[QueueEvent]:
        """Atomically move a due pending event to processing. None if someone else has it."""
        result = await self.db_session.execute(
            update(QueueEvent)
            .where(QueueEvent.id == event_id,
                   QueueEvent.status == 'pending',
                   QueueEvent.available_at <= utcnow())
            .values(status='processing')
            .execution_options(synchronize_session=False)
        )
        await self.db_session.commit()
        if result.rowcount != 1:
            return None
        return await self._load(event_id)

    async def _load(self, event_id: int) -> QueueEvent:
        event = await self._first(
            select(QueueEvent).filter(QueueEvent.id == event_id).execution_options(populate_existing=True)
        )
        if event is None:
            raise NotFoundError('QueueEvent', event_id)
        return event

    async def process_event(self, event_id: int) -> Dict[str, Any]:
        event = await self.claim(event_id)
        if event is None:
            current = await self._load(event_id)
            return {'event_id': event_id, 'status': current.status, 'skipped': True}

        event_name = event.event_name
        try:
            outcome = await self._dispatch(event)
        except NotFoundError as e:
            # missing config or remote entity: nothing to do for this event
            await self.db_session.rollback()
            self.logger.warning(f"Event {event_id} skipped: {e.message}")
            outcome = {'skipped': True, 'reason': e.message}
        except Exception as e:
            await self.db_session.rollback()
            self.logger.exception(f"Event {event_id} ({event_name}) failed")
            return await self._mark_failed(event_id, e)

        event = await self._load(event_id)
        event.status = 'completed'
        event.error_message = None
        event.processed_at = utcnow()
        await self.db_session.commit()
        return {'event_id': event_id, 'status': 'completed', 'result': outcome}

    async def _mark_failed(self, event_id: int, exc: Exception) -> Dict[str, Any]:
        event = await self._load(event_id)
        event.retry_count += 1
        event.error_message = getattr(exc, 'message', None) or str(exc)
        if event.retry_count <= self.max_auto_retries:
            delay = self.retry_base_seconds * (2 ** (event.retry_count - 1))
            event.status = 'pending'
            event.available_at = utcnow() + timedelta(seconds=delay)
        else:
            event.status = 'failed'
            event.processed_at = utcnow()
        await self.db_session.commit()
        return {'event_id': event_id, 'status': event.status, 'error': event.error_message,
                'retry_count': event.retry_count}

    async def _dispatch(self, event: QueueEvent) -> Dict[str, Any]:
        name = event.event_name
        payload = event.payload or {}
        if name in ORDER_EVENTS:
            if not event.order_id:
                raise ValidationError(f"Event {event.id} ({name}) has no order_id", field='order_id')
            return await self.reconciliation.reconcile_order(event.workspace_id, event.order_id)
        if name in PRODUCT_EVENTS:
            product_id = payload.get('product_id') or payload.get('object_id')
            if not product_id:
                raise ValidationError(f"Event {event.id} ({name}) has no product_id", field='product_id')
            return await self.reconciliation.reconcile_product(event.workspace_id, product_id)
        if name in MESSAGE_EVENTS:
            return await self._notify_automation(event)
        self.logger.info(f"No processor for event type: {name}")
        return {'skipped': True, 'reason': 'no_processor'}

    async def _notify_automation(self, event: QueueEvent) -> Dict[str, Any]:
        credential = await self.credentials.find_credential(event.workspace_id, 'automation')
        scope = (credential.scope or {}) if credential else {}
        if not scope.get('webhook_url'):
            self.logger.info(f"Automation not configured for workspace {event.workspace_id}")
            return {'skipped': True, 'reason': 'automation_not_configured'}
        client = self.client_pool.automation_client(base_url=scope.get('base_url'), api_key=credential.secret)
        return await client.trigger_webhook(scope['webhook_url'], {
            'event': event.event_name,
            'workspace_id': event.workspace_id,
            'event_id': event.id,
            'payload': event.payload,
        })

    async def process_pending(self, workspace_id: int = None, limit: int = 50) -> Dict[str, Any]:
        query = (select(QueueEvent.id)
                 .filter(QueueEvent.status == 'pending', QueueEvent.available_at <= utcnow())
                 .order_by(QueueEvent.id)
                 .limit(limit))
        if workspace_id is not None:
            query = query.filter(QueueEvent.workspace_id == workspace_id)
        event_ids = list((await self.db_session.execute(query)).scalars().all())

        summary = {'processed': 0, 'completed': 0, 'failed': 0, 'pending': 0, 'skipped': 0}
        for event_id in event_ids:
            result = await self.process_event(event_id)
            if result.get('skipped') and 'result' not in result:
                summary['skipped'] += 1
                continue
            summary['processed'] += 1
            summary[result['status']] = summary.get(result['status'], 0) + 1
        return summary

    async def retry(self, workspace_id: int, event_id: int) -> QueueEvent:
        """Operator retry: failed -> pending with a clean slate."""
        event = await self._get_or_404(QueueEvent, event_id, workspace_id=workspace_id)
        if event.status != 'failed':
            raise BusinessRuleError(f"Only failed events can be retried (event {event_id} is {event.status})",
                                    rule_code='EVENT_NOT_FAILED')
        event.status = 'pending'
        event.retry_count = 0
        event.error_message = None
        event.processed_at = None
        event.available_at = utcnow()
        await self.db_session.commit()
        self.logger.info(f"Event {event_id} reset to pending")
        return event

    async def get_event(self, workspace_id: int, event_id: int) -> QueueEvent:
        return await self._get_or_404(QueueEvent, event_id, workspace_id=workspace_id)

    async def list_events(self, workspace_id: int, status: str = None, event_name: str = None,
                          page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        if status is not None and status not in EVENT_STATUSES:
            raise ValidationError(f"Invalid status '{status}'", field='status')
        query = select(QueueEvent).filter(QueueEvent.workspace_id == workspace_id)
        query = self._apply_filters(query, QueueEvent, {'status': status, 'event_name': event_name})
        query = self._apply_sorting(query, QueueEvent, 'id', 'desc')
        result = await self._paginate_query(query, page, per_page)
        return {
            'items': serialize_items(QueueEventSchema, result['items']),
            'pagination': result['pagination']
        }
