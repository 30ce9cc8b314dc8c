"""
Tracking Service
================

Service untuk carrier tracking: single lookups and the periodic batch that
refreshes every stale purchase, return and transfer.
"""

import asyncio
from datetime import timedelta
from typing import Dict, Any, Optional, List

from sqlalchemy import select, or_

from ..base import BaseService, transactional, serialize_items
from ..exceptions import CRMException, ValidationError
from ...models import TrackedShipment, SHIPMENT_KINDS, utcnow
from ...schemas import TrackingResult, TrackedShipmentSchema
from .carriers import CarrierAdapter, CorreiosAdapter, JadlogAdapter, tracking_url

# events kept on the shipment row
MAX_STORED_EVENTS = 20

class TrackingService(BaseService):

    def __init__(self, db_session, client_pool, settings, sleep=asyncio.sleep, current_user: str = None):
        super().__init__(db_session, current_user)
        self.settings = settings
        self.sleep = sleep
        self.adapters: List[CarrierAdapter] = [
            CorreiosAdapter(client_pool.http, settings.CORREIOS_API_URL, settings.CORREIOS_API_KEY),
            JadlogAdapter(client_pool.http, settings.JADLOG_API_URL, settings.JADLOG_TOKEN),
        ]

    def adapter_for(self, carrier: Optional[str]) -> Optional[CarrierAdapter]:
        for adapter in self.adapters:
            if adapter.matches(carrier):
                return adapter
        return None

    async def track(self, carrier: str, code: str) -> Optional[TrackingResult]:
        """Look up one code. None when the carrier has nothing for it."""
        if not code:
            raise ValidationError("Tracking code is required", field='code')
        adapter = self.adapter_for(carrier)
        if adapter is None:
            raise ValidationError(f"Carrier '{carrier}' is not supported", field='carrier')
        return await adapter.track(code)

    @transactional
    async def create_shipment(self, workspace_id: int, kind: str, carrier: str = None,
                              tracking_code: str = None, reference: str = None) -> TrackedShipment:
        if kind not in SHIPMENT_KINDS:
            raise ValidationError(f"Invalid shipment kind '{kind}'", field='kind')
        shipment = TrackedShipment(workspace_id=workspace_id, kind=kind, carrier=carrier,
                                   tracking_code=tracking_code, reference=reference)
        self.db_session.add(shipment)
        await self.db_session.flush()
        return shipment

    @transactional
    async def archive_shipment(self, workspace_id: int, shipment_id: int) -> TrackedShipment:
        shipment = await self._get_or_404(TrackedShipment, shipment_id, workspace_id=workspace_id)
        shipment.is_archived = True
        return shipment

    async def list_shipments(self, workspace_id: int, kind: str = None, include_archived: bool = False,
                             page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        query = select(TrackedShipment).filter(TrackedShipment.workspace_id == workspace_id)
        query = self._apply_filters(query, TrackedShipment, {'kind': kind})
        if not include_archived:
            query = query.filter(TrackedShipment.is_archived == False)  # noqa: E712
        query = self._apply_sorting(query, TrackedShipment, 'id', 'desc')
        result = await self._paginate_query(query, page, per_page)
        items = serialize_items(TrackedShipmentSchema, result['items'])
        for item in items:
            item['tracking_url'] = tracking_url(item['carrier'], item['tracking_code'])
        return {'items': items, 'pagination': result['pagination']}

    def _apply_result(self, shipment: TrackedShipment, result: TrackingResult):
        shipment.status = (result.current_status or '')[:255] or shipment.status
        shipment.estimated_delivery = result.estimated_delivery
        shipment.posting_date = result.posting_date
        shipment.last_event_at = result.last_event_at
        shipment.last_events = [e.model_dump(mode='json') for e in result.events[:MAX_STORED_EVENTS]]
        shipment.tracked_at = utcnow()

    async def refresh_shipment(self, workspace_id: int, shipment_id: int) -> Dict[str, Any]:
        shipment = await self._get_or_404(TrackedShipment, shipment_id, workspace_id=workspace_id)
        result = await self.track(shipment.carrier, shipment.tracking_code)
        if result is None:
            return {'updated': False, 'shipment_id': shipment_id}
        self._apply_result(shipment, result)
        await self.db_session.commit()
        return {'updated': True, 'shipment_id': shipment_id, 'status': shipment.status}

    async def due_shipments(self, workspace_id: int = None) -> List[TrackedShipment]:
        cutoff = utcnow() - timedelta(hours=self.settings.TRACKING_STALE_HOURS)
        query = (select(TrackedShipment)
                 .filter(TrackedShipment.is_archived == False,  # noqa: E712
                         TrackedShipment.tracking_code.isnot(None),
                         TrackedShipment.tracking_code != '',
                         or_(TrackedShipment.tracked_at.is_(None), TrackedShipment.tracked_at < cutoff))
                 .order_by(TrackedShipment.id))
        if workspace_id is not None:
            query = query.filter(TrackedShipment.workspace_id == workspace_id)
        return list((await self.db_session.execute(query)).scalars().all())

    async def run_batch(self, workspace_id: int = None) -> Dict[str, Any]:
        """Refresh every due shipment. A failing shipment is logged and counted, never fatal."""
        # plain tuples: a rollback expires loaded rows
        due = [(s.id, s.carrier, s.tracking_code) for s in await self.due_shipments(workspace_id)]
        summary = {'success': True, 'total': len(due), 'updated': 0, 'empty': 0,
                   'skipped': 0, 'failed': 0, 'errors': []}
        requested = False

        for shipment_id, carrier, code in due:
            adapter = self.adapter_for(carrier)
            if adapter is None:
                self.logger.info(f"Unsupported carrier for shipment {shipment_id}: {carrier}")
                summary['skipped'] += 1
                continue

            if requested:
                await self.sleep(self.settings.TRACKING_REQUEST_DELAY)
            requested = True
            try:
                result = await adapter.track(code)
                if result is None or not result.current_status:
                    summary['empty'] += 1
                    continue
                shipment = await self.db_session.get(TrackedShipment, shipment_id, populate_existing=True)
                self._apply_result(shipment, result)
                await self.db_session.commit()
                summary['updated'] += 1
            except CRMException as e:
                await self.db_session.rollback()
                summary['failed'] += 1
                summary['errors'].append({'shipment_id': shipment_id, 'code': code, 'error': e.message})
                self.logger.warning(f"Tracking {code} failed: {e.message}")
            except Exception as e:
                await self.db_session.rollback()
                summary['failed'] += 1
                summary['errors'].append({'shipment_id': shipment_id, 'code': code, 'error': repr(e)})
                self.logger.exception(f"Tracking {code} crashed")

        self.logger.info(
            f"Tracking batch: {summary['updated']} updated, {summary['empty']} empty, "
            f"{summary['skipped']} skipped, {summary['failed']} failed of {summary['total']}"
        )
        return summary
