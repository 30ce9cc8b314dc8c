"""
Workflow Automation Client
==========================

Single integration point with the workflow automation service: sync-derived
events are pushed to a tenant webhook, and workflows can be executed and
awaited with an explicit deadline.
"""

import logging
from typing import Dict, Any, Optional

import httpx

from .polling import wait_for_completion
from ..exceptions import ExternalServiceError

FINISHED_STATUSES = ('success', 'error')

class AutomationClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str = None, api_key: str = None,
                 default_timeout: float = 30.0, poll_interval: float = 1.0):
        self.http = http
        self.base_url = (base_url or '').rstrip('/')
        self.api_key = api_key
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(self.__class__.__name__)

    def _headers(self):
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['X-N8N-API-KEY'] = self.api_key
        return headers

    async def _request(self, method: str, endpoint: str, payload: Dict[str, Any] = None) -> Dict[str, Any]:
        if not self.base_url:
            raise ExternalServiceError('Automation', 'base URL not configured')
        url = f"{self.base_url}/api/v1{endpoint}"
        try:
            response = await self.http.request(method, url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise ExternalServiceError('Automation', f"{method} {endpoint} failed: {e}")
        if not response.is_success:
            raise ExternalServiceError('Automation', f"{method} {endpoint} returned {response.status_code}",
                                       status_code=response.status_code)
        return response.json()

    async def trigger_webhook(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST an event to a webhook. `url` may be absolute or a path under /webhook/."""
        if not url.startswith(('http://', 'https://')):
            if not self.base_url:
                raise ExternalServiceError('Automation', 'base URL not configured')
            url = f"{self.base_url}/webhook/{url.lstrip('/')}"
        try:
            response = await self.http.post(url, json=payload)
        except httpx.HTTPError as e:
            raise ExternalServiceError('Automation', f"Webhook error: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {'text': response.text}
        if not response.is_success:
            message = data.get('message') if isinstance(data, dict) else None
            raise ExternalServiceError('Automation', message or 'Webhook execution failed',
                                       status_code=response.status_code)
        self.logger.info(f"Webhook delivered to {url} ({response.status_code})")
        return {'success': True, 'data': data}

    async def execute_workflow(self, workflow_id: str, data: Dict[str, Any] = None) -> Dict[str, Any]:
        return await self._request('POST', f"/workflows/{workflow_id}/execute", data or {})

    async def get_execution(self, execution_id: str) -> Dict[str, Any]:
        return await self._request('GET', f"/executions/{execution_id}")

    async def run_workflow(self, workflow_id: str, data: Dict[str, Any] = None,
                           timeout: Optional[float] = None, cancel_event=None) -> Dict[str, Any]:
        """Execute a workflow and wait for it to finish; raises on `error` or timeout."""
        execution = await self.execute_workflow(workflow_id, data)
        execution_id = execution.get('id')
        if execution_id is None:
            raise ExternalServiceError('Automation', 'execution id missing from response')

        result = await wait_for_completion(
            lambda: self.get_execution(execution_id),
            lambda e: e.get('status') in FINISHED_STATUSES,
            timeout=timeout or self.default_timeout,
            interval=self.poll_interval,
            cancel_event=cancel_event,
        )
        if result.get('status') == 'error':
            raise ExternalServiceError('Automation', f"Execution {execution_id} failed",
                                       details={'execution': result})
        return result
