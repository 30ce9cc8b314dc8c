"""
Carrier Adapters
================

One adapter per carrier API. Each turns the carrier payload into a
TrackingResult with events ordered newest first.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import httpx

from ..exceptions import ExternalServiceError, ValidationError
from ...schemas import TrackingEvent, TrackingResult

logger = logging.getLogger(__name__)

TRACKING_URLS = (
    ('correios', "https://rastreamento.correios.com.br/app/index.php?objeto={code}"),
    ('jadlog', "https://www.jadlog.com.br/siteInstitucional/tracking.jad?cte={code}"),
    ('total', "https://www.totalexpress.com.br/tracking/{code}"),
    ('azul', "https://rastreamento.azulcargo.com.br/tracking/{code}"),
    ('braspress', "https://www.braspress.com/tracking/?numNF={code}"),
    ('mercado', "https://www.mercadolivre.com.br/envios/tracking/{code}"),
)

_DATE_FORMATS = ('%d/%m/%Y %H:%M:%S', '%d/%m/%Y %H:%M', '%d/%m/%Y')

def tracking_url(carrier: Optional[str], code: Optional[str]) -> str:
    """Public tracking page on the carrier's site, or '' when unknown."""
    if not carrier or not code:
        return ''
    carrier = carrier.lower()
    for key, template in TRACKING_URLS:
        if key in carrier:
            return template.format(code=code)
    return ''

def parse_carrier_datetime(value) -> Optional[datetime]:
    """ISO timestamps and dd/mm/yyyy dates to naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        parsed = None
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError:
                logger.warning(f"Unparseable carrier date: {text!r}")
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed

def as_dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}

def as_text(value) -> Optional[str]:
    """Scalar carrier fields as text; empty and nested values become None."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return str(value) if value != '' else None

def build_result(code: str, carrier: str, events: List[TrackingEvent],
                 estimated_delivery: Optional[datetime] = None) -> Optional[TrackingResult]:
    if not events:
        return None
    # undated events sort as the oldest
    ordered = sorted(events, key=lambda e: e.date or datetime.min, reverse=True)
    return TrackingResult(
        code=code,
        carrier=carrier,
        estimated_delivery=estimated_delivery,
        posting_date=ordered[-1].date,
        current_status=ordered[0].description or None,
        events=ordered,
    )

class CarrierAdapter:
    name: str = ''

    def __init__(self, http: httpx.AsyncClient, api_url: str, secret: Optional[str]):
        self.http = http
        self.api_url = api_url
        self.secret = secret

    def matches(self, carrier: Optional[str]) -> bool:
        return bool(carrier) and self.name in carrier.lower()

    async def track(self, code: str) -> Optional[TrackingResult]:
        if not self.secret:
            raise ExternalServiceError(self.name, f"{self.name} credentials are not configured",
                                       error_code='CARRIER_NOT_CONFIGURED')
        try:
            response = await self.http.post(self.api_url, json=self.request_body(code),
                                            headers=self.headers())
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.name, f"Request failed: {e}")
        if response.status_code >= 400:
            raise ExternalServiceError(self.name, f"HTTP {response.status_code}",
                                       status_code=response.status_code)
        try:
            data = response.json()
        except ValueError:
            raise ExternalServiceError(self.name, "Response is not JSON")
        try:
            return self.parse(code, data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Unreadable {self.name} payload for {code}: {e!r}")

    def headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def request_body(self, code: str) -> Dict[str, Any]:
        raise NotImplementedError

    def parse(self, code: str, data: Any) -> Optional[TrackingResult]:
        raise NotImplementedError

class CorreiosAdapter(CarrierAdapter):
    name = 'correios'

    def headers(self):
        return {'Authorization': f"Apikey {self.secret}"}

    def request_body(self, code):
        return {'code': code}

    def parse(self, code, data):
        if not isinstance(data, dict) or not data.get('success') or not isinstance(data.get('result'), dict):
            return None
        result = data['result']
        raw_events = result.get('eventos')
        if not isinstance(raw_events, list):
            return None

        events = []
        for item in raw_events:
            if not isinstance(item, dict):
                logger.warning(f"Ignoring malformed correios event for {code}: {item!r}")
                continue
            created = item.get('dtHrCriado')
            address = as_dict(as_dict(item.get('unidade')).get('endereco'))
            events.append(TrackingEvent(
                date=parse_carrier_datetime(created.get('date') if isinstance(created, dict) else created),
                description=as_text(item.get('descricao')) or '',
                detail=as_text(item.get('detalhe')),
                city=as_text(address.get('cidade')),
                region=as_text(address.get('uf')),
                carrier_code=as_text(item.get('codigo') or item.get('tipo')),
            ))
        return build_result(code, self.name, events, parse_carrier_datetime(result.get('dtPrevista')))

class JadlogAdapter(CarrierAdapter):
    name = 'jadlog'

    def headers(self):
        return {'Authorization': f"Bearer {self.secret}"}

    def request_body(self, code):
        return {'consulta': [{'shipmentId': code}]}

    def parse(self, code, data):
        consulta = data.get('consulta') if isinstance(data, dict) else None
        if not isinstance(consulta, list) or not consulta:
            return None
        tracking = as_dict(as_dict(consulta[0]).get('tracking'))
        raw_events = tracking.get('eventos')
        if not isinstance(raw_events, list):
            return None

        events = []
        for item in raw_events:
            if not isinstance(item, dict):
                logger.warning(f"Ignoring malformed jadlog event for {code}: {item!r}")
                continue
            events.append(TrackingEvent(
                date=parse_carrier_datetime(item.get('data')),
                description=as_text(item.get('descricao') or item.get('status')) or '',
                detail=as_text(item.get('detalhe')),
                city=as_text(item.get('cidade')),
                region=as_text(item.get('uf')),
                carrier_code=as_text(item.get('sigla') or item.get('tipo')),
            ))
        return build_result(code, self.name, events, parse_carrier_datetime(tracking.get('dtPrevista')))
