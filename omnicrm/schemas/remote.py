"""
Remote Entity Projections
=========================

Normalized, transient views of ERP payloads used during reconciliation.
The full payload is kept in `raw` and stored as opaque metadata.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationError as PydanticValidationError
from pydantic.networks import validate_email

from ..services.exceptions import ValidationError


def normalize_phone(value: Optional[str], country_code: str = "55") -> Optional[str]:
    """Digits only, prefixed with the country code when missing."""
    if not value:
        return None
    digits = re.sub(r"\D", "", str(value))
    if not digits:
        return None
    if not digits.startswith(country_code):
        digits = country_code + digits
    return digits

def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        _, email = validate_email(str(value).strip().lower())
    except ValueError:
        return None
    return email

def from_epoch(value) -> Optional[datetime]:
    if value in (None, "", 0, "0"):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)

class _RemoteBase(BaseModel):
    model_config = ConfigDict(extra='ignore', arbitrary_types_allowed=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], **context):
        """Build the projection or raise ValidationError (entity is skipped by the caller)."""
        if not isinstance(payload, dict):
            raise ValidationError(f"{cls.__name__} payload must be an object")
        try:
            return cls._build(payload, **context)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = '.'.join(str(p) for p in first.get('loc', ()))
            raise ValidationError(f"Invalid {cls.__name__}: {field} {first.get('msg')}", field=field,
                                  details={'errors': e.errors(include_url=False, include_context=False,
                                                                   include_input=False)})
        except (TypeError, ValueError, ArithmeticError, AttributeError, KeyError) as e:
            raise ValidationError(f"Invalid {cls.__name__}: {e!r}")

class RemoteCustomer(_RemoteBase):
    external_id: Optional[str] = None
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Dict[str, Any] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone)

    @classmethod
    def _build(cls, payload, country_code: str = "55"):
        email = normalize_email(payload.get('email'))
        phone = normalize_phone(payload.get('phone'), country_code)
        name = (payload.get('delivery_fullname') or payload.get('invoice_fullname')
                or payload.get('user_login') or email or phone or '')
        return cls(
            external_id=str(payload['customer_id']) if payload.get('customer_id') else None,
            name=name,
            email=email,
            phone=phone,
            address={
                'company': payload.get('invoice_company'),
                'address': payload.get('delivery_address'),
                'city': payload.get('delivery_city'),
                'postcode': payload.get('delivery_postcode'),
                'country': payload.get('delivery_country') or payload.get('delivery_country_code'),
            },
            raw=payload,
        )

class RemoteOrderItem(_RemoteBase):
    """One order line as sold, with gross and tax amounts for the quantity."""
    position: int = Field(ge=0)
    external_id: Optional[str] = None
    product_id: Optional[str] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    quantity: int = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    tax_rate: Decimal = Decimal('0')

    @property
    def gross_amount(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(Decimal('0.01'))

    @property
    def tax_amount(self) -> Decimal:
        return (self.gross_amount * self.tax_rate / 100).quantize(Decimal('0.01'))

    @classmethod
    def _build(cls, payload, position: int = 0):
        def text(key):
            value = payload.get(key)
            return str(value) if value not in (None, '') else None

        return cls(
            position=position,
            external_id=text('order_product_id'),
            product_id=text('product_id'),
            sku=text('sku'),
            name=text('name'),
            quantity=int(payload.get('quantity') or 0),
            unit_price=Decimal(str(payload.get('price_brutto') or 0)),
            tax_rate=Decimal(str(payload.get('tax_rate') or 0)),
        )

class RemoteOrder(_RemoteBase):
    external_id: str = Field(min_length=1)
    raw_status: Optional[str] = None
    order_date: Optional[datetime] = None
    currency: Optional[str] = None
    total_amount: Decimal = Decimal('0')
    items: List[RemoteOrderItem] = Field(default_factory=list)
    customer: Optional[RemoteCustomer] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('total_amount')
    @classmethod
    def non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError('total amount cannot be negative')
        return v.quantize(Decimal('0.01'))

    @classmethod
    def _build(cls, payload, country_code: str = "55", status_names: Dict[str, str] = None):
        if not payload.get('order_id'):
            raise ValidationError("Order payload without order_id", field='order_id')
        status_id = payload.get('order_status_id')
        raw_status = None
        if status_id not in (None, ''):
            raw_status = (status_names or {}).get(str(status_id), str(status_id))

        products = payload.get('products') or []
        if not isinstance(products, list):
            raise ValidationError("Order products must be a list", field='products')
        items = []
        for position, item in enumerate(products):
            if not isinstance(item, dict):
                raise ValidationError(f"Order line {position} must be an object", field=f'products.{position}')
            items.append(RemoteOrderItem._build(item, position=position))

        total = Decimal(str(payload.get('delivery_price') or 0))
        for item in items:
            total += item.unit_price * item.quantity

        customer = None
        try:
            customer = RemoteCustomer._build(payload, country_code=country_code)
        except PydanticValidationError:
            customer = None
        return cls(
            external_id=str(payload['order_id']),
            raw_status=raw_status,
            order_date=from_epoch(payload.get('date_add')),
            currency=payload.get('currency'),
            total_amount=total,
            items=items,
            customer=customer if customer and customer.has_contact else None,
            raw=payload,
        )

class RemoteProduct(_RemoteBase):
    external_id: str = Field(min_length=1)
    sku: Optional[str] = None
    ean: Optional[str] = None
    name: str = Field(min_length=1)
    price: Optional[Decimal] = None
    # warehouse_id -> quantity
    stock: Dict[str, int] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def _build(cls, payload):
        product_id = payload.get('id') or payload.get('product_id')
        if not product_id:
            raise ValidationError("Product payload without id", field='id')
        prices = payload.get('prices') or {}
        price = payload.get('price')
        if price is None and isinstance(prices, dict) and prices:
            price = next(iter(prices.values()))
        name = payload.get('name')
        if not name and isinstance(payload.get('text_fields'), dict):
            name = payload['text_fields'].get('name')
        stock = payload.get('stock') or {}
        if not isinstance(stock, dict):
            raise ValidationError("Product stock must be a warehouse map", field='stock')
        return cls(
            external_id=str(product_id),
            sku=payload.get('sku') or None,
            ean=payload.get('ean') or None,
            name=name or '',
            price=Decimal(str(price)) if price not in (None, '') else None,
            stock={str(k): int(v) for k, v in stock.items()},
            raw=payload,
        )

def iter_products(container) -> List[Dict[str, Any]]:
    """Product lists arrive either as a list or as a map keyed by product id."""
    if isinstance(container, dict):
        return [dict(v, id=v.get('id', k)) if isinstance(v, dict) else v for k, v in container.items()]
    return list(container or [])
