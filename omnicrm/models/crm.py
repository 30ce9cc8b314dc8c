from sqlalchemy import (
    Column, String, Integer, ForeignKey, JSON, DateTime, Numeric, Boolean, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import BaseModel

class Client(BaseModel):
    __tablename__ = 'clients'
    __table_args__ = (UniqueConstraint('workspace_id', 'external_id', name='uq_client_external'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    external_id = Column(String(64))
    name = Column(String(200), nullable=False)
    email = Column(String(200), index=True)
    phone = Column(String(32), index=True)
    address = Column(JSON)
    source = Column(String(30), default='manual', nullable=False)
    metadata_ = Column('metadata', JSON)

    orders = relationship('Order', back_populates='client')

    def __repr__(self):
        return f'<Client {self.id} {self.email or self.phone}>'

class Order(BaseModel):
    __tablename__ = 'orders'
    __table_args__ = (UniqueConstraint('workspace_id', 'external_id', name='uq_order_external'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    external_id = Column(String(64), nullable=False)
    client_id = Column(Integer, ForeignKey('clients.id'), index=True)
    status = Column(String(20), default='pending', nullable=False)
    raw_status = Column(String(100))
    total_amount = Column(Numeric(14, 2), default=0)
    currency = Column(String(3))
    order_date = Column(DateTime)
    remote_payload = Column(JSON)

    client = relationship('Client', back_populates='orders')

    def __repr__(self):
        return f'<Order {self.external_id} {self.status}>'

class OrderItem(BaseModel):
    """One order line, replaced as a set whenever the remote lines change."""
    __tablename__ = 'order_items'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)
    external_id = Column(String(64))
    product_external_id = Column(String(64), index=True)
    sku = Column(String(100), index=True)
    name = Column(String(255))
    quantity = Column(Integer, default=0, nullable=False)
    unit_price = Column(Numeric(14, 2), default=0, nullable=False)
    tax_rate = Column(Numeric(5, 2), default=0, nullable=False)
    gross_amount = Column(Numeric(14, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(14, 2), default=0, nullable=False)

    def __repr__(self):
        return f'<OrderItem {self.order_id}#{self.position} {self.sku} x{self.quantity}>'

class Product(BaseModel):
    __tablename__ = 'products'
    __table_args__ = (UniqueConstraint('workspace_id', 'external_id', name='uq_product_external'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    external_id = Column(String(64), nullable=False)
    sku = Column(String(100), index=True)
    ean = Column(String(50))
    name = Column(String(255), nullable=False)
    price = Column(Numeric(14, 2))
    is_active = Column(Boolean, default=True, nullable=False)
    remote_payload = Column(JSON)

    def __repr__(self):
        return f'<Product {self.external_id} {self.sku}>'

class ProductStock(BaseModel):
    """Local quantity for one SKU in one external warehouse."""
    __tablename__ = 'product_stocks'
    __table_args__ = (UniqueConstraint('workspace_id', 'sku', 'warehouse_id', name='uq_stock_sku_warehouse'),)

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('products.id'), index=True)
    sku = Column(String(100), nullable=False)
    warehouse_id = Column(String(64), nullable=False)
    quantity = Column(Integer, default=0, nullable=False)
    synced_at = Column(DateTime)
