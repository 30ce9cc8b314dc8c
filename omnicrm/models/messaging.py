from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel

class WhatsAppInstance(BaseModel):
    __tablename__ = 'whatsapp_instances'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    instance_name = Column(String(120), nullable=False, unique=True)
    status = Column(String(20), default='disconnected', nullable=False)  # connected | connecting | disconnected
    phone_number = Column(String(32))
    qr_code = Column(Text)

class Conversation(BaseModel):
    __tablename__ = 'conversations'

    workspace_id = Column(Integer, ForeignKey('workspaces.id'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    channel = Column(String(20), default='whatsapp', nullable=False)
    status = Column(String(20), default='open', nullable=False)
    last_message_at = Column(DateTime)

    messages = relationship('Message', back_populates='conversation')

class Message(BaseModel):
    __tablename__ = 'messages'
    __table_args__ = (UniqueConstraint('external_id', name='uq_message_external'),)

    conversation_id = Column(Integer, ForeignKey('conversations.id'), nullable=False, index=True)
    external_id = Column(String(128), nullable=False)
    content = Column(Text)
    message_type = Column(String(30), default='text', nullable=False)
    sender_type = Column(String(20), default='client', nullable=False)
    status = Column(String(20), default='received', nullable=False)
    raw = Column(JSON)

    conversation = relationship('Conversation', back_populates='messages')
