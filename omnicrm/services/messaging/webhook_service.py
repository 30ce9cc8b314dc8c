"""
Webhook Ingress Service
=======================

Service untuk webhook yang masuk dari messaging gateway dan dari ERP.
Gateway events update the instance and store inbound messages; ERP events
are only queued, the event queue does the actual work.
"""

from typing import Dict, Any, Optional

from sqlalchemy import select, or_

from ..base import BaseService, transactional
from ..exceptions import NotFoundError, ValidationError, ConflictError
from ...models import WhatsAppInstance, Conversation, Message, Client, utcnow
from ...schemas import normalize_phone

ERP_WEBHOOK_EVENTS = ('order_status_changed', 'new_order', 'order_updated')

_MEDIA_LABELS = {
    'audioMessage': '[Áudio]',
    'stickerMessage': '[Sticker]',
    'contactMessage': '[Contato]',
    'locationMessage': '[Localização]',
}

_MESSAGE_TYPES = (
    ('conversation', 'text'),
    ('extendedTextMessage', 'text'),
    ('imageMessage', 'image'),
    ('videoMessage', 'video'),
    ('audioMessage', 'audio'),
    ('documentMessage', 'document'),
    ('stickerMessage', 'sticker'),
    ('contactMessage', 'contact'),
    ('locationMessage', 'location'),
)

def extract_message_content(message: Optional[Dict[str, Any]]) -> str:
    """Readable text for a gateway message body."""
    message = message or {}
    if message.get('conversation'):
        return message['conversation']
    if (message.get('extendedTextMessage') or {}).get('text'):
        return message['extendedTextMessage']['text']
    if 'imageMessage' in message:
        return (message['imageMessage'] or {}).get('caption') or '[Imagem]'
    if 'videoMessage' in message:
        return (message['videoMessage'] or {}).get('caption') or '[Vídeo]'
    if 'documentMessage' in message:
        return f"[Documento: {(message['documentMessage'] or {}).get('fileName') or 'sem nome'}]"
    for key, label in _MEDIA_LABELS.items():
        if key in message:
            return label
    return '[Mensagem não suportada]'

def message_type(message: Optional[Dict[str, Any]]) -> str:
    message = message or {}
    for key, kind in _MESSAGE_TYPES:
        if key in message:
            return kind
    return 'unknown'

def connection_status(state: Optional[str]) -> str:
    if state == 'open':
        return 'connected'
    if state == 'connecting':
        return 'connecting'
    return 'disconnected'

class WebhookService(BaseService):

    def __init__(self, db_session, event_queue_service, country_code: str = "55", current_user: str = None):
        super().__init__(db_session, current_user)
        self.event_queue = event_queue_service
        self.country_code = country_code

    async def get_instance(self, instance_name: str) -> WhatsAppInstance:
        instance = await self._first(select(WhatsAppInstance).filter(
            WhatsAppInstance.instance_name == instance_name
        ))
        if instance is None:
            raise NotFoundError('WhatsAppInstance', instance_name)
        return instance

    @transactional
    async def register_instance(self, workspace_id: int, instance_name: str) -> WhatsAppInstance:
        instance = await self._first(select(WhatsAppInstance).filter(
            WhatsAppInstance.instance_name == instance_name
        ))
        if instance is None:
            instance = WhatsAppInstance(workspace_id=workspace_id, instance_name=instance_name,
                                        status='disconnected')
            self.db_session.add(instance)
            await self.db_session.flush()
        elif instance.workspace_id != workspace_id:
            raise ConflictError(f"Instance '{instance_name}' belongs to another workspace", 'WhatsAppInstance')
        return instance

    async def handle_gateway_webhook(self, payload) -> Dict[str, Any]:
        """Route one gateway webhook. Event names arrive either as QRCODE_UPDATED or qrcode.updated."""
        instance = await self.get_instance(payload.instance)
        event = payload.event.upper().replace('.', '_')
        data = payload.data if isinstance(payload.data, dict) else {}
        self.logger.info(f"Gateway webhook {event} for instance {instance.instance_name}")

        if event == 'QRCODE_UPDATED':
            return await self._qrcode_updated(instance, data)
        if event == 'CONNECTION_UPDATE':
            return await self._connection_update(instance, data)
        if event == 'MESSAGES_UPSERT':
            return await self._messages_upsert(instance, data)
        if event == 'MESSAGES_UPDATE':
            return await self._messages_update(data)
        self.logger.debug(f"Unhandled gateway event: {payload.event}")
        return {'handled': False, 'event': payload.event}

    @transactional
    async def _qrcode_updated(self, instance: WhatsAppInstance, data: Dict[str, Any]) -> Dict[str, Any]:
        qrcode = data.get('qrcode')
        if isinstance(qrcode, dict):
            qrcode = qrcode.get('base64')
        if isinstance(qrcode, str) and qrcode:
            instance.qr_code = qrcode
            instance.status = 'connecting'
        return {'handled': True, 'status': instance.status}

    @transactional
    async def _connection_update(self, instance: WhatsAppInstance, data: Dict[str, Any]) -> Dict[str, Any]:
        instance.status = connection_status(data.get('state'))
        info = data.get('instance') if isinstance(data.get('instance'), dict) else {}
        phone = info.get('phone') or info.get('number') or info.get('profileName')
        if phone:
            instance.phone_number = str(phone)
        if instance.status == 'connected':
            instance.qr_code = None
        return {'handled': True, 'status': instance.status}

    async def _messages_upsert(self, instance: WhatsAppInstance, data: Dict[str, Any]) -> Dict[str, Any]:
        messages = data.get('messages')
        stored = 0
        for item in messages if isinstance(messages, list) else []:
            if not isinstance(item, dict):
                self.logger.warning(f"Ignoring malformed message entry: {item!r}")
                continue
            key = item.get('key') if isinstance(item.get('key'), dict) else {}
            if key.get('fromMe') or not key.get('id') or not isinstance(key.get('remoteJid'), str):
                continue
            if await self._store_inbound(instance, key, item) is not None:
                stored += 1
        return {'handled': True, 'stored': stored}

    @transactional
    async def _store_inbound(self, instance: WhatsAppInstance, key: Dict[str, Any],
                             item: Dict[str, Any]) -> Optional[Message]:
        """Message and its message_received event are committed together."""
        existing = await self._first(select(Message).filter(Message.external_id == key['id']))
        if existing is not None:
            return None

        raw_phone = key['remoteJid'].split('@')[0]
        phone = normalize_phone(raw_phone, self.country_code)
        push_name = item.get('pushName') if isinstance(item.get('pushName'), str) else None
        client = await self._find_or_create_client(instance.workspace_id, raw_phone, phone, push_name)

        conversation = await self._first(select(Conversation).filter(
            Conversation.workspace_id == instance.workspace_id,
            Conversation.client_id == client.id,
            Conversation.channel == 'whatsapp'
        ))
        if conversation is None:
            conversation = Conversation(workspace_id=instance.workspace_id, client_id=client.id,
                                        channel='whatsapp', status='open')
            self.db_session.add(conversation)
            await self.db_session.flush()

        body = item.get('message') if isinstance(item.get('message'), dict) else {}
        message = Message(
            conversation_id=conversation.id,
            external_id=key['id'],
            content=extract_message_content(body),
            message_type=message_type(body),
            sender_type='client',
            status='received',
            raw=item,
        )
        self.db_session.add(message)
        conversation.last_message_at = utcnow()
        await self.db_session.flush()

        await self.event_queue.enqueue(
            instance.workspace_id,
            external_log_id=f"msg:{message.external_id}",
            event_name='message_received',
            payload={
                'message_id': message.id,
                'conversation_id': message.conversation_id,
                'content': message.content,
                'message_type': message.message_type,
            },
            commit=False,
        )
        return message

    async def _find_or_create_client(self, workspace_id: int, raw_phone: str, phone: Optional[str],
                                     push_name: str = None) -> Client:
        candidates = {raw_phone}
        if phone:
            candidates.add(phone)
        client = await self._first(
            select(Client)
            .filter(Client.workspace_id == workspace_id, or_(*[Client.phone == c for c in candidates]))
            .order_by(Client.id)
        )
        if client is None:
            client = Client(
                workspace_id=workspace_id,
                name=push_name or f"Cliente {raw_phone[-4:]}",
                phone=phone or raw_phone,
                source='whatsapp',
            )
            self.db_session.add(client)
            await self.db_session.flush()
            self.logger.info(f"Client {client.id} created from inbound message")
        return client

    @transactional
    async def _messages_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        updates = data.get('messages') if isinstance(data.get('messages'), list) else [data]
        updated = 0
        for item in updates:
            if not isinstance(item, dict):
                continue
            key = item.get('key') if isinstance(item.get('key'), dict) else {}
            message_id = key.get('id') or item.get('keyId')
            status = item.get('status')
            if not message_id or not status:
                continue
            message = await self._first(select(Message).filter(Message.external_id == message_id))
            if message is not None:
                message.status = str(status).lower()
                updated += 1
        return {'handled': True, 'updated': updated}

    async def handle_erp_webhook(self, workspace_id: int, payload) -> Dict[str, Any]:
        """Queue an ERP push notification. Unknown events are acknowledged and dropped."""
        if payload.event not in ERP_WEBHOOK_EVENTS:
            self.logger.info(f"Ignoring ERP webhook event {payload.event}")
            return {'queued': False, 'reason': 'unsupported_event'}
        if payload.order_id in (None, ''):
            raise ValidationError("order_id is required", field='order_id')

        external_log_id = payload.log_id or f"webhook:{payload.event}:{payload.order_id}:{payload.status_id or ''}"
        event, created = await self.event_queue.enqueue(
            workspace_id,
            external_log_id=external_log_id,
            event_name=payload.event,
            order_id=payload.order_id,
            payload=payload.model_dump(mode='json'),
        )
        return {'queued': created, 'event_id': event.id}
