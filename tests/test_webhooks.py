import pytest
from sqlalchemy import select, func

from omnicrm.models import Client, Conversation, Message, QueueEvent
from omnicrm.schemas import GatewayWebhookSchema, ErpWebhookSchema
from omnicrm.services.exceptions import NotFoundError, ValidationError, ConflictError
from omnicrm.services.messaging import extract_message_content, message_type

def gateway(event, data, instance='loja-1'):
    return GatewayWebhookSchema(event=event, instance=instance, data=data)

def inbound(message_id='ABC123', jid='5511999998888@s.whatsapp.net', text='Oi, tudo bem?', **extra):
    item = {'key': {'id': message_id, 'remoteJid': jid, 'fromMe': False},
            'message': {'conversation': text}}
    item.update(extra)
    return item

@pytest.fixture
async def instance(services, workspace_id):
    return await services.webhook_service.register_instance(workspace_id, 'loja-1')

@pytest.mark.parametrize('body,content', [
    ({'conversation': 'Olá'}, 'Olá'),
    ({'extendedTextMessage': {'text': 'link aqui'}}, 'link aqui'),
    ({'imageMessage': {'caption': 'foto'}}, 'foto'),
    ({'imageMessage': {}}, '[Imagem]'),
    ({'videoMessage': {}}, '[Vídeo]'),
    ({'documentMessage': {'fileName': 'nota.pdf'}}, '[Documento: nota.pdf]'),
    ({'documentMessage': {}}, '[Documento: sem nome]'),
    ({'audioMessage': {}}, '[Áudio]'),
    ({'locationMessage': {}}, '[Localização]'),
    ({'pollCreationMessage': {}}, '[Mensagem não suportada]'),
    (None, '[Mensagem não suportada]'),
])
def test_extract_message_content(body, content):
    assert extract_message_content(body) == content

def test_message_type():
    assert message_type({'extendedTextMessage': {}}) == 'text'
    assert message_type({'stickerMessage': {}}) == 'sticker'
    assert message_type({}) == 'unknown'

async def test_qrcode_and_connection_updates(services, instance):
    qr = await services.webhook_service.handle_gateway_webhook(
        gateway('qrcode.updated', {'qrcode': {'base64': 'data:image/png;base64,AAA'}})
    )
    assert qr == {'handled': True, 'status': 'connecting'}

    connected = await services.webhook_service.handle_gateway_webhook(
        gateway('CONNECTION_UPDATE', {'state': 'open', 'instance': {'phone': '5511912345678'}})
    )

    assert connected == {'handled': True, 'status': 'connected'}
    stored = await services.webhook_service.get_instance('loja-1')
    assert stored.phone_number == '5511912345678'
    assert stored.qr_code is None

async def test_inbound_message_creates_client_conversation_and_event(services, workspace_id, instance, session):
    result = await services.webhook_service.handle_gateway_webhook(
        gateway('messages.upsert', {'messages': [inbound()]})
    )

    assert result == {'handled': True, 'stored': 1}
    client = (await session.execute(select(Client))).scalars().one()
    assert client.name == 'Cliente 8888'
    assert client.phone == '5511999998888'
    assert client.source == 'whatsapp'
    conversation = (await session.execute(select(Conversation))).scalars().one()
    assert conversation.client_id == client.id
    assert conversation.last_message_at is not None
    message = (await session.execute(select(Message))).scalars().one()
    assert message.content == 'Oi, tudo bem?'
    assert message.status == 'received'
    event = (await session.execute(select(QueueEvent))).scalars().one()
    assert event.event_name == 'message_received'
    assert event.external_log_id == 'msg:ABC123'
    assert event.payload['conversation_id'] == conversation.id

    replay = await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': [inbound()]})
    )

    assert replay['stored'] == 0
    assert (await session.execute(select(func.count()).select_from(Message))).scalar() == 1
    assert (await session.execute(select(func.count()).select_from(QueueEvent))).scalar() == 1

async def test_inbound_message_matches_existing_client_by_phone(services, workspace_id, instance, session):
    existing = Client(workspace_id=workspace_id, name='Ana', phone='5511999998888')
    session.add(existing)
    await session.commit()

    await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': [inbound(pushName='Ana Souza')]})
    )

    assert (await session.execute(select(func.count()).select_from(Client))).scalar() == 1
    conversation = (await session.execute(select(Conversation))).scalars().one()
    assert conversation.client_id == existing.id

async def test_outgoing_and_incomplete_messages_are_ignored(services, instance, session):
    outgoing = inbound(message_id='OUT1')
    outgoing['key']['fromMe'] = True

    result = await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': [outgoing, {'key': {'id': 'X'}}]})
    )

    assert result['stored'] == 0
    assert (await session.execute(select(Message))).scalars().all() == []

async def test_message_status_update(services, instance):
    await services.webhook_service.handle_gateway_webhook(gateway('MESSAGES_UPSERT', {'messages': [inbound()]}))

    result = await services.webhook_service.handle_gateway_webhook(
        gateway('messages.update', {'keyId': 'ABC123', 'status': 'READ'})
    )

    assert result == {'handled': True, 'updated': 1}

async def test_unknown_instance_is_not_found(services, instance):
    with pytest.raises(NotFoundError):
        await services.webhook_service.handle_gateway_webhook(gateway('CONNECTION_UPDATE', {}, instance='nope'))

async def test_unhandled_gateway_event(services, instance):
    result = await services.webhook_service.handle_gateway_webhook(gateway('CHATS_SET', {}))

    assert result == {'handled': False, 'event': 'CHATS_SET'}

async def test_erp_webhook_is_queued_once(services, workspace_id):
    payload = ErpWebhookSchema(event='order_status_changed', order_id=100, status_id=7)

    first = await services.webhook_service.handle_erp_webhook(workspace_id, payload)
    second = await services.webhook_service.handle_erp_webhook(workspace_id, payload)

    assert first['queued'] is True
    assert second == {'queued': False, 'event_id': first['event_id']}
    event = await services.event_queue_service.get_event(workspace_id, first['event_id'])
    assert event.external_log_id == 'webhook:order_status_changed:100:7'
    assert event.order_id == '100'

async def test_erp_webhook_ignores_unsupported_events(services, workspace_id):
    result = await services.webhook_service.handle_erp_webhook(
        workspace_id, ErpWebhookSchema(event='invoice_paid', order_id=1)
    )

    assert result == {'queued': False, 'reason': 'unsupported_event'}

async def test_erp_webhook_requires_order_id(services, workspace_id):
    with pytest.raises(ValidationError):
        await services.webhook_service.handle_erp_webhook(
            workspace_id, ErpWebhookSchema(event='new_order', order_id='')
        )

async def test_malformed_message_entries_are_skipped(services, instance, session):
    result = await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': ['x', None, {'key': 'ABC'}, inbound(pushName=['Ana'], message='oi')]})
    )

    assert result == {'handled': True, 'stored': 1}
    message = (await session.execute(select(Message))).scalars().one()
    assert message.content == '[Mensagem não suportada]'
    client = (await session.execute(select(Client))).scalars().one()
    assert client.name == 'Cliente 8888'

async def test_non_list_messages_store_nothing(services, instance):
    result = await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': {'key': {'id': 'A'}}})
    )

    assert result == {'handled': True, 'stored': 0}

async def test_message_is_not_stored_when_its_event_cannot_be_queued(services, instance, session, monkeypatch):
    async def unavailable(*args, **kwargs):
        raise RuntimeError('queue unavailable')

    monkeypatch.setattr(services.webhook_service.event_queue, 'enqueue', unavailable)
    with pytest.raises(RuntimeError):
        await services.webhook_service.handle_gateway_webhook(gateway('MESSAGES_UPSERT', {'messages': [inbound()]}))

    assert await session.scalar(select(func.count(Message.id))) == 0
    assert await session.scalar(select(func.count(Client.id))) == 0

    monkeypatch.undo()
    retry = await services.webhook_service.handle_gateway_webhook(
        gateway('MESSAGES_UPSERT', {'messages': [inbound()]})
    )

    assert retry['stored'] == 1
    event = (await session.execute(select(QueueEvent))).scalars().one()
    assert event.external_log_id == 'msg:ABC123'

async def test_instance_name_cannot_move_between_workspaces(services, instance):
    other = await services.credential_service.create_workspace('Outra Loja')

    with pytest.raises(ConflictError):
        await services.webhook_service.register_instance(other.id, 'loja-1')

    again = await services.webhook_service.register_instance(instance.workspace_id, 'loja-1')
    assert again.id == instance.id
