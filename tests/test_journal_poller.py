import httpx
import pytest
from sqlalchemy import select

from omnicrm.models import QueueEvent, utcnow
from omnicrm.services.sync import journal_event_name, RELEVANT_LOG_TYPES

JOURNAL = [
    {'log_id': 11, 'log_type': 1, 'order_id': 100, 'object_id': 0, 'date': 1700000000},
    {'log_id': 12, 'log_type': 18, 'order_id': 100, 'object_id': 7, 'date': 1700000060},
    {'log_id': 14, 'log_type': 3, 'order_id': 101, 'object_id': 0, 'date': 1700000120},
]

@pytest.fixture
def journal(remote):
    remote.on('getJournalList',
              lambda params: {'logs': [log for log in JOURNAL if log['log_id'] > params.get('last_log_id', 0)]})
    return remote

@pytest.mark.parametrize('log_type,name', [
    (1, 'order_created'),
    (4, 'order_removed'),
    (18, 'status_changed'),
    ('21', 'invoice_cancelled'),
    (99, 'unknown_event_99'),
    (None, 'unknown_event_None'),
])
def test_journal_event_name(log_type, name):
    assert journal_event_name(log_type) == name

async def test_poll_enqueues_entries_and_advances_cursor(services, workspace_id, journal, session):
    result = await services.journal_poller.poll(workspace_id)

    assert result == {'success': True, 'status': 'completed', 'enqueued': 3, 'duplicates': 0, 'last_log_id': 14}
    assert journal.calls_to('getJournalList')[0]['logs_types'] == RELEVANT_LOG_TYPES
    events = (await session.execute(select(QueueEvent).order_by(QueueEvent.id))).scalars().all()
    assert [(e.external_log_id, e.event_name, e.order_id) for e in events] == [
        ('11', 'order_created', '100'),
        ('12', 'status_changed', '100'),
        ('14', 'payment_received', '101'),
    ]
    assert events[1].payload['object_id'] == 7

    second = await services.journal_poller.poll(workspace_id)

    assert journal.calls_to('getJournalList')[-1]['last_log_id'] == 14
    assert second['enqueued'] == 0
    assert second['last_log_id'] == 14

async def test_replayed_entries_are_counted_as_duplicates(services, workspace_id, remote):
    remote.on('getJournalList', {'logs': JOURNAL[:2]})

    await services.journal_poller.poll(workspace_id)
    replay = await services.journal_poller.poll(workspace_id)

    assert replay['enqueued'] == 0
    assert replay['duplicates'] == 2

async def test_poll_is_single_flight(services, workspace_id, journal):
    assert await services.checkpoint_service.acquire(workspace_id, 'journal', utcnow())

    result = await services.journal_poller.poll(workspace_id)

    assert result['status'] == 'skipped'
    assert journal.calls_to('getJournalList') == []

async def test_remote_failure_keeps_cursor(services, workspace_id, remote):
    remote.on('getJournalList', httpx.Response(500, text='down'))

    result = await services.journal_poller.poll(workspace_id)

    assert result['success'] is False
    assert result['status'] == 'error'
    _, cursor = await services.checkpoint_service.get_position(workspace_id, 'journal')
    assert cursor == 0
    status = await services.sync_status_service.get_status(workspace_id)
    assert status.status == 'error'

async def test_malformed_entry_rolls_back_the_batch(services, workspace_id, remote, session):
    remote.on('getJournalList', {'logs': [JOURNAL[0], {'log_type': 1}]})

    result = await services.journal_poller.poll(workspace_id)

    assert result['status'] == 'error'
    assert (await session.execute(select(QueueEvent))).scalars().all() == []

async def test_successful_poll_clears_only_journal_errors(services, workspace_id, remote):
    await services.sync_status_service.finish(workspace_id, 'orders', 'error', [
        {'kind': 'orders', 'error_code': 'API_ERROR', 'message': 'ERP: HTTP error 500'}
    ])
    remote.on('getJournalList', httpx.Response(500, text='down'))
    await services.journal_poller.poll(workspace_id)

    remote.on('getJournalList', {'logs': JOURNAL[:1]})
    result = await services.journal_poller.poll(workspace_id)

    assert result['enqueued'] == 1
    status = await services.sync_status_service.get_status(workspace_id)
    assert status.status == 'error'
    assert [e['kind'] for e in status.errors] == ['orders']
    assert status.kind_states['journal'] == 'idle'
