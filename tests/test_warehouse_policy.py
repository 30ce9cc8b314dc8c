import pytest

from omnicrm.models import WarehouseBinding
from omnicrm.services.exceptions import PolicyDenied, ValidationError
from omnicrm.services.warehouse.policy_service import evaluate_policy, READ, WRITE

def binding(direction='bidirectional', active=True, stock_updates=True):
    return WarehouseBinding(warehouse_id='bl_1', sync_direction=direction, is_active=active,
                            allow_stock_updates=stock_updates)

@pytest.mark.parametrize('kwargs,direction,allowed,reason', [
    ({}, READ, True, 'allowed'),
    ({}, WRITE, True, 'allowed'),
    ({'direction': 'read_only'}, READ, True, 'allowed'),
    ({'direction': 'read_only'}, WRITE, False, 'read_only'),
    ({'direction': 'write_only'}, READ, False, 'write_only'),
    ({'direction': 'write_only'}, WRITE, True, 'allowed'),
    ({'direction': 'write_only', 'active': False}, WRITE, False, 'inactive'),
    ({'active': False}, READ, True, 'allowed'),
    ({'stock_updates': False}, WRITE, False, 'stock_updates_disabled'),
])
def test_evaluate_policy(kwargs, direction, allowed, reason):
    decision = evaluate_policy(binding(**kwargs), direction)

    assert decision.allowed is allowed
    assert decision.reason == reason
    assert decision.warehouse_id == 'bl_1'

def test_non_stock_write_ignores_stock_update_flag():
    assert evaluate_policy(binding(stock_updates=False), WRITE, stock_write=False).allowed

def test_unbound_warehouse_reads_but_never_writes():
    assert evaluate_policy(None, READ, warehouse_id='x').allowed
    decision = evaluate_policy(None, WRITE, warehouse_id='x')
    assert not decision.allowed
    assert decision.reason == 'not_configured'

def test_unknown_direction_is_rejected():
    with pytest.raises(ValidationError):
        evaluate_policy(binding(), 'sideways')

async def test_enforce_raises_policy_denied(services, workspace_id):
    await services.policy_service.upsert_binding(workspace_id, 'bl_1', {'sync_direction': 'read_only',
                                                                        'allow_stock_updates': True})

    with pytest.raises(PolicyDenied) as exc_info:
        await services.policy_service.enforce(workspace_id, 'bl_1', WRITE)

    assert exc_info.value.reason == 'read_only'
    assert exc_info.value.error_code == 'POLICY_DENIED'

async def test_upsert_binding_updates_in_place(services, workspace_id):
    await services.policy_service.upsert_binding(workspace_id, 'bl_1', {'name': 'Principal'})
    await services.policy_service.upsert_binding(workspace_id, 'bl_1', {'is_active': False})

    bindings = await services.policy_service.list_bindings(workspace_id)
    assert len(bindings) == 1
    assert bindings[0].name == 'Principal'
    assert bindings[0].is_active is False
    assert bindings[0].allow_stock_updates is False

async def test_upsert_binding_rejects_unknown_direction(services, workspace_id):
    with pytest.raises(ValidationError):
        await services.policy_service.upsert_binding(workspace_id, 'bl_1', {'sync_direction': 'both'})
