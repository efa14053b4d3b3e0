"""
Access policy tests.

Checks the (role, resource, action) table directly, then a handful of
endpoints end to end.
"""

import pytest

from backend.app.core.guards import resolve_scope, Resource, Action, Scope
from backend.tests.helpers import API, auth


@pytest.mark.parametrize("role,resource,action,expected", [
    ("admin", Resource.PAYMENTS, Action.REFUND, Scope.ALL),
    ("admin", Resource.STATS, Action.READ, Scope.ALL),
    ("gym", Resource.GYMS, Action.UPDATE, Scope.OWN),
    ("gym", Resource.CLASSES, Action.CREATE, Scope.OWN),
    ("gym", Resource.ATTENDANCE, Action.CHECK_IN, Scope.ALL),
    ("gym", Resource.REPORTS, Action.EXPORT, Scope.OWN),
    ("gym", Resource.PAYMENTS, Action.CREATE, None),
    ("gym", Resource.TOKENS, Action.CREDIT, None),
    ("gym", Resource.CLASSES, Action.DEACTIVATE, None),
    ("member", Resource.ATTENDANCE, Action.CHECK_IN, Scope.OWN),
    ("member", Resource.PAYMENTS, Action.PURCHASE, Scope.OWN),
    ("member", Resource.MEMBERS, Action.LIST, None),
    ("member", Resource.USERS, Action.BLOCK, None),
    ("member", Resource.STATS, Action.READ, None),
    ("nobody", Resource.GYMS, Action.LIST, None),
])
def test_resolve_scope(role, resource, action, expected):
    assert resolve_scope(role, resource, action) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("path", [
    "/admin/users",
    "/admin/audit-logs",
    "/admin/stats",
    "/admin/tokens/reconcile",
    "/tokens/stats",
])
async def test_member_denied_admin_reads(client, member, path):
    response = await client.get(f"{API}{path}", headers=auth(member["access_token"]))
    assert response.status_code == 403
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_gym_operator_cannot_move_money(client, gym, member):
    _, owner_token = gym

    payment = await client.post(f"{API}/payments", headers=auth(owner_token), json={
        "member_id": member["member_id"],
        "tokens": 5
    })
    assert payment.status_code == 403

    grant = await client.post(f"{API}/tokens/add", headers=auth(owner_token), json={
        "member_id": member["member_id"],
        "amount": 5
    })
    assert grant.status_code == 403

    listing = await client.get(f"{API}/payments", headers=auth(owner_token))
    assert listing.status_code == 403


@pytest.mark.asyncio
async def test_member_history_is_private(client, member, other_member):
    headers = auth(member["access_token"])
    other_id = other_member["member_id"]

    for path in (f"/attendance/member/{other_id}", f"/attendance/stats/{other_id}", f"/tokens/balance/{other_id}"):
        response = await client.get(f"{API}{path}", headers=headers)
        assert response.status_code == 403, path


@pytest.mark.asyncio
async def test_gym_operator_reads_member_balances(client, gym, member):
    _, owner_token = gym
    response = await client.get(f"{API}/tokens/balance/{member['member_id']}", headers=auth(owner_token))
    assert response.status_code == 200
    assert response.json()["data"]["balance"] == 10
