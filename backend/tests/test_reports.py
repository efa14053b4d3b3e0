"""
Report export and admin dashboard tests.
"""

import csv
import io

import pytest
from sqlalchemy import update

from backend.app.models.member import Member
from backend.tests.helpers import API, auth, register_member


@pytest.mark.asyncio
async def test_export_members_json(client, admin_token, member, other_member):
    response = await client.get(f"{API}/reports/export/members/json", headers=auth(admin_token))
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["total"] == 2
    assert body["page"] == 1
    assert {row["email"] for row in body["data"]} == {"member1@test.com", "member2@test.com"}
    assert all(row["token_balance"] == 10 for row in body["data"])


@pytest.mark.asyncio
async def test_export_empty_json(client, admin_token):
    response = await client.get(f"{API}/reports/export/attendance/json", headers=auth(admin_token))
    body = response.json()
    assert body["data"] == []
    assert body["pages"] == 0


@pytest.mark.asyncio
async def test_export_transactions_csv(client, admin_token, member):
    response = await client.get(f"{API}/reports/export/transactions/csv", headers=auth(admin_token))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="transactions_')
    assert disposition.endswith('.csv"')

    text = response.content.decode("utf-8-sig")
    rows = list(csv.DictReader(io.StringIO(text)))
    assert len(rows) == 1
    assert rows[0]["type"] == "credit"
    assert rows[0]["amount"] == "10"
    assert rows[0]["member_id"] == str(member["member_id"])


@pytest.mark.asyncio
async def test_export_csv_header_only_when_empty(client, admin_token):
    response = await client.get(f"{API}/reports/export/classes/csv", headers=auth(admin_token))
    assert response.status_code == 200
    assert response.content.startswith(b"\xef\xbb\xbf")
    lines = response.content.decode("utf-8-sig").strip().splitlines()
    assert lines == ["id,gym_id,name,day,start_time,duration_minutes,max_capacity,current_enrollment,token_cost,is_active"]


@pytest.mark.asyncio
async def test_export_status_filter(client, admin_token, member, other_member):
    await client.post(f"{API}/members/{other_member['member_id']}/deactivate", headers=auth(admin_token))

    response = await client.get(
        f"{API}/reports/export/members/json", params={"status": "inactive"}, headers=auth(admin_token)
    )
    assert [row["id"] for row in response.json()["data"]] == [other_member["member_id"]]

    invalid = await client.get(
        f"{API}/reports/export/members/json", params={"status": "sleeping"}, headers=auth(admin_token)
    )
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_export_rejects_unknown_type_and_format(client, admin_token):
    bad_type = await client.get(f"{API}/reports/export/parcels/json", headers=auth(admin_token))
    assert bad_type.status_code == 400
    assert bad_type.json()["error_code"] == "ERR_VALIDATION"

    bad_format = await client.get(f"{API}/reports/export/members/xlsx", headers=auth(admin_token))
    assert bad_format.status_code == 400


@pytest.mark.asyncio
async def test_gym_export_limited_to_own_gym(client, gym, member):
    gym_id, owner_token = gym
    local = await register_member(client, "local@test.com", gym_id=gym_id)

    # Asking for another gym is ignored
    response = await client.get(
        f"{API}/reports/export/members/json", params={"gym_id": 999}, headers=auth(owner_token)
    )
    assert response.status_code == 200
    assert [row["id"] for row in response.json()["data"]] == [local["member_id"]]


@pytest.mark.asyncio
async def test_members_cannot_export(client, member):
    response = await client.get(f"{API}/reports/export/members/json", headers=auth(member["access_token"]))
    assert response.status_code == 403


# Admin dashboard

@pytest.mark.asyncio
async def test_dashboard_stats(client, admin_token, gym, member, other_member):
    await client.post(f"{API}/attendance/checkin", headers=auth(member["access_token"]), json={
        "member_id": member["member_id"]
    })

    response = await client.get(f"{API}/admin/stats", headers=auth(admin_token))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_members"] == 2
    assert data["active_members"] == 2
    assert data["total_gyms"] == 1
    assert data["active_check_ins"] == 1
    assert data["token_usage"]["credit"] == {"count": 2, "total_amount": 20}
    assert data["token_usage"]["debit"] == {"count": 1, "total_amount": 1}
    assert len(data["recent_transactions"]) == 3


@pytest.mark.asyncio
async def test_dashboard_requires_admin(client, gym, member):
    _, owner_token = gym
    for token in (owner_token, member["access_token"]):
        response = await client.get(f"{API}/admin/stats", headers=auth(token))
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_reconcile_endpoint(client, admin_token, member, db_session):
    clean = await client.get(f"{API}/admin/tokens/reconcile", headers=auth(admin_token))
    assert clean.json()["data"] == []

    # Corrupt the cached balance behind the ledger's back
    await db_session.execute(
        update(Member).where(Member.id == member["member_id"]).values(token_balance=99)
    )
    await db_session.commit()

    drifted = await client.get(f"{API}/admin/tokens/reconcile", headers=auth(admin_token))
    assert drifted.json()["data"] == [{"member_id": member["member_id"], "cached": 99, "ledger": 10}]


@pytest.mark.asyncio
async def test_audit_log_records_admin_actions(client, admin_token, member):
    await client.post(f"{API}/tokens/add", headers=auth(admin_token), json={
        "member_id": member["member_id"],
        "amount": 5,
        "description": "Loyalty bonus"
    })

    response = await client.get(
        f"{API}/admin/audit-logs", params={"action": "TOKENS_ADDED"}, headers=auth(admin_token)
    )
    assert response.status_code == 200
    logs = response.json()["data"]
    assert len(logs) == 1
    assert logs[0]["actor_email"] == "admin@test.com"
    assert logs[0]["meta_data"]["amount"] == 5
