"""
Attendance tests: check-in debits, check-out durations, class enrollment.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from backend.app.core.datetime_utils import utcnow, minutes_between
from backend.app.models.attendance import Attendance
from backend.app.models.member import Member
from backend.app.models.token_transaction import TokenTransaction
from backend.app.models.token_enums import TransactionType, RelatedKind
from backend.tests.helpers import API, auth


async def _create_class(client, token, gym_id, **overrides):
    payload = {
        "name": "Spin Class",
        "gym_id": gym_id,
        "day": "monday",
        "start_time": "18:00",
        "duration_minutes": 45,
        "max_capacity": 10,
        "token_cost": 3,
    }
    payload.update(overrides)
    response = await client.post(f"{API}/classes", headers=auth(token), json=payload)
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_class_check_in_debits_tokens(client, admin_token, gym, member, db_session):
    """Balance 10, class cost 3: check-in succeeds and leaves 7."""
    gym_id, _ = gym
    gym_class = await _create_class(client, admin_token, gym_id)

    response = await client.post(f"{API}/attendance/checkin", headers=auth(member["access_token"]), json={
        "member_id": member["member_id"],
        "class_id": gym_class["id"]
    })
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["remaining_tokens"] == 7

    attendance = await db_session.get(Attendance, data["attendance_id"])
    assert attendance.token_used == 3
    assert attendance.check_out is None

    result = await db_session.execute(
        select(TokenTransaction).where(
            TokenTransaction.member_id == member["member_id"],
            TokenTransaction.type == TransactionType.DEBIT
        )
    )
    debit = result.scalar_one()
    assert debit.amount == 3
    assert debit.related_kind == RelatedKind.ATTENDANCE
    assert debit.related_id == attendance.id
    assert debit.reference == f"CHECKIN-{attendance.id}"

    class_response = await client.get(f"{API}/classes/{gym_class['id']}", headers=auth(admin_token))
    assert class_response.json()["data"]["current_enrollment"] == 1


@pytest.mark.asyncio
async def test_plain_check_in_costs_one_token(client, member):
    response = await client.post(f"{API}/attendance/checkin", headers=auth(member["access_token"]), json={
        "member_id": member["member_id"]
    })
    assert response.status_code == 201
    assert response.json()["data"]["remaining_tokens"] == 9


@pytest.mark.asyncio
async def test_double_check_in_rejected(client, member):
    headers = auth(member["access_token"])
    first = await client.post(f"{API}/attendance/checkin", headers=headers, json={"member_id": member["member_id"]})
    assert first.status_code == 201

    second = await client.post(f"{API}/attendance/checkin", headers=headers, json={"member_id": member["member_id"]})
    assert second.status_code == 409
    assert second.json()["error_code"] == "ERR_CONFLICT_CHECKED_IN"

    balance = await client.get(f"{API}/tokens/balance/{member['member_id']}", headers=headers)
    assert balance.json()["data"]["balance"] == 9


@pytest.mark.asyncio
async def test_insufficient_tokens_for_class(client, admin_token, gym, member):
    gym_id, _ = gym
    gym_class = await _create_class(client, admin_token, gym_id, token_cost=11)

    response = await client.post(f"{API}/attendance/checkin", headers=auth(member["access_token"]), json={
        "member_id": member["member_id"],
        "class_id": gym_class["id"]
    })
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_TOKENS_002"
    assert body["balance"] == 10
    assert body["requested"] == 11

    active = await client.get(f"{API}/attendance/active", headers=auth(admin_token))
    assert active.json()["data"] == []


@pytest.mark.asyncio
async def test_free_class_posts_no_ledger_entry(client, admin_token, gym, member, db_session):
    gym_id, _ = gym
    gym_class = await _create_class(client, admin_token, gym_id, token_cost=0)

    response = await client.post(f"{API}/classes/{gym_class['id']}/enroll", headers=auth(member["access_token"]))
    assert response.status_code == 201
    assert response.json()["data"]["remaining_tokens"] == 10

    result = await db_session.execute(
        select(TokenTransaction).where(TokenTransaction.type == TransactionType.DEBIT)
    )
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_inactive_member_cannot_check_in(client, admin_token, member):
    deactivate = await client.post(
        f"{API}/members/{member['member_id']}/deactivate", headers=auth(admin_token)
    )
    assert deactivate.status_code == 200

    response = await client.post(f"{API}/attendance/checkin", headers=auth(admin_token), json={
        "member_id": member["member_id"]
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_member_cannot_check_in_someone_else(client, member, other_member):
    response = await client.post(f"{API}/attendance/checkin", headers=auth(member["access_token"]), json={
        "member_id": other_member["member_id"]
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_gym_operator_checks_members_in(client, gym, member):
    _, owner_token = gym
    response = await client.post(f"{API}/attendance/checkin", headers=auth(owner_token), json={
        "member_id": member["member_id"]
    })
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_check_out_records_duration(client, member, db_session):
    headers = auth(member["access_token"])
    check_in = await client.post(f"{API}/attendance/checkin", headers=headers, json={"member_id": member["member_id"]})
    attendance_id = check_in.json()["data"]["attendance_id"]

    # Pretend the visit started 2.5 minutes ago
    attendance = await db_session.get(Attendance, attendance_id)
    attendance.check_in = utcnow() - timedelta(seconds=150)
    await db_session.commit()

    response = await client.post(f"{API}/attendance/checkout/{attendance_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["duration"] == 3

    again = await client.post(f"{API}/attendance/checkout/{attendance_id}", headers=headers)
    assert again.status_code == 409
    assert again.json()["error_code"] == "ERR_CONFLICT_CHECKED_OUT"

    # Check-out never moves tokens
    balance = await client.get(f"{API}/tokens/balance/{member['member_id']}", headers=headers)
    assert balance.json()["data"]["balance"] == 9


@pytest.mark.asyncio
async def test_check_out_unknown_attendance(client, admin_token):
    response = await client.post(f"{API}/attendance/checkout/999", headers=auth(admin_token))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duration_rounds_half_up():
    start = datetime(2024, 1, 1, 10, 0, 0)
    assert minutes_between(start, start + timedelta(seconds=90)) == 2
    assert minutes_between(start, start + timedelta(seconds=89)) == 1
    assert minutes_between(start, start + timedelta(minutes=45)) == 45
    assert minutes_between(start, None) is None


@pytest.mark.asyncio
async def test_enroll_then_leave_class(client, admin_token, gym, member):
    gym_id, _ = gym
    gym_class = await _create_class(client, admin_token, gym_id, max_capacity=2)
    headers = auth(member["access_token"])

    enroll = await client.post(f"{API}/classes/{gym_class['id']}/enroll", headers=headers)
    assert enroll.status_code == 201
    assert enroll.json()["data"]["current_enrollment"] == 1

    attendees = await client.get(f"{API}/classes/{gym_class['id']}/attendees", headers=auth(admin_token))
    assert [m["id"] for m in attendees.json()["data"]] == [member["member_id"]]

    leave = await client.post(f"{API}/classes/{gym_class['id']}/leave", headers=headers)
    assert leave.status_code == 200
    assert leave.json()["data"]["current_enrollment"] == 0

    # Leaving twice is an error and never drives enrollment negative
    again = await client.post(f"{API}/classes/{gym_class['id']}/leave", headers=headers)
    assert again.status_code == 400

    # Spent tokens are not returned
    balance = await client.get(f"{API}/tokens/balance/{member['member_id']}", headers=headers)
    assert balance.json()["data"]["balance"] == 7


@pytest.mark.asyncio
async def test_class_full(client, admin_token, gym, member, other_member):
    gym_id, _ = gym
    gym_class = await _create_class(client, admin_token, gym_id, max_capacity=1)

    first = await client.post(f"{API}/classes/{gym_class['id']}/enroll", headers=auth(member["access_token"]))
    assert first.status_code == 201

    second = await client.post(
        f"{API}/classes/{gym_class['id']}/enroll", headers=auth(other_member["access_token"])
    )
    assert second.status_code == 400
    assert second.json()["error_code"] == "ERR_CLASS_FULL"

    balance = await client.get(
        f"{API}/tokens/balance/{other_member['member_id']}", headers=auth(other_member["access_token"])
    )
    assert balance.json()["data"]["balance"] == 10


@pytest.mark.asyncio
async def test_history_and_stats(client, member, db_session):
    headers = auth(member["access_token"])
    check_in = await client.post(f"{API}/attendance/checkin", headers=headers, json={"member_id": member["member_id"]})
    attendance_id = check_in.json()["data"]["attendance_id"]

    attendance = await db_session.get(Attendance, attendance_id)
    attendance.check_in = utcnow() - timedelta(minutes=90)
    await db_session.commit()
    await client.post(f"{API}/attendance/checkout/{attendance_id}", headers=headers)

    history = await client.get(f"{API}/attendance/member/{member['member_id']}", headers=headers)
    assert history.status_code == 200
    assert history.json()["total"] == 1
    assert history.json()["data"][0]["duration_minutes"] == 90

    stats = await client.get(f"{API}/attendance/stats/{member['member_id']}", headers=headers)
    data = stats.json()["data"]
    assert data["total_visits"] == 1
    assert data["total_hours"] == 1.5
    assert data["tokens_spent"] == 1

    member_row = await db_session.get(Member, member["member_id"], populate_existing=True)
    assert member_row.check_in_count == 1
    assert member_row.last_check_in is not None
