"""
Concurrency Tests.

Validates that races on the same member or class cannot overspend tokens or
overfill a class. Each competing operation uses its own session, as concurrent
requests would.
"""

import asyncio

import pytest
from sqlalchemy import select, func

from backend.app.core.exceptions import InsufficientBalanceError, ClassFullError, ConflictError
from backend.app.domain.attendance.attendance_service import AttendanceService
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.models.member import Member
from backend.app.models.user import User
from backend.app.models.gym_class import GymClass
from backend.app.models.class_enums import WeekDay
from backend.app.models.token_enums import TransactionType
from backend.app.services.member_locks import KeyedLockRegistry, lock_registry
from backend.app.services.membership import register_member
from backend.tests.helpers import TestingSessionLocal


async def _debit(member_id: int, amount: int):
    async with TestingSessionLocal() as session:
        return await TokenLedgerService.record_transaction(
            session, member_id, TransactionType.DEBIT, amount, "Concurrent debit"
        )


async def _enroll(member_id: int, class_id: int):
    async with TestingSessionLocal() as session:
        return await AttendanceService.check_in(session, member_id=member_id, class_id=class_id)


@pytest.mark.asyncio
async def test_concurrent_debits_cannot_overspend(member, db_session):
    """Two debits of 7 against a balance of 10: exactly one succeeds."""
    member_id = member["member_id"]

    results = await asyncio.gather(
        _debit(member_id, 7),
        _debit(member_id, 7),
        return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientBalanceError)

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.cached_balance == 3
    assert balance.in_sync


@pytest.mark.asyncio
async def test_many_small_debits_stop_at_zero(member, db_session):
    member_id = member["member_id"]

    results = await asyncio.gather(*[_debit(member_id, 3) for _ in range(5)], return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(successes) == 3

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.cached_balance == 1
    assert balance.in_sync


@pytest.mark.asyncio
async def test_concurrent_enrollment_respects_capacity(client, gym, member, other_member, db_session):
    """Two members race for the last seat: one gets it, the other pays nothing."""
    gym_id, _ = gym
    gym_class = GymClass(
        gym_id=gym_id,
        name="Tiny Class",
        day=WeekDay.FRIDAY,
        start_time="06:00",
        duration_minutes=30,
        max_capacity=1,
        token_cost=2,
    )
    db_session.add(gym_class)
    await db_session.commit()

    results = await asyncio.gather(
        _enroll(member["member_id"], gym_class.id),
        _enroll(other_member["member_id"], gym_class.id),
        return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ClassFullError)

    refreshed = await db_session.get(GymClass, gym_class.id, populate_existing=True)
    assert refreshed.current_enrollment == 1

    assert await TokenLedgerService.reconcile(db_session) == []
    balances = sorted([
        (await TokenLedgerService.get_balance(db_session, member["member_id"])).cached_balance,
        (await TokenLedgerService.get_balance(db_session, other_member["member_id"])).cached_balance,
    ])
    assert balances == [8, 10]


@pytest.mark.asyncio
async def test_lock_registry_serializes_same_key():
    registry = KeyedLockRegistry()
    order = []

    async def worker(name):
        async with registry.hold(("member", 1)):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (
        ["a-start", "a-end", "b-start", "b-end"],
        ["b-start", "b-end", "a-start", "a-end"],
    )
    # Released locks are dropped from the registry
    assert registry.held_keys() == []
    assert registry._locks == {}


@pytest.mark.asyncio
async def test_lock_registry_allows_different_keys_in_parallel():
    registry = KeyedLockRegistry()
    inside = []

    async def worker(member_id):
        async with registry.hold(("member", member_id)):
            inside.append(member_id)
            await asyncio.sleep(0.01)
            # Both workers are inside at the same time
            assert len(inside) == 2

    await asyncio.gather(worker(1), worker(2))


@pytest.mark.asyncio
async def test_global_registry_released_after_operations(member):
    await _debit(member["member_id"], 1)
    assert lock_registry.held_keys() == []


async def _register(email: str):
    async with TestingSessionLocal() as session:
        return await register_member(session, name="Racer", email=email, password="password123")


@pytest.mark.asyncio
async def test_concurrent_registrations_get_distinct_numbers(db_session):
    results = await asyncio.gather(
        _register("racer1@test.com"),
        _register("racer2@test.com"),
        _register("racer3@test.com"),
    )

    numbers = [member.membership_number for _, member in results]
    assert len(set(numbers)) == 3
    assert await TokenLedgerService.reconcile(db_session) == []


@pytest.mark.asyncio
async def test_concurrent_duplicate_email_is_a_conflict(db_session):
    results = await asyncio.gather(
        _register("twin@test.com"),
        _register("twin@test.com"),
        return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ConflictError)
    assert failures[0].error_code == "ERR_CONFLICT_EMAIL"

    count = await db_session.execute(select(func.count(Member.id)))
    assert count.scalar() == 1


@pytest.mark.asyncio
async def test_registration_retries_taken_membership_number(member, db_session, mocker):
    """A number grabbed by another process is retried instead of failing the request."""
    existing = await db_session.get(Member, member["member_id"])
    taken = existing.membership_number
    mocker.patch(
        "backend.app.services.membership.next_membership_number",
        side_effect=[taken, "MEM-209901-0001"],
    )

    user, new_member = await _register("late@test.com")
    assert new_member.membership_number == "MEM-209901-0001"
    assert new_member.token_balance == 10

    users = await db_session.execute(select(func.count(User.id)).where(User.email == "late@test.com"))
    assert users.scalar() == 1


@pytest.mark.asyncio
async def test_registration_gives_up_after_repeated_clashes(member, db_session, mocker):
    existing = await db_session.get(Member, member["member_id"])
    mocker.patch(
        "backend.app.services.membership.next_membership_number",
        return_value=existing.membership_number,
    )

    with pytest.raises(ConflictError):
        await _register("unlucky@test.com")

    users = await db_session.execute(select(func.count(User.id)).where(User.email == "unlucky@test.com"))
    assert users.scalar() == 0
