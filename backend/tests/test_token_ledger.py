"""
Token ledger tests.

The cached member balance must always equal credits minus debits in the
ledger, and a failed write must leave both untouched.
"""

import pytest
from sqlalchemy import select, func

from backend.app.core.exceptions import (
    ConflictError, InsufficientBalanceError, ValidationError, ResourceNotFoundError
)
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.models.member import Member
from backend.app.models.token_transaction import TokenTransaction
from backend.app.models.token_enums import TransactionType, RelatedKind
from backend.tests.helpers import API, auth


async def _ledger_count(db, member_id):
    result = await db.execute(
        select(func.count(TokenTransaction.id)).where(TokenTransaction.member_id == member_id)
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_balance_matches_ledger_after_mixed_operations(member, db_session):
    member_id = member["member_id"]

    await TokenLedgerService.record_transaction(
        db_session, member_id, TransactionType.CREDIT, 25, "Top up", related=RelatedDocument.adjustment()
    )
    await TokenLedgerService.record_transaction(
        db_session, member_id, TransactionType.DEBIT, 7, "Spent", related=RelatedDocument.adjustment()
    )
    await TokenLedgerService.record_transaction(
        db_session, member_id, TransactionType.DEBIT, 3, "Spent again", related=RelatedDocument.adjustment()
    )

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.balance == 10 + 25 - 7 - 3
    assert balance.cached_balance == balance.balance
    assert balance.total_credits == 35
    assert balance.total_debits == 10
    assert balance.in_sync


@pytest.mark.asyncio
async def test_debit_beyond_balance_rejected(member, db_session):
    member_id = member["member_id"]

    with pytest.raises(InsufficientBalanceError):
        await TokenLedgerService.record_transaction(
            db_session, member_id, TransactionType.DEBIT, 11, "Too much"
        )

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.cached_balance == 10
    assert balance.balance == 10
    assert await _ledger_count(db_session, member_id) == 1


@pytest.mark.asyncio
async def test_debit_exact_balance_reaches_zero(member, db_session):
    member_id = member["member_id"]
    await TokenLedgerService.record_transaction(db_session, member_id, TransactionType.DEBIT, 10, "All in")

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.cached_balance == 0
    assert balance.in_sync


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 2.5, True])
async def test_invalid_amounts_rejected(member, db_session, amount):
    with pytest.raises(ValidationError):
        await TokenLedgerService.record_transaction(
            db_session, member["member_id"], TransactionType.CREDIT, amount, "Bad amount"
        )
    assert await _ledger_count(db_session, member["member_id"]) == 1


@pytest.mark.asyncio
async def test_invalid_type_and_description_rejected(member, db_session):
    with pytest.raises(ValidationError):
        await TokenLedgerService.record_transaction(db_session, member["member_id"], "refund", 1, "Bad type")
    with pytest.raises(ValidationError):
        await TokenLedgerService.record_transaction(
            db_session, member["member_id"], TransactionType.CREDIT, 1, "   "
        )


@pytest.mark.asyncio
async def test_unknown_member(db_session):
    with pytest.raises(ResourceNotFoundError):
        await TokenLedgerService.record_transaction(db_session, 404, TransactionType.CREDIT, 1, "Ghost")


@pytest.mark.asyncio
async def test_duplicate_reference_conflicts(member, db_session):
    """Retrying with the same reference is rejected and posts nothing twice."""
    member_id = member["member_id"]
    first = await TokenLedgerService.record_transaction(
        db_session, member_id, TransactionType.CREDIT, 5, "Promo", reference="PROMO-2024-01"
    )
    first_id = first.id

    with pytest.raises(ConflictError) as exc_info:
        await TokenLedgerService.record_transaction(
            db_session, member_id, TransactionType.CREDIT, 5, "Promo", reference="PROMO-2024-01"
        )
    assert exc_info.value.error_code == "ERR_CONFLICT_REFERENCE"
    assert exc_info.value.details["transaction_id"] == first_id

    balance = await TokenLedgerService.get_balance(db_session, member_id)
    assert balance.cached_balance == 15
    assert balance.in_sync


@pytest.mark.asyncio
async def test_generated_references_are_unique(member, db_session):
    first = await TokenLedgerService.record_transaction(
        db_session, member["member_id"], TransactionType.CREDIT, 1, "One"
    )
    second = await TokenLedgerService.record_transaction(
        db_session, member["member_id"], TransactionType.CREDIT, 1, "Two"
    )
    assert first.reference.startswith("TXN-")
    assert first.reference != second.reference


@pytest.mark.asyncio
async def test_failed_balance_update_rolls_back_ledger_row(member, db_session, mocker):
    """If the balance write fails after the ledger insert, neither survives."""
    member_id = member["member_id"]
    mocker.patch.object(
        TokenLedgerService,
        "_apply_balance_change",
        side_effect=RuntimeError("Simulated crash after ledger insert")
    )

    with pytest.raises(RuntimeError):
        await TokenLedgerService.record_transaction(
            db_session, member_id, TransactionType.CREDIT, 50, "Never lands"
        )

    mocker.stopall()
    assert await _ledger_count(db_session, member_id) == 1
    member_row = await db_session.get(Member, member_id, populate_existing=True)
    assert member_row.token_balance == 10


@pytest.mark.asyncio
async def test_reconcile_reports_drift(member, other_member, db_session):
    assert await TokenLedgerService.reconcile(db_session) == []

    member_row = await db_session.get(Member, member["member_id"])
    member_row.token_balance = 99
    await db_session.commit()

    drifts = await TokenLedgerService.reconcile(db_session)
    assert len(drifts) == 1
    assert drifts[0].member_id == member["member_id"]
    assert drifts[0].cached == 99
    assert drifts[0].ledger == 10


@pytest.mark.asyncio
async def test_admin_add_tokens(client, admin_token, member, db_session):
    """Admin credit of 20 on a balance of 5 leaves 25, attributed to the admin."""
    member_id = member["member_id"]
    await TokenLedgerService.record_transaction(db_session, member_id, TransactionType.DEBIT, 5, "Spend down")

    response = await client.post(f"{API}/tokens/add", headers=auth(admin_token), json={
        "member_id": member_id,
        "amount": 20,
        "description": "Loyalty bonus"
    })
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["new_balance"] == 25
    assert data["transaction"]["type"] == "credit"
    assert data["transaction"]["related_kind"] == RelatedKind.ADJUSTMENT.value

    me = await client.get(f"{API}/auth/me", headers=auth(admin_token))
    assert data["transaction"]["created_by_id"] == me.json()["data"]["id"]


@pytest.mark.asyncio
async def test_admin_add_tokens_rejects_fractional_amount(client, admin_token, member):
    response = await client.post(f"{API}/tokens/add", headers=auth(admin_token), json={
        "member_id": member["member_id"],
        "amount": 2.5
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_member_cannot_add_tokens(client, member):
    response = await client.post(f"{API}/tokens/add", headers=auth(member["access_token"]), json={
        "member_id": member["member_id"],
        "amount": 100
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_balance_endpoint_and_ownership(client, member, other_member):
    own = await client.get(
        f"{API}/tokens/balance/{member['member_id']}", headers=auth(member["access_token"])
    )
    assert own.status_code == 200
    assert own.json()["data"]["balance"] == 10
    assert own.json()["data"]["in_sync"] is True

    other = await client.get(
        f"{API}/tokens/balance/{other_member['member_id']}", headers=auth(member["access_token"])
    )
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_transactions_listing_is_scoped_for_members(client, admin_token, member, other_member):
    response = await client.get(
        f"{API}/tokens/transactions",
        params={"member_id": other_member["member_id"]},
        headers=auth(member["access_token"])
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert all(t["member_id"] == member["member_id"] for t in body["data"])

    everything = await client.get(f"{API}/tokens/transactions", headers=auth(admin_token))
    assert everything.json()["total"] == 2
    assert everything.json()["pages"] == 1


@pytest.mark.asyncio
async def test_transactions_filter_by_type(client, admin_token, member, db_session):
    await TokenLedgerService.record_transaction(
        db_session, member["member_id"], TransactionType.DEBIT, 2, "Spend"
    )
    response = await client.get(
        f"{API}/tokens/transactions", params={"type": "debit"}, headers=auth(admin_token)
    )
    body = response.json()
    assert body["total"] == 1
    assert body["data"][0]["amount"] == 2
