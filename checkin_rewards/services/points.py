from __future__ import annotations
import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..models import PointBalance, PointsLedger, utcnow

async def ensure_account(db: AsyncSession, account_id: str) -> None:
    """Create a zero balance row if missing. Commits on its own."""
    exists = (await db.execute(
        select(PointBalance.id).where(PointBalance.account_id == account_id)
    )).scalar_one_or_none()
    if exists is not None:
        return
    db.add(PointBalance(account_id=account_id, balance=0))
    try:
        await db.commit()
    except IntegrityError:
        # another request created it first
        await db.rollback()

async def credit(
    db: AsyncSession, *, account_id: str, amount: int, reason: str, checkin_id: uuid.UUID | None = None
) -> None:
    """
    Relative increment plus ledger row, inside the caller's transaction.
    Never reads the balance; other writers may be moving it concurrently.
    """
    res = await db.execute(
        update(PointBalance)
        .where(PointBalance.account_id == account_id)
        .values(balance=PointBalance.balance + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise LookupError(f"no point balance for account {account_id}")
    db.add(PointsLedger(account_id=account_id, delta=amount, reason=reason, checkin_id=checkin_id))

async def get_balance(db: AsyncSession, account_id: str) -> PointBalance | None:
    return (await db.execute(
        select(PointBalance).where(PointBalance.account_id == account_id)
    )).scalar_one_or_none()
