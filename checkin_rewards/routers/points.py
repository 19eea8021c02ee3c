from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_claims
from ..schemas import BalanceRead
from ..services.points import get_balance

router = APIRouter(prefix="/points", tags=["points"])

@router.get("/me/balance", response_model=BalanceRead)
async def my_balance(claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    account_id = str(claims["sub"])
    up = await get_balance(db, account_id)
    if not up:
        return BalanceRead(account_id=account_id, balance=0, updated_at=None)
    return BalanceRead(account_id=up.account_id, balance=up.balance, updated_at=up.updated_at)
