"""
Consumption Ledger — Queries for the external user-management service
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, require_admin
from app.db.database import get_db
from app.db.take_ops import user_has_records
from app.schemas.ledger import UserRecordsResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/has-records", response_model=UserRecordsResponse)
async def get_user_has_records(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Users owning consumption records must not be deleted."""
    return UserRecordsResponse(user_id=user_id, has_records=await user_has_records(db, user_id))
