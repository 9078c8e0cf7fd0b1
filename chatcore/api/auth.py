from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.db.session import get_db
from chatcore.api.deps import get_identity
from chatcore.api.schemas import MeOut
from chatcore.services.auth import Identity
from chatcore.services.users import upsert_user

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/sign-in", response_model=MeOut)
async def sign_in(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    # The provider already authenticated the user; we only mirror the profile.
    user = await upsert_user(db, identity)
    return MeOut(id=user.id, display_name=user.display_name, photo_url=user.photo_url, theme_preference=user.theme_preference, email=user.email)
