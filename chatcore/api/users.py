from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.db.session import get_db
from chatcore.api.deps import get_current_user_id
from chatcore.api.schemas import MeOut, ThemeIn, UserOut, user_out
from chatcore.services.users import get_user, list_users, set_theme

router = APIRouter(prefix="/users", tags=["users"])

@router.get("", response_model=list[UserOut])
async def users(me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return [user_out(u) for u in await list_users(db) if u.id != me]

@router.get("/me", response_model=MeOut)
async def whoami(me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    user = await get_user(db, me)
    return MeOut(**user_out(user).model_dump(), email=user.email)

@router.patch("/me/theme", response_model=UserOut)
async def update_theme(data: ThemeIn, me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return user_out(await set_theme(db, me, data.theme))

@router.get("/{user_id}", response_model=UserOut)
async def profile(user_id: str, me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return user_out(await get_user(db, user_id))
