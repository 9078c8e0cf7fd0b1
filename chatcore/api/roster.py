from __future__ import annotations
from typing import Literal
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.db.session import get_db
from chatcore.api.deps import get_current_user_id
from chatcore.api.schemas import RosterOut, RosterUserOut, group_out, user_out
from chatcore.services.roster import build_roster

router = APIRouter(tags=["roster"])

@router.get("/roster", response_model=RosterOut)
async def roster(
    sort: Literal["name", "unread"] = "name",
    order: Literal["asc", "desc"] = "asc",
    me: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    r = await build_roster(db, me, sort=sort, descending=(order == "desc"))
    return RosterOut(
        users=[RosterUserOut(user=user_out(e.user), conversation_key=e.conversation_key, unread_count=e.unread_count) for e in r.users],
        groups=[group_out(g) for g in r.groups],
    )
