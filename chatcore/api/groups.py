from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.core.ratelimit import limiter
from chatcore.core.settings import settings
from chatcore.db.session import get_db
from chatcore.api.deps import get_current_user_id, get_store
from chatcore.api.schemas import GroupCreateIn, GroupDetailOut, GroupMemberOut, GroupOut, MessageIn, MessageOut, SendOut, group_out
from chatcore.services.attachments import attachment_for_send
from chatcore.services.groups import create_group, get_visible_group, member_names, require_member
from chatcore.services.identity import resolve_group_key
from chatcore.services.messages import MessageStore
from chatcore.services.roster import visible_groups

router = APIRouter(prefix="/groups", tags=["groups"])

@router.post("", response_model=GroupOut, status_code=201)
async def create(data: GroupCreateIn, me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return group_out(await create_group(db, me, data.member_ids, data.name))

@router.get("", response_model=list[GroupOut])
async def list_groups(me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return [group_out(g) for g in await visible_groups(db, me)]

@router.get("/{group_id}", response_model=GroupDetailOut)
async def detail(group_id: str, me: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    group = await get_visible_group(db, group_id, me)
    members = [GroupMemberOut(id=uid, display_name=name) for uid, name in await member_names(db, group)]
    return GroupDetailOut(**group_out(group).model_dump(), members=members, can_send=me in group.member_ids)

@router.get("/{group_id}/messages", response_model=list[MessageOut])
async def messages(group_id: str, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store)):
    await get_visible_group(store.session, group_id, me)
    return [MessageOut.model_validate(m) for m in await store.list_ordered(resolve_group_key(group_id))]

@router.post("/{group_id}/messages", response_model=SendOut)
@limiter.limit(settings.rate_limit_send)
async def send(request: Request, group_id: str, data: MessageIn, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store)):
    group = await get_visible_group(store.session, group_id, me)
    require_member(group, me)
    cfg = request.app.state.settings
    attachment, dropped = await attachment_for_send(data.attachment_b64, data.text, cfg.attachment_max_bytes, cfg.attachment_quality)
    # one row per message; no read-modify-write of a shared array
    msg = await store.append(resolve_group_key(group_id), me, data.text, reply_to_id=data.reply_to_id, attachment=attachment, track_reads=False)
    return SendOut(message=MessageOut.model_validate(msg), attachment_dropped=dropped)
