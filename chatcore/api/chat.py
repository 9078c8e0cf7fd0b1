from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.core.ratelimit import limiter
from chatcore.core.settings import settings
from chatcore.db.session import get_db
from chatcore.api.deps import get_current_user_id, get_store
from chatcore.api.schemas import MessageIn, MessageOut, ReadOut, SendOut
from chatcore.services.attachments import attachment_for_send
from chatcore.services.identity import resolve_direct_key
from chatcore.services.messages import MessageStore
from chatcore.services.users import get_user

router = APIRouter(tags=["chat"])

@router.get("/chats/{peer_id}/messages", response_model=list[MessageOut])
async def messages(peer_id: str, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store)):
    key = resolve_direct_key(me, peer_id)
    return [MessageOut.model_validate(m) for m in await store.list_ordered(key)]

@router.post("/chats/{peer_id}/messages", response_model=SendOut)
@limiter.limit(settings.rate_limit_send)
async def send(request: Request, peer_id: str, data: MessageIn, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store), db: AsyncSession = Depends(get_db)):
    key = resolve_direct_key(me, peer_id)
    await get_user(db, peer_id)
    cfg = request.app.state.settings
    attachment, dropped = await attachment_for_send(data.attachment_b64, data.text, cfg.attachment_max_bytes, cfg.attachment_quality)
    msg = await store.append(key, me, data.text, reply_to_id=data.reply_to_id, attachment=attachment)
    return SendOut(message=MessageOut.model_validate(msg), attachment_dropped=dropped)

@router.post("/chats/{peer_id}/read", response_model=list[str])
async def read_conversation(peer_id: str, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store)):
    # opening a chat marks everything the peer sent as read
    return await store.mark_conversation_read(resolve_direct_key(me, peer_id), me)

@router.post("/messages/{message_id}/read", response_model=ReadOut)
async def read_message(message_id: str, me: str = Depends(get_current_user_id), store: MessageStore = Depends(get_store)):
    return ReadOut(changed=await store.mark_read(message_id, me))
