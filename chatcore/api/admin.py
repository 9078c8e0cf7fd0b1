from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
import logging
import statistics

from chatcore.db.session import get_db
from chatcore.core.redis import get_redis
from chatcore.core.settings import Settings
from chatcore.api.deps import get_store, require_admin
from chatcore.api.schemas import LegacyImportIn, MessageOut, UserOut, user_out
from chatcore.models import Group, Message, User
from chatcore.services.groups import get_group
from chatcore.services.legacy import import_embedded
from chatcore.services.messages import MessageStore
from chatcore.services.users import delete_user, list_users

logger = logging.getLogger(__name__)

# the shared-secret gate applies to every route here
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

async def _request_metrics(settings: Settings) -> dict:
    if not (settings.metrics_enabled and settings.redis_url):
        return {}
    r = get_redis(settings.redis_url)
    try:
        samples = await r.lrange("metrics:latency_ms:last500", 0, 499) or []
        counts = await r.hgetall("metrics:counts") or {}
        status = await r.hgetall("metrics:status") or {}
    finally:
        await r.aclose()
    vals = [float(x) for x in samples if x]
    p50 = statistics.median(vals) if vals else None
    p95 = statistics.quantiles(vals, n=20)[-1] if len(vals) >= 40 else (max(vals) if vals else None)
    return {
        "latency_ms_p50": p50,
        "latency_ms_p95": p95,
        "requests_total": int(counts.get("requests", 0)),
        "status_counts": {k: int(v) for k, v in status.items()},
    }

@router.get("/overview")
async def overview(request: Request, db: AsyncSession = Depends(get_db)):
    users = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    messages = (await db.execute(select(func.count()).select_from(Message))).scalar_one()
    groups = (await db.execute(select(func.count()).select_from(Group))).scalar_one()
    try:
        metrics = await _request_metrics(request.app.state.settings)
    except Exception:
        # redis being down should not hide the counts
        logger.exception("metrics unavailable")
        metrics = {}
    return {"counts": {"users": users, "messages": messages, "groups": groups}, "metrics": metrics}

@router.get("/users", response_model=list[UserOut])
async def users(db: AsyncSession = Depends(get_db)):
    return [user_out(u) for u in await list_users(db)]

@router.get("/messages", response_model=list[MessageOut])
async def messages(limit: int = 500, store: MessageStore = Depends(get_store)):
    return [MessageOut.model_validate(m) for m in await store.list_all(limit=min(max(limit, 1), 1000))]

@router.delete("/messages/{message_id}")
async def remove_message(message_id: str, store: MessageStore = Depends(get_store)):
    await store.delete(message_id)
    return {"ok": True}

@router.delete("/users/{user_id}")
async def remove_user(user_id: str, store: MessageStore = Depends(get_store)):
    removed = await delete_user(store, user_id)
    return {"ok": True, "messages_deleted": removed}

@router.post("/groups/{group_id}/import")
async def import_legacy(group_id: str, data: LegacyImportIn, store: MessageStore = Depends(get_store)):
    await get_group(store.session, group_id)
    imported = await import_embedded(store, group_id, data.messages)
    return {"ok": True, "imported": len(imported)}
