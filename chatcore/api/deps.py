from __future__ import annotations
from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.db.session import get_db
from chatcore.services.auth import Identity, identity_from_token
from chatcore.services.messages import MessageStore

bearer = HTTPBearer(auto_error=False)

async def get_identity(cred: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Identity:
    # Unauthenticated propagates to the app's ChatError handler (401)
    return identity_from_token(cred.credentials if cred else None)

async def get_current_user_id(identity: Identity = Depends(get_identity)) -> str:
    return identity.id

async def get_store(request: Request, db: AsyncSession = Depends(get_db)) -> MessageStore:
    return MessageStore(db, publisher=request.app.state.broker)

def require_admin(request: Request, x_admin_token: str | None = Header(default=None)) -> None:
    if not x_admin_token or x_admin_token != request.app.state.settings.admin_token:
        raise HTTPException(status_code=403, detail="Forbidden")
