from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from chatcore.core.settings import settings
from chatcore.errors import Unauthenticated

@dataclass(frozen=True)
class Identity:
    """What the identity provider vouches for. Credentials never reach us."""
    id: str
    display_name: str | None = None
    photo_url: str | None = None
    email: str | None = None

def create_access_token(sub: str, name: str | None = None, picture: str | None = None, email: str | None = None) -> str:
    # the identity provider's side; used by tests and local tooling
    now = datetime.now(timezone.utc)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
    }
    for claim, value in (("name", name), ("picture", picture), ("email", email)):
        if value is not None:
            payload[claim] = value
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], issuer=settings.jwt_issuer)

def identity_from_token(token: str | None) -> Identity:
    if not token:
        raise Unauthenticated("Missing token")
    try:
        claims = decode_token(token)
    except JWTError as exc:
        raise Unauthenticated("Invalid token") from exc
    sub = claims.get("sub")
    if not sub:
        raise Unauthenticated("Invalid token")
    return Identity(id=str(sub), display_name=claims.get("name"), photo_url=claims.get("picture"), email=claims.get("email"))
