import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Header
from jose import jwt, JWTError

from .errors import AuthError

# Tokens are issued by the hosted auth provider; we only verify them.
# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
AUDIENCE = os.getenv('JWT_AUDIENCE') or None


@dataclass(frozen=True)
class RequestContext:
    """Per-request identity passed explicitly into registrar and gateway calls"""
    user_id: str


def decode_token(token: str):
    try:
        options = {'verify_aud': AUDIENCE is not None}
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, options=options)
        return payload
    except JWTError:
        return None


def context_from_token(token: str) -> RequestContext:
    payload = decode_token(token)
    if not payload or not payload.get('sub'):
        raise AuthError()
    return RequestContext(user_id=str(payload['sub']))


async def get_current_user(authorization: Optional[str] = Header(None)) -> RequestContext:
    """FastAPI dependency: resolve the bearer token into a RequestContext"""
    if not authorization:
        raise AuthError('Authentication required')
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        raise AuthError('Authentication required')
    return context_from_token(token)
