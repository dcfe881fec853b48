import jwt
from fastapi import Header, Request

from .exceptions import AuthException
from .service import ChatService


def require_user_id(request: Request, authorization: str = Header(None)) -> str:
    """Resolve the caller from an ``Authorization: Bearer <jwt>`` header."""
    if not authorization:
        raise AuthException("missing authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthException("invalid authorization header")

    try:
        payload = jwt.decode(token.strip(), request.app.state.settings.jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise AuthException("token expired")
    except jwt.InvalidTokenError:
        raise AuthException("invalid token")

    user_id = payload.get("user_id")
    if user_id is None or str(user_id) == "":
        raise AuthException("invalid token payload")
    return str(user_id)


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.service
