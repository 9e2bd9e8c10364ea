from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError as PydanticValidationError

from app.depot.core.context import ActorContext, build_actor_context, require_actor
from app.depot.core.error_catalog import UnauthenticatedCaller
from app.depot.core.security import TokenData, bearer_scheme, decode_token


def get_current_token_data(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenData:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedCaller("bearer token is required")
    try:
        payload = decode_token(credentials.credentials)
        return TokenData(**payload)
    except (JWTError, PydanticValidationError, TypeError) as exc:
        raise UnauthenticatedCaller("invalid bearer token") from exc


def require_actor_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> ActorContext:
    context = build_actor_context(
        actor_id=token_data.sub,
        ip_address=request.client.host if request.client else None,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    require_actor(context)
    request.state.actor = context
    request.state.user_id = context.actor_id
    return context


__all__ = [
    "get_current_token_data",
    "require_actor_context",
]
