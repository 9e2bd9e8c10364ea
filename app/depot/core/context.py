from dataclasses import dataclass

from app.depot.core.error_catalog import UnauthenticatedCaller


@dataclass(frozen=True)
class ActorContext:
    actor_id: str | None
    ip_address: str | None = None
    trace_id: str = ""


def build_actor_context(
    *,
    actor_id: str | None,
    ip_address: str | None = None,
    trace_id: str = "",
) -> ActorContext:
    return ActorContext(
        actor_id=actor_id,
        ip_address=ip_address,
        trace_id=trace_id,
    )


def require_actor(actor: ActorContext | None) -> ActorContext:
    if actor is None or not actor.actor_id or not str(actor.actor_id).strip():
        raise UnauthenticatedCaller("actor identifier is required")
    return actor

