from fastapi import Depends, Header, HTTPException, status

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.db import get_session
from booking.models.appointment_history import Actor

__all__ = ["get_session", "get_clock", "get_rules", "get_current_actor", "get_current_user_id", "require_admin"]


def get_clock() -> Clock:
    return system_clock


def get_rules() -> BusinessRules:
    return get_business_rules()


def get_current_actor(
    x_user_id: int | None = Header(default=None, alias="X-User-Id"),
    x_actor_name: str | None = Header(default=None, alias="X-Actor-Name"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
) -> Actor:
    """Identity forwarded by the upstream auth layer; anonymous callers act as System."""
    return Actor(
        id=x_user_id,
        name=x_actor_name or (f"User {x_user_id}" if x_user_id else "System"),
        is_admin=(x_actor_role or "").lower() == "admin",
    )


def get_current_user_id(actor: Actor = Depends(get_current_actor)) -> int:
    if actor.id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return actor.id


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to manage appointments",
        )
    return actor
