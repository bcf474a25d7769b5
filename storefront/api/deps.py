# storefront/api/deps.py
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from storefront.domain.errors import ShopError
from storefront.domain.status import Role


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def get_current_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor:
    """
    Identity forwarded by the upstream authenticator (token checks happen there).
    Only USER and ADMIN can come from outside, SYSTEM is internal.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized: identity missing")

    try:
        user_id = int(x_user_id)
        role = Role((x_user_role or Role.USER.value).upper())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthorized: invalid identity")

    if user_id <= 0 or role == Role.SYSTEM:
        raise HTTPException(status_code=401, detail="Unauthorized: invalid identity")

    return Actor(user_id=user_id, role=role)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return actor


def to_http_error(e: ShopError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)
