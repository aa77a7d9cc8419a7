"""Role gates for the tip API.

The caller's identity comes entirely from the bearer token; routes depend on
``CurrentUser`` for any signed-in user or on one of the ``Require*`` aliases.
"""

from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from app.core.security import decode_access_token


class UserRole(str, Enum):
    """User roles."""

    CUSTOMER = "customer"
    SERVER = "server"
    CHEF = "chef"
    MANAGER = "manager"
    OWNER = "owner"


MANAGEMENT_ROLES = frozenset({UserRole.MANAGER, UserRole.OWNER})


class TokenData:
    """The signed-in caller."""

    def __init__(self, user_id: int, email: str, role: UserRole, name: str = ""):
        self.id = user_id
        self.user_id = user_id
        self.email = email
        self.role = role
        self.name = name or email.split("@")[0]

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGEMENT_ROLES


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(request: Request) -> TokenData:
    """Resolve the caller from ``Authorization: Bearer <token>``."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    claims = decode_access_token(token) if scheme == "Bearer" and token else None
    if claims is None:
        raise _unauthorized("Not authenticated")

    try:
        return TokenData(
            user_id=int(claims["sub"]),
            email=claims["email"],
            role=UserRole(claims["role"]),
            name=claims.get("name") or "",
        )
    except (KeyError, ValueError, TypeError):
        raise _unauthorized("Invalid token claims")


def require_roles(*roles: UserRole):
    """Dependency that only lets the listed roles through."""
    allowed = frozenset(roles)
    allowed_names = ", ".join(sorted(r.value for r in allowed))

    async def role_checker(current_user: Annotated[TokenData, Depends(get_current_user)]) -> TokenData:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {allowed_names}",
            )
        return current_user

    return role_checker


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
RequireManager = Annotated[TokenData, Depends(require_roles(UserRole.MANAGER, UserRole.OWNER))]
RequireServerOrManager = Annotated[
    TokenData, Depends(require_roles(UserRole.SERVER, UserRole.MANAGER, UserRole.OWNER))
]
