from dataclasses import dataclass
from typing import FrozenSet, Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from socialize.core.errors import AuthenticationError, ForbiddenError
from socialize.core.permissions import ADMIN_ROLE, Capability, capabilities_for
from socialize.core.security import ACCESS_TOKEN_TYPE, utcnow, verify_jwt_token
from socialize.db.models.auth_session import AuthSession
from socialize.db.models.user import User
from socialize.db.sessions import get_db


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller of a single request."""

    user: User
    tenant_id: str
    roles: FrozenSet[str]
    capabilities: FrozenSet[Capability]
    session_id: str

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def can(self, capability: Capability) -> bool:
        return self.is_admin or capability in self.capabilities


def build_context(user: User, session_id: str) -> RequestContext:
    """Context for ``user``; its roles must already be loaded."""
    return RequestContext(
        user=user,
        tenant_id=user.tenant_id,
        roles=frozenset(role.slug for role in user.roles),
        capabilities=capabilities_for(role.permissions for role in user.roles),
        session_id=session_id,
    )


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Authorization header required")
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid Authorization header format")
    return authorization[len("Bearer "):]


async def get_current_context(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """
    Resolve the bearer access token into a RequestContext.

    The token must carry a session id whose AuthSession row is neither revoked
    nor expired, so logging out invalidates tokens before their ``exp``.
    """
    payload = verify_jwt_token(_bearer_token(authorization), ACCESS_TOKEN_TYPE)
    if not payload or not payload.get("sid"):
        raise AuthenticationError("Invalid or expired token")

    session = (await db.execute(
        select(AuthSession).where(
            AuthSession.id == payload["sid"],
            AuthSession.user_id == payload["sub"],
            AuthSession.revoked_at.is_(None),
            AuthSession.expires_at > utcnow(),
        )
    )).scalar_one_or_none()
    if not session:
        raise AuthenticationError("Session expired or revoked")

    user = (await db.execute(
        select(User).options(selectinload(User.roles)).where(User.id == payload["sub"])
    )).scalar_one_or_none()
    if not user:
        raise AuthenticationError("Invalid or expired token")

    return build_context(user, session.id)


def require_role(slug: str):
    async def dependency(context: RequestContext = Depends(get_current_context)) -> RequestContext:
        if slug not in context.roles:
            raise ForbiddenError(f"The '{slug}' role is required")
        return context

    return dependency


def require_capability(capability: Capability):
    async def dependency(context: RequestContext = Depends(get_current_context)) -> RequestContext:
        if not context.can(capability):
            raise ForbiddenError(f"Missing permission '{capability.value}'")
        return context

    return dependency
