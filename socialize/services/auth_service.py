from datetime import timedelta
from typing import Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import RequestContext
from socialize.core.config import settings
from socialize.core.errors import AuthenticationError, ConflictError, ValidationError
from socialize.core.permissions import USER_ROLE
from socialize.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_jwt_token,
    generate_token_id,
    hash_password,
    utcnow,
    verify_jwt_token,
    verify_password,
)
from socialize.db.models.auth_session import AuthSession
from socialize.db.models.role import Role
from socialize.db.models.tenant import Tenant
from socialize.db.models.user import User
from socialize.utils.dto.auth import (
    CurrentUserResponse,
    LoginRequest,
    RegisterRequest,
    TokenPair,
)
from socialize.utils.logger import get_logger, log_database_operation

logger = get_logger("services.auth_service")


def _email_taken() -> ConflictError:
    return ConflictError("The email has already been taken",
                         errors={"email": ["The email has already been taken."]})


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _issue_tokens(self, user: User) -> TokenPair:
        """Open a new AuthSession for ``user`` and sign both tokens against it."""
        now = utcnow()
        access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        session = AuthSession(
            id=generate_token_id(),
            user_id=user.id,
            expires_at=now + access_ttl,
            refresh_expires_at=now + refresh_ttl,
        )
        self.db.add(session)

        claims = {"sid": session.id, "tenant_id": user.tenant_id}
        return TokenPair(
            access_token=create_jwt_token(user.id, ACCESS_TOKEN_TYPE, access_ttl, claims),
            refresh_token=create_jwt_token(user.id, REFRESH_TOKEN_TYPE, refresh_ttl, claims),
            expires_at=session.expires_at,
        )

    async def register(self, payload: RegisterRequest) -> Tuple[User, TokenPair]:
        if payload.password != payload.password_confirmation:
            raise ValidationError.for_field("password", "The password confirmation does not match.")

        if not await self.db.get(Tenant, payload.tenant_id):
            raise ValidationError.for_field("tenant_id", "The selected tenant id is invalid.")

        email = payload.email.lower()
        if (await self.db.execute(select(User.id).where(User.email == email))).first():
            raise _email_taken()

        user = User(
            tenant_id=payload.tenant_id,
            name=payload.name,
            email=email,
            hashed_password=hash_password(payload.password),
        )

        # new accounts get the default member role when it has been seeded
        default_role = (await self.db.execute(select(Role).where(Role.slug == USER_ROLE))).scalar_one_or_none()
        if default_role:
            user.roles = [default_role]

        self.db.add(user)
        try:
            await self.db.flush()
            tokens = await self._issue_tokens(user)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise _email_taken()

        await self.db.refresh(user)
        log_database_operation(logger, "INSERT", "users", user.id)
        logger.info(f"Registered user {user.id} in tenant {user.tenant_id}")
        return user, tokens

    async def login(self, payload: LoginRequest) -> Tuple[User, TokenPair]:
        user = (await self.db.execute(
            select(User).where(User.email == payload.email.lower())
        )).scalar_one_or_none()

        if not user or not verify_password(payload.password, user.hashed_password):
            logger.warning("Failed login attempt")
            raise AuthenticationError("Invalid credentials")

        tokens = await self._issue_tokens(user)
        await self.db.commit()
        logger.info(f"User {user.id} logged in")
        return user, tokens

    async def refresh(self, refresh_token: str) -> Tuple[User, TokenPair]:
        """
        Exchange a refresh token for a new pair.

        The old session is revoked with a conditional update, so a refresh
        token can be used at most once even under concurrent requests.
        """
        payload = verify_jwt_token(refresh_token, REFRESH_TOKEN_TYPE)
        if not payload or not payload.get("sid"):
            raise AuthenticationError("Invalid refresh token")

        now = utcnow()
        result = await self.db.execute(
            update(AuthSession)
            .where(
                AuthSession.id == payload["sid"],
                AuthSession.user_id == payload["sub"],
                AuthSession.revoked_at.is_(None),
                AuthSession.refresh_expires_at > now,
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise AuthenticationError("Refresh token expired or revoked")

        user = await self.db.get(User, payload["sub"])
        if not user:
            await self.db.rollback()
            raise AuthenticationError("Invalid refresh token")

        tokens = await self._issue_tokens(user)
        await self.db.commit()
        logger.info(f"Rotated session for user {user.id}")
        return user, tokens

    async def logout(self, context: RequestContext) -> None:
        await self.db.execute(
            update(AuthSession)
            .where(AuthSession.id == context.session_id, AuthSession.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(f"User {context.user_id} logged out")

    async def current_user(self, context: RequestContext) -> CurrentUserResponse:
        user = context.user
        return CurrentUserResponse(
            id=user.id,
            tenant_id=user.tenant_id,
            name=user.name,
            email=user.email,
            created_at=user.created_at,
            roles=sorted(context.roles),
            capabilities=sorted(capability.value for capability in context.capabilities),
        )
