import re
import unicodedata
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from socialize.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from socialize.core.permissions import SYSTEM_ROLE_SLUGS, validate_permissions
from socialize.db.models.role import Role, role_user
from socialize.db.models.user import User
from socialize.utils.dto.role import RoleCreate, RoleUpdate
from socialize.utils.logger import get_logger, log_database_operation

logger = get_logger("services.role_service")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Lowercase, transliterate to ASCII and join words with single hyphens.

    "Content Manager" -> "content-manager", "  Édition / Vidéo " -> "edition-video"
    """
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", ascii_value.lower()).strip("-")


def _slug_taken() -> ConflictError:
    return ConflictError("A role with this name already exists",
                         errors={"name": ["A role with this name already exists."]})


class RoleService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_roles(self) -> List[Role]:
        result = await self.db.execute(select(Role).order_by(Role.created_at))
        return list(result.scalars().all())

    async def get_role(self, role_id: str, with_users: bool = False) -> Role:
        stmt = select(Role).where(Role.id == role_id)
        if with_users:
            stmt = stmt.options(selectinload(Role.users))
        role = (await self.db.execute(stmt)).scalar_one_or_none()
        if not role:
            raise NotFoundError("Role not found")
        return role

    async def _slug_for(self, name: str, exclude_id: str = None) -> str:
        slug = slugify(name)
        if not slug:
            raise ValidationError.for_field("name", "The name must contain letters or digits.")

        stmt = select(Role.id).where(Role.slug == slug)
        if exclude_id:
            stmt = stmt.where(Role.id != exclude_id)
        if (await self.db.execute(stmt)).first():
            raise _slug_taken()
        return slug

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise _slug_taken()

    async def create_role(self, payload: RoleCreate) -> Role:
        permissions = validate_permissions(payload.permissions)
        slug = await self._slug_for(payload.name)

        role = Role(
            name=payload.name,
            slug=slug,
            description=payload.description,
            permissions=permissions,
        )
        self.db.add(role)
        await self._commit()
        await self.db.refresh(role)
        log_database_operation(logger, "INSERT", "roles", role.id)
        logger.info(f"Created role '{role.slug}'")
        return role

    async def update_role(self, role_id: str, payload: RoleUpdate) -> Role:
        role = await self.get_role(role_id)
        changes = payload.model_dump(exclude_unset=True)

        if changes.get("name") is not None and changes["name"] != role.name:
            # guards and seeds look system roles up by slug
            if role.slug in SYSTEM_ROLE_SLUGS:
                raise ForbiddenError("System roles cannot be renamed")
            role.slug = await self._slug_for(changes["name"], exclude_id=role.id)
            role.name = changes["name"]

        if "description" in changes:
            role.description = changes["description"]

        # replaced wholesale, no merge with the stored map
        if "permissions" in changes:
            role.permissions = validate_permissions(changes["permissions"])

        await self._commit()
        await self.db.refresh(role)
        log_database_operation(logger, "UPDATE", "roles", role.id)
        return role

    async def delete_role(self, role_id: str) -> None:
        role = await self.get_role(role_id)
        if role.slug in SYSTEM_ROLE_SLUGS:
            raise ForbiddenError("System roles cannot be deleted")

        await self.db.execute(delete(role_user).where(role_user.c.role_id == role.id))
        await self.db.execute(delete(Role).where(Role.id == role.id).execution_options(synchronize_session=False))
        await self.db.commit()
        log_database_operation(logger, "DELETE", "roles", role_id)
        logger.info(f"Deleted role '{role.slug}'")

    async def _get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def assign_role(self, role_id: str, user_id: str) -> None:
        """Attach ``role_id`` to ``user_id``. Attaching twice keeps one link."""
        role = await self.get_role(role_id)
        user = await self._get_user(user_id)

        exists = await self.db.execute(
            select(role_user.c.role_id).where(
                role_user.c.role_id == role.id,
                role_user.c.user_id == user.id,
            )
        )
        if exists.first():
            return

        try:
            await self.db.execute(role_user.insert().values(role_id=role.id, user_id=user.id))
            await self.db.commit()
        except IntegrityError:
            # concurrent assign inserted the same link
            await self.db.rollback()
            return
        log_database_operation(logger, "INSERT", "role_user", f"{role.id}:{user.id}")

    async def remove_role(self, role_id: str, user_id: str) -> None:
        role = await self.get_role(role_id)
        user = await self._get_user(user_id)

        await self.db.execute(
            delete(role_user).where(
                role_user.c.role_id == role.id,
                role_user.c.user_id == user.id,
            )
        )
        await self.db.commit()
        log_database_operation(logger, "DELETE", "role_user", f"{role.id}:{user.id}")
