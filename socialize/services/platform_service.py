from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import RequestContext
from socialize.core.errors import ForbiddenError, NotFoundError, ValidationError
from socialize.db.models.content_upload import ContentUpload
from socialize.db.models.social_platform import SocialPlatform
from socialize.db.models.tenant import Tenant
from socialize.services.storage_service import StorageBackend
from socialize.utils.dto.social_platform import SocialPlatformCreate, SocialPlatformUpdate
from socialize.utils.logger import get_logger, log_database_operation

logger = get_logger("services.platform_service")


class PlatformService:
    """
    Connected social accounts, scoped to the caller's tenant.

    Admins see and manage every tenant's platforms; other members only their
    own tenant's.
    """

    def __init__(self, db: AsyncSession, context: RequestContext):
        self.db = db
        self.context = context

    def _ensure_tenant_access(self, tenant_id: str) -> None:
        if not self.context.is_admin and tenant_id != self.context.tenant_id:
            raise ForbiddenError("This platform belongs to another tenant")

    async def _ensure_tenant_exists(self, tenant_id: str) -> None:
        if not await self.db.get(Tenant, tenant_id):
            raise ValidationError.for_field("tenant_id", "The selected tenant id is invalid.")

    async def list_platforms(self, tenant_id: Optional[str] = None) -> List[SocialPlatform]:
        stmt = select(SocialPlatform).order_by(SocialPlatform.created_at)
        if not self.context.is_admin:
            if tenant_id and tenant_id != self.context.tenant_id:
                raise ForbiddenError("Cannot list platforms of another tenant")
            tenant_id = self.context.tenant_id
        if tenant_id:
            stmt = stmt.where(SocialPlatform.tenant_id == tenant_id)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_platform(self, platform_id: str) -> SocialPlatform:
        platform = await self.db.get(SocialPlatform, platform_id)
        if not platform:
            raise NotFoundError("Social platform not found")
        self._ensure_tenant_access(platform.tenant_id)
        return platform

    async def create_platform(self, payload: SocialPlatformCreate) -> SocialPlatform:
        self._ensure_tenant_access(payload.tenant_id)
        await self._ensure_tenant_exists(payload.tenant_id)

        platform = SocialPlatform(
            tenant_id=payload.tenant_id,
            name=payload.name,
            platform_type=payload.platform_type,
            credentials=payload.credentials,
            settings=payload.settings or {},
            enabled=True if payload.enabled is None else payload.enabled,
        )
        self.db.add(platform)
        await self.db.commit()
        await self.db.refresh(platform)
        log_database_operation(logger, "INSERT", "social_platforms", platform.id)
        logger.info(f"Connected {platform.platform_type} platform {platform.id} for tenant {platform.tenant_id}")
        return platform

    async def update_platform(self, platform_id: str, payload: SocialPlatformUpdate) -> SocialPlatform:
        platform = await self.get_platform(platform_id)
        changes = payload.model_dump(exclude_unset=True)

        new_tenant = changes.get("tenant_id")
        if new_tenant is not None and new_tenant != platform.tenant_id:
            if not self.context.is_admin:
                raise ForbiddenError("Only administrators can move a platform to another tenant")
            await self._ensure_tenant_exists(new_tenant)
            platform.tenant_id = new_tenant

        for field in ("name", "platform_type", "settings", "enabled"):
            if changes.get(field) is not None:
                setattr(platform, field, changes[field])

        # explicit null clears stored credentials
        if "credentials" in changes:
            platform.credentials = changes["credentials"]

        await self.db.commit()
        await self.db.refresh(platform)
        log_database_operation(logger, "UPDATE", "social_platforms", platform.id)
        return platform

    async def delete_platform(self, platform_id: str, storage: StorageBackend) -> None:
        """
        Delete a platform and its uploads.

        Upload rows are removed inside the open transaction, stored files are
        deleted next and the transaction commits last; a storage failure rolls
        every row back.
        """
        platform = await self.get_platform(platform_id)

        keys = (await self.db.execute(
            select(ContentUpload.file_path).where(ContentUpload.social_platform_id == platform.id)
        )).scalars().all()

        try:
            await self.db.execute(
                delete(ContentUpload)
                .where(ContentUpload.social_platform_id == platform.id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(SocialPlatform)
                .where(SocialPlatform.id == platform.id)
                .execution_options(synchronize_session=False)
            )

            for key in keys:
                await storage.delete(key)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        log_database_operation(logger, "DELETE", "social_platforms", platform_id)
        logger.info(f"Deleted platform {platform_id} with {len(keys)} uploads")
