from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.errors import ConflictError, NotFoundError
from socialize.db.models.auth_session import AuthSession
from socialize.db.models.content_upload import ContentUpload
from socialize.db.models.role import role_user
from socialize.db.models.social_platform import SocialPlatform
from socialize.db.models.tenant import Tenant
from socialize.db.models.user import User
from socialize.services.storage_service import StorageBackend
from socialize.utils.dto.tenant import TenantCreate, TenantUpdate
from socialize.utils.logger import get_logger, log_database_operation

logger = get_logger("services.tenant_service")


class TenantService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tenants(self) -> List[Tenant]:
        result = await self.db.execute(select(Tenant).order_by(Tenant.created_at))
        return list(result.scalars().all())

    async def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = await self.db.get(Tenant, tenant_id)
        if not tenant:
            raise NotFoundError("Tenant not found")
        return tenant

    async def _ensure_domain_available(self, domain: str, exclude_id: str = None) -> None:
        stmt = select(Tenant.id).where(Tenant.domain == domain)
        if exclude_id:
            stmt = stmt.where(Tenant.id != exclude_id)
        if (await self.db.execute(stmt)).first():
            raise ConflictError("The domain has already been taken",
                                errors={"domain": ["The domain has already been taken."]})

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            # lost a race on the unique index
            await self.db.rollback()
            raise ConflictError("The domain has already been taken",
                                errors={"domain": ["The domain has already been taken."]})

    async def create_tenant(self, payload: TenantCreate) -> Tenant:
        await self._ensure_domain_available(payload.domain)

        tenant = Tenant(
            name=payload.name,
            domain=payload.domain,
            database_name=payload.database_name,
            settings=payload.settings or {},
            is_active=True if payload.is_active is None else payload.is_active,
        )
        self.db.add(tenant)
        await self._commit()
        await self.db.refresh(tenant)
        log_database_operation(logger, "INSERT", "tenants", tenant.id)
        logger.info(f"Created tenant {tenant.id} ({tenant.domain})")
        return tenant

    async def update_tenant(self, tenant_id: str, payload: TenantUpdate) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        changes = payload.model_dump(exclude_unset=True)

        if changes.get("domain") is not None:
            await self._ensure_domain_available(changes["domain"], exclude_id=tenant.id)

        for field in ("name", "domain", "database_name", "settings", "is_active"):
            if field in changes and (changes[field] is not None or field == "database_name"):
                setattr(tenant, field, changes[field])

        await self._commit()
        await self.db.refresh(tenant)
        log_database_operation(logger, "UPDATE", "tenants", tenant.id)
        return tenant

    async def delete_tenant(self, tenant_id: str, storage: StorageBackend) -> None:
        """
        Delete a tenant with its users, platforms and uploads.

        Rows go first inside the open transaction, then the stored files. If a
        file cannot be deleted the whole transaction is rolled back.
        """
        tenant = await self.get_tenant(tenant_id)

        platform_ids = select(SocialPlatform.id).where(SocialPlatform.tenant_id == tenant.id)
        user_ids = select(User.id).where(User.tenant_id == tenant.id)
        upload_filter = (ContentUpload.social_platform_id.in_(platform_ids)) | (ContentUpload.user_id.in_(user_ids))

        keys = (await self.db.execute(select(ContentUpload.file_path).where(upload_filter))).scalars().all()

        statements = [
            delete(ContentUpload).where(upload_filter),
            delete(SocialPlatform).where(SocialPlatform.tenant_id == tenant.id),
            delete(role_user).where(role_user.c.user_id.in_(user_ids)),
            delete(AuthSession).where(AuthSession.user_id.in_(user_ids)),
            delete(User).where(User.tenant_id == tenant.id),
            delete(Tenant).where(Tenant.id == tenant.id),
        ]

        try:
            for stmt in statements:
                await self.db.execute(stmt.execution_options(synchronize_session=False))

            for key in keys:
                await storage.delete(key)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        log_database_operation(logger, "DELETE", "tenants", tenant_id)
        logger.info(f"Deleted tenant {tenant_id} and {len(keys)} stored files")
