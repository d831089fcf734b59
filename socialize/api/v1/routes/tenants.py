from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import require_role
from socialize.core.permissions import ADMIN_ROLE
from socialize.db.sessions import get_db
from socialize.services.storage_service import StorageBackend, get_storage
from socialize.services.tenant_service import TenantService
from socialize.utils.dto.common import Envelope, ok
from socialize.utils.dto.tenant import TenantCreate, TenantResponse, TenantUpdate
from socialize.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_role(ADMIN_ROLE))])


@router.get("", response_model=Envelope[List[TenantResponse]])
async def list_tenants(db: AsyncSession = Depends(get_db)):
    return ok(await TenantService(db).list_tenants())


@router.post("", response_model=Envelope[TenantResponse], status_code=status.HTTP_201_CREATED)
async def create_tenant(payload: TenantCreate, db: AsyncSession = Depends(get_db)):
    tenant = await TenantService(db).create_tenant(payload)
    return ok(tenant, "Tenant created successfully")


@router.get("/{tenant_id}", response_model=Envelope[TenantResponse])
async def get_tenant(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return ok(await TenantService(db).get_tenant(tenant_id))


@router.put("/{tenant_id}", response_model=Envelope[TenantResponse])
async def update_tenant(tenant_id: str, payload: TenantUpdate, db: AsyncSession = Depends(get_db)):
    tenant = await TenantService(db).update_tenant(tenant_id, payload)
    return ok(tenant, "Tenant updated successfully")


@router.delete("/{tenant_id}", response_model=Envelope[None])
async def delete_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    await TenantService(db).delete_tenant(tenant_id, storage)
    logger.info(f"Tenant {tenant_id} deleted")
    return ok(message="Tenant deleted successfully")
