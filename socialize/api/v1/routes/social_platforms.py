from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import RequestContext, get_current_context, require_capability
from socialize.core.permissions import Capability
from socialize.db.sessions import get_db
from socialize.services.platform_service import PlatformService
from socialize.services.storage_service import StorageBackend, get_storage
from socialize.utils.dto.common import Envelope, ok
from socialize.utils.dto.social_platform import (
    SocialPlatformCreate,
    SocialPlatformResponse,
    SocialPlatformUpdate,
)

router = APIRouter()

can_manage = require_capability(Capability.manage_social_platforms)


@router.get("", response_model=Envelope[List[SocialPlatformResponse]])
async def list_platforms(
    tenant_id: Optional[str] = Query(None),
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
):
    return ok(await PlatformService(db, context).list_platforms(tenant_id))


@router.post("", response_model=Envelope[SocialPlatformResponse], status_code=status.HTTP_201_CREATED)
async def create_platform(
    payload: SocialPlatformCreate,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
):
    platform = await PlatformService(db, context).create_platform(payload)
    return ok(platform, "Social platform created successfully")


@router.get("/{platform_id}", response_model=Envelope[SocialPlatformResponse])
async def get_platform(
    platform_id: str,
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
):
    return ok(await PlatformService(db, context).get_platform(platform_id))


@router.put("/{platform_id}", response_model=Envelope[SocialPlatformResponse])
async def update_platform(
    platform_id: str,
    payload: SocialPlatformUpdate,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
):
    platform = await PlatformService(db, context).update_platform(platform_id, payload)
    return ok(platform, "Social platform updated successfully")


@router.delete("/{platform_id}", response_model=Envelope[None])
async def delete_platform(
    platform_id: str,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    await PlatformService(db, context).delete_platform(platform_id, storage)
    return ok(message="Social platform deleted successfully")
