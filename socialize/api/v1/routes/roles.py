from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import require_role
from socialize.core.permissions import ADMIN_ROLE
from socialize.db.sessions import get_db
from socialize.services.role_service import RoleService
from socialize.utils.dto.common import Envelope, ok
from socialize.utils.dto.role import (
    RoleAssignment,
    RoleCreate,
    RoleDetailResponse,
    RoleResponse,
    RoleUpdate,
)

router = APIRouter(dependencies=[Depends(require_role(ADMIN_ROLE))])


@router.get("", response_model=Envelope[List[RoleResponse]])
async def list_roles(db: AsyncSession = Depends(get_db)):
    return ok(await RoleService(db).list_roles())


@router.post("", response_model=Envelope[RoleResponse], status_code=status.HTTP_201_CREATED)
async def create_role(payload: RoleCreate, db: AsyncSession = Depends(get_db)):
    role = await RoleService(db).create_role(payload)
    return ok(role, "Role created successfully")


# declared before /{role_id} so "assign" and "remove" are not read as ids
@router.post("/assign", response_model=Envelope[None])
async def assign_role(payload: RoleAssignment, db: AsyncSession = Depends(get_db)):
    await RoleService(db).assign_role(payload.role_id, payload.user_id)
    return ok(message="Role assigned successfully")


@router.post("/remove", response_model=Envelope[None])
async def remove_role(payload: RoleAssignment, db: AsyncSession = Depends(get_db)):
    await RoleService(db).remove_role(payload.role_id, payload.user_id)
    return ok(message="Role removed successfully")


@router.get("/{role_id}", response_model=Envelope[RoleDetailResponse])
async def get_role(role_id: str, db: AsyncSession = Depends(get_db)):
    return ok(await RoleService(db).get_role(role_id, with_users=True))


@router.put("/{role_id}", response_model=Envelope[RoleResponse])
async def update_role(role_id: str, payload: RoleUpdate, db: AsyncSession = Depends(get_db)):
    role = await RoleService(db).update_role(role_id, payload)
    return ok(role, "Role updated successfully")


@router.delete("/{role_id}", response_model=Envelope[None])
async def delete_role(role_id: str, db: AsyncSession = Depends(get_db)):
    await RoleService(db).delete_role(role_id)
    return ok(message="Role deleted successfully")
