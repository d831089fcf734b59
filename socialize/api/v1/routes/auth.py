from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import RequestContext, get_current_context
from socialize.db.sessions import get_db
from socialize.services.auth_service import AuthService
from socialize.utils.dto.auth import (
    AuthResponse,
    CurrentUserResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    UserResponse,
)
from socialize.utils.dto.common import Envelope, ok

router = APIRouter()


@router.post("/register", response_model=Envelope[AuthResponse], status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    user, tokens = await AuthService(db).register(payload)
    return ok(AuthResponse(user=UserResponse.model_validate(user), token=tokens), "User registered successfully")


@router.post("/login", response_model=Envelope[AuthResponse])
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    user, tokens = await AuthService(db).login(payload)
    return ok(AuthResponse(user=UserResponse.model_validate(user), token=tokens), "Login successful")


@router.post("/refresh", response_model=Envelope[AuthResponse])
async def refresh(payload: RefreshRequest, db: AsyncSession = Depends(get_db)):
    user, tokens = await AuthService(db).refresh(payload.refresh_token)
    return ok(AuthResponse(user=UserResponse.model_validate(user), token=tokens), "Token refreshed")


@router.post("/logout", response_model=Envelope[None])
async def logout(
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).logout(context)
    return ok(message="Logged out successfully")


@router.get("/user", response_model=Envelope[CurrentUserResponse])
async def current_user(
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
):
    return ok(await AuthService(db).current_user(context))
