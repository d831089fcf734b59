from fastapi import APIRouter
from socialize.api.v1.routes import auth, tenants, roles, social_platforms, content_uploads, health

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, tags=["Auth"])
api_router.include_router(tenants.router, prefix="/tenants", tags=["Tenants"])
api_router.include_router(roles.router, prefix="/roles", tags=["Roles"])
api_router.include_router(social_platforms.router, prefix="/social-platforms", tags=["Social Platforms"])
api_router.include_router(content_uploads.router, prefix="/content-uploads", tags=["Content Uploads"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
