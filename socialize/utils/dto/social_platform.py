from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SocialPlatformCreate(BaseModel):
    tenant_id: str
    name: str = Field(..., min_length=1, max_length=255)
    platform_type: str = Field(..., min_length=1, max_length=64)
    credentials: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None


class SocialPlatformUpdate(BaseModel):
    tenant_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    platform_type: Optional[str] = Field(None, min_length=1, max_length=64)
    credentials: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None


class SocialPlatformResponse(BaseModel):
    """Platform representation. Credentials are never included."""

    id: str
    tenant_id: str
    name: str
    platform_type: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool
    has_credentials: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _credentials_flag(cls, data: Any) -> Any:
        if isinstance(data, dict):
            credentials = data.get("credentials")
            data = {k: v for k, v in data.items() if k != "credentials"}
            data.setdefault("has_credentials", bool(credentials))
            return data
        return {
            "id": data.id,
            "tenant_id": data.tenant_id,
            "name": data.name,
            "platform_type": data.platform_type,
            "settings": data.settings or {},
            "enabled": data.enabled,
            "has_credentials": bool(data.credentials),
            "created_at": data.created_at,
            "updated_at": data.updated_at,
        }


class PlatformSummary(BaseModel):
    id: str
    name: str
    platform_type: str
    tenant_id: str

    model_config = ConfigDict(from_attributes=True)
