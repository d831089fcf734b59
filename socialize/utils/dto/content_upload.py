from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from socialize.db.models.content_upload import UploadStatus
from socialize.utils.dto.social_platform import PlatformSummary


class ContentUploadUpdate(BaseModel):
    metadata: Optional[Dict[str, Any]] = None
    status: Optional[UploadStatus] = None
    published_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None


class UploadUser(BaseModel):
    id: str
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class ContentUploadResponse(BaseModel):
    id: str
    user_id: str
    social_platform_id: str
    file_name: str
    file_type: str
    file_size: int
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("upload_metadata", "metadata")
    )
    status: UploadStatus
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    external_post_id: Optional[str] = None
    last_error: Optional[str] = None
    publish_attempts: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ContentUploadDetailResponse(ContentUploadResponse):
    user: Optional[UploadUser] = None
    social_platform: Optional[PlatformSummary] = None


class DownloadUrlResponse(BaseModel):
    url: str
    expires_at: datetime
