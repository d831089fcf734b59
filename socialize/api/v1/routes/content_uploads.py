import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from socialize.core.auth import RequestContext, get_current_context, require_capability
from socialize.core.config import settings
from socialize.core.errors import NotFoundError, ValidationError
from socialize.core.permissions import Capability
from socialize.core.rate_limiter import rate_limit_dependency
from socialize.db.models.content_upload import ContentUpload, UploadStatus
from socialize.db.sessions import get_db
from socialize.services.publish_service import PublishService
from socialize.services.storage_service import LocalStorage, StorageBackend, get_storage
from socialize.services.upload_service import UploadService
from socialize.utils.dto.common import Envelope, ok
from socialize.utils.dto.content_upload import (
    ContentUploadDetailResponse,
    ContentUploadUpdate,
    DownloadUrlResponse,
)
from socialize.utils.logger import get_logger
from socialize.workers.producer import get_producer

logger = get_logger(__name__)

router = APIRouter()

can_manage = require_capability(Capability.manage_content)


def _parse_metadata(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError.for_field("metadata", "The metadata must be a valid JSON object.")
    if not isinstance(value, dict):
        raise ValidationError.for_field("metadata", "The metadata must be a valid JSON object.")
    return value


@router.get("", response_model=Envelope[List[ContentUploadDetailResponse]])
async def list_uploads(
    user_id: Optional[str] = Query(None),
    social_platform_id: Optional[str] = Query(None),
    upload_status: Optional[UploadStatus] = Query(None, alias="status"),
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    uploads = await UploadService(db, context, storage).list_uploads(
        user_id=user_id, social_platform_id=social_platform_id, status=upload_status
    )
    return ok(uploads)


@router.post(
    "",
    response_model=Envelope[ContentUploadDetailResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_dependency(action="uploads", max_requests=settings.UPLOADS_PER_MINUTE, window_seconds=60))],
)
async def create_upload(
    file: UploadFile = File(...),
    social_platform_id: str = Form(...),
    metadata: Optional[str] = Form(None),
    scheduled_at: Optional[datetime] = Form(None),
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    parsed_metadata = _parse_metadata(metadata)

    # reject early when the client declared the size
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise ValidationError.for_field(
            "file", f"The file may not be greater than {settings.MAX_UPLOAD_BYTES} bytes"
        )

    logger.info(f"Uploading file for platform {social_platform_id} (user {context.user_id})")
    upload = await UploadService(db, context, storage).create_upload(
        social_platform_id=social_platform_id,
        filename=file.filename,
        content_type=file.content_type,
        stream=file.file,
        metadata=parsed_metadata,
        scheduled_at=scheduled_at,
    )
    return ok(upload, "Content uploaded successfully")


# declared before /{upload_id} so "files" is not read as an id
@router.get("/files/{token}", include_in_schema=False)
async def download_file(
    token: str,
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    if not isinstance(storage, LocalStorage):
        raise NotFoundError("File not found")

    path = storage.resolve_signed_token(token)
    if path is None or not path.is_file():
        raise NotFoundError("File not found")

    key = path.relative_to(storage.root.resolve()).as_posix()
    upload = (await db.execute(
        select(ContentUpload.file_name, ContentUpload.file_type).where(ContentUpload.file_path == key)
    )).first()
    if not upload:
        raise NotFoundError("File not found")

    return FileResponse(path, media_type=upload.file_type, filename=upload.file_name)


@router.get("/{upload_id}", response_model=Envelope[ContentUploadDetailResponse])
async def get_upload(
    upload_id: str,
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    return ok(await UploadService(db, context, storage).get_upload(upload_id))


@router.put("/{upload_id}", response_model=Envelope[ContentUploadDetailResponse])
async def update_upload(
    upload_id: str,
    payload: ContentUploadUpdate,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    upload = await UploadService(db, context, storage).update_upload(upload_id, payload)
    return ok(upload, "Content upload updated successfully")


@router.delete("/{upload_id}", response_model=Envelope[None])
async def delete_upload(
    upload_id: str,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    await UploadService(db, context, storage).delete_upload(upload_id)
    return ok(message="Content upload deleted successfully")


@router.get("/{upload_id}/download", response_model=Envelope[DownloadUrlResponse])
async def download_url(
    upload_id: str,
    context: RequestContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    result = await UploadService(db, context, storage).generate_download_url(upload_id)
    return ok(result, "Download URL generated successfully")


@router.post("/{upload_id}/publish", response_model=Envelope[ContentUploadDetailResponse])
async def publish_upload(
    upload_id: str,
    response: Response,
    context: RequestContext = Depends(can_manage),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Publish an upload to its platform.

    Inline mode publishes during the request. Queue mode hands the upload to
    the publish workers and answers 202; uploads whose worker died mid-publish
    (processing with an expired lease) are queued again the same way.
    """
    upload = await UploadService(db, context, storage).get_upload(upload_id)
    service = PublishService(db, storage)

    if settings.PUBLISH_MODE == "queue":
        await service.queue_publish(upload, await get_producer())
        response.status_code = status.HTTP_202_ACCEPTED
        return ok(upload, "Content queued for publishing")

    upload = await service.publish_upload(upload.id)
    if upload.status == UploadStatus.failed:
        return ok(upload, "Content publishing failed")
    return ok(upload, "Content published successfully")
