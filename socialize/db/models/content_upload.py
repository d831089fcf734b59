from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Integer, BigInteger, JSON, Enum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from socialize.db.base import Base
import enum, uuid


class UploadStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    published = "published"
    failed = "failed"


class ContentUpload(Base):
    __tablename__ = "content_uploads"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    social_platform_id = Column(String, ForeignKey("social_platforms.id", ondelete="CASCADE"), nullable=False, index=True)

    file_name = Column(String(255), nullable=False)  # original client filename
    file_path = Column(String(512), nullable=False)  # storage key
    file_type = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    upload_metadata = Column("metadata", JSON, nullable=True)

    status = Column(Enum(UploadStatus), nullable=False, default=UploadStatus.pending, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    external_post_id = Column(String(255), nullable=True)
    last_error = Column(Text, nullable=True)

    # publish bookkeeping
    publish_attempts = Column(Integer, nullable=False, default=0)
    publish_generation = Column(Integer, nullable=False, default=0)
    lease_owner = Column(String(255), nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="content_uploads")
    social_platform = relationship("SocialPlatform", back_populates="content_uploads")

    # due-schedule scan: pending rows ordered by scheduled_at
    __table_args__ = (
        Index('idx_content_uploads_status_scheduled', 'status', 'scheduled_at'),
    )
