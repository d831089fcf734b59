from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from socialize.core.security import encrypt_credentials, decrypt_credentials
from socialize.db.base import Base
from socialize.utils.logger import get_logger
import uuid

logger = get_logger("db.models.social_platform")


class EncryptedJSON(TypeDecorator):
    """JSON map stored as a Fernet token."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encrypt_credentials(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return decrypt_credentials(value)
        except ValueError as e:
            # rotated or wrong key; listing must keep working, publishing reports it
            logger.error(f"{e}; loading platform credentials as empty")
            return None


class SocialPlatform(Base):
    __tablename__ = "social_platforms"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    platform_type = Column(String(64), nullable=False)
    credentials = Column(EncryptedJSON, nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant", back_populates="social_platforms")
    content_uploads = relationship("ContentUpload", back_populates="social_platform")

    __table_args__ = (
        Index('idx_social_platforms_tenant_type', 'tenant_id', 'platform_type'),
    )
