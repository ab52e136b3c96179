"""OAuthToken model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from shomer.models.base import Base


class OAuthToken(Base):
    """OAuth credentials (encrypted)"""
    __tablename__ = "oauth_tokens"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(50), nullable=False)  # youtube, facebook
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text)  # Encrypted
    expires_at = Column(DateTime(timezone=True))
    extra_data = Column(JSON)  # Platform-specific data (channel id, page id, ...)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    
    # Relationship
    user = relationship("User", back_populates="oauth_tokens")
    
    # One token per user and platform
    __table_args__ = (
        UniqueConstraint('user_id', 'platform', name='uq_oauth_tokens_user_platform'),
    )
