"""ContentLock model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from shomer.models.base import Base


class ContentLock(Base):
    """Content item the user exempted from automatic hide/restore"""
    __tablename__ = "content_locks"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(50), nullable=False)
    content_id = Column(String(255), nullable=False)
    is_locked = Column(Boolean, default=True, nullable=False)
    reason = Column(String(255), default="manual", nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
    
    # Relationship
    user = relationship("User", back_populates="content_locks")
    
    __table_args__ = (
        UniqueConstraint('user_id', 'platform', 'content_id', name='uq_content_locks_user_platform_content'),
    )
