"""OriginalStatus model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from shomer.models.base import Base


class OriginalStatus(Base):
    """Visibility an item had right before an automatic hide.
    
    Its presence is what makes the item eligible for the next restore pass.
    """
    __tablename__ = "original_statuses"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(50), nullable=False)
    content_id = Column(String(255), nullable=False)
    original_visibility = Column(JSON, nullable=False)  # Opaque, platform-specific value
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    
    # Relationship
    user = relationship("User", back_populates="original_statuses")
    
    __table_args__ = (
        UniqueConstraint('user_id', 'platform', 'content_id', name='uq_original_statuses_user_platform_content'),
    )
