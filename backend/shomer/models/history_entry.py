"""HistoryEntry model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from shomer.models.base import Base


class HistoryEntry(Base):
    """Append-only record of a hide/restore pass outcome"""
    __tablename__ = "history_entries"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    action = Column(String(20), nullable=False)  # hide, restore
    platform = Column(String(50), nullable=False)  # youtube, facebook, or 'automatic' for the aggregate
    trigger = Column(String(20), default="scheduled", nullable=False)  # scheduled, manual
    affected_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    success = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    
    # Relationship
    user = relationship("User", back_populates="history_entries")
    
    __table_args__ = (
        Index('ix_history_entries_user_timestamp', 'user_id', 'timestamp'),
    )
