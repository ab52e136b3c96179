"""User model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from shomer.models.base import Base


class User(Base):
    """User accounts (created by the registration service)"""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)  # Admin role flag
    
    # Relationships
    settings = relationship("Setting", back_populates="user", cascade="all, delete-orphan")
    oauth_tokens = relationship("OAuthToken", back_populates="user", cascade="all, delete-orphan")
    subscription = relationship("Subscription", back_populates="user", uselist=False, cascade="all, delete-orphan")
    content_locks = relationship("ContentLock", back_populates="user", cascade="all, delete-orphan")
    original_statuses = relationship("OriginalStatus", back_populates="user", cascade="all, delete-orphan")
    history_entries = relationship("HistoryEntry", back_populates="user", cascade="all, delete-orphan")
