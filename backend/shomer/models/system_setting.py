"""System setting model"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from datetime import datetime, timezone
from shomer.models.base import Base


class SystemSetting(Base):
    """System-wide settings (not user-specific), e.g. the admin quiet period"""
    __tablename__ = "system_settings"
    
    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
