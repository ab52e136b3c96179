"""Setting model"""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from shomer.models.base import Base


class Setting(Base):
    """User settings by category (schedule, youtube, facebook)"""
    __tablename__ = "settings"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text)  # JSON string for complex values
    
    # Relationship
    user = relationship("User", back_populates="settings")
    
    __table_args__ = (
        Index('ix_settings_user_category', 'user_id', 'category'),
    )
