from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, JSON
from .database import Base


class UserPreferences(Base):
    """
    Preferências de personalização de um usuário (negócio, cargo e temas).
    """
    __tablename__ = "user_preferences"

    user_id = Column(String(128), primary_key=True)
    display_name = Column(String(200), nullable=True)
    business_sector = Column(String(100), nullable=True)
    business_other_sector = Column(String(200), nullable=True)
    business_description = Column(Text, nullable=True)
    role_type = Column(String(100), nullable=True)
    role_other_type = Column(String(200), nullable=True)
    themes_selected = Column(JSON, nullable=False, default=list)
    themes_custom = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
