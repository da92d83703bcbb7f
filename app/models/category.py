"""Category model."""
from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from app.database import Base, new_uuid


class Category(Base):
    """Product Category (reference data owned by the catalog)."""
    
    __tablename__ = 'category'
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(120), nullable=False)
    slug = Column(String(120), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
        }

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
