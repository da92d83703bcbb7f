"""Product Variant model."""
from decimal import Decimal
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType, new_uuid


class ProductVariant(Base):
    """
    Product Variant - size/colour style option of a product.
    
    The variant price is the product price plus ``price_adjustment`` (which
    may be negative). Stock falls back to the product when not tracked here.
    """
    
    __tablename__ = 'product_variant'
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    product_id = Column(String(36), ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    options = Column(JSONType, nullable=True)  # e.g. {"size": "M", "color": "Black"}
    price_adjustment = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    stock_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    product = relationship('Product', back_populates='variants')
    
    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'options': self.options,
            'price_adjustment': str(self.adjustment),
            'price': str(self.product.unit_price + self.adjustment),
            'stock_quantity': self.stock_quantity,
        }

    @property
    def adjustment(self) -> Decimal:
        return Decimal(str(self.price_adjustment or 0))
