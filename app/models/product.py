"""Product model."""
from decimal import Decimal
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType, new_uuid


class Product(Base):
    """
    Product model.
    
    Read-only reference data from the cart's point of view: carts and orders
    join against its id and denormalize name/price/image at read time.
    """
    
    __tablename__ = 'product'
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    category_id = Column(String(36), ForeignKey('category.id'), nullable=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    image_url = Column(String(500), nullable=True)
    # NULL means stock is not tracked for this product
    stock_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    metadata_json = Column('metadata', JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships
    category = relationship('Category')
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.price})>"
    
    def to_dict(self, include_variants=False):
        """Convert to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'sku': self.id[-8:].upper(),
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'price': str(self.price),
            'currency': self.currency,
            'image_url': self.image_url,
            'category': self.category.slug if self.category else None,
            'stock_quantity': self.stock_quantity,
            'in_stock': not self.tracks_stock or self.stock_quantity > 0,
        }
        if include_variants:
            data['variants'] = [
                variant.to_dict() for variant in self.variants if variant.is_active
            ]
        return data

    @property
    def tracks_stock(self) -> bool:
        return self.stock_quantity is not None

    @property
    def unit_price(self) -> Decimal:
        return Decimal(str(self.price))
