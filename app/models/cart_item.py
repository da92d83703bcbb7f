"""Cart Item model - one product/variant line of an anonymous session cart."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, new_uuid


def variant_key_for(variant_id) -> str:
    """Non-null uniqueness key: SQL treats NULL variant ids as distinct."""
    return str(variant_id) if variant_id else ''


class CartItem(Base):
    """
    Cart Item - persisted line of a session-scoped cart.
    
    At most one row per (session_id, product_id, variant) is enforced by the
    UNIQUE constraint on ``variant_key``; quantity is always positive, a
    zero quantity is expressed by deleting the row.
    Display fields and line totals are derived from the product at read time.
    """
    
    __tablename__ = 'cart_item'
    __table_args__ = (
        UniqueConstraint('session_id', 'product_id', 'variant_key', name='uq_cart_item_session_product_variant'),
        CheckConstraint('quantity > 0', name='ck_cart_item_quantity_positive'),
    )
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    session_id = Column(String(128), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('product.id'), nullable=False)
    variant_id = Column(String(36), ForeignKey('product_variant.id'), nullable=True)
    variant_key = Column(String(36), nullable=False, default='')
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    
    # Relationships
    product = relationship('Product')
    variant = relationship('ProductVariant')
    
    def __repr__(self):
        return f"<CartItem(id={self.id}, product_id={self.product_id}, variant_id={self.variant_id}, quantity={self.quantity})>"
