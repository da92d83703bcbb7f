"""Order Item model."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType, new_uuid


class OrderItem(Base):
    """Order Item - product name/price/options as they were when the order was placed."""
    
    __tablename__ = 'order_item'
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('product.id'), nullable=True)
    variant_id = Column(String(36), ForeignKey('product_variant.id'), nullable=True)
    
    product_name = Column(String(255), nullable=False)
    variant_name = Column(String(120), nullable=True)
    variant_options = Column(JSONType, nullable=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    order = relationship('Order', back_populates='items')
    
    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_name='{self.product_name}', quantity={self.quantity})>"

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'product_name': self.product_name,
            'variant_name': self.variant_name,
            'variant_options': self.variant_options,
            'unit_price': str(self.unit_price),
            'quantity': self.quantity,
            'total_price': str(self.total_price),
        }
