"""Order model."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType, new_uuid


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class Order(Base):
    """
    Order - immutable snapshot created once per confirmed payment.
    
    Monetary fields and lines are frozen at creation; afterwards only
    ``status`` and ``payment_intent_id`` are updated.
    ``payment_session_id`` (the hosted checkout reference) is the
    idempotency key for webhook redeliveries.
    """
    
    __tablename__ = 'orders'
    
    id = Column(String(36), primary_key=True, default=new_uuid)
    external_id = Column(String(32), nullable=False, unique=True, index=True)  # Order number shown to customers
    session_id = Column(String(128), nullable=True, index=True)
    
    # Payment correlation
    payment_session_id = Column(String(128), nullable=False, unique=True, index=True)
    payment_intent_id = Column(String(128), nullable=True, index=True)
    
    status = Column(String(20), nullable=False, default=OrderStatus.PROCESSING.value, index=True)
    
    # Totals (authoritative, computed server-side)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    
    # Customer contact
    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    shipping_address = Column(JSONType, nullable=True)
    billing_address = Column(JSONType, nullable=True)
    
    notes = Column(Text, nullable=True)
    metadata_json = Column('metadata', JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan', order_by='OrderItem.created_at')
    
    def __repr__(self):
        return f"<Order(external_id='{self.external_id}', total={self.total_amount}, status='{self.status}')>"
    
    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'external_id': self.external_id,
            'status': self.status,
            'payment_session_id': self.payment_session_id,
            'payment_intent_id': self.payment_intent_id,
            'subtotal': str(self.subtotal),
            'tax_amount': str(self.tax_amount),
            'shipping_amount': str(self.shipping_amount),
            'discount_amount': str(self.discount_amount),
            'total_amount': str(self.total_amount),
            'currency': self.currency,
            'customer_email': self.customer_email,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'shipping_address': self.shipping_address,
            'billing_address': self.billing_address,
            'items': [item.to_dict() for item in self.items],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
