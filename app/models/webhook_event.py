"""Payment provider webhook event log for idempotency and reconciliation."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from app.database import Base, JSONType


class WebhookEventStatus(str, enum.Enum):
    RECEIVED = 'RECEIVED'
    PROCESSED = 'PROCESSED'
    IGNORED = 'IGNORED'
    UNRESOLVED = 'UNRESOLVED'  # payment taken externally, no local order
    FAILED = 'FAILED'


class WebhookEvent(Base):
    """Log of inbound payment webhooks (dedupe + reconciliation gaps)."""
    __tablename__ = 'webhook_event'
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    provider = Column(String(30), nullable=False, default='mercadopago')
    topic = Column(String(50), nullable=True, index=True)
    action = Column(String(50), nullable=True)
    resource_id = Column(String(100), index=True)
    payload_json = Column(JSONType, nullable=True)
    dedupe_key = Column(String(64), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=WebhookEventStatus.RECEIVED.value, index=True)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    processed_at = Column(DateTime(timezone=True))
    
    def __repr__(self):
        return f"<WebhookEvent(topic='{self.topic}', resource_id='{self.resource_id}', status='{self.status}')>"
    
    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'provider': self.provider,
            'topic': self.topic,
            'action': self.action,
            'resource_id': self.resource_id,
            'payload': self.payload_json,
            'dedupe_key': self.dedupe_key,
            'status': self.status,
            'error': self.error,
            'received_at': self.received_at.isoformat() if self.received_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }
    
    @property
    def is_processed(self):
        """Check if event has been processed."""
        return self.status == WebhookEventStatus.PROCESSED.value
