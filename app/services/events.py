"""
Domain events and in-process dispatch.

Order creation publishes ``OrderCreated`` after its transaction commits;
consumers (the confirmation email) run outside that transaction, so a
consumer failure can only be logged, never undo or fail the order.
"""
import enum
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from flask import Flask

logger = logging.getLogger(__name__)


class PaymentOutcome(str, enum.Enum):
    COMPLETED = 'completed'
    FAILED = 'failed'
    PENDING = 'pending'


@dataclass(frozen=True)
class PaymentEvent:
    """Provider payment notification normalized to what the order lifecycle needs."""
    outcome: PaymentOutcome
    payment_session_id: Optional[str]
    payment_intent_id: Optional[str]
    cart_session_id: Optional[str]
    provider_status: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class OrderCreated:
    order_id: str
    external_id: str
    payment_session_id: str


Handler = Callable[[Any], None]


class EventBus:
    """
    Minimal publish/subscribe dispatcher.

    With ``async_dispatch`` each publish runs its handlers on a daemon thread
    inside a fresh app context; otherwise handlers run inline. Either way
    handler exceptions are logged and swallowed at this boundary.
    """

    def __init__(self, app: Optional[Flask] = None, async_dispatch: bool = False):
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)
        self._app = app
        self.async_dispatch = async_dispatch

    def init_app(self, app: Flask) -> None:
        self._app = app
        self.async_dispatch = app.config.get('EVENTS_ASYNC', False)
        app.extensions['event_bus'] = self

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: Any) -> Optional[threading.Thread]:
        handlers = list(self._handlers.get(type(event), ()))
        if not handlers:
            return None

        if self.async_dispatch and self._app is not None:
            worker = threading.Thread(
                target=self._run_in_context,
                args=(handlers, event),
                name=f"event-{type(event).__name__}",
                daemon=True,
            )
            worker.start()
            return worker

        self._run(handlers, event)
        return None

    def _run_in_context(self, handlers: List[Handler], event: Any) -> None:
        with self._app.app_context():
            self._run(handlers, event)

    @staticmethod
    def _run(handlers: List[Handler], event: Any) -> None:
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"Event handler {getattr(handler, '__name__', handler)} failed for {event}: {e}")
