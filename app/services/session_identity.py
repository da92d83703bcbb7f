"""
Anonymous cart session identity.

The cart session id is an opaque, unguessable correlation key stored in the
signed Flask session cookie. It scopes cart rows to one visitor and is
carried to the payment provider so the webhook can find the cart again.
It is not an authentication credential.
"""
import logging
import secrets
import time
from typing import Optional

from flask import session

logger = logging.getLogger(__name__)

SESSION_KEY = 'cart_session_id'
CHECKOUT_KEY = 'checkout_session_ref'
CHECKOUT_STARTED_KEY = 'checkout_started_at'


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


def get_session_id() -> Optional[str]:
    return session.get(SESSION_KEY)


def get_or_create_session_id() -> str:
    """Return the visitor's cart session id, creating it on first use."""
    session_id = session.get(SESSION_KEY)
    if not session_id:
        session_id = generate_session_id()
        session[SESSION_KEY] = session_id
        session.permanent = True
    return session_id


def rotate_session_id() -> str:
    """Start a fresh cart after the previous one was consumed by an order."""
    session_id = generate_session_id()
    session[SESSION_KEY] = session_id
    clear_pending_checkout()
    session.permanent = True
    return session_id


def get_pending_checkout() -> Optional[str]:
    """Payment session reference of the checkout in progress, if any."""
    return session.get(CHECKOUT_KEY)


def mark_checkout_started(session_ref: str) -> None:
    session[CHECKOUT_KEY] = session_ref
    session[CHECKOUT_STARTED_KEY] = time.time()


def checkout_age_seconds() -> Optional[float]:
    """Seconds since the pending checkout started, None without one."""
    started = session.get(CHECKOUT_STARTED_KEY)
    if started is None or CHECKOUT_KEY not in session:
        return None
    return time.time() - float(started)


def clear_pending_checkout() -> None:
    session.pop(CHECKOUT_KEY, None)
    session.pop(CHECKOUT_STARTED_KEY, None)
