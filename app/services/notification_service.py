"""
Owner notification dispatcher (fire-and-forget).

Posts "order created/changed" events to the notification collaborator.
Delivery problems are logged and never fail the order mutation.
"""
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import current_app, has_app_context

from app.blueprints.metrics import notification_failures_total
from app.utils.number_format import json_safe

logger = logging.getLogger(__name__)

ORDER_CREATED = 'order_created'
ORDER_CHANGED = 'order_changed'


def dispatch_order_event(event: str, restaurant_id: int, order_id: str, items: Optional[List[Dict[str, Any]]] = None) -> bool:
    """
    Notify the restaurant owner about an order event.

    Args:
        event: ORDER_CREATED or ORDER_CHANGED
        restaurant_id: Restaurant ID
        order_id: Order ID
        items: Printable items of the event (full order or KOT delta)

    Returns:
        True if the collaborator accepted the event, False otherwise
    """
    url = None
    timeout = 3
    if has_app_context():
        url = current_app.config.get('NOTIFY_OWNER_URL')
        timeout = current_app.config.get('NOTIFY_TIMEOUT_SECONDS', timeout)

    if not url:
        logger.debug(f"[NOTIFY] NOTIFY_OWNER_URL not configured, {event} for order {order_id} not sent")
        return False

    payload = {
        'event': event,
        'restaurantId': restaurant_id,
        'orderId': order_id,
        'orderItems': json_safe(items or []),
    }

    try:
        response = requests.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        logger.info(f"[NOTIFY] {event} sent for order {order_id}")
        return True
    except requests.RequestException as e:
        logger.warning(f"[NOTIFY] {event} for order {order_id} failed (non-blocking): {e}")
        notification_failures_total.labels(event=event).inc()
        return False

