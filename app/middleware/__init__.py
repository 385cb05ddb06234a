"""Middleware for restaurant request context."""
from functools import wraps
from flask import g, request, jsonify


def load_restaurant_context():
    """
    Load the restaurant scope of the request into g.

    Sets g.restaurant_id from the JSON body (or query string) when present.
    """
    g.restaurant_id = None

    payload = request.get_json(silent=True) if request.is_json else None
    raw = None
    if isinstance(payload, dict):
        raw = payload.get('restaurant_id')
    if raw in (None, ''):
        raw = request.args.get('restaurant_id')

    if raw in (None, ''):
        return

    try:
        g.restaurant_id = int(raw)
    except (TypeError, ValueError):
        g.restaurant_id = None


def require_restaurant(f):
    """
    Decorator: Require a restaurant_id on the request.

    Every mutation is restaurant-scoped; requests without one are rejected
    with 400 before the view runs.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('restaurant_id') is None:
            return jsonify({'status': 'error', 'message': 'restaurant_id is required'}), 400
        return f(*args, **kwargs)
    return decorated_function


def require_json(f):
    """Decorator: Require a JSON object body."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({'status': 'error', 'message': 'Request body must be a JSON object'}), 400
        return f(*args, **kwargs)
    return decorated_function
