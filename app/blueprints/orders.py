"""Orders blueprint - order placement and in-place edits (multi-restaurant JSON API)."""
from flask import Blueprint, request, jsonify, current_app, g
from app.database import get_session
from app.services.order_service import create_order
from app.services.order_edit_service import edit_order, DEFAULT_EDIT_REASON
from app.middleware import require_json, require_restaurant
from app.utils.number_format import json_safe

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('/create', methods=['POST'])
@require_json
@require_restaurant
def create():
    """Place an order (restaurant-scoped)."""
    db_session = get_session()
    payload = dict(request.get_json(), restaurant_id=g.restaurant_id)

    result = create_order(payload, db_session)

    current_app.logger.info(
        f"Order {result['order_number']} placed for restaurant {g.restaurant_id}"
    )
    return jsonify(json_safe({
        'success': True,
        'order_id': result['order_id'],
        'order_number': result['order_number'],
        'totals': result['totals'],
    }))


@orders_bp.route('/edit', methods=['POST'])
@require_json
@require_restaurant
def edit():
    """
    Edit an order in place from its full desired line list.

    Body: {order_id, restaurant_id, lines, reason?, expected_version?}
    """
    db_session = get_session()
    payload = request.get_json()

    expected_version = payload.get('expected_version')
    if expected_version is not None:
        try:
            expected_version = int(expected_version)
        except (TypeError, ValueError):
            return jsonify({'status': 'error', 'message': 'expected_version must be an integer'}), 400

    result = edit_order(
        payload.get('order_id'),
        g.restaurant_id,
        payload.get('lines'),
        db_session,
        reason=payload.get('reason') or DEFAULT_EDIT_REASON,
        expected_version=expected_version
    )

    current_app.logger.info(
        f"Order {result['order_number']} edited for restaurant {g.restaurant_id} "
        f"({len(result['order_for_print']['items'])} item(s) to print)"
    )
    return jsonify(json_safe(dict(result, success=True)))
