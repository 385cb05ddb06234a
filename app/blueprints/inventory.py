"""Inventory blueprint - manual recipe stock deduction and restock (JSON API)."""
from flask import Blueprint, request, jsonify, current_app, g
from app.database import get_session
from app.services.stock_service import deduct_stock, restore_stock
from app.middleware import require_json, require_restaurant
from app.utils.number_format import parse_quantity, json_safe

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')


def _parse_stock_request(payload: dict):
    """menu_item_id and a positive quantity, or None when missing/invalid."""
    try:
        menu_item_id = int(payload.get('menu_item_id'))
        quantity = parse_quantity(payload.get('quantity'))
    except (TypeError, ValueError):
        return None
    if menu_item_id <= 0 or quantity <= 0:
        return None
    return menu_item_id, quantity


@inventory_bp.route('/deduct-stock', methods=['POST'])
@require_json
@require_restaurant
def deduct():
    """
    Deduct recipe stock for a menu item.

    Every ingredient is checked first; a shortfall is a 409 and nothing is written.
    """
    parsed = _parse_stock_request(request.get_json())
    if parsed is None:
        return jsonify({'status': 'error', 'message': 'Missing required fields'}), 400
    menu_item_id, quantity = parsed

    adjustments = deduct_stock(get_session(), menu_item_id, g.restaurant_id, quantity, require_sufficient=True)

    message = 'Stock deducted successfully' if adjustments else 'No recipe stock to deduct'
    current_app.logger.info(f"Manual deduction of {quantity} x item {menu_item_id}: {len(adjustments)} ingredient(s)")
    return jsonify(json_safe({'success': True, 'message': message, 'adjustments': adjustments}))


@inventory_bp.route('/restock-stock', methods=['POST'])
@require_json
@require_restaurant
def restock():
    """Give back recipe stock for a menu item (e.g. a cancelled order)."""
    parsed = _parse_stock_request(request.get_json())
    if parsed is None:
        return jsonify({'status': 'error', 'message': 'Missing required fields'}), 400
    menu_item_id, quantity = parsed

    adjustments = restore_stock(get_session(), menu_item_id, g.restaurant_id, quantity)

    message = 'Stock restored successfully' if adjustments else 'No recipe stock to restore'
    current_app.logger.info(f"Manual restock of {quantity} x item {menu_item_id}: {len(adjustments)} ingredient(s)")
    return jsonify(json_safe({'success': True, 'message': message, 'adjustments': adjustments}))
