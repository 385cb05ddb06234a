"""Invoices blueprint - invoice voiding (multi-restaurant JSON API)."""
from flask import Blueprint, request, jsonify, current_app, g
from app.database import get_session
from app.services.invoice_sync_service import void_invoice
from app.middleware import require_json, require_restaurant

invoices_bp = Blueprint('invoices', __name__, url_prefix='/api/invoices')


@invoices_bp.route('/void', methods=['POST'])
@require_json
@require_restaurant
def void():
    """Void an invoice and cancel its order (restaurant-scoped)."""
    db_session = get_session()
    payload = request.get_json()

    try:
        invoice_id = int(payload.get('invoice_id'))
    except (TypeError, ValueError):
        return jsonify({'status': 'error', 'message': 'invoice_id and restaurant_id are required'}), 400

    result = void_invoice(db_session, invoice_id, g.restaurant_id, payload.get('reason'))

    if result['already_voided']:
        return jsonify({'ok': True, 'already_voided': True})

    current_app.logger.info(
        f"Invoice {invoice_id} voided, order {result['order_id']} cancelled (restaurant {g.restaurant_id})"
    )
    return jsonify({'ok': True})
