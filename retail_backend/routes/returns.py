# retail_backend/routes/returns.py
from flask import Blueprint, jsonify, request

from .. import stock
from ..audit import record_audit
from ..errors import NotFound, ValidationError
from ..models import Invoice, Product, Purchase, Return, atomic, db
from ..validation import json_body, text, to_int
from . import current_user_id

bp = Blueprint('returns', __name__, url_prefix='/api/returns')


@bp.route('', methods=['GET'])
def list_returns():
    """Query: status ('all' for every status), search (product name or invoice number)."""
    query = (
        Return.query
        .outerjoin(Product, Return.product_id == Product.id)
        .outerjoin(Invoice, Return.invoice_id == Invoice.id)
    )
    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter(Return.status == status)

    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(Product.name.like(pattern), Invoice.invoice_no.like(pattern)))

    returns = query.order_by(Return.created_at.desc(), Return.id.desc()).all()
    return jsonify({'returns': [r.to_dict() for r in returns]})


@bp.route('', methods=['POST'])
def create_return():
    """
    JSON: { product_id, qty, reason, invoice_id? , purchase_id? }
    One of invoice_id / purchase_id is required. Stock does not move until the return is approved.
    """
    data = json_body()
    reason = text(data, 'reason')
    if not data.get('product_id') or not data.get('qty') or not reason:
        raise ValidationError('Missing required fields')
    if not data.get('invoice_id') and not data.get('purchase_id'):
        raise ValidationError('Either invoice_id or purchase_id is required')

    product_id = to_int(data['product_id'], 'product_id', minimum=1)
    qty = to_int(data['qty'], 'qty', minimum=1)
    invoice_id = to_int(data['invoice_id'], 'invoice_id', minimum=1) if data.get('invoice_id') else None
    purchase_id = to_int(data['purchase_id'], 'purchase_id', minimum=1) if data.get('purchase_id') else None

    with atomic():
        if not db.session.get(Product, product_id):
            raise ValidationError(f'Product not found: {product_id}')
        if invoice_id and not db.session.get(Invoice, invoice_id):
            raise ValidationError('Invoice not found')
        if purchase_id and not db.session.get(Purchase, purchase_id):
            raise ValidationError('Purchase not found')
        ret = Return(
            invoice_id=invoice_id,
            purchase_id=purchase_id,
            product_id=product_id,
            qty=qty,
            reason=reason,
            status='pending',
            user_id=current_user_id()
        )
        db.session.add(ret)
        db.session.flush()
        record_audit(current_user_id(), 'CREATE_RETURN', 'returns', ret.id)

    return jsonify({'success': True, 'return_id': ret.id})


@bp.route('/<int:return_id>', methods=['GET'])
def get_return(return_id):
    ret = db.session.get(Return, return_id)
    if not ret:
        raise NotFound('Return not found')
    return jsonify({'return': ret.to_dict()})


@bp.route('/<int:return_id>', methods=['PATCH'])
def resolve_return(return_id):
    """JSON: { status: 'approved' | 'rejected' }"""
    stock.resolve_return(return_id, text(json_body(), 'status'), current_user_id())
    return jsonify({'success': True})


@bp.route('/<int:return_id>', methods=['DELETE'])
def delete_return(return_id):
    # stock already moved by an approval stays moved
    with atomic():
        ret = db.session.get(Return, return_id)
        if not ret:
            raise NotFound('Return not found')
        db.session.delete(ret)
        record_audit(current_user_id(), 'DELETE_RETURN', 'returns', return_id)
    return jsonify({'success': True})
