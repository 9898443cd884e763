# retail_backend/routes/products.py
from flask import Blueprint, g, jsonify, request

from ..audit import record_audit
from ..bilingual import format_bilingual_list, resolve_display_language
from ..errors import NotFound, ValidationError
from ..models import Category, Invoice, InvoiceItem, Product, PurchaseItem, Return, StockLog, atomic, db
from ..stock import INITIAL_STOCK, adjust_stock, log_stock
from ..validation import json_body, optional, text, to_float, to_int
from . import current_user_id

bp = Blueprint('products', __name__, url_prefix='/api/products')

BILINGUAL_FIELDS = ['category_name', 'product_type', 'description']
STOCK_HISTORY_LIMIT = 50


def _clean(field, value):
    """Coerce one editable product field from JSON."""
    value = optional(value)
    if field in ('cost_price', 'selling_price'):
        return to_float(value or 0, field, minimum=0)
    if field == 'reorder_level':
        return to_int(value if value is not None else 100, field, minimum=0)
    if field == 'category_id':
        return to_int(value, field, minimum=1) if value is not None else None
    if field == 'name':
        if not value:
            raise ValidationError('Name is required')
        return str(value).strip()
    return value


@bp.route('', methods=['GET'])
def list_products():
    """
    Query params:
      search   - name, code or brand contains
      category - exact category name
      status   - out_of_stock | low_stock | in_stock (against reorder_level)
      lang     - english | sinhala for bilingual fields
    """
    query = Product.query.outerjoin(Category, Product.category_id == Category.id)

    search = request.args.get('search', '')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(Product.name.like(pattern), Product.code.like(pattern), Product.brand.like(pattern)))

    category = request.args.get('category', '')
    if category:
        query = query.filter(Category.name == category)

    status = request.args.get('status', '')
    if status == 'out_of_stock':
        query = query.filter(Product.qty == 0)
    elif status == 'low_stock':
        query = query.filter(Product.qty > 0, Product.qty <= Product.reorder_level)
    elif status == 'in_stock':
        query = query.filter(Product.qty > Product.reorder_level)

    products = [p.to_dict() for p in query.order_by(Product.updated_at.desc(), Product.id.desc()).all()]
    language = resolve_display_language(g.identity)
    if language:
        products = format_bilingual_list(products, BILINGUAL_FIELDS, language)
    return jsonify({'products': products})


@bp.route('', methods=['POST'])
def create_product():
    """
    JSON: any of Product.EDITABLE_FIELDS plus qty (opening stock).
    Opening stock is written to the stock log as INITIAL_STOCK.
    """
    data = json_body()
    fields = {field: _clean(field, data.get(field)) for field in Product.EDITABLE_FIELDS}
    fields['unit'] = fields['unit'] or 'Pcs'
    qty = to_int(optional(data.get('qty')) or 0, 'qty', minimum=0)

    with atomic():
        if fields['category_id'] and not db.session.get(Category, fields['category_id']):
            raise ValidationError('Category not found')
        product = Product(qty=qty, **fields)
        db.session.add(product)
        db.session.flush()
        if qty > 0:
            log_stock(product.id, INITIAL_STOCK, qty, current_user_id())
        record_audit(current_user_id(), 'CREATE_PRODUCT', 'products', product.id)

    return jsonify({'success': True, 'product_id': product.id})


@bp.route('/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound('Product not found')
    history = (
        StockLog.query.filter_by(product_id=product_id)
        .order_by(StockLog.created_at.desc(), StockLog.id.desc())
        .limit(STOCK_HISTORY_LIMIT)
        .all()
    )
    invoice_ids = {s.invoice_id for s in history if s.invoice_id}
    invoice_nos = dict(
        db.session.query(Invoice.id, Invoice.invoice_no).filter(Invoice.id.in_(invoice_ids)).all()
    ) if invoice_ids else {}

    stock_history = []
    for entry in history:
        row = entry.to_dict()
        row['invoice_no'] = invoice_nos.get(entry.invoice_id)
        row['purchase_no'] = entry.purchase_id
        stock_history.append(row)
    return jsonify({'product': product.to_dict(), 'stockHistory': stock_history})


@bp.route('/<int:product_id>', methods=['PUT'])
def update_product(product_id):
    """Partial update: only editable fields present in the body change. Quantity changes go through PATCH."""
    data = json_body()
    changes = {field: _clean(field, data[field]) for field in Product.EDITABLE_FIELDS if field in data}
    if not changes:
        raise ValidationError('No fields to update')

    with atomic():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound('Product not found')
        for field, value in changes.items():
            setattr(product, field, value)
        record_audit(current_user_id(), 'UPDATE_PRODUCT', 'products', product_id)
    return jsonify({'success': True})


@bp.route('/<int:product_id>', methods=['DELETE'])
def delete_product(product_id):
    with atomic():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound('Product not found')
        in_use = (
            InvoiceItem.query.filter_by(product_id=product_id).count()
            + PurchaseItem.query.filter_by(product_id=product_id).count()
            + Return.query.filter_by(product_id=product_id).count()
        )
        if in_use:
            raise ValidationError('Cannot delete product with existing transactions')
        snapshot = product.to_dict()
        StockLog.query.filter_by(product_id=product_id).delete()
        db.session.delete(product)
        record_audit(current_user_id(), 'DELETE_PRODUCT', 'products', product_id, old_data=snapshot)
    return jsonify({'success': True})


@bp.route('/<int:product_id>', methods=['PATCH'])
def adjust_inventory(product_id):
    """JSON: { action: 'add' | 'remove', qty, reason? }"""
    data = json_body()
    if not data.get('action') or not data.get('qty'):
        raise ValidationError('Invalid data')
    reason = text(data, 'reason')
    # the reason is stored as the stock log action
    max_length = StockLog.action.type.length
    if len(reason) > max_length:
        raise ValidationError(f'reason must be at most {max_length} characters')
    new_qty = adjust_stock(product_id, data['action'], data['qty'], current_user_id(), reason=reason or None)
    return jsonify({'success': True, 'newQty': new_qty})
