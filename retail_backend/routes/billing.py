# retail_backend/routes/billing.py
from flask import Blueprint, jsonify, request

from .. import stock
from ..audit import record_audit
from ..errors import NotFound, ValidationError
from ..models import Customer, Invoice, Purchase, PurchaseItem, Supplier, User, atomic, db
from ..validation import json_body, optional, text, to_int
from . import current_user_id

purchases_bp = Blueprint('purchases', __name__, url_prefix='/api/purchases')
invoices_bp = Blueprint('invoices', __name__, url_prefix='/api/invoices')


# -------------------------
# Purchases
# -------------------------
@purchases_bp.route('', methods=['GET'])
def list_purchases():
    """Query: search (supplier or user name contains)."""
    items_count = (
        db.session.query(db.func.count(PurchaseItem.id))
        .filter(PurchaseItem.purchase_id == Purchase.id)
        .correlate(Purchase)
        .scalar_subquery()
    )
    query = (
        db.session.query(Purchase, items_count)
        .outerjoin(Supplier, Purchase.supplier_id == Supplier.id)
        .outerjoin(User, Purchase.user_id == User.id)
    )
    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(Supplier.name.like(pattern), User.name.like(pattern)))

    purchases = []
    for purchase, count in query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).all():
        row = purchase.to_dict()
        row['items_count'] = count
        purchases.append(row)
    return jsonify({'purchases': purchases})


@purchases_bp.route('', methods=['POST'])
def create_purchase():
    """
    JSON: { supplier_id, items: [{product_id, qty, cost_price}], client_ref? }
    Stock goes up by each line's qty and the product's cost price follows the latest purchase.
    """
    data = json_body()
    if not data.get('supplier_id') or not data.get('items'):
        raise ValidationError('Missing required fields')
    supplier_id = to_int(data['supplier_id'], 'supplier_id', minimum=1)

    purchase, duplicate = stock.record_purchase(
        supplier_id, data['items'], current_user_id(), client_ref=optional(data.get('client_ref'))
    )
    body = {'success': True, 'purchase_id': purchase.id}
    if duplicate:
        body['duplicate'] = True
    return jsonify(body)


@purchases_bp.route('/<int:purchase_id>', methods=['GET'])
def get_purchase(purchase_id):
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFound('Purchase not found')
    return jsonify({'purchase': purchase.to_dict(), 'items': [i.to_dict() for i in purchase.items]})


@purchases_bp.route('/<int:purchase_id>', methods=['DELETE'])
def delete_purchase(purchase_id):
    stock.delete_purchase(purchase_id, current_user_id())
    return jsonify({'success': True})


# -------------------------
# Invoices
# -------------------------
@invoices_bp.route('', methods=['GET'])
def list_invoices():
    """Query: status ('all' or empty for every status), search (invoice number or customer name)."""
    query = Invoice.query.outerjoin(Customer, Invoice.customer_id == Customer.id)

    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter(Invoice.status == status)

    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(Invoice.invoice_no.like(pattern), Customer.name.like(pattern)))

    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify({'invoices': [i.to_dict() for i in invoices]})


@invoices_bp.route('', methods=['POST'])
def create_invoice():
    """
    JSON: {
      customer: { name, contact, remark?, existing_id? },
      items: [{product_id, qty, selling_price}],
      discount?, payment_method?, client_ref?
    }
    """
    data = json_body()
    customer = data.get('customer')
    if not isinstance(customer, dict) or not text(customer, 'name') or not text(customer, 'contact') or not data.get('items'):
        raise ValidationError('Missing required fields')

    invoice, duplicate = stock.create_invoice(
        {
            'name': text(customer, 'name'),
            'contact': text(customer, 'contact'),
            'remark': optional(customer.get('remark')),
            'existing_id': customer.get('existing_id')
        },
        data['items'],
        current_user_id(),
        discount=data.get('discount'),
        payment_method=optional(data.get('payment_method')),
        client_ref=optional(data.get('client_ref'))
    )
    body = {'success': True, 'invoice_id': invoice.id, 'invoice_no': invoice.invoice_no}
    if duplicate:
        body['duplicate'] = True
    return jsonify(body)


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
def get_invoice(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFound('Invoice not found')
    return jsonify({'invoice': invoice.to_dict(), 'items': [i.to_dict() for i in invoice.items]})


@invoices_bp.route('/<int:invoice_id>', methods=['PATCH'])
def update_invoice_status(invoice_id):
    """JSON: { status }. Stock is not touched."""
    status = text(json_body(), 'status')
    if not status:
        raise ValidationError('Status is required')

    with atomic():
        invoice = db.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFound('Invoice not found')
        invoice.status = status
        record_audit(current_user_id(), 'UPDATE_INVOICE', 'invoices', invoice_id, details=status)
    return jsonify({'success': True})


@invoices_bp.route('/<int:invoice_id>', methods=['DELETE'])
def delete_invoice(invoice_id):
    stock.delete_invoice(invoice_id, current_user_id())
    return jsonify({'success': True})
