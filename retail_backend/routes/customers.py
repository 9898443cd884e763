# retail_backend/routes/customers.py
from flask import Blueprint, jsonify, request

from ..audit import record_audit
from ..errors import NotFound, ValidationError
from ..models import Customer, Invoice, atomic, db
from ..validation import json_body, optional, text
from . import current_user_id

bp = Blueprint('customers', __name__, url_prefix='/api/customers')


def _with_totals(query):
    """(customer, invoice_count, total_purchases) rows."""
    return (
        query.outerjoin(Invoice, Invoice.customer_id == Customer.id)
        .add_columns(
            db.func.count(db.distinct(Invoice.id)).label('invoice_count'),
            db.func.coalesce(db.func.sum(Invoice.net_amount), 0).label('total_purchases')
        )
        .group_by(Customer.id)
    )


def _row(customer, invoice_count, total_purchases):
    data = customer.to_dict()
    data['invoice_count'] = invoice_count
    data['total_purchases'] = float(total_purchases or 0)
    return data


def _customer_fields():
    data = json_body()
    name, contact = text(data, 'name'), text(data, 'contact')
    if not name or not contact:
        raise ValidationError('Name and contact are required')
    return name, contact, optional(data.get('remark'))


@bp.route('', methods=['GET'])
def list_customers():
    """Customers with invoice count and lifetime net total. Query: search (name or contact)."""
    query = _with_totals(db.session.query(Customer))
    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(Customer.name.like(pattern), Customer.contact.like(pattern)))
    rows = query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()
    return jsonify({'customers': [_row(*row) for row in rows]})


@bp.route('', methods=['POST'])
def create_customer():
    name, contact, remark = _customer_fields()
    with atomic():
        customer = Customer(name=name, contact=contact, remark=remark)
        db.session.add(customer)
        db.session.flush()
        record_audit(current_user_id(), 'CREATE_CUSTOMER', 'customers', customer.id)
    return jsonify({'success': True, 'customer_id': customer.id})


@bp.route('/<int:customer_id>', methods=['GET'])
def get_customer(customer_id):
    row = _with_totals(db.session.query(Customer)).filter(Customer.id == customer_id).first()
    if not row:
        raise NotFound('Customer not found')
    invoices = (
        Invoice.query.filter_by(customer_id=customer_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(10)
        .all()
    )
    return jsonify({'customer': _row(*row), 'invoices': [i.to_dict() for i in invoices]})


@bp.route('/<int:customer_id>', methods=['PUT'])
def update_customer(customer_id):
    name, contact, remark = _customer_fields()
    with atomic():
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFound('Customer not found')
        customer.name, customer.contact, customer.remark = name, contact, remark
        record_audit(current_user_id(), 'UPDATE_CUSTOMER', 'customers', customer_id)
    return jsonify({'success': True})


@bp.route('/<int:customer_id>', methods=['DELETE'])
def delete_customer(customer_id):
    with atomic():
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFound('Customer not found')
        if Invoice.query.filter_by(customer_id=customer_id).count() > 0:
            raise ValidationError('Cannot delete customer with existing invoices')
        snapshot = customer.to_dict()
        db.session.delete(customer)
        record_audit(current_user_id(), 'DELETE_CUSTOMER', 'customers', customer_id, old_data=snapshot)
    return jsonify({'success': True})
