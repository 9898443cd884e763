# retail_backend/stock.py
"""
Flows that move inventory.

Each flow is one transaction: product quantity changes, stock-log rows and
the audit row commit together or not at all. Quantities change through SQL
increments so concurrent requests cannot overwrite each other's updates.
"""
import logging
from datetime import datetime

from sqlalchemy import update

from .audit import record_audit
from .errors import Conflict, NotFound, ValidationError
from .models import (
    Customer, Invoice, InvoiceItem, Product, Purchase, PurchaseItem, Return, StockLog, Supplier,
    atomic, db
)
from .validation import to_float, to_int

logger = logging.getLogger(__name__)

PURCHASE = 'PURCHASE'
PURCHASE_DELETE = 'PURCHASE_DELETE'
SALE = 'SALE'
INVOICE_DELETE = 'INVOICE_DELETE'
INITIAL_STOCK = 'INITIAL_STOCK'
MANUAL_ADD = 'MANUAL_ADD'
MANUAL_REMOVE = 'MANUAL_REMOVE'
RETURN_INVOICE = 'RETURN_INVOICE'
RETURN_PURCHASE = 'RETURN_PURCHASE'


def parse_lines(items, price_field):
    """Validate line items [{product_id, qty, <price_field>}] into (product_id, qty, price) tuples."""
    if not isinstance(items, list) or not items:
        raise ValidationError('Missing required fields')
    lines = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError('Invalid line item')
        product_id = to_int(item.get('product_id'), 'product_id', minimum=1)
        qty = to_int(item.get('qty'), 'qty', minimum=1)
        price = to_float(item.get(price_field), price_field, minimum=0)
        lines.append((product_id, qty, price))
    return lines


def _require_products(product_ids):
    ids = set(product_ids)
    found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(ids))}
    missing = sorted(ids - found)
    if missing:
        raise ValidationError(f'Product not found: {missing[0]}')


def change_qty(product_id, delta, **values):
    """qty = qty + delta, plus any extra column values, in a single UPDATE."""
    values['qty'] = Product.qty + delta
    values['updated_at'] = datetime.utcnow()
    db.session.execute(update(Product).where(Product.id == product_id).values(**values))


def log_stock(product_id, action, qty, user_id, **refs):
    entry = StockLog(product_id=product_id, action=action, qty=qty, user_id=user_id, **refs)
    db.session.add(entry)
    return entry


def record_purchase(supplier_id, items, user_id, client_ref=None):
    """
    Receive stock from a supplier. Returns (purchase, duplicate).
    A repeated client_ref returns the purchase already recorded under it and changes nothing.
    """
    lines = parse_lines(items, 'cost_price')
    if client_ref:
        existing = Purchase.query.filter_by(client_ref=client_ref).first()
        if existing:
            return existing, True

    with atomic():
        if not db.session.get(Supplier, supplier_id):
            raise ValidationError('Supplier not found')
        _require_products(pid for pid, _, _ in lines)

        purchase = Purchase(
            supplier_id=supplier_id,
            user_id=user_id,
            total_amount=sum(qty * cost for _, qty, cost in lines),
            client_ref=client_ref
        )
        db.session.add(purchase)
        db.session.flush()

        for product_id, qty, cost_price in lines:
            db.session.add(PurchaseItem(purchase_id=purchase.id, product_id=product_id, qty=qty, cost_price=cost_price))
            change_qty(product_id, qty, cost_price=cost_price)
            log_stock(product_id, PURCHASE, qty, user_id, purchase_id=purchase.id)

        record_audit(user_id, 'CREATE_PURCHASE', 'purchases', purchase.id)

    logger.info('purchase %s recorded by user %s (%d lines)', purchase.id, user_id, len(lines))
    return purchase, False


def delete_purchase(purchase_id, user_id):
    """Remove a purchase and take its quantities back out of stock. Refused while returns point at it."""
    with atomic():
        purchase = db.session.get(Purchase, purchase_id)
        if not purchase:
            raise NotFound('Purchase not found')
        if Return.query.filter_by(purchase_id=purchase_id).first():
            raise Conflict('Cannot delete purchase with existing returns')
        for item in purchase.items:
            change_qty(item.product_id, -item.qty)
            log_stock(item.product_id, PURCHASE_DELETE, -item.qty, user_id, purchase_id=purchase.id)
        db.session.delete(purchase)
        record_audit(user_id, 'DELETE_PURCHASE', 'purchases', purchase_id)
    logger.info('purchase %s deleted by user %s', purchase_id, user_id)


def next_invoice_no():
    max_id = db.session.query(db.func.max(Invoice.id)).scalar() or 0
    return f'INV-{datetime.utcnow().year}-{max_id + 1:03d}'


def create_invoice(customer, items, user_id, discount=0, payment_method=None, client_ref=None):
    """
    Bill a customer: either customer['existing_id'] or a new customer built from
    name/contact/remark. Returns (invoice, duplicate).
    """
    lines = parse_lines(items, 'selling_price')
    discount = to_float(discount or 0, 'discount', minimum=0)
    if client_ref:
        existing = Invoice.query.filter_by(client_ref=client_ref).first()
        if existing:
            return existing, True

    with atomic():
        _require_products(pid for pid, _, _ in lines)

        if customer.get('existing_id'):
            customer_id = to_int(customer['existing_id'], 'existing_id', minimum=1)
            if not db.session.get(Customer, customer_id):
                raise ValidationError('Customer not found')
        else:
            new_customer = Customer(name=customer['name'], contact=customer['contact'], remark=customer.get('remark') or None)
            db.session.add(new_customer)
            db.session.flush()
            customer_id = new_customer.id
            record_audit(user_id, 'CREATE_CUSTOMER', 'customers', customer_id)

        total_amount = sum(qty * price for _, qty, price in lines)
        invoice = Invoice(
            invoice_no=next_invoice_no(),
            customer_id=customer_id,
            user_id=user_id,
            total_amount=total_amount,
            discount=discount,
            net_amount=total_amount - discount,
            payment_method=payment_method,
            client_ref=client_ref
        )
        db.session.add(invoice)
        db.session.flush()

        for product_id, qty, price in lines:
            db.session.add(InvoiceItem(
                invoice_id=invoice.id, product_id=product_id, qty=qty, selling_price=price, line_total=qty * price
            ))
            change_qty(product_id, -qty)
            log_stock(product_id, SALE, -qty, user_id, invoice_id=invoice.id)

        record_audit(user_id, 'CREATE_INVOICE', 'invoices', invoice.id)

    logger.info('invoice %s created by user %s', invoice.invoice_no, user_id)
    return invoice, False


def delete_invoice(invoice_id, user_id):
    """Remove an invoice and put its quantities back into stock. Refused while returns point at it."""
    with atomic():
        invoice = db.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFound('Invoice not found')
        if Return.query.filter_by(invoice_id=invoice_id).first():
            raise Conflict('Cannot delete invoice with existing returns')
        for item in invoice.items:
            change_qty(item.product_id, item.qty)
            log_stock(item.product_id, INVOICE_DELETE, item.qty, user_id, invoice_id=invoice.id)
        db.session.delete(invoice)
        record_audit(user_id, 'DELETE_INVOICE', 'invoices', invoice_id)
    logger.info('invoice %s deleted by user %s', invoice_id, user_id)


def adjust_stock(product_id, action, qty, user_id, reason=None):
    """Manual correction. action is 'add' or 'remove'. Returns the new quantity."""
    if action not in ('add', 'remove'):
        raise ValidationError('Invalid action')
    qty = to_int(qty, 'qty', minimum=1)

    with atomic():
        if not db.session.get(Product, product_id):
            raise NotFound('Product not found')
        if action == 'add':
            change_qty(product_id, qty)
            log_stock(product_id, reason or MANUAL_ADD, qty, user_id)
        else:
            result = db.session.execute(
                update(Product)
                .where(Product.id == product_id, Product.qty >= qty)
                .values(qty=Product.qty - qty, updated_at=datetime.utcnow())
            )
            if result.rowcount == 0:
                raise ValidationError('Insufficient stock')
            log_stock(product_id, reason or MANUAL_REMOVE, -qty, user_id)
        record_audit(user_id, 'UPDATE_INVENTORY', 'products', product_id)
        new_qty = db.session.query(Product.qty).filter(Product.id == product_id).scalar()
    return new_qty


def resolve_return(return_id, status, user_id):
    """
    Approve or reject a pending return. Approving an invoice return puts the
    goods back in stock; approving a purchase return sends them back out.
    """
    if status not in ('approved', 'rejected'):
        raise ValidationError('Invalid status')

    with atomic():
        ret = db.session.get(Return, return_id)
        if not ret:
            raise NotFound('Return not found')
        if ret.status != 'pending':
            raise Conflict(f'Return is already {ret.status}')

        ret.status = status
        if status == 'approved':
            if ret.invoice_id:
                change_qty(ret.product_id, ret.qty)
                log_stock(ret.product_id, RETURN_INVOICE, ret.qty, user_id, return_id=ret.id)
            elif ret.purchase_id:
                change_qty(ret.product_id, -ret.qty)
                log_stock(ret.product_id, RETURN_PURCHASE, -ret.qty, user_id, return_id=ret.id)
        record_audit(user_id, 'APPROVE_RETURN' if status == 'approved' else 'REJECT_RETURN', 'returns', ret.id)
    return ret
