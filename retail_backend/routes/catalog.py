# retail_backend/routes/catalog.py
from flask import Blueprint, g, jsonify

from ..audit import record_audit
from ..bilingual import format_bilingual_list, resolve_display_language
from ..errors import ValidationError
from ..models import Category, Role, Supplier, atomic, db
from ..validation import json_body, optional, text
from . import current_user_id

bp = Blueprint('catalog', __name__, url_prefix='/api')


@bp.route('/categories', methods=['GET'])
def list_categories():
    """Category names, reduced to one language when ?lang= (or the saved preference) asks for it."""
    categories = [c.to_dict() for c in Category.query.order_by(Category.name.asc()).all()]
    language = resolve_display_language(g.identity)
    if language:
        categories = format_bilingual_list(categories, ['name'], language)
    return jsonify({'categories': categories})


@bp.route('/roles', methods=['GET'])
def list_roles():
    roles = Role.query.order_by(Role.id.asc()).all()
    return jsonify({'success': True, 'roles': [{'id': r.id, 'role_name': r.role_name} for r in roles]})


@bp.route('/suppliers', methods=['GET'])
def list_suppliers():
    suppliers = Supplier.query.order_by(Supplier.name.asc()).all()
    return jsonify({'suppliers': [s.to_dict() for s in suppliers]})


@bp.route('/suppliers', methods=['POST'])
def create_supplier():
    data = json_body()
    name = text(data, 'name')
    if not name:
        raise ValidationError('Name is required')
    with atomic():
        supplier = Supplier(name=name, contact=optional(data.get('contact')), address=optional(data.get('address')))
        db.session.add(supplier)
        db.session.flush()
        record_audit(current_user_id(), 'CREATE_SUPPLIER', 'suppliers', supplier.id)
    return jsonify({'success': True, 'supplier_id': supplier.id})
