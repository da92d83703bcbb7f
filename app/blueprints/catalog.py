"""Catalog blueprint - read-only product browsing for the storefront."""
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import Blueprint, jsonify, request

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.services.catalog_service import CatalogService, DEFAULT_LIMIT

catalog_bp = Blueprint('catalog', __name__)


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name, '').strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise BusinessLogicError(f'{name} must be an integer')


def _price_arg(name: str) -> Optional[Decimal]:
    value = request.args.get(name, '').strip()
    if not value:
        return None
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise BusinessLogicError(f'{name} must be a number')
    if not price.is_finite() or price < 0:
        raise BusinessLogicError(f'{name} must be a non-negative number')
    return price


@catalog_bp.route('/products', methods=['GET'])
def list_products():
    """
    Active products, filtered and paginated.

    Query: category (slug), q, min_price, max_price,
    sort (name | price_asc | price_desc | newest), limit, offset.
    """
    limit = _int_arg('limit', DEFAULT_LIMIT)
    offset = _int_arg('offset', 0)
    products, total = CatalogService(get_session()).get_products(
        category_slug=request.args.get('category', '').strip() or None,
        search_term=request.args.get('q', '').strip() or None,
        min_price=_price_arg('min_price'),
        max_price=_price_arg('max_price'),
        sort_by=request.args.get('sort', '').strip() or 'name',
        limit=limit,
        offset=offset,
    )
    return jsonify({
        'products': [product.to_dict() for product in products],
        'total': total,
        'limit': limit,
        'offset': offset,
        'has_more': offset + len(products) < total,
    })


@catalog_bp.route('/products/<product_id>', methods=['GET'])
def product_detail(product_id):
    product = CatalogService(get_session()).get_product(product_id)
    return jsonify(product.to_dict(include_variants=True))


@catalog_bp.route('/categories', methods=['GET'])
def list_categories():
    categories = CatalogService(get_session()).get_categories()
    return jsonify({'categories': [category.to_dict() for category in categories]})


@catalog_bp.route('/categories/<slug>', methods=['GET'])
def category_detail(slug):
    return jsonify(CatalogService(get_session()).get_category_by_slug(slug).to_dict())
