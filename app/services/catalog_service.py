"""
Catalog service - read-only product and category queries for the storefront.

Only active products and categories are visible. Catalog maintenance lives
outside this application.
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import or_, func
from sqlalchemy.orm import Session, joinedload

from app.models import Category, Product
from app.exceptions import BusinessLogicError, NotFoundError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100

SORT_ORDERS = {
    'name': (Product.name.asc(),),
    'price_asc': (Product.price.asc(), Product.name.asc()),
    'price_desc': (Product.price.desc(), Product.name.asc()),
    'newest': (Product.created_at.desc(), Product.name.asc()),
}


class CatalogService:
    """Product browsing: listing with filters, detail and categories."""

    def __init__(self, session: Session):
        self.session = session

    def get_products(
        self,
        category_slug: Optional[str] = None,
        search_term: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        sort_by: str = 'name',
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> Tuple[List[Product], int]:
        """
        Filtered page of active products.

        Returns:
            (products, total): the page and the number of matches overall.

        Raises:
            BusinessLogicError: unknown sort order or invalid paging.
        """
        if sort_by not in SORT_ORDERS:
            raise BusinessLogicError(f"Unknown sort order '{sort_by}'")
        if limit < 1 or limit > MAX_LIMIT:
            raise BusinessLogicError(f'limit must be between 1 and {MAX_LIMIT}')
        if offset < 0:
            raise BusinessLogicError('offset must not be negative')

        query = self.session.query(Product).filter(Product.is_active.is_(True))

        if category_slug:
            query = query.join(Category, Product.category_id == Category.id).filter(
                Category.slug == category_slug,
                Category.is_active.is_(True),
            )

        if search_term:
            pattern = f'%{search_term.strip().lower()}%'
            query = query.filter(or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.description).like(pattern),
            ))

        if min_price is not None:
            query = query.filter(Product.price >= min_price)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)

        total = query.count()
        products = (
            query.options(joinedload(Product.category))
            .order_by(*SORT_ORDERS[sort_by], Product.id)
            .limit(limit)
            .offset(offset)
            .all()
        )
        return products, total

    def get_product(self, product_id: str) -> Product:
        product = (
            self.session.query(Product)
            .options(joinedload(Product.category), joinedload(Product.variants))
            .filter(Product.id == product_id, Product.is_active.is_(True))
            .first()
        )
        if not product:
            raise NotFoundError('Product not found')
        return product

    def get_categories(self) -> List[Category]:
        return (
            self.session.query(Category)
            .filter(Category.is_active.is_(True))
            .order_by(Category.name)
            .all()
        )

    def get_category_by_slug(self, slug: str) -> Category:
        category = (
            self.session.query(Category)
            .filter(Category.slug == slug, Category.is_active.is_(True))
            .first()
        )
        if not category:
            raise NotFoundError('Category not found')
        return category
