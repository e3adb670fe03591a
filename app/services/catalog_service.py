import logging
import re
import unicodedata

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Category, Product
from app.services.exceptions import CatalogError, ProductNotFoundError
from app.services.inventory import set_stock

logger = logging.getLogger(__name__)

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _SLUG_STRIP_RE.sub("-", normalized.lower()).strip("-")


def _unique_slug(db: Session, base: str, exclude_id: int | None = None) -> str:
    slug = base or "product"
    suffix = 2
    while True:
        query = db.query(Product.id).filter(Product.slug == slug)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def list_categories(db: Session) -> list[Category]:
    return db.query(Category).order_by(Category.name).all()


def get_category_by_slug(db: Session, slug: str) -> Category | None:
    return db.query(Category).filter(Category.slug == slug).first()


def list_products(db: Session, category_slug: str | None = None, in_stock_only: bool = False) -> list[Product]:
    query = db.query(Product)
    if category_slug:
        query = query.join(Category).filter(Category.slug == category_slug)
    if in_stock_only:
        query = query.filter(Product.in_stock.is_(True))
    return query.order_by(Product.name, Product.id).all()


def get_product_by_slug(db: Session, slug: str) -> Product:
    product = db.query(Product).filter(Product.slug == slug).first()
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def create_product(db: Session, data: dict) -> Product:
    category = db.query(Category).filter(Category.id == data["category_id"]).first()
    if not category:
        raise CatalogError("Category not found")

    product = Product(
        name=data["name"],
        slug=_unique_slug(db, data.get("slug") or slugify(data["name"])),
        description=data.get("description"),
        price_elurc=data["price_elurc"],
        price_eur=data["price_eur"],
        category_id=category.id,
        low_stock_threshold=data.get("low_stock_threshold", 5),
        images=list(data.get("images") or []),
    )
    set_stock(product, data.get("stock", 0))
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Product %s (%s) created with stock %s", product.id, product.slug, product.stock)
    return product


def update_product(db: Session, product_id: int, changes: dict) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise ProductNotFoundError("Product not found")

    if "description" in changes:
        product.description = changes["description"]
    # Remaining columns are not nullable; an explicit null leaves them unchanged.
    changes = {key: value for key, value in changes.items() if value is not None}

    if "category_id" in changes:
        if not db.query(Category.id).filter(Category.id == changes["category_id"]).first():
            raise CatalogError("Category not found")
        product.category_id = changes["category_id"]
    if changes.get("slug"):
        product.slug = _unique_slug(db, slugify(changes["slug"]), exclude_id=product.id)
    for field in ("name", "price_elurc", "price_eur", "low_stock_threshold", "images"):
        if field in changes:
            setattr(product, field, changes[field])
    if "stock" in changes:
        set_stock(product, changes["stock"])

    db.commit()
    db.refresh(product)
    return product


def product_stats(db: Session) -> dict:
    total = db.query(func.count(Product.id)).scalar() or 0
    out_of_stock = db.query(func.count(Product.id)).filter(Product.stock <= 0).scalar() or 0
    low_stock = (
        db.query(func.count(Product.id))
        .filter(Product.stock > 0, Product.stock <= Product.low_stock_threshold)
        .scalar()
        or 0
    )
    return {"total": total, "out_of_stock": out_of_stock, "low_stock": low_stock}
