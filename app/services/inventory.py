"""Stock adjustments driven by order fulfillment and cancellation."""

import logging

from sqlalchemy.orm import Session

from app.models import Order, Product
from app.services.exceptions import InsufficientStockError, ProductNotFoundError

logger = logging.getLogger(__name__)


def set_stock(product: Product, stock: int) -> None:
    """Write stock and keep the derived in_stock flag in sync."""
    if stock < 0:
        raise ValueError("Stock cannot be negative")
    product.stock = stock
    product.in_stock = stock > 0


def _locked_products(db: Session, order: Order) -> dict[int, Product]:
    product_ids = sorted({item.product_id for item in order.items})
    products = (
        db.query(Product)
        .filter(Product.id.in_(product_ids))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    return {product.id: product for product in products}


def _required_quantities(order: Order) -> dict[int, int]:
    required: dict[int, int] = {}
    for item in order.items:
        required[item.product_id] = required.get(item.product_id, 0) + item.quantity
    return required


def check_availability(db: Session, order: Order) -> dict[int, Product]:
    """Verify every item can be served before any stock is touched."""
    products = _locked_products(db, order)
    for product_id, quantity in _required_quantities(order).items():
        product = products.get(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        if product.stock < quantity:
            raise InsufficientStockError(product.name, product.stock, quantity)
    return products


def decrement_for_fulfillment(db: Session, order: Order) -> None:
    products = check_availability(db, order)
    for product_id, quantity in _required_quantities(order).items():
        product = products[product_id]
        set_stock(product, product.stock - quantity)
        logger.info(
            "Stock for product %s decremented by %s to %s (order %s)",
            product_id,
            quantity,
            product.stock,
            order.order_number,
        )


def restore_for_cancellation(db: Session, order: Order) -> None:
    products = _locked_products(db, order)
    for product_id, quantity in _required_quantities(order).items():
        product = products.get(product_id)
        if product is None:
            logger.warning(
                "Product %s of order %s no longer exists, stock not restored",
                product_id,
                order.order_number,
            )
            continue
        set_stock(product, product.stock + quantity)
        logger.info(
            "Stock for product %s restored by %s to %s (order %s)",
            product_id,
            quantity,
            product.stock,
            order.order_number,
        )
