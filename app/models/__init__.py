from app.models.database import Base, get_db
from app.models.user import User
from app.models.catalog import Category, Product
from app.models.order import Order, OrderItem, OrderStatusHistory
from app.models.refund import Refund
from app.models.auth_token import RefreshToken

__all__ = [
    "Base",
    "get_db",
    "User",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Refund",
    "RefreshToken",
]
