from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.models.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, index=True, nullable=False)
    # pending | paid | processing | fulfilled | cancelled | timeout
    status = Column(String(32), nullable=False, default="pending", index=True)
    amount_elurc = Column(BigInteger, nullable=False)  # lamports
    amount_eur = Column(Integer, nullable=False)  # cents
    customer_wallet = Column(String(64), nullable=False, index=True)
    customer_email = Column(String(255), nullable=False, index=True)

    shipping_full_name = Column(String(255), nullable=False)
    shipping_street_address = Column(String(255), nullable=False)
    shipping_city = Column(String(128), nullable=False)
    shipping_postal_code = Column(String(32), nullable=False)
    shipping_phone_number = Column(String(64), nullable=False)

    transaction_signature = Column(String(128), nullable=True, index=True)
    received_amount_elurc = Column(BigInteger, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
    tracking_number = Column(String(128), nullable=True)

    has_discrepancy = Column(Boolean, nullable=False, default=False)
    discrepancy_type = Column(String(32), nullable=True)  # overpayment | underpayment
    discrepancy_expected_amount = Column(BigInteger, nullable=True)
    discrepancy_received_amount = Column(BigInteger, nullable=True)
    discrepancy_difference_amount = Column(BigInteger, nullable=True)
    # pending_review | refund_pending | manually_approved | refund_completed
    discrepancy_resolution = Column(String(32), nullable=True)
    discrepancy_resolution_notes = Column(Text, nullable=True)

    refund_amount = Column(BigInteger, nullable=True)
    refund_wallet = Column(String(64), nullable=True)
    refund_transaction_signature = Column(String(128), nullable=True)
    refund_initiated_at = Column(DateTime(timezone=True), nullable=True)
    refund_completed_at = Column(DateTime(timezone=True), nullable=True)
    refund_reason = Column(Text, nullable=True)

    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_snapshot_elurc = Column(BigInteger, nullable=False)
    price_snapshot_eur = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    changed_by = Column(String(16), nullable=False, default="system")  # system | admin
    reason = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="status_history")
