import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship

from payment_service.database import Base


def _uuid():
    return uuid4().hex


def _now():
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class OrderPaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class StockMovementType(str, enum.Enum):
    DEDUCTION = "DEDUCTION"


class EmailStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    order_number = Column(String, unique=True, index=True, nullable=False)
    customer_email = Column(String)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(Enum(OrderPaymentStatus), default=OrderPaymentStatus.PENDING, nullable=False)
    subtotal = Column(Integer, nullable=False)                 # minor units
    shipping_cost = Column(Integer, default=0, nullable=False)
    coupon_discount = Column(Integer, default=0, nullable=False)
    total = Column(Integer, nullable=False)
    currency = Column(String, default="NGN", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.position")
    payments = relationship("Payment", back_populates="order")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column(String, ForeignKey("orders.id"), index=True, nullable=False)
    product_variant_id = Column(String, ForeignKey("product_variants.id"), nullable=False)
    position = Column(Integer, default=0, nullable=False)
    name_snapshot = Column(String, nullable=False)
    sku_snapshot = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    product_variant = relationship("ProductVariant")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String, primary_key=True, default=_uuid)
    sku = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    stock_qty = Column(Integer, default=0, nullable=False)     # may go negative when oversold


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(String, primary_key=True, default=_uuid)
    product_variant_id = Column(String, ForeignKey("product_variants.id"), index=True, nullable=False)
    type = Column(Enum(StockMovementType), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(String)
    reference_id = Column(String, index=True)                  # order id for deductions
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column(String, ForeignKey("orders.id"), index=True, nullable=False)
    reference = Column(String, unique=True, index=True, nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String, default="NGN", nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    provider = Column(String, default="STRIPE", nullable=False)
    intent_id = Column(String, unique=True)                    # Stripe PaymentIntent ID
    provider_ref = Column(String)                              # charge id, set on success
    paid_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    order = relationship("Order", back_populates="payments")


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(String, primary_key=True, default=_uuid)
    to_email = Column(String, nullable=False)
    template_name = Column(String, default="CUSTOM", nullable=False)
    subject = Column(String, nullable=False)
    status = Column(Enum(EmailStatus), nullable=False)
    error_message = Column(Text)
    payload = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
