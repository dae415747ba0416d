"""Payment fulfillment.

``fulfill_payment`` applies a successful gateway notification exactly once:
the payment is marked SUCCESS, the order PAID, stock is deducted with a
ledger entry per line item, and a confirmation email goes out after commit.
``fail_payment`` is its counterpart for failed charges and never downgrades a
successful payment.

Both claim the payment row with a conditional UPDATE inside the transaction,
so concurrent or repeated notifications for one reference serialize on the
row and only the first caller sees an affected row.
"""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import joinedload, selectinload

from payment_service import database
from payment_service.emails import render_order_confirmation
from payment_service.mailer import send_email
from payment_service.models import (
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentStatus,
    ProductVariant,
    StockMovement,
    StockMovementType,
)

logger = logging.getLogger(__name__)

# An order in any other status keeps it when its payment succeeds.
ADVANCEABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING})


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: str
    order_number: str
    already_processed: bool


def fulfill_payment(
    reference: str,
    provider_ref: Optional[str] = None,
    expected_amount: Optional[int] = None,
    *,
    session_factory=None,
    mailer=None,
) -> Optional[FulfillmentResult]:
    """Mark the payment behind ``reference`` as successful and fulfill its order.

    Returns ``None`` when the reference is unknown or ``expected_amount``
    (minor units) does not match the recorded amount. A payment that already
    succeeded is reported with ``already_processed=True`` and nothing else
    happens. Store errors propagate and leave no partial writes behind.
    """
    session_factory = session_factory or database.SessionLocal
    mailer = mailer or functools.partial(send_email, session_factory=session_factory)

    with session_factory() as db:
        with db.begin():
            claim = (
                update(Payment)
                .where(Payment.reference == reference)
                .where(Payment.status != PaymentStatus.SUCCESS)
                .values(status=PaymentStatus.SUCCESS, paid_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if expected_amount is not None:
                claim = claim.where(Payment.amount == expected_amount)
            if provider_ref is not None:
                claim = claim.values(provider_ref=provider_ref)

            if db.execute(claim).rowcount == 0:
                return _unclaimed_result(db, reference, expected_amount)

            payment = db.scalars(
                select(Payment)
                .where(Payment.reference == reference)
                .options(joinedload(Payment.order).selectinload(Order.items))
            ).one()
            order = payment.order

            order.payment_status = OrderPaymentStatus.PAID
            if order.status in ADVANCEABLE_ORDER_STATUSES:
                order.status = OrderStatus.PROCESSING
            else:
                logger.warning(
                    "Order %s is %s; payment %s recorded but order status left unchanged",
                    order.order_number, order.status.value, reference,
                )

            _deduct_stock(db, order)

            subject, html = render_order_confirmation(order)
            customer_email = order.customer_email
            result = FulfillmentResult(order.id, order.order_number, already_processed=False)

    logger.info("Payment %s fulfilled for order %s", reference, result.order_number)

    if customer_email:
        try:
            mailer(customer_email, subject, html)
        except Exception:
            logger.exception("Failed to send order confirmation email for %s", result.order_number)

    return result


def _unclaimed_result(db, reference, expected_amount):
    payment = db.scalars(
        select(Payment).where(Payment.reference == reference).options(joinedload(Payment.order))
    ).one_or_none()

    if payment is None:
        logger.error("Payment not found for reference: %s", reference)
        return None

    if expected_amount is not None and payment.amount != expected_amount:
        logger.error(
            "Payment amount mismatch for %s: expected %s, got %s",
            reference, expected_amount, payment.amount,
        )
        return None

    logger.info("Payment %s already processed", reference)
    return FulfillmentResult(payment.order.id, payment.order.order_number, already_processed=True)


def _deduct_stock(db, order):
    # Relative decrement; sufficiency is checked at checkout, not here.
    for item in order.items:
        db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == item.product_variant_id)
            .values(stock_qty=ProductVariant.stock_qty - item.quantity)
            .execution_options(synchronize_session=False)
        )
        db.add(StockMovement(
            product_variant_id=item.product_variant_id,
            type=StockMovementType.DEDUCTION,
            quantity=item.quantity,
            reason=f"Order {order.order_number} - payment confirmed",
            reference_id=order.id,
        ))

    oversold = db.execute(
        select(ProductVariant.sku, ProductVariant.stock_qty)
        .where(ProductVariant.id.in_([item.product_variant_id for item in order.items]))
        .where(ProductVariant.stock_qty < 0)
    ).all()
    for sku, stock_qty in oversold:
        logger.warning("Variant %s oversold by order %s: stock now %s", sku, order.order_number, stock_qty)


def fail_payment(reference: str, *, session_factory=None) -> None:
    """Record a failed charge unless the payment has already succeeded."""
    session_factory = session_factory or database.SessionLocal

    with session_factory() as db:
        with db.begin():
            failed = db.execute(
                update(Payment)
                .where(Payment.reference == reference)
                .where(Payment.status != PaymentStatus.SUCCESS)
                .values(status=PaymentStatus.FAILED)
                .execution_options(synchronize_session=False)
            )

            if failed.rowcount == 0:
                if db.scalar(select(Payment.id).where(Payment.reference == reference)) is None:
                    logger.error("Payment not found for reference: %s", reference)
                else:
                    logger.info("Ignoring failure for %s: payment already succeeded", reference)
                return

            order_id = select(Payment.order_id).where(Payment.reference == reference).scalar_subquery()
            db.execute(
                update(Order)
                .where(Order.id == order_id)
                .where(Order.payment_status != OrderPaymentStatus.PAID)
                .values(payment_status=OrderPaymentStatus.FAILED)
                .execution_options(synchronize_session=False)
            )

    logger.info("Payment %s marked as failed", reference)
