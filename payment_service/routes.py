import logging
import os
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from payment_service.auth import verify_token
from payment_service.database import SessionLocal
from payment_service.fulfillment import fail_payment, fulfill_payment
from payment_service.models import Order, OrderItem, Payment, ProductVariant
from payment_service.stripe_service import create_payment, field, retrieve_payment
from payment_service.utils import generate_order_number, generate_payment_reference

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutItem(BaseModel):
    variant_id: str
    quantity: int = Field(gt=0)


class CheckoutRequest(BaseModel):
    customer_email: str
    items: List[CheckoutItem] = Field(min_length=1)
    shipping_cost: int = Field(default=0, ge=0)
    currency: str = Field(default_factory=lambda: os.getenv("STORE_CURRENCY", "NGN"))


@router.post("/payments", status_code=201)
def create_payment_api(
    request: CheckoutRequest,
    auth=Depends(verify_token)
):
    db = SessionLocal()
    try:
        variant_ids = [item.variant_id for item in request.items]
        variants = {
            v.id: v for v in db.scalars(select(ProductVariant).where(ProductVariant.id.in_(variant_ids)))
        }

        # A variant may appear on several lines; stock covers their sum
        requested = {}
        for item in request.items:
            requested[item.variant_id] = requested.get(item.variant_id, 0) + item.quantity

        for variant_id, quantity in requested.items():
            variant = variants.get(variant_id)
            if variant is None:
                raise HTTPException(status_code=404, detail=f"Product variant {variant_id} not found")
            if variant.stock_qty < quantity:
                raise HTTPException(
                    status_code=409,
                    detail=f"Insufficient stock for {variant.name}. "
                           f"Available: {variant.stock_qty}, Requested: {quantity}",
                )

        order_items = []
        subtotal = 0
        for position, item in enumerate(request.items):
            variant = variants[item.variant_id]

            # Price from the catalogue, never from the client
            line_total = variant.price * item.quantity
            subtotal += line_total
            order_items.append(OrderItem(
                product_variant_id=variant.id,
                position=position,
                name_snapshot=variant.name,
                sku_snapshot=variant.sku,
                quantity=item.quantity,
                unit_price=variant.price,
                total_price=line_total,
            ))

        total = subtotal + request.shipping_cost
        order_number = generate_order_number()
        reference = generate_payment_reference(order_number)

        intent = create_payment(
            total,
            request.currency,
            reference,
            email=request.customer_email,
            metadata={"order_number": order_number},
        )

        order = Order(
            order_number=order_number,
            customer_email=request.customer_email,
            subtotal=subtotal,
            shipping_cost=request.shipping_cost,
            coupon_discount=0,
            total=total,
            currency=request.currency.upper(),
            items=order_items,
        )
        db.add(order)
        db.add(Payment(
            order=order,
            reference=reference,
            amount=total,
            currency=request.currency.upper(),
            intent_id=intent.id,
        ))
        db.commit()

        logger.info("Checkout %s created for order %s", reference, order_number)
        return {
            "reference": reference,
            "order_id": order.id,
            "order_number": order_number,
            "client_secret": intent.client_secret,
        }
    finally:
        db.close()


@router.get("/payments/verify")
def verify_payment(reference: str):
    db = SessionLocal()
    try:
        payment = db.scalars(select(Payment).where(Payment.reference == reference)).one_or_none()
        intent_id = payment.intent_id if payment else None
    finally:
        db.close()

    if not intent_id:
        raise HTTPException(status_code=404, detail="Payment record not found")

    intent = retrieve_payment(intent_id)
    status = intent["status"]

    if status == "succeeded":
        result = fulfill_payment(
            reference,
            provider_ref=field(intent, "latest_charge", intent["id"]),
            expected_amount=field(intent, "amount_received"),
            session_factory=SessionLocal,
        )
        if result is None:
            raise HTTPException(status_code=404, detail="Payment record not found")

        return {
            "success": True,
            "message": "Payment already verified" if result.already_processed else "Payment verified successfully",
            "data": {
                "order": _order_summary(result.order_id, reference),
                "reference": reference,
                "gateway_status": status,
            },
        }

    if status == "canceled" or (status == "requires_payment_method" and field(intent, "last_payment_error")):
        fail_payment(reference, session_factory=SessionLocal)
        return {
            "success": False,
            "message": "Payment failed. Please try again or use a different payment method.",
            "data": {"reference": reference, "gateway_status": status},
        }

    return {
        "success": False,
        "message": "Payment is still pending",
        "data": {"reference": reference, "gateway_status": status},
    }


def _order_summary(order_id: str, reference: str):
    db = SessionLocal()
    try:
        order = db.scalars(
            select(Order).where(Order.id == order_id).options(selectinload(Order.items))
        ).one()
        payment = next(p for p in order.payments if p.reference == reference)
        return {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status.value,
            "payment_status": order.payment_status.value,
            "subtotal": order.subtotal,
            "shipping_cost": order.shipping_cost,
            "coupon_discount": order.coupon_discount,
            "total": order.total,
            "currency": order.currency,
            "items": [
                {
                    "name": item.name_snapshot,
                    "sku": item.sku_snapshot,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                }
                for item in order.items
            ],
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
        }
    finally:
        db.close()
