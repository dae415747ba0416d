import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")

from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from payment_service.database import Base, create_db_engine
from payment_service.models import Order, OrderItem, OrderStatus, Payment, ProductVariant

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_db_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

UNIT_PRICE = 100000


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def seed_variant(session_factory):
    def _seed(sku="FBG-AGB-M", stock_qty=10, price=UNIT_PRICE, name="Agbada Set"):
        db = session_factory()
        variant = ProductVariant(sku=sku, name=name, price=price, stock_qty=stock_qty)
        db.add(variant)
        db.commit()
        variant_id = variant.id
        db.close()
        return variant_id
    return _seed


@pytest.fixture
def seed_order(session_factory, seed_variant):
    """Create a pending order with one Payment.

    ``lines`` is a sequence of ``(sku, stock_qty, quantity)``; each line gets
    its own variant priced at ``UNIT_PRICE``.
    """
    def _seed(
        lines=(("FBG-AGB-M", 10, 2),),
        reference="PAY-FBG-TEST-1",
        amount=None,
        order_status=OrderStatus.PENDING,
        customer_email="customer@example.com",
        shipping_cost=150000,
        coupon_discount=0,
        intent_id="pi_test_1",
    ):
        variant_ids = {sku: seed_variant(sku=sku, stock_qty=stock) for sku, stock, _ in lines}

        db = session_factory()
        items = [
            OrderItem(
                product_variant_id=variant_ids[sku],
                position=position,
                name_snapshot=f"Item {sku}",
                sku_snapshot=sku,
                quantity=quantity,
                unit_price=UNIT_PRICE,
                total_price=UNIT_PRICE * quantity,
            )
            for position, (sku, _, quantity) in enumerate(lines)
        ]
        subtotal = sum(item.total_price for item in items)
        total = subtotal + shipping_cost - coupon_discount
        order = Order(
            order_number="FBG-TEST0001",
            customer_email=customer_email,
            status=order_status,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            coupon_discount=coupon_discount,
            total=total,
            items=items,
        )
        payment = Payment(
            order=order,
            reference=reference,
            amount=total if amount is None else amount,
            intent_id=intent_id,
        )
        db.add_all([order, payment])
        db.commit()
        seeded = SimpleNamespace(
            order_id=order.id,
            order_number=order.order_number,
            reference=reference,
            amount=payment.amount,
            variant_ids=variant_ids,
        )
        db.close()
        return seeded
    return _seed
