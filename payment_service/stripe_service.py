import os
from pathlib import Path
from dotenv import load_dotenv
import stripe

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")


def create_payment(amount: int, currency: str, reference: str, email: str = None, metadata: dict = None):
    # The payment reference doubles as Stripe's idempotency key, so a retried
    # checkout never opens a second intent for the same order.
    return stripe.PaymentIntent.create(
        amount=amount,
        currency=currency.lower(),
        automatic_payment_methods={"enabled": True},
        receipt_email=email,
        metadata={"reference": reference, **(metadata or {})},
        idempotency_key=reference,
    )


def retrieve_payment(intent_id: str):
    return stripe.PaymentIntent.retrieve(intent_id)


def construct_webhook_event(payload: bytes, signature: str):
    return stripe.Webhook.construct_event(
        payload,
        signature,
        os.getenv("STRIPE_WEBHOOK_SECRET")
    )


def field(obj, key, default=None):
    """Optional field of a Stripe object; these are not dicts, so no ``.get``."""
    if obj is None or key not in obj:
        return default
    value = obj[key]
    return default if value is None else value
