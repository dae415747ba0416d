import logging
import os
import stripe
from pathlib import Path
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Header, HTTPException
from fastapi.concurrency import run_in_threadpool

from payment_service.routes import router
from payment_service.database import Base, engine, SessionLocal
from payment_service.fulfillment import fail_payment, fulfill_payment
from payment_service.stripe_service import construct_webhook_event, field

# Force-load .env (Windows-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="FBG Payment Fulfillment Service")

app.include_router(router)

Base.metadata.create_all(bind=engine)

FAILURE_EVENTS = ("payment_intent.payment_failed", "payment_intent.canceled")


@app.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    payload = await request.body()

    try:
        event = construct_webhook_event(payload, stripe_signature)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    if event_type != "payment_intent.succeeded" and event_type not in FAILURE_EVENTS:
        return {"ok": True}

    intent = event["data"]["object"]
    reference = field(field(intent, "metadata"), "reference")
    if not reference:
        logger.warning("Ignoring %s for intent %s without a payment reference", event_type, intent["id"])
        return {"ok": True}

    # Fulfillment is idempotent, so a gateway retry after a 5xx is safe.
    if event_type == "payment_intent.succeeded":
        await run_in_threadpool(
            fulfill_payment,
            reference,
            provider_ref=field(intent, "latest_charge", intent["id"]),
            expected_amount=field(intent, "amount_received"),
            session_factory=SessionLocal,
        )
    else:
        await run_in_threadpool(fail_payment, reference, session_factory=SessionLocal)

    return {"ok": True}
