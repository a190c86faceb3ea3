import logging
from typing import Any, Optional

import stripe
from fastapi import APIRouter, Body, Depends, Header, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from formations.auth import require_admin
from formations.database import get_db
from formations.errors import InvalidInput, UpstreamFailure
from formations import submissions
from formations.models import Order
from formations.payments import PaymentIntentInitiator
from formations.reconciler import OrderReconciler, billing_details
from formations.repository import (
    JURISDICTIONS,
    MAIL_FORWARDING,
    PROFESSIONAL_SERVICES,
    SERVICES,
    TRUST_FORMATIONS,
    EntityRepository,
    OrderRepository,
)
from formations.schemas import (
    ApplicationSubmission,
    MailForwardingSubmission,
    OrderConfirmRequest,
    OrderCreate,
    PaymentIntentRequest,
    PaymentIntentResponse,
    TrustFormationSubmission,
    WebhookAck,
)
from formations.stripe_service import PaymentGateway, as_plain_dict
from formations.webhooks import WebhookReceiver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    body: PaymentIntentRequest,
    request: Request,
    gateway: PaymentGateway = Depends(get_gateway),
):
    initiator = PaymentIntentInitiator(gateway, request.app.state.settings.default_currency)
    return initiator.create(
        body.amount,
        currency=body.currency,
        metadata=body.metadata,
        customer_email=body.customer_email,
        description=body.description,
    )


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(None)):
    payload = await request.body()
    receiver = WebhookReceiver(request.app.state.gateway, request.app.state.session_factory)

    event = receiver.verify(payload, stripe_signature)
    await run_in_threadpool(receiver.dispatch, event)
    return {"received": True}


@router.post("/orders")
def create_order(body: OrderCreate, db: Session = Depends(get_db)):
    # Only payment events move an order past pending.
    if body.payment_status != "pending":
        raise InvalidInput("New orders must be pending")
    order = OrderRepository(db).create(body.model_dump())
    return {"success": True, "order": order}


@router.get("/orders")
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    return OrderRepository(db).list({"payment_status": status}, search=search, page=page, limit=limit)


@router.post("/orders/confirm")
def confirm_order(
    body: OrderConfirmRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """Save the order from the payment page when the webhook has not landed yet."""
    if not body.payment_intent_id:
        raise InvalidInput("Payment intent ID is required")

    try:
        intent = as_plain_dict(gateway.retrieve_payment_intent(body.payment_intent_id))
    except stripe.StripeError as exc:
        raise UpstreamFailure("Failed to confirm order") from exc

    if intent.get("status") != "succeeded":
        raise InvalidInput("Payment has not succeeded yet")

    metadata = as_plain_dict(intent.get("metadata"))
    order_id = metadata.get("order_id")
    if not order_id:
        raise InvalidInput("No order_id in payment intent metadata")

    if db.scalar(select(Order.id).where(Order.order_id == order_id)) is not None:
        return {"success": True, "message": "Order already exists", "order_id": order_id}

    billing = billing_details(intent)
    name = billing.get("name") or metadata.get("customer_name")
    address = as_plain_dict(billing.get("address"))
    OrderReconciler(db).reconcile_success(
        intent,
        billing={"customer_name": name, "billing_name": name, "billing_address": address or None},
        link_applications=True,
    )
    logger.info("order %s saved from client confirmation", order_id)
    return {"success": True, "message": "Order confirmed and saved successfully", "order_id": order_id}


@router.get("/jurisdictions")
def list_jurisdictions(db: Session = Depends(get_db)):
    return EntityRepository(db, JURISDICTIONS).list({"status": "active"}, limit=500)["items"]


@router.get("/jurisdictions/{jurisdiction_id}")
def get_jurisdiction(jurisdiction_id: str, db: Session = Depends(get_db)):
    return EntityRepository(db, JURISDICTIONS).get(jurisdiction_id)


@router.get("/services")
def list_services(db: Session = Depends(get_db)):
    return EntityRepository(db, SERVICES).list({"active": True}, limit=500)["items"]


@router.get("/professional-services")
def list_professional_services(db: Session = Depends(get_db)):
    return EntityRepository(db, PROFESSIONAL_SERVICES).list({"active": True}, limit=500)["items"]


@router.post("/applications")
def save_application(body: ApplicationSubmission, db: Session = Depends(get_db)):
    application_id = submissions.save_application(db, body)
    return {"success": True, "message": "Application saved successfully", "id": application_id}


@router.get("/applications")
def get_application(id: Optional[str] = None, db: Session = Depends(get_db)):
    if not id:
        raise InvalidInput("Application ID is required")
    return submissions.application_view(db, id)


@router.post("/mail-forwarding")
def create_mail_forwarding(body: MailForwardingSubmission, db: Session = Depends(get_db)):
    return {"success": True, "application": submissions.create_mail_forwarding(db, body)}


@router.get("/mail-forwarding")
def list_mail_forwarding(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return EntityRepository(db, MAIL_FORWARDING).list(limit=500)["items"]


@router.post("/trust-formation")
def create_trust_formation(body: TrustFormationSubmission, db: Session = Depends(get_db)):
    application, message = submissions.create_trust_formation(db, body)
    return {"success": True, "application": application, "message": message}


@router.get("/trust-formation")
def list_trust_formations(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return EntityRepository(db, TRUST_FORMATIONS).list(limit=500)["items"]


@router.post("/contact")
def submit_contact(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    submissions.submit_inquiry(db, payload)
    return {"message": "Contact form submitted successfully"}
