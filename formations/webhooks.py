"""Stripe webhook verification and dispatch."""

import logging
from typing import Callable, Optional

import stripe
from sqlalchemy.orm import Session

from formations.errors import MissingOrderReference, SignatureInvalid
from formations.logging_config import event_id_ctx
from formations.reconciler import OrderReconciler
from formations.stripe_service import PaymentGateway, as_plain_dict

logger = logging.getLogger(__name__)

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"


class WebhookReceiver:
    """Verifies deliveries, then hands payment intents to the reconciler.

    Once a signature checks out the delivery is always acknowledged: a
    reconciliation error is logged and swallowed so Stripe does not keep
    redelivering an event that can never succeed.
    """

    def __init__(self, gateway: PaymentGateway, session_factory: Callable[[], Session]):
        self.gateway = gateway
        self.session_factory = session_factory

    def verify(self, payload: bytes, signature: Optional[str]) -> dict:
        if not signature:
            logger.warning("webhook rejected: missing stripe-signature header")
            raise SignatureInvalid()
        try:
            return self.gateway.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("webhook signature verification failed: %s", exc)
            raise SignatureInvalid() from exc

    def dispatch(self, event: dict) -> str:
        """Run the reconciler for ``event``; returns what was done."""
        event_type = event.get("type", "")
        event_id_ctx.set(event.get("id") or "")
        intent = as_plain_dict(as_plain_dict(event.get("data")).get("object"))

        if event_type not in (SUCCEEDED, FAILED):
            logger.info("unhandled event type %s acknowledged", event_type)
            return "ignored"

        with self.session_factory() as session:
            reconciler = OrderReconciler(session)
            try:
                if event_type == SUCCEEDED:
                    reconciler.reconcile_success(intent)
                else:
                    reconciler.reconcile_failure(intent)
            except MissingOrderReference as exc:
                # Nothing is persisted; kept visible for product review.
                logger.error("payment event dropped: %s", exc)
                return "dropped"
            except Exception:
                logger.exception("reconciliation failed for %s", event_type)
                return "failed"
        return "reconciled"

    def handle(self, payload: bytes, signature: Optional[str]) -> str:
        return self.dispatch(self.verify(payload, signature))
