"""Turns verified payment events into order and order-item rows."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from formations.database import upsert
from formations.errors import MissingOrderReference
from formations.line_items import ParsedLineItems, parse_line_items
from formations.logging_config import order_id_ctx, payment_intent_id_ctx
from formations.models import Application, Order, OrderItem
from formations.stripe_service import as_plain_dict

logger = logging.getLogger(__name__)

STANDALONE_SERVICES = "Standalone Services"
SERVICE_APPLICATION_PREFIX = "service_"


def upsert_order(session: Session, values: dict, update_keys: list[str]) -> None:
    """Insert the order row, or update ``update_keys`` when ``order_id`` exists."""
    upsert(session, Order.__table__, values, update_keys, key="order_id")


def billing_details(intent: dict) -> dict:
    """Billing details of the intent's charge, from either API shape."""
    charges = as_plain_dict(intent.get("charges")).get("data") or []
    if charges:
        charge = as_plain_dict(charges[0])
    elif intent.get("latest_charge") and not isinstance(intent["latest_charge"], str):
        charge = as_plain_dict(intent["latest_charge"])
    else:
        charge = {}
    return as_plain_dict(charge.get("billing_details"))


def _customer_email(intent: dict) -> Optional[str]:
    return intent.get("receipt_email") or billing_details(intent).get("email")


def _major_units(minor) -> Decimal:
    return (Decimal(minor or 0) / 100).quantize(Decimal("0.01"))


class OrderReconciler:
    """Maps ``payment_intent.*`` payloads onto the orders tables.

    Every call runs in its own transaction on the session it was given and
    commits before returning; on error the transaction is rolled back and the
    exception propagates.
    """

    def __init__(self, session: Session):
        self.session = session

    def _order_reference(self, intent: dict) -> tuple[str, dict]:
        payment_intent_id = intent.get("id") or ""
        payment_intent_id_ctx.set(payment_intent_id)
        metadata = dict(as_plain_dict(intent.get("metadata")))
        order_id = metadata.get("order_id")
        if not order_id:
            raise MissingOrderReference(payment_intent_id)
        order_id_ctx.set(order_id)
        return order_id, metadata

    def _get_order(self, order_id: str) -> Order:
        stmt = select(Order).where(Order.order_id == order_id).execution_options(populate_existing=True)
        return self.session.scalars(stmt).one()

    def reconcile_success(
        self,
        intent: dict,
        billing: Optional[dict] = None,
        link_applications: bool = False,
    ) -> Order:
        order_id, metadata = self._order_reference(intent)
        parsed = parse_line_items(metadata)
        if parsed.unparsed:
            for failure in parsed.unparsed:
                logger.warning(
                    "unparsed %s metadata on paid order, recording zero items: %s",
                    failure.field,
                    failure.reason,
                )

        now = datetime.now(timezone.utc)
        values = {
            "order_id": order_id,
            "stripe_payment_intent_id": intent.get("id"),
            "total_amount": _major_units(intent.get("amount")),
            "currency": (intent.get("currency") or "gbp").upper(),
            "payment_status": "paid",
            "applications_count": len(parsed.applications),
            "services_count": len(parsed.services),
            "order_items": parsed.snapshot(),
            "stripe_metadata": metadata,
            "paid_at": now,
        }
        email = _customer_email(intent)
        if email:
            values["customer_email"] = email
        if billing:
            values.update({key: value for key, value in billing.items() if value})

        try:
            upsert_order(self.session, values, [key for key in values if key != "order_id"])
            self._replace_items(order_id, parsed)
            if link_applications:
                self._mark_applications_paid(order_id, parsed, now)
                self._upsert_service_application(order_id, parsed, values)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "order paid applications=%d services=%d",
            len(parsed.applications),
            len(parsed.services),
        )
        return self._get_order(order_id)

    def reconcile_failure(self, intent: dict) -> Order:
        order_id, metadata = self._order_reference(intent)
        values = {
            "order_id": order_id,
            "stripe_payment_intent_id": intent.get("id"),
            "total_amount": _major_units(intent.get("amount")),
            "currency": (intent.get("currency") or "gbp").upper(),
            "payment_status": "failed",
            "stripe_metadata": metadata,
        }
        try:
            upsert_order(
                self.session,
                values,
                ["payment_status", "stripe_payment_intent_id", "stripe_metadata"],
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        error = as_plain_dict(intent.get("last_payment_error")).get("message")
        logger.info("order payment failed error=%s", error)
        return self._get_order(order_id)

    def _replace_items(self, order_id: str, parsed: ParsedLineItems) -> None:
        # Items mirror the latest successful event, so redelivery replaces them.
        self.session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
        rows = parsed.order_item_rows(order_id)
        if rows:
            self.session.execute(insert(OrderItem), rows)

    def _mark_applications_paid(self, order_id: str, parsed: ParsedLineItems, now: datetime) -> None:
        for item in parsed.applications:
            if item.id:
                application = self.session.get(Application, item.id)
            elif not item.email or item.jurisdiction == "Unknown":
                continue
            else:
                application = self._pending_application(item)
            if application is None:
                logger.warning("no application found for %s in %s", item.id or item.email, item.jurisdiction)
                continue
            application.payment_status = "paid"
            application.internal_status = "paid"
            application.order_id = order_id
            application.updated_at = now

    def _pending_application(self, item) -> Optional[Application]:
        return self.session.scalars(
            select(Application)
            .where(
                Application.contact_email == item.email,
                Application.jurisdiction_name == item.jurisdiction,
                Application.payment_status == "pending",
            )
            .order_by(Application.created_at.desc())
            .limit(1)
        ).first()

    def _upsert_service_application(self, order_id: str, parsed: ParsedLineItems, order: dict) -> None:
        """One paid application per order carrying every standalone service it bought."""
        if not parsed.services:
            return
        billing_name = order.get("billing_name") or ""
        first_name, _, last_name = billing_name.partition(" ")
        values = {
            "application_identifier": f"{SERVICE_APPLICATION_PREFIX}{order_id}",
            "jurisdiction_name": STANDALONE_SERVICES,
            "jurisdiction_price": Decimal("0"),
            "jurisdiction_currency": parsed.services[0].currency,
            "contact_email": order.get("customer_email"),
            "contact_first_name": first_name or None,
            "contact_last_name": last_name or None,
            "billing_name": billing_name or None,
            "billing_address": order.get("billing_address"),
            "company_proposed_name": "Standalone Services Order",
            "company_business_activity": "Additional Services Purchase",
            "additional_services": [item.source for item in parsed.services],
            "step_completed": 3,
            "payment_status": "paid",
            "internal_status": "paid",
            "order_id": order_id,
        }
        upsert(
            self.session,
            Application.__table__,
            values,
            [name for name in values if name != "application_identifier"],
            key="application_identifier",
        )
        logger.info("service application recorded services=%d", len(parsed.services))
