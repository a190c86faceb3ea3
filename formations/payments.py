"""Payment intent creation for the checkout."""

import json
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import stripe

from formations.errors import InvalidAmount, ProcessingError
from formations.stripe_service import PaymentGateway

logger = logging.getLogger(__name__)

# Stripe caps every metadata value at 500 characters.
METADATA_VALUE_LIMIT = 500
DEFAULT_DESCRIPTION = "Offshore Company Formation Services"


def to_minor_units(amount: Any) -> int:
    """``round(amount * 100)`` with half-up rounding, rejecting non-positive amounts."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount() from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmount()
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _load_list(raw: Any, field: str) -> list:
    if raw is None or raw == "":
        return []
    try:
        entries = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("could not parse %s for processor metadata", field)
        return []
    if not isinstance(entries, list):
        logger.warning("%s for processor metadata is not a list", field)
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def _fit(value: str, field: str, fallback: str = "[]") -> str:
    if len(value) > METADATA_VALUE_LIMIT:
        logger.warning("%s metadata too large (%d chars), truncating", field, len(value))
        return fallback
    return value


def _application_identifier(app: dict) -> dict:
    jurisdiction = app.get("jurisdiction")
    contact = app.get("contactDetails") or {}
    details = jurisdiction if isinstance(jurisdiction, dict) else {"name": jurisdiction}
    entry = {
        "email": app.get("email") or contact.get("email"),
        "jurisdiction": details.get("name"),
        "price": app.get("price") or details.get("price"),
        "currency": app.get("currency") or details.get("currency"),
    }
    if app.get("id"):
        entry["id"] = str(app["id"])
    return entry


def _mail_forwarding_value(raw: Any) -> Optional[str]:
    if not raw:
        return None
    text = raw if isinstance(raw, str) else json.dumps(raw)
    if len(text) <= METADATA_VALUE_LIMIT:
        return text
    try:
        data = json.loads(text)
    except ValueError:
        logger.warning("mail_forwarding metadata unparseable and too large, dropping")
        return None
    form = data.get("formData") or {}
    minimal = {
        "id": data.get("id"),
        "price": data.get("price"),
        "currency": data.get("currency"),
        "email": form.get("email"),
        "jurisdiction": form.get("jurisdiction"),
    }
    return _fit(json.dumps(minimal), "mail_forwarding", fallback="{}")


def _metadata_text(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text[:METADATA_VALUE_LIMIT]


def build_processor_metadata(metadata: Mapping[str, Any], now: Optional[datetime] = None) -> dict:
    """Shape checkout metadata into Stripe's string-only, size-capped form."""

    now = now or datetime.now(timezone.utc)
    applications = [_application_identifier(app) for app in _load_list(metadata.get("applications"), "applications")]
    services = [
        {
            "id": svc.get("id"),
            "name": svc.get("name"),
            "price": svc.get("price"),
            "currency": svc.get("currency"),
        }
        for svc in _load_list(metadata.get("standalone_services"), "standalone_services")
    ]

    result = {
        key: _metadata_text(value)
        for key, value in metadata.items()
        if key not in ("applications", "standalone_services", "mail_forwarding") and value is not None
    }
    result.update(
        {
            "order_id": str(metadata.get("order_id") or ""),
            "applications_count": str(metadata.get("applications_count") or len(applications)),
            "services_count": str(metadata.get("services_count") or len(services)),
            "mail_forwarding_count": str(metadata.get("mail_forwarding_count") or "0"),
            "has_mail_forwarding": str(metadata.get("has_mail_forwarding") or "false").lower(),
            "timestamp": now.isoformat(),
            "applications": _fit(json.dumps(applications), "applications"),
            "standalone_services": _fit(json.dumps(services), "standalone_services"),
        }
    )
    mail_forwarding = _mail_forwarding_value(metadata.get("mail_forwarding"))
    if mail_forwarding is not None:
        result["mail_forwarding"] = mail_forwarding
    return result


class PaymentIntentInitiator:
    def __init__(self, gateway: PaymentGateway, default_currency: str = "gbp"):
        self.gateway = gateway
        self.default_currency = default_currency

    def create(
        self,
        amount: Any,
        currency: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        customer_email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        amount_minor = to_minor_units(amount)
        currency = (currency or self.default_currency).lower()
        processor_metadata = build_processor_metadata(metadata or {})

        try:
            intent = self.gateway.create_payment_intent(
                amount_minor,
                currency,
                processor_metadata,
                receipt_email=customer_email,
                description=description or DEFAULT_DESCRIPTION,
            )
        except stripe.StripeError as exc:
            raise ProcessingError() from exc

        logger.info(
            "payment intent created payment_intent_id=%s order_id=%s amount_minor=%s currency=%s",
            intent.id,
            processor_metadata["order_id"],
            amount_minor,
            currency,
        )
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}
