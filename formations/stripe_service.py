from typing import Any, Optional

import stripe


def as_plain_dict(obj: Any) -> dict:
    """Stripe objects and test doubles both come back as plain dicts."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


class PaymentGateway:
    """Thin wrapper over the Stripe SDK bound to one secret key.

    Built once per process and handed to the routes through ``app.state``;
    nothing here touches the SDK's global ``stripe.api_key``.
    """

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict,
        receipt_email: Optional[str] = None,
        description: Optional[str] = None,
    ):
        params = dict(
            amount=amount_minor,
            currency=currency,
            metadata=metadata,
            description=description,
            automatic_payment_methods={"enabled": True},
            api_key=self.secret_key,
        )
        if receipt_email:
            params["receipt_email"] = receipt_email
        return stripe.PaymentIntent.create(**params)

    def retrieve_payment_intent(self, payment_intent_id: str):
        return stripe.PaymentIntent.retrieve(
            payment_intent_id,
            expand=["latest_charge"],
            api_key=self.secret_key,
        )

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """Verify a webhook delivery and return the event as a dict.

        Raises ``ValueError`` for an unparseable payload and
        ``stripe.SignatureVerificationError`` for a bad signature.
        """
        event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return as_plain_dict(event)
