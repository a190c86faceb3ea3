import json
from datetime import datetime, timezone

import pytest
import stripe

from formations.errors import InvalidAmount, ProcessingError
from formations.payments import (
    METADATA_VALUE_LIMIT,
    PaymentIntentInitiator,
    build_processor_metadata,
    to_minor_units,
)
from formations.stripe_service import PaymentGateway

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "amount, expected",
    [(599, 59900), ("599", 59900), (10.5, 1050), ("0.005", 1), ("19.994", 1999)],
)
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


@pytest.mark.parametrize("amount", [0, -1, "", None, "NaN", "ten"])
def test_to_minor_units_rejects(amount):
    with pytest.raises(InvalidAmount):
        to_minor_units(amount)


def test_metadata_shape():
    metadata = build_processor_metadata(
        {
            "order_id": "ORD1",
            "customer_name": "Ann Lee",
            "applications": json.dumps(
                [
                    {
                        "contactDetails": {"email": "a@x.com", "phone": "+44"},
                        "jurisdiction": {"name": "Seychelles", "price": 599, "currency": "GBP", "features": ["x"]},
                        "companyDetails": {"proposedName": "Acme"},
                    }
                ]
            ),
            "standalone_services": [{"id": "apostille", "name": "Apostille", "price": 95, "currency": "GBP", "notes": "x"}],
        },
        now=NOW,
    )

    assert metadata["order_id"] == "ORD1"
    assert metadata["customer_name"] == "Ann Lee"
    assert metadata["applications_count"] == "1"
    assert metadata["services_count"] == "1"
    assert metadata["has_mail_forwarding"] == "false"
    assert metadata["timestamp"] == NOW.isoformat()
    assert json.loads(metadata["applications"]) == [
        {"email": "a@x.com", "jurisdiction": "Seychelles", "price": 599, "currency": "GBP"}
    ]
    assert json.loads(metadata["standalone_services"]) == [
        {"id": "apostille", "name": "Apostille", "price": 95, "currency": "GBP"}
    ]
    assert all(isinstance(value, str) for value in metadata.values())
    assert "mail_forwarding" not in metadata


def test_pass_through_values_are_json_encoded():
    metadata = build_processor_metadata(
        {
            "order_id": "ORD1",
            "customer_name": "Ann Lee",
            "gift": True,
            "referral": {"code": "SPRING", "source": "email"},
            "tags": ["vip"],
        },
        now=NOW,
    )

    assert metadata["customer_name"] == "Ann Lee"
    assert metadata["gift"] == "true"
    assert json.loads(metadata["referral"]) == {"code": "SPRING", "source": "email"}
    assert metadata["tags"] == '["vip"]'


def test_oversized_lists_are_dropped():
    applications = [{"email": f"user{i}@example.com", "jurisdiction": "Seychelles", "price": 599} for i in range(20)]

    metadata = build_processor_metadata({"order_id": "ORD1", "applications": json.dumps(applications)}, now=NOW)

    assert metadata["applications"] == "[]"
    assert metadata["applications_count"] == "20"
    assert all(len(value) <= METADATA_VALUE_LIMIT for value in metadata.values())


def test_unparseable_list_is_empty():
    metadata = build_processor_metadata({"order_id": "ORD1", "applications": "{oops"}, now=NOW)

    assert metadata["applications"] == "[]"
    assert metadata["applications_count"] == "0"


def test_large_mail_forwarding_is_compacted():
    mail_forwarding = {
        "id": "mf_1",
        "price": 150,
        "currency": "GBP",
        "formData": {"email": "a@x.com", "jurisdiction": "Seychelles", "notes": "n" * 600},
    }

    metadata = build_processor_metadata({"order_id": "ORD1", "mail_forwarding": mail_forwarding}, now=NOW)

    assert json.loads(metadata["mail_forwarding"]) == {
        "id": "mf_1",
        "price": 150,
        "currency": "GBP",
        "email": "a@x.com",
        "jurisdiction": "Seychelles",
    }


def test_initiator_wraps_stripe_errors(mocker):
    gateway = PaymentGateway("sk_test", "whsec_test")
    mocker.patch("stripe.PaymentIntent.create", side_effect=stripe.CardError("declined", None, "card_declined"))

    with pytest.raises(ProcessingError):
        PaymentIntentInitiator(gateway).create(100)


def test_initiator_defaults(mocker):
    gateway = PaymentGateway("sk_test", "whsec_test")
    create = mocker.patch("stripe.PaymentIntent.create", return_value=mocker.Mock(id="pi_9", client_secret="cs_9"))

    result = PaymentIntentInitiator(gateway, default_currency="GBP").create(42)

    assert result == {"client_secret": "cs_9", "payment_intent_id": "pi_9"}
    kwargs = create.call_args.kwargs
    assert kwargs["currency"] == "gbp"
    assert kwargs["description"] == "Offshore Company Formation Services"
    assert "receipt_email" not in kwargs
    assert kwargs["metadata"]["order_id"] == ""
