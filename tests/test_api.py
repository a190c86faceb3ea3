import json
from decimal import Decimal

import stripe

from conftest import make_intent
from formations.models import Application, Jurisdiction, Order, OrderItem


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_payment_intent_success(client, mocker):
    mock_intent = mocker.Mock()
    mock_intent.id = "pi_123"
    mock_intent.client_secret = "secret_123"
    create = mocker.patch("stripe.PaymentIntent.create", return_value=mock_intent)

    response = client.post(
        "/api/create-payment-intent",
        json={
            "amount": 599,
            "currency": "GBP",
            "customer_email": "a@x.com",
            "metadata": {
                "order_id": "ORD1",
                "applications": json.dumps([{"email": "a@x.com", "jurisdiction": "Seychelles", "price": 599}]),
            },
        },
    )

    assert response.status_code == 200
    assert response.json() == {"client_secret": "secret_123", "payment_intent_id": "pi_123"}

    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 59900
    assert kwargs["currency"] == "gbp"
    assert kwargs["receipt_email"] == "a@x.com"
    assert kwargs["api_key"] == "sk_test_fake_key_for_testing"
    assert kwargs["automatic_payment_methods"] == {"enabled": True}
    metadata = kwargs["metadata"]
    assert metadata["order_id"] == "ORD1"
    assert metadata["applications_count"] == "1"
    assert "timestamp" in metadata
    assert json.loads(metadata["applications"])[0]["jurisdiction"] == "Seychelles"


def test_create_payment_intent_rounds_to_minor_units(client, mocker):
    mock_intent = mocker.Mock(id="pi_1", client_secret="cs_1")
    create = mocker.patch("stripe.PaymentIntent.create", return_value=mock_intent)

    client.post("/api/create-payment-intent", json={"amount": "19.995"})

    assert create.call_args.kwargs["amount"] == 2000
    assert create.call_args.kwargs["currency"] == "gbp"


def test_create_payment_intent_rejects_non_positive_amount(client, mocker):
    create = mocker.patch("stripe.PaymentIntent.create")

    for amount in (0, -5, None, "abc"):
        response = client.post("/api/create-payment-intent", json={"amount": amount})
        assert response.status_code == 400
        assert response.json() == {"error": "Valid amount is required"}

    create.assert_not_called()


def test_create_payment_intent_stripe_failure(client, mocker):
    mocker.patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("Stripe unavailable"))

    response = client.post("/api/create-payment-intent", json={"amount": 100})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create payment intent"}


def test_create_order(client, db):
    response = client.post(
        "/api/orders",
        json={"order_id": "ORD-MANUAL", "total_amount": 250, "customer_email": "b@x.com"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["order"]["order_id"] == "ORD-MANUAL"
    assert db.query(Order).filter_by(order_id="ORD-MANUAL").one().payment_status == "pending"


def test_create_order_requires_fields(client):
    response = client.post("/api/orders", json={"customer_email": "b@x.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: order_id, total_amount"


def test_create_order_duplicate(client):
    client.post("/api/orders", json={"order_id": "ORD-DUP", "total_amount": 10})
    response = client.post("/api/orders", json={"order_id": "ORD-DUP", "total_amount": 10})

    assert response.status_code == 400
    assert response.json()["error"] == "Order already exists"


def test_list_orders_requires_admin(client):
    response = client.get("/api/orders")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_create_order_rejects_non_pending_status(client, db):
    response = client.post("/api/orders", json={"order_id": "ORD-PAID", "total_amount": 20, "payment_status": "paid"})

    assert response.status_code == 400
    assert response.json()["error"] == "New orders must be pending"
    assert db.query(Order).filter_by(order_id="ORD-PAID").count() == 0


def test_list_orders_with_admin(client, db, admin_headers):
    client.post("/api/orders", json={"order_id": "ORD-A", "total_amount": 10})
    db.add(Order(order_id="ORD-B", total_amount=20, payment_status="paid"))
    db.commit()

    response = client.get("/api/orders?status=paid", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["order_id"] == "ORD-B"


def test_confirm_order_saves_paid_order(client, db, mocker, checkout_metadata):
    db.add(Application(contact_email="a@x.com", jurisdiction_name="Seychelles"))
    db.commit()

    intent = make_intent(
        checkout_metadata,
        latest_charge={
            "id": "ch_1",
            "billing_details": {"name": "Ann Lee", "email": "a@x.com", "address": {"country": "GB"}},
        },
    )
    retrieve = mocker.patch("stripe.PaymentIntent.retrieve", return_value=intent)

    response = client.post("/api/orders/confirm", json={"payment_intent_id": "pi_1"})

    assert response.status_code == 200
    assert response.json()["message"] == "Order confirmed and saved successfully"
    assert retrieve.call_args.kwargs["expand"] == ["latest_charge"]

    db.expire_all()
    order = db.query(Order).filter_by(order_id="ORD1").one()
    assert order.payment_status == "paid"
    assert order.billing_name == "Ann Lee"
    assert order.billing_address == {"country": "GB"}
    assert order.total_amount == Decimal("599.00")
    assert db.query(OrderItem).filter_by(order_id="ORD1").count() == 1

    application = db.query(Application).one()
    assert application.payment_status == "paid"
    assert application.order_id == "ORD1"


def test_confirm_order_records_standalone_services(client, db, mocker):
    metadata = {
        "order_id": "ORD2",
        "applications": "[]",
        "standalone_services": json.dumps(
            [
                {"id": "apostille", "name": "Apostille", "price": 95, "currency": "GBP"},
                {"id": "nominee", "name": "Nominee Director", "price": 300, "currency": "GBP"},
            ]
        ),
    }
    intent = make_intent(
        metadata,
        amount=39500,
        latest_charge={"id": "ch_1", "billing_details": {"name": "Ann Lee", "email": "a@x.com"}},
    )
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=intent)

    response = client.post("/api/orders/confirm", json={"payment_intent_id": "pi_1"})

    assert response.status_code == 200
    db.expire_all()
    application = db.query(Application).filter_by(application_identifier="service_ORD2").one()
    assert application.jurisdiction_name == "Standalone Services"
    assert application.payment_status == "paid"
    assert application.order_id == "ORD2"
    assert application.contact_email == "a@x.com"
    assert application.contact_first_name == "Ann"
    assert application.contact_last_name == "Lee"
    assert [service["id"] for service in application.additional_services] == ["apostille", "nominee"]
    assert db.query(OrderItem).filter_by(order_id="ORD2", item_type="service").count() == 2


def test_confirm_order_existing(client, mocker, checkout_metadata):
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=make_intent(checkout_metadata))
    client.post("/api/orders/confirm", json={"payment_intent_id": "pi_1"})

    response = client.post("/api/orders/confirm", json={"payment_intent_id": "pi_1"})

    assert response.status_code == 200
    assert response.json()["message"] == "Order already exists"


def test_confirm_order_not_succeeded(client, mocker, checkout_metadata):
    intent = make_intent(checkout_metadata, status="requires_payment_method")
    mocker.patch("stripe.PaymentIntent.retrieve", return_value=intent)

    response = client.post("/api/orders/confirm", json={"payment_intent_id": "pi_1"})

    assert response.status_code == 400
    assert response.json()["error"] == "Payment has not succeeded yet"


def test_confirm_order_requires_payment_intent_id(client):
    response = client.post("/api/orders/confirm", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Payment intent ID is required"


def test_public_jurisdictions_only_active(client, db):
    db.add_all(
        [
            Jurisdiction(name="Seychelles", country_code="SC", formation_price=599, currency="GBP"),
            Jurisdiction(name="Panama", country_code="PA", formation_price=799, currency="GBP", status="inactive"),
        ]
    )
    db.commit()

    response = client.get("/api/jurisdictions")

    assert response.status_code == 200
    assert [j["name"] for j in response.json()] == ["Seychelles"]


def test_public_jurisdiction_not_found(client):
    response = client.get("/api/jurisdictions/999")

    assert response.status_code == 404
    assert response.json() == {"error": "Jurisdiction not found"}
