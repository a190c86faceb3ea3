import json

import pytest
from fastapi.testclient import TestClient

from formations.auth import generate_token, hash_password
from formations.config import Settings
from formations.database import init_db
from formations.main import create_app
from formations.models import AdminUser


@pytest.fixture
def settings(tmp_path):
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_publishable_key="pk_test_fake_key_for_testing",
        stripe_webhook_secret="whsec_test_fake_secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def fastapi_app(settings):
    app = create_app(settings)
    init_db(app.state.engine)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def client(fastapi_app):
    with TestClient(fastapi_app) as c:
        yield c


@pytest.fixture
def session_factory(fastapi_app):
    return fastapi_app.state.session_factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def admin_user(db):
    user = AdminUser(
        username="admin",
        email="admin@example.com",
        password_hash=hash_password("s3cret-pass", rounds=4),
        full_name="Site Admin",
        role="super_admin",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin_user, settings):
    return {"Authorization": f"Bearer {generate_token(admin_user, settings)}"}


@pytest.fixture
def checkout_metadata():
    """Processor metadata as the checkout leaves it on a payment intent."""
    return {
        "order_id": "ORD1",
        "applications_count": "1",
        "services_count": "0",
        "applications": json.dumps(
            [{"email": "a@x.com", "jurisdiction": "Seychelles", "price": 599, "currency": "GBP"}]
        ),
        "standalone_services": "[]",
    }


def make_intent(metadata, intent_id="pi_1", amount=59900, **extra):
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "gbp",
        "status": "succeeded",
        "receipt_email": "a@x.com",
        "metadata": metadata,
    }
    intent.update(extra)
    return intent


def make_event(event_type, intent, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": intent}}
