from types import SimpleNamespace

import pytest
import stripe

from app.core.config import settings
from conftest import admin, owner


@pytest.fixture
def checkout_calls(monkeypatch):
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="cs_test_42", url="https://checkout.stripe.test/cs_test_42")

    monkeypatch.setattr(settings, "STRIPE_API_KEY", "sk_test_123")
    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    return calls


def _order(client, user="u1", **extra):
    resp = client.post("/orders", json={"plan": "PRO", "query": "acme", **extra}, headers=owner(user))
    return resp.json()["order_id"]


def test_checkout_session_carries_order(client, checkout_calls):
    oid = _order(client, email="buyer@example.com")

    resp = client.post(f"/stripe/checkout/{oid}", headers=owner("u1"))

    assert resp.status_code == 200
    assert resp.json() == {
        "checkout_url": "https://checkout.stripe.test/cs_test_42",
        "session_id": "cs_test_42",
    }
    params = checkout_calls[0]
    assert params["metadata"] == {"order_id": oid}
    assert params["client_reference_id"] == oid
    assert params["customer_email"] == "buyer@example.com"
    price = params["line_items"][0]["price_data"]
    assert price["unit_amount"] == 2000
    assert price["currency"] == "mxn"


def test_checkout_without_email_omits_it(client, checkout_calls):
    oid = _order(client)

    client.post(f"/stripe/checkout/{oid}", headers=owner("u1"))

    assert "customer_email" not in checkout_calls[0]


def test_checkout_requires_owner(client, checkout_calls):
    oid = _order(client)

    resp = client.post(f"/stripe/checkout/{oid}", headers=owner("intruder"))

    assert resp.status_code == 403
    assert checkout_calls == []


def test_checkout_rejects_paid_order(client, checkout_calls):
    oid = _order(client)
    client.post(f"/admin/orders/{oid}/mark-paid", headers=admin())

    resp = client.post(f"/stripe/checkout/{oid}", headers=owner("u1"))

    assert resp.status_code == 409
    assert checkout_calls == []


def test_checkout_unconfigured(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_API_KEY", None)
    oid = _order(client)

    resp = client.post(f"/stripe/checkout/{oid}", headers=owner("u1"))

    assert resp.status_code == 503
