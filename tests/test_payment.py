# tests/test_payment.py
import pytest
import requests

from services.payment_service import StripeGateway, handle_payment_event, to_minor_units


class FakeHttpResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttp:
    """
    Replays `outcomes` in order; an exception instance is raised instead of returned.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def gateway(http, **kwargs):
    return StripeGateway(
        secret_key="sk_test_123",
        api_base="https://stripe.test/v1",
        success_url="https://shop.test/checkout?success=true",
        cancel_url="https://shop.test/checkout?cancelled=true",
        session=http,
        **kwargs,
    )


def test_to_minor_units():
    assert to_minor_units(32.40) == 3240
    assert to_minor_units(0.1 + 0.2) == 30


def test_create_session_posts_form():
    http = FakeHttp(FakeHttpResponse(200, {"id": "cs_1", "url": "https://pay.test/cs_1"}))

    ok, _, url = gateway(http).create_checkout_session("o-1", "GR00000001", 32.40, customer_email="a@b.c")

    assert ok
    assert url == "https://pay.test/cs_1"
    posted_url, kwargs = http.requests[0]
    assert posted_url == "https://stripe.test/v1/checkout/sessions"
    assert kwargs["auth"] == ("sk_test_123", "")
    form = kwargs["data"]
    assert form["line_items[0][price_data][unit_amount]"] == "3240"
    assert form["metadata[order_id]"] == "o-1"
    assert form["customer_email"] == "a@b.c"
    assert form["success_url"].endswith("&orderId=o-1&session_id={CHECKOUT_SESSION_ID}")


def test_retries_then_succeeds():
    http = FakeHttp(
        requests.ConnectionError("reset"),
        FakeHttpResponse(200, {"id": "cs_1", "url": "https://pay.test/cs_1"}),
    )
    ok, _, url = gateway(http).create_checkout_session("o-1", "GR1", 10)
    assert ok
    assert len(http.requests) == 2


def test_gives_up_after_retries():
    http = FakeHttp(*[requests.Timeout("slow")] * 3)
    ok, message, url = gateway(http).create_checkout_session("o-1", "GR1", 10)
    assert not ok
    assert url is None
    assert message.startswith("Payment provider unreachable")
    assert len(http.requests) == 3


def test_provider_error_message():
    http = FakeHttp(FakeHttpResponse(400, {"error": {"message": "Invalid currency"}}))
    ok, message, _ = gateway(http).create_checkout_session("o-1", "GR1", 10)
    assert not ok
    assert message == "Failed to create checkout session: Invalid currency"


def test_missing_key_and_bad_amount():
    http = FakeHttp()
    assert gateway(http).create_checkout_session("o-1", "GR1", 0)[1] == "Payment amount must be greater than zero"
    no_key = StripeGateway(secret_key=None, session=http)
    assert no_key.create_checkout_session("o-1", "GR1", 10)[1] == "STRIPE_SECRET_KEY is not configured"
    assert http.requests == []


@pytest.fixture
def paid_order(client):
    client.tables["orders"] = [{"id": "o-1", "status": "pending", "payment_status": "pending"}]
    return client


def event(event_type, order_id="o-1", object_id="pi_1"):
    metadata = {"order_id": order_id} if order_id else {}
    return {"type": event_type, "data": {"object": {"id": object_id, "metadata": metadata}}}


@pytest.mark.parametrize("event_type, payment_status, status", [
    ("payment_intent.succeeded", "paid", "confirmed"),
    ("checkout.session.completed", "paid", "confirmed"),
    ("payment_intent.payment_failed", "failed", "pending"),
])
def test_payment_events(paid_order, order_store, event_type, payment_status, status):
    ok, _ = handle_payment_event(event(event_type), order_store)
    order = paid_order.rows("orders")[0]
    assert ok
    assert order["payment_status"] == payment_status
    assert order["status"] == status


def test_authorized_event_stores_intent(paid_order, order_store):
    handle_payment_event(event("payment_intent.authorized"), order_store)
    order = paid_order.rows("orders")[0]
    assert order["payment_status"] == "pre_authorized"
    assert order["stripe_payment_intent_id"] == "pi_1"


def test_ignored_events(paid_order, order_store):
    assert handle_payment_event(event("payment_intent.succeeded", order_id=None), order_store) == (
        True, "Ignored: no order id")
    assert handle_payment_event(event("customer.created"), order_store)[1] == "Ignored: customer.created"
    assert paid_order.rows("orders")[0]["payment_status"] == "pending"


def test_store_failure_reported(paid_order, order_store):
    paid_order.fail_on("orders", "update")
    ok, _ = handle_payment_event(event("payment_intent.succeeded"), order_store)
    assert not ok
