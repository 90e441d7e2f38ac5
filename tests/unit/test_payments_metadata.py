from storefront.payments.metadata import (
    MAX_VALUE_LENGTH,
    PaymentCorrelation,
    correlation_from_metadata,
    extract_correlation,
    make_metadata,
)


def _order(address):
    return {
        "id": "o1",
        "order_number": "ORD-20240101-0000000A",
        "order_items": [{"name": "Widget", "quantity": 3}, {"name": "Gadget", "quantity": 1}],
        "shipping_address": address,
    }


def test_make_metadata_contract(address, user):
    meta = make_metadata(_order(address), user)

    assert meta == {
        "orderId": "o1",
        "userId": "test-user",
        "orderNumber": "ORD-20240101-0000000A",
        "items": "Widget, Gadget",
        "itemCount": "2",
        "customerEmail": "test@example.com",
        "customerName": "Test User",
        "customerAddress": "1 Main St, Springfield, IL 62701, US",
    }
    assert all(isinstance(v, str) for v in meta.values())


def test_make_metadata_clips_long_values(address, user):
    order = _order(address)
    order["order_items"] = [{"name": "x" * 300}, {"name": "y" * 300}]

    meta = make_metadata(order, user)

    assert len(meta["items"]) == MAX_VALUE_LENGTH
    assert meta["itemCount"] == "2"


def test_correlation_from_metadata():
    corr = correlation_from_metadata({"orderId": " o1 ", "orderNumber": "ORD-1", "userId": "u1"})
    assert corr == PaymentCorrelation(order_id="o1", order_number="ORD-1", user_id="u1")


def test_correlation_requires_order_id():
    assert correlation_from_metadata(None) is None
    assert correlation_from_metadata({}) is None
    assert correlation_from_metadata({"orderId": "  ", "userId": "u1"}) is None


def test_extract_correlation_from_event():
    event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1", "metadata": {"orderId": "o9"}}}}
    corr = extract_correlation(event)
    assert corr.order_id == "o9"
    assert corr.user_id == ""

    assert extract_correlation({"data": {"object": {}}}) is None
    assert extract_correlation(None) is None
