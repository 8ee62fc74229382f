"""Unit tests for the OrderLifecycle controller.

These tests validate request validation and response shaping with a stub
repository, so no database is involved. They check that invalid payloads
never reach the repository.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from orderbook.domain import Order, OrderStatus
from orderbook.errors import NotFoundError, ValidationError
from orderbook.lifecycle import OrderLifecycle
from orderbook.schemas import parse_submission

CREATED = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class StubRepo:
    """Repository stub recording calls and echoing submissions back."""

    def __init__(self, orders=None, sold=None):
        self.calls = []
        self.orders = orders or []
        self.sold = sold

    def upsert_order(self, sub):
        self.calls.append(("upsert", sub))
        return Order(
            id="id-1",
            token_id=sub.token_id,
            price=sub.price,
            nft_contract="0xnft",
            marketplace_contract="0xseaport",
            seller_address=sub.seller_address,
            seaport_order=sub.seaport_order,
            order_hash=sub.order_hash,
            created_at=CREATED,
            updated_at=CREATED,
        )

    def list_active_orders(self, limit=None):
        self.calls.append(("list", limit))
        return self.orders

    def mark_sold(self, order_hash, buyer_address):
        self.calls.append(("sold", order_hash, buyer_address))
        if self.sold is None:
            raise NotFoundError()
        return self.sold


def valid_payload(**overrides):
    payload = {
        "tokenId": "42",
        "price": 0,
        "sellerAddress": "0xABC",
        "seaportOrder": {"signature": "0x01"},
        "orderHash": "h1",
    }
    payload.update(overrides)
    return payload


def test_submit_returns_summary_envelope():
    repo = StubRepo()
    out = OrderLifecycle(repo).submit(valid_payload())
    assert out["success"] is True
    summary = dict(out["order"])
    assert summary.pop("createdAt").startswith("2025-01-02T03:04:05")
    assert summary == {
        "id": "id-1",
        "tokenId": "42",
        "price": "0",
        "seller": "0xabc",
    }


def test_submit_accepts_zero_price_and_numeric_token_id():
    repo = StubRepo()
    OrderLifecycle(repo).submit(valid_payload(tokenId=7, price=0))
    _, sub = repo.calls[0]
    assert sub.token_id == "7"
    assert sub.price == Decimal("0")


@pytest.mark.parametrize("missing", ["tokenId", "price", "sellerAddress", "seaportOrder"])
def test_submit_missing_required_field_never_reaches_repository(missing):
    repo = StubRepo()
    payload = valid_payload()
    del payload[missing]
    with pytest.raises(ValidationError) as e:
        OrderLifecycle(repo).submit(payload)
    assert e.value.message == "Missing parameters"
    assert repo.calls == []


@pytest.mark.parametrize("price", [None, "", "abc", -1, True])
def test_submit_rejects_bad_price(price):
    repo = StubRepo()
    with pytest.raises(ValidationError):
        OrderLifecycle(repo).submit(valid_payload(price=price))
    assert repo.calls == []


@pytest.mark.parametrize("body", [None, [], "text"])
def test_submit_rejects_non_object_body(body):
    with pytest.raises(ValidationError):
        OrderLifecycle(StubRepo()).submit(body)


def test_submit_blank_order_hash_is_treated_as_absent():
    repo = StubRepo()
    OrderLifecycle(repo).submit(valid_payload(orderHash="", image=""))
    _, sub = repo.calls[0]
    assert sub.order_hash is None
    assert sub.image is None


def test_list_active_wraps_orders():
    order = StubRepo().upsert_order(parse_submission(valid_payload()))
    repo = StubRepo(orders=[order])
    out = OrderLifecycle(repo).list_active(10)
    assert out["success"] is True
    assert [o["orderHash"] for o in out["orders"]] == ["h1"]
    assert out["orders"][0]["status"] == "active"
    assert repo.calls == [("list", 10)]


def test_list_active_empty_is_an_array():
    assert OrderLifecycle(StubRepo()).list_active() == {"success": True, "orders": []}


def test_record_purchase_lowercases_buyer():
    sold = Order(
        id="id-1",
        token_id="42",
        price=Decimal("1.5"),
        nft_contract="0xnft",
        marketplace_contract="0xseaport",
        seller_address="0xabc",
        seaport_order={},
        status=OrderStatus.SOLD,
        order_hash="h1",
        buyer_address="0xdef",
        on_chain=True,
    )
    repo = StubRepo(sold=sold)
    out = OrderLifecycle(repo).record_purchase({"orderHash": "h1", "buyerAddress": "0xDEF"})
    assert repo.calls == [("sold", "h1", "0xdef")]
    assert out["order"]["status"] == "sold"
    assert out["order"]["onChain"] is True
    assert out["order"]["price"] == "1.5"


@pytest.mark.parametrize("payload", [{}, {"orderHash": "h1"}, {"buyerAddress": "0x1"}, {"orderHash": "", "buyerAddress": "0x1"}])
def test_record_purchase_missing_fields(payload):
    repo = StubRepo()
    with pytest.raises(ValidationError) as e:
        OrderLifecycle(repo).record_purchase(payload)
    assert e.value.message == "Missing orderHash or buyerAddress"
    assert repo.calls == []


def test_record_purchase_not_found_propagates():
    with pytest.raises(NotFoundError):
        OrderLifecycle(StubRepo()).record_purchase({"orderHash": "nope", "buyerAddress": "0x1"})
