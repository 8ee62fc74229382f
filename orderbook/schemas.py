"""Pydantic schemas for the orders API.

Inbound schemas parse and normalize request bodies (addresses are
lower-cased, empty optional strings become None). Outbound schemas shape
``Order`` objects into the camelCase JSON the clients consume.
"""

import json
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .domain import Order, OrderStatus
from .errors import ValidationError

MISSING_PARAMETERS = "Missing parameters"
MISSING_PURCHASE_FIELDS = "Missing orderHash or buyerAddress"


def render_price(value: Decimal) -> str:
    """Render a price as a plain decimal string without trailing zeros."""
    return format(value.normalize(), "f")


def _required_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


class OrderSubmission(BaseModel):
    """Request body for submitting (or refreshing) a sell order.

    Attributes:
        token_id: Token identifier. Integers are accepted and stringified.
        price: Non-negative asking price. Zero is a valid price.
        seller_address: Seller wallet, normalized to lowercase.
        seaport_order: Signed order payload, either structured JSON or an
            already-serialized string which is stored verbatim.
        order_hash: Optional dedup key.
        image: Optional display image URL.
    """

    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(alias="tokenId")
    price: Decimal = Field(ge=0, max_digits=78, decimal_places=18)
    seller_address: str = Field(alias="sellerAddress")
    seaport_order: dict[str, Any] | list[Any] | str = Field(alias="seaportOrder")
    order_hash: str | None = Field(default=None, alias="orderHash")
    image: str | None = None

    @field_validator("token_id", mode="before")
    @classmethod
    def coerce_token_id(cls, v):
        if isinstance(v, bool):
            raise ValueError("tokenId must be a string")
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("price", mode="before")
    @classmethod
    def reject_non_numeric_price(cls, v):
        if v is None or isinstance(v, bool) or v == "":
            raise ValueError("price must be a number")
        return v

    @field_validator("token_id")
    @classmethod
    def validate_token_id(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("seller_address")
    @classmethod
    def validate_seller(cls, v: str) -> str:
        return _required_text(v).lower()

    @field_validator("seaport_order")
    @classmethod
    def validate_payload(cls, v):
        if isinstance(v, str) and not v.strip():
            raise ValueError("seaportOrder must not be empty")
        return v

    @field_validator("order_hash", "image", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        # Same trimming as the purchase path, so a padded hash stays buyable.
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
        return v

    def payload_text(self) -> str:
        """Serialized form of ``seaport_order`` as it is stored."""
        if isinstance(self.seaport_order, str):
            return self.seaport_order
        return json.dumps(self.seaport_order)


class PurchaseRequest(BaseModel):
    """Request body for recording an on-chain purchase."""

    model_config = ConfigDict(populate_by_name=True)

    order_hash: str = Field(alias="orderHash")
    buyer_address: str = Field(alias="buyerAddress")

    @field_validator("order_hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("buyer_address")
    @classmethod
    def validate_buyer(cls, v: str) -> str:
        return _required_text(v).lower()


def parse_submission(payload) -> OrderSubmission:
    """Validate a raw submission body.

    Raises:
        ValidationError: When the body is not an object, a required field is
            missing, or price is not a non-negative number.
    """
    if isinstance(payload, OrderSubmission):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError(MISSING_PARAMETERS)
    try:
        return OrderSubmission.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        raise ValidationError(MISSING_PARAMETERS) from exc


def parse_purchase(payload) -> PurchaseRequest:
    """Validate a raw purchase body.

    Raises:
        ValidationError: When orderHash or buyerAddress is missing.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(MISSING_PURCHASE_FIELDS)
    try:
        return PurchaseRequest.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        raise ValidationError(MISSING_PURCHASE_FIELDS) from exc


class OrderOut(BaseModel):
    """Full order representation returned by the listing and purchase APIs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    token_id: str
    price: Decimal
    nft_contract: str
    marketplace_contract: str
    seller_address: str
    buyer_address: str | None = None
    seaport_order: Any = None
    order_hash: str | None = None
    on_chain: bool = False
    status: OrderStatus
    image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer("price")
    def serialize_price(self, v: Decimal) -> str:
        return render_price(v)

    @classmethod
    def dump(cls, order: Order) -> dict:
        return cls.model_validate(order).model_dump(mode="json", by_alias=True)


class OrderSummary(BaseModel):
    """Short order representation returned after a submission."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    token_id: str
    price: Decimal
    seller: str
    created_at: datetime | None = None

    @field_serializer("price")
    def serialize_price(self, v: Decimal) -> str:
        return render_price(v)

    @classmethod
    def dump(cls, order: Order) -> dict:
        summary = cls(
            id=order.id,
            token_id=order.token_id,
            price=order.price,
            seller=order.seller_address,
            created_at=order.created_at,
        )
        return summary.model_dump(mode="json", by_alias=True)
