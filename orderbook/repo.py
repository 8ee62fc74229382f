"""SQLAlchemy repository for marketplace sell orders.

This module owns the ``orders`` table and every statement that touches it.
Each mutating operation is a single atomic statement: submissions use the
database's native ``INSERT ... ON CONFLICT DO UPDATE`` keyed by the unique
``order_hash`` and purchases use ``UPDATE ... RETURNING``, so concurrent
callers never race through a read-then-write window.

Dialects without native upsert fall back to an insert attempt followed by a
conditional update when the unique constraint rejects it.
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

from .config import Settings
from .domain import Order, OrderStatus
from .errors import NotFoundError, OrderSoldError, SerializationError, StoreError, ValidationError
from .schemas import MISSING_PURCHASE_FIELDS, parse_submission

logger = logging.getLogger("orderbook.repo")

UPSERT_ATTEMPTS = 3

NATIVE_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class Base(DeclarativeBase):
    pass


class Price(TypeDecorator):
    """Exact decimal price.

    ``NUMERIC(78, 18)`` where the database has a native decimal type. SQLite
    would round NUMERIC through float, so there the value is kept as plain
    decimal text and converted back to ``Decimal`` on read.
    """

    impl = Numeric(78, 18)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(80))
        return dialect.type_descriptor(Numeric(78, 18))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(value)


class OrderRecord(Base):
    """SQLAlchemy model for a stored sell order.

    Attributes:
        id: Server-generated uuid4 string, primary key.
        token_id: Token identifier within the NFT contract.
        price: Asking price, up to 18 fractional digits.
        nft_contract: NFT contract configured for the deployment.
        marketplace_contract: Seaport contract configured for the deployment.
        seller_address: Lower-cased seller wallet.
        buyer_address: Lower-cased buyer wallet, null until sold.
        seaport_order: Signed order payload as JSON text.
        order_hash: Unique dedup key (nullable; nulls never conflict).
        on_chain: Whether the purchase was recorded.
        status: ``active`` or ``sold``.
        image: Optional display image URL.
        created_at: Set once on insert.
        updated_at: Refreshed on every mutation.
    """

    __tablename__ = "orders"

    id = mapped_column(String(36), primary_key=True)
    token_id = mapped_column(String(128), nullable=False)
    price = mapped_column(Price, nullable=False)
    nft_contract = mapped_column(String(64), nullable=False)
    marketplace_contract = mapped_column(String(64), nullable=False)
    seller_address = mapped_column(String(128), nullable=False, index=True)
    buyer_address = mapped_column(String(128), nullable=True)
    seaport_order = mapped_column(Text, nullable=False)
    order_hash = mapped_column(String(130), nullable=True)
    on_chain = mapped_column(Boolean, nullable=False, default=False)
    status = mapped_column(String(16), nullable=False, default=OrderStatus.ACTIVE.value, index=True)
    image = mapped_column(Text, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("order_hash", name="ux_orders_order_hash"),
    )


ORDERS = OrderRecord.__table__


def make_engine(settings: Settings):
    """Create the SQLAlchemy engine for ``settings.database_url``."""
    return create_engine(settings.database_url, pool_pre_ping=True)


def init_db(engine) -> None:
    """Create the orders table if it does not exist yet."""
    Base.metadata.create_all(engine)


def wait_for_db(engine, timeout: float) -> None:
    """Block until the database accepts connections.

    Args:
        engine: Engine to check with ``SELECT 1``.
        timeout: Seconds to keep retrying before giving up.

    Raises:
        sqlalchemy.exc.OperationalError: The last connection error once the
            deadline has passed.
    """
    deadline = time.time() + timeout
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            return
        except SQLAlchemyError:
            if time.time() > deadline:
                raise
            logger.warning("database not ready, retrying")
            time.sleep(1)


def decode_payload(raw):
    """Parse a stored payload back into structured data.

    Raises:
        SerializationError: When the stored text is not valid JSON.
    """
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise SerializationError(str(exc)) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops the offset on the way back; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_order(row) -> Order:
    """Map a result row to an ``Order``, tolerating undecodable payloads."""
    try:
        payload = decode_payload(row["seaport_order"])
    except SerializationError:
        logger.warning("stored payload is not valid JSON, returning raw text", extra={"order_id": row["id"]})
        payload = row["seaport_order"]
    return Order(
        id=row["id"],
        token_id=row["token_id"],
        price=row["price"],
        nft_contract=row["nft_contract"],
        marketplace_contract=row["marketplace_contract"],
        seller_address=row["seller_address"],
        seaport_order=payload,
        status=OrderStatus(row["status"]),
        order_hash=row["order_hash"],
        buyer_address=row["buyer_address"],
        on_chain=bool(row["on_chain"]),
        image=row["image"],
        created_at=_as_utc(row["created_at"]),
        updated_at=_as_utc(row["updated_at"]),
    )


class OrderRepository:
    """Repository for submitting, listing and selling orders.

    Args:
        engine: SQLAlchemy engine bound to the orders database.
        settings: Deployment settings; supplies the contract addresses
            stamped on new rows and the listing bound.
    """

    def __init__(self, engine, settings: Settings):
        self.engine = engine
        self.settings = settings

    @contextmanager
    def session(self):
        """Yield a session that is closed (and rolled back if uncommitted) on exit."""
        with Session(self.engine) as s:
            yield s

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("select 1"))

    def upsert_order(self, order) -> Order:
        """Insert a new order or refresh the active order with the same hash.

        When a row with the same ``order_hash`` exists and is still active,
        its price and payload are replaced, status is reset to active and
        ``updated_at`` is refreshed. Identity fields (id, token, seller,
        createdAt) stay those of the stored row.

        Args:
            order: ``OrderSubmission`` or a raw submission mapping.

        Returns:
            Order: The canonical stored row.

        Raises:
            ValidationError: When a required field is missing or price is
                not a non-negative number.
            OrderSoldError: When the hash belongs to an order already sold.
            StoreError: On any database failure.
        """
        sub = parse_submission(order)
        now = _utcnow()
        values = {
            "id": str(uuid.uuid4()),
            "token_id": sub.token_id,
            "price": sub.price,
            "nft_contract": self.settings.nft_contract_address,
            "marketplace_contract": self.settings.marketplace_contract_address,
            "seller_address": sub.seller_address,
            "buyer_address": None,
            "seaport_order": sub.payload_text(),
            "order_hash": sub.order_hash,
            "on_chain": False,
            "status": OrderStatus.ACTIVE.value,
            "image": sub.image,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with self.session() as s:
                native = NATIVE_INSERTS.get(self.engine.dialect.name)
                if native is not None:
                    row = self._upsert_native(s, native, values, now)
                else:
                    row = self._upsert_portable(s, values, now)
                if row is None:
                    raise OrderSoldError()
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreError() from exc

        logger.info(
            "order upserted",
            extra={"order_id": row["id"], "order_hash": row["order_hash"], "inserted": row["id"] == values["id"]},
        )
        return _to_order(row)

    def _upsert_native(self, s: Session, native_insert, values: dict, now: datetime):
        stmt = native_insert(ORDERS).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ORDERS.c.order_hash],
            set_={
                "price": stmt.excluded.price,
                "seaport_order": stmt.excluded.seaport_order,
                "status": OrderStatus.ACTIVE.value,
                "updated_at": now,
            },
            # Sold rows are terminal: the conflict branch leaves them untouched
            # and RETURNING yields nothing.
            where=ORDERS.c.status == OrderStatus.ACTIVE.value,
        ).returning(*ORDERS.c)
        return s.execute(stmt).mappings().first()

    def _upsert_portable(self, s: Session, values: dict, now: datetime):
        """Insert, and on a uniqueness violation update the existing active row.

        Each attempt runs in its own transaction; the returned row is read
        inside the still-open transaction the caller commits.
        """
        order_hash = values["order_hash"]
        for _ in range(UPSERT_ATTEMPTS):
            try:
                s.execute(insert(ORDERS).values(**values))
                return s.execute(select(ORDERS).where(ORDERS.c.id == values["id"])).mappings().one()
            except IntegrityError:
                s.rollback()
                if order_hash is None:
                    raise

            result = s.execute(
                update(ORDERS)
                .where(ORDERS.c.order_hash == order_hash, ORDERS.c.status == OrderStatus.ACTIVE.value)
                .values(
                    price=values["price"],
                    seaport_order=values["seaport_order"],
                    status=OrderStatus.ACTIVE.value,
                    updated_at=now,
                )
            )
            if result.rowcount:
                return s.execute(select(ORDERS).where(ORDERS.c.order_hash == order_hash)).mappings().one()

            existing = s.execute(select(ORDERS.c.status).where(ORDERS.c.order_hash == order_hash)).first()
            s.rollback()
            if existing is not None:
                return None
            # The conflicting row vanished between statements; try the insert again.
        raise StoreError()

    def list_active_orders(self, limit: int | None = None) -> list[Order]:
        """Return active orders, newest first.

        Args:
            limit: Maximum number of rows; defaults to and is capped at
                ``settings.list_limit_max``.

        Returns:
            list[Order]: Active orders. A row whose payload cannot be decoded
            is returned with its raw stored text instead of failing the list.

        Raises:
            ValidationError: When ``limit`` is below 1.
            StoreError: On any database failure.
        """
        cap = self.settings.list_limit_max
        if limit is None:
            limit = cap
        if limit < 1:
            raise ValidationError("Invalid limit")
        stmt = (
            select(ORDERS)
            .where(ORDERS.c.status == OrderStatus.ACTIVE.value)
            .order_by(ORDERS.c.created_at.desc())
            .limit(min(limit, cap))
        )
        try:
            with self.session() as s:
                rows = s.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise StoreError() from exc
        return [_to_order(r) for r in rows]

    def mark_sold(self, order_hash: str, buyer_address: str) -> Order:
        """Record the on-chain purchase of an order.

        Sets ``on_chain``, the lower-cased buyer, status ``sold`` and
        ``updated_at`` in one statement. Concurrent calls for the same hash
        each apply the full update; the last one to commit wins.

        Args:
            order_hash: Hash of the purchased order.
            buyer_address: Buyer wallet.

        Returns:
            Order: The updated row.

        Raises:
            ValidationError: When either argument is missing.
            NotFoundError: When no order has this hash.
            StoreError: On any database failure.
        """
        if not isinstance(order_hash, str) or not order_hash.strip():
            raise ValidationError(MISSING_PURCHASE_FIELDS)
        if not isinstance(buyer_address, str) or not buyer_address.strip():
            raise ValidationError(MISSING_PURCHASE_FIELDS)
        order_hash = order_hash.strip()

        stmt = (
            update(ORDERS)
            .where(ORDERS.c.order_hash == order_hash)
            .values(
                on_chain=True,
                buyer_address=buyer_address.strip().lower(),
                status=OrderStatus.SOLD.value,
                updated_at=_utcnow(),
            )
        )
        try:
            with self.session() as s:
                if self.engine.dialect.update_returning:
                    row = s.execute(stmt.returning(*ORDERS.c)).mappings().first()
                else:
                    s.execute(stmt)
                    row = s.execute(select(ORDERS).where(ORDERS.c.order_hash == order_hash)).mappings().first()
                if row is None:
                    raise NotFoundError()
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreError() from exc

        logger.info("order marked sold", extra={"order_id": row["id"], "order_hash": order_hash})
        return _to_order(row)
