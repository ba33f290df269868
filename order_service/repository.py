"""
repository.py — Order Persistence Gateway

Owns the SQLAlchemy engine and exposes the order operations the workflow needs.
Each public method runs in its own transaction: it commits on success, rolls
back on error, and always closes the session. Results are returned as pydantic
models so no ORM object outlives its session.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .db_models import Base, Order, OrderItem, OrderReceipt, utcnow
from .errors import OrderNotFoundError, PersistenceError
from .models import OrderLine, OrderReceiptOut, OrderStatus, OrderSummary, OrderWithItems

log = logging.getLogger(__name__)


class OrderRepository:
    """
    Persistence gateway for orders, their lines and payment receipts.

    Call `connect()` once at process start and `disconnect()` at shutdown.
    Extra keyword arguments are passed to `create_engine`.
    """

    def __init__(self, database_url: str, **engine_kwargs):
        self.database_url = database_url
        self.engine_kwargs = engine_kwargs
        self.engine = None
        self.SessionLocal = None

    def connect(self):
        """
        Creates the engine, verifies connectivity and creates missing tables.
        Raises:
            PersistenceError: If the database is unreachable.
        """
        try:
            self.engine = create_engine(self.database_url, pool_pre_ping=True, future=True, **self.engine_kwargs)
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            log.critical(f"Cannot connect to database: {e}")
            raise PersistenceError(f"Database unavailable: {e}") from e

        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )
        log.info("Database connected")

    def disconnect(self):
        if self.engine is not None:
            self.engine.dispose()
            log.info("Database connection pool closed")
        self.engine = None
        self.SessionLocal = None

    @contextmanager
    def session(self):
        if self.SessionLocal is None:
            raise PersistenceError("Repository is not connected")
        s: Session = self.SessionLocal()
        try:
            yield s
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            log.error(f"Database error, transaction rolled back: {e}")
            raise PersistenceError(str(e)) from e
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # ---------- Helpers ----------
    @staticmethod
    def _load(session: Session, order_id: str, with_items: bool = False) -> Order:
        query = select(Order).where(Order.id == order_id)
        if with_items:
            query = query.options(selectinload(Order.items))
        order = session.execute(query).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # ---------- Operations ----------
    def create_order(self, total_amount: Decimal, total_items: int, lines: Sequence[OrderLine]) -> OrderWithItems:
        """
        Inserts the order header and all of its lines in one transaction.
        The new order is PENDING and unpaid. The returned order is read back
        from the database, so amounts are at the column scale.
        """
        with self.session() as s:
            order = Order(
                status=OrderStatus.PENDING,
                total_amount=total_amount,
                total_items=total_items,
                paid=False,
                items=[
                    OrderItem(
                        product_id=line.product_id,
                        product_name=line.product_name,
                        quantity=line.quantity,
                        price=line.price,
                    )
                    for line in lines
                ],
            )
            s.add(order)
            s.flush()
            order_id = order.id
            # Re-read within the transaction so the result carries the stored values.
            s.expire_all()
            return OrderWithItems.model_validate(self._load(s, order_id, with_items=True))

    def get_order(self, order_id: str) -> OrderWithItems:
        with self.session() as s:
            return OrderWithItems.model_validate(self._load(s, order_id, with_items=True))

    def list_orders(
        self, status: Optional[OrderStatus] = None, page: int = 1, limit: int = 10
    ) -> Tuple[List[OrderSummary], int]:
        """
        Returns one page of order headers (1-indexed) and the total number of
        orders matching `status`.
        """
        with self.session() as s:
            count_query = select(func.count()).select_from(Order)
            page_query = select(Order).order_by(Order.created_at, Order.id)
            if status is not None:
                count_query = count_query.where(Order.status == status)
                page_query = page_query.where(Order.status == status)

            total = s.execute(count_query).scalar_one()
            orders = s.execute(page_query.offset((page - 1) * limit).limit(limit)).scalars().all()
            return [OrderSummary.model_validate(o) for o in orders], total

    def update_status(self, order_id: str, status: OrderStatus) -> OrderSummary:
        with self.session() as s:
            order = self._load(s, order_id)
            order.status = status
            s.flush()
            return OrderSummary.model_validate(order)

    def mark_paid(self, order_id: str, charge_id: str, receipt_url: str) -> OrderSummary:
        """
        Marks the order as paid and stores a receipt, in one transaction.
        """
        with self.session() as s:
            order = self._load(s, order_id)
            order.status = OrderStatus.PAID
            order.paid = True
            order.paid_at = utcnow()
            order.payment_charge_id = charge_id
            order.receipts.append(OrderReceipt(receipt_url=receipt_url))
            s.flush()
            return OrderSummary.model_validate(order)

    def list_receipts(self, order_id: str) -> List[OrderReceiptOut]:
        with self.session() as s:
            self._load(s, order_id)
            receipts = s.execute(
                select(OrderReceipt).where(OrderReceipt.order_id == order_id).order_by(OrderReceipt.id)
            ).scalars().all()
            return [OrderReceiptOut.model_validate(r) for r in receipts]
