import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kotflow.errors import TransactionFailure
from kotflow.models.core import (
    LineStatus, Order, OrderLine, OrderStatus, OrderType, PaymentStatus,
)
from kotflow.services import system_settings
from kotflow.services.pricing import LineRequest, price_order, resolve_lines
from kotflow.services.tickets import generate_number, generate_ticket

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class OrderDraft:
    order_type: OrderType
    lines: list[LineRequest]
    table_id: str | None = None
    session_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    special_instructions: str | None = None
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class PlacementResult:
    order_id: str
    order_number: str
    ticket_id: str
    ticket_number: str
    total_amount: Decimal


def _write(db: Session, draft: OrderDraft, created_by: str | None) -> PlacementResult:
    priced = resolve_lines(db, draft.lines)
    totals = price_order(priced, system_settings.get_tax_rate(db), draft.discount)

    order = Order(
        order_number=generate_number("ORD"),
        table_id=draft.table_id,
        session_id=draft.session_id,
        customer_id=draft.customer_id,
        customer_name=draft.customer_name,
        order_type=draft.order_type,
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        discount_amount=totals.discount_amount,
        total_amount=totals.total_amount,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        special_instructions=draft.special_instructions,
        created_by=created_by,
    )
    db.add(order)
    db.flush()

    written: list[tuple[OrderLine, str]] = []
    for pos, p in enumerate(priced):
        line = OrderLine(
            order_id=order.id,
            menu_item_id=p.item.id,
            position=pos,
            quantity=p.quantity,
            unit_price=p.unit_price,
            total_price=p.total_price,
            status=LineStatus.PENDING,
            special_instructions=p.note,
        )
        db.add(line)
        written.append((line, p.item.name))
    db.flush()

    ticket = generate_ticket(db, order, written)
    db.commit()

    return PlacementResult(
        order_id=order.id,
        order_number=order.order_number,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        total_amount=order.total_amount,
    )


def place_order(db: Session, draft: OrderDraft, created_by: str | None = None) -> PlacementResult:
    """Write order, order lines, kitchen ticket and ticket lines as one unit.

    Either everything commits or nothing does. Pricing runs inside the unit so
    an unavailable item aborts before any row becomes visible. A unique-number
    collision retries the whole unit with fresh numbers.
    """
    attempts = 0
    while True:
        attempts += 1
        try:
            result = _write(db, draft, created_by)
        except IntegrityError as e:
            db.rollback()
            if attempts < MAX_ATTEMPTS:
                log.warning("order write collided (attempt %d), retrying: %s", attempts, e.orig)
                continue
            log.error("order write failed after %d attempts", attempts)
            raise TransactionFailure("Could not create order") from e
        except SQLAlchemyError as e:
            db.rollback()
            log.exception("order write rolled back")
            raise TransactionFailure("Could not create order") from e
        except Exception:
            db.rollback()
            raise
        log.info(
            "order %s placed with ticket %s, total %s",
            result.order_number, result.ticket_number, result.total_amount,
        )
        return result
