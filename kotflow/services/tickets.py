import secrets
import time

from sqlalchemy.orm import Session

from kotflow.models.core import (
    KitchenTicket, LineStatus, Order, OrderLine, TicketLine, TicketStatus,
)
from kotflow.services.classifier import category_names_for_items, classify_categories


def generate_number(prefix: str) -> str:
    """<prefix>-<epoch ms>-<32 random bits>; the unique index is the final guard."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def build_ticket_line(ticket: KitchenTicket, line: OrderLine, item_name: str) -> TicketLine:
    return TicketLine(
        ticket_id=ticket.id,
        order_line_id=line.id,
        position=line.position,
        item_name=item_name,
        quantity=line.quantity,
        special_instructions=line.special_instructions,
        status=LineStatus.PENDING,
    )


def generate_ticket(db: Session, order: Order, lines: list[tuple[OrderLine, str]]) -> KitchenTicket:
    """Derive the kitchen ticket for a freshly written order.

    Runs inside the caller's unit of work and only flushes; one ticket per
    order, one ticket line per order line. ``lines`` pairs each order line
    with its menu item name.
    """
    category = classify_categories(category_names_for_items(db, [l.menu_item_id for l, _ in lines]))
    ticket = KitchenTicket(
        ticket_number=generate_number("KOT"),
        order_id=order.id,
        category=category,
        status=TicketStatus.PENDING,
    )
    db.add(ticket)
    db.flush()

    for line, item_name in lines:
        db.add(build_ticket_line(ticket, line, item_name))
    db.flush()
    return ticket
