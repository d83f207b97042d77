import logging

from sqlalchemy.orm import Session

from kotflow.errors import NoPrinterAvailable, NotFound
from kotflow.models.core import (
    KitchenTicket, MenuItem, OrderLine, Printer, PrinterCategoryMapping,
    PrinterFunction, TicketLine,
)

log = logging.getLogger(__name__)


def _available(q):
    return q.filter(Printer.is_active.is_(True), Printer.is_online.is_(True))


def ticket_subcategories(db: Session, ticket_id: str) -> set[str]:
    rows = (
        db.query(MenuItem.subcategory_id)
        .join(OrderLine, OrderLine.menu_item_id == MenuItem.id)
        .join(TicketLine, TicketLine.order_line_id == OrderLine.id)
        .filter(TicketLine.ticket_id == ticket_id)
        .distinct()
        .all()
    )
    return {sid for (sid,) in rows}


def select_printer(db: Session, ticket_id: str) -> Printer:
    """Pick the destination printer for a ticket.

    First match wins: a mapped printer for any subcategory on the ticket,
    then any Kitchen printer. Only active and online printers qualify;
    ties go to the lowest printer id.
    """
    if not db.get(KitchenTicket, ticket_id):
        raise NotFound("ticket not found")

    subs = ticket_subcategories(db, ticket_id)
    if subs:
        mapped = (
            _available(db.query(Printer))
            .join(PrinterCategoryMapping, PrinterCategoryMapping.printer_id == Printer.id)
            .filter(PrinterCategoryMapping.subcategory_id.in_(subs))
            .order_by(Printer.id)
            .first()
        )
        if mapped:
            return mapped

    fallback = (
        _available(db.query(Printer))
        .filter(Printer.function == PrinterFunction.KITCHEN)
        .order_by(Printer.id)
        .first()
    )
    if fallback:
        log.info("ticket %s has no mapped printer, using kitchen printer %s", ticket_id, fallback.id)
        return fallback

    raise NoPrinterAvailable("No active kitchen printer found")


def select_receipt_printer(db: Session) -> Printer:
    p = (
        _available(db.query(Printer))
        .filter(Printer.function == PrinterFunction.RECEIPT)
        .order_by(Printer.id)
        .first()
    )
    if not p:
        raise NoPrinterAvailable("No active receipt printer found")
    return p
