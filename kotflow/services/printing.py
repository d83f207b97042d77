import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

import httpx
from sqlalchemy import case
from sqlalchemy.orm import Session

from kotflow.config import settings
from kotflow.db import SessionLocal
from kotflow.errors import NoPrinterAvailable, NotFound, PrintDispatchFailure
from kotflow.models.core import (
    KitchenTicket, MenuItem, Order, OrderLine, Printer, TicketLine, TicketStatus,
)
from kotflow.services import system_settings
from kotflow.services.pricing import _money
from kotflow.services.routing import select_printer, select_receipt_printer

log = logging.getLogger(__name__)


# --- print agent -----------------------------------------------------------

class PrintAgentClient:
    """HTTP client for the print agent that owns the physical printers.

    The agent renders the document to printer commands and pushes it to
    ``host:port``. Each call opens and closes its own connection so concurrent
    print requests never share connection state.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _post(self, path: str, payload: dict) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            raise PrintDispatchFailure(f"print agent unreachable: {e}") from e
        if r.status_code >= 300:
            raise PrintDispatchFailure(f"print agent answered {r.status_code}")
        if not r.content:
            return
        try:
            body = r.json()
        except ValueError as e:
            raise PrintDispatchFailure("malformed print agent response") from e
        if isinstance(body, dict) and body.get("ok") is False:
            raise PrintDispatchFailure(body.get("error") or "printer not connected")

    def send(self, printer: Printer, document: dict) -> None:
        self._post("/print", {
            "host": printer.ip_address,
            "port": printer.port,
            "paper_size": printer.paper_size.value,
            "document": document,
        })

    def probe(self, printer: Printer) -> bool:
        try:
            self._post("/probe", {"host": printer.ip_address, "port": printer.port})
        except PrintDispatchFailure:
            return False
        return True


def get_print_client() -> PrintAgentClient:
    return PrintAgentClient(settings.PRINT_AGENT_URL, settings.PRINT_TIMEOUT_SEC)


# --- documents -------------------------------------------------------------

def _stamp(dt: datetime | None) -> dict:
    dt = dt or datetime.now(timezone.utc)
    return {"date": dt.strftime("%d/%m/%Y"), "time": dt.strftime("%H:%M:%S")}


def format_ticket(db: Session, ticket: KitchenTicket) -> dict:
    """Shape of a kitchen ticket as the print agent expects it."""
    order = db.get(Order, ticket.order_id)
    rows = (
        db.query(TicketLine, MenuItem.preparation_time)
        .join(OrderLine, OrderLine.id == TicketLine.order_line_id)
        .join(MenuItem, MenuItem.id == OrderLine.menu_item_id)
        .filter(TicketLine.ticket_id == ticket.id)
        .order_by(TicketLine.position)
        .all()
    )
    return {
        "type": "KOT",
        "title": "KITCHEN ORDER TICKET",
        "ticket_number": ticket.ticket_number,
        "order_number": order.order_number,
        **_stamp(ticket.created_at),
        "table_id": order.table_id,
        "customer_name": order.customer_name,
        "order_type": order.order_type.value,
        "category": ticket.category.value,
        "items": [
            {
                "index": i + 1,
                "name": tl.item_name,
                "qty": tl.quantity,
                "note": tl.special_instructions,
                "prep_minutes": prep,
            }
            for i, (tl, prep) in enumerate(rows)
        ],
        "special_instructions": order.special_instructions,
        "reprint": ticket.printed_at is not None,
    }


def format_receipt(db: Session, order: Order) -> dict:
    biz = system_settings.business_profile(db)
    rows = (
        db.query(OrderLine, MenuItem.name)
        .join(MenuItem, MenuItem.id == OrderLine.menu_item_id)
        .filter(OrderLine.order_id == order.id)
        .order_by(OrderLine.position)
        .all()
    )
    return {
        "type": "RECEIPT",
        "restaurant": {
            "name": biz.get("business_name") or "Restaurant POS",
            "address": biz.get("business_address") or None,
            "phone": biz.get("business_phone") or None,
        },
        "receipt_number": order.order_number,
        **_stamp(order.created_at),
        "table_id": order.table_id,
        "session_id": order.session_id,
        "customer_name": order.customer_name,
        "order_type": order.order_type.value,
        "lines": [
            {
                "name": name,
                "qty": line.quantity,
                "unit_price": float(_money(line.unit_price)),
                "line_total": float(_money(line.total_price)),
            }
            for line, name in rows
        ],
        "totals": {
            "subtotal": float(_money(order.subtotal)),
            "tax": float(_money(order.tax_amount)),
            "discount": float(_money(order.discount_amount)),
            "total": float(_money(order.total_amount)),
        },
        "footer": biz.get("receipt_footer") or None,
    }


def format_test_page() -> dict:
    return {"type": "TEST", "title": "PRINTER TEST", **_stamp(None), "message": "Printer is working correctly!"}


# --- dispatcher ------------------------------------------------------------

@dataclass
class PrintOutcome:
    printed: bool
    printer_id: str | None = None
    message: str = ""
    error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


class PrintDispatcher:
    """Best-effort printing.

    Nothing here raises a printing failure to the caller: routing and agent
    errors become a ``PrintOutcome`` and the printer's ``is_online`` flag.
    Only a missing ticket/order/printer raises ``NotFound``.
    """

    def __init__(self, db: Session, client: PrintAgentClient | None = None):
        self.db = db
        self.client = client or get_print_client()

    def _mark_printer(self, printer: Printer, online: bool, tested: bool = False) -> None:
        printer.is_online = online
        if tested and online:
            printer.last_test_print = datetime.now(timezone.utc)

    def print_ticket(self, ticket_id: str) -> PrintOutcome:
        db = self.db
        ticket = db.get(KitchenTicket, ticket_id)
        if not ticket:
            raise NotFound("ticket not found")

        try:
            printer = select_printer(db, ticket_id)
        except NoPrinterAvailable as e:
            log.warning("ticket %s not printed: %s", ticket.ticket_number, e.message)
            return PrintOutcome(printed=False, message=e.message, error="no_printer_available")

        document = format_ticket(db, ticket)
        try:
            self.client.send(printer, document)
        except PrintDispatchFailure as e:
            self._mark_printer(printer, online=False)
            db.commit()
            log.warning(
                "ticket %s print failed on printer %s: %s", ticket.ticket_number, printer.id, e.message
            )
            return PrintOutcome(printed=False, printer_id=printer.id, message=e.message, error="print_dispatch_failure")

        now = datetime.now(timezone.utc)
        this_ticket = db.query(KitchenTicket).filter(KitchenTicket.id == ticket.id)
        # incremented in SQL, never from the loaded row
        this_ticket.update({
            KitchenTicket.reprint_count: case(
                (KitchenTicket.printed_at.is_not(None), KitchenTicket.reprint_count + 1),
                else_=KitchenTicket.reprint_count,
            ),
            KitchenTicket.printed_at: now,
            KitchenTicket.printer_id: printer.id,
            KitchenTicket.updated_at: now,
        }, synchronize_session=False)
        this_ticket.filter(KitchenTicket.status == TicketStatus.PENDING).update(
            {KitchenTicket.status: TicketStatus.PRINTED}, synchronize_session=False
        )
        self._mark_printer(printer, online=True)
        db.commit()
        log.info("ticket %s printed on %s", ticket.ticket_number, printer.id)
        return PrintOutcome(printed=True, printer_id=printer.id, message="KOT printed successfully")

    def print_latest_ticket_for_order(self, order_id: str) -> PrintOutcome:
        ticket = (
            self.db.query(KitchenTicket)
            .filter(KitchenTicket.order_id == order_id)
            .order_by(KitchenTicket.created_at.desc())
            .first()
        )
        if not ticket:
            raise NotFound("KOT not found for this order")
        return self.print_ticket(ticket.id)

    def print_receipt(self, order_id: str) -> PrintOutcome:
        db = self.db
        order = db.get(Order, order_id)
        if not order:
            raise NotFound("order not found")

        try:
            printer = select_receipt_printer(db)
        except NoPrinterAvailable as e:
            log.warning("receipt for %s not printed: %s", order.order_number, e.message)
            return PrintOutcome(printed=False, message=e.message, error="no_printer_available")

        try:
            self.client.send(printer, format_receipt(db, order))
        except PrintDispatchFailure as e:
            self._mark_printer(printer, online=False)
            db.commit()
            log.warning("receipt for %s failed on printer %s: %s", order.order_number, printer.id, e.message)
            return PrintOutcome(printed=False, printer_id=printer.id, message=e.message, error="print_dispatch_failure")

        self._mark_printer(printer, online=True)
        db.commit()
        return PrintOutcome(printed=True, printer_id=printer.id, message="Receipt printed successfully")

    def test_printer(self, printer_id: str) -> PrintOutcome:
        printer = self.db.get(Printer, printer_id)
        if not printer or not printer.is_active:
            raise NotFound("Printer not found or inactive")
        try:
            self.client.send(printer, format_test_page())
        except PrintDispatchFailure as e:
            self._mark_printer(printer, online=False)
            self.db.commit()
            return PrintOutcome(printed=False, printer_id=printer.id, message=f"Test print failed: {e.message}",
                                error="print_dispatch_failure")
        self._mark_printer(printer, online=True, tested=True)
        self.db.commit()
        return PrintOutcome(printed=True, printer_id=printer.id, message="Test print successful")

    def check_printer(self, printer_id: str) -> bool:
        printer = self.db.get(Printer, printer_id)
        if not printer:
            raise NotFound("Printer not found")
        online = self.client.probe(printer)
        self._mark_printer(printer, online=online)
        self.db.commit()
        return online


def dispatch_ticket_in_background(ticket_id: str) -> None:
    """Auto-print entry point; runs after the order response with its own session."""
    db = SessionLocal()
    try:
        outcome = PrintDispatcher(db).print_ticket(ticket_id)
        if not outcome.printed:
            log.warning("auto-print of ticket %s failed: %s", ticket_id, outcome.message)
    except Exception:
        db.rollback()
        log.exception("auto-print of ticket %s crashed", ticket_id)
    finally:
        db.close()
