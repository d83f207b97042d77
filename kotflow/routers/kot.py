from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from datetime import datetime, timezone

from kotflow.db import get_db
from kotflow.deps import require_auth, http_error
from kotflow.errors import PosError
from kotflow.models.core import (
    KitchenTicket, TicketLine, TicketStatus, TicketCategory, Order, OrderLine, MenuItem,
)
from kotflow.schemas.orders import StatusIn, PrintOut
from kotflow.services.fulfillment import update_ticket_status, update_ticket_line_status
from kotflow.services.printing import PrintDispatcher

router = APIRouter(prefix="/kot", tags=["kot"])


def _elapsed_minutes(created: datetime | None) -> int | None:
    if created is None:
        return None
    if created.tzinfo is None:
        # SQLite hands back naive UTC
        created = created.replace(tzinfo=timezone.utc)
    return int((datetime.now(timezone.utc) - created).total_seconds() // 60)


def _ticket_lines(db: Session, ticket_id: str) -> list[dict]:
    rows = (
        db.query(TicketLine, MenuItem.preparation_time)
        .join(OrderLine, OrderLine.id == TicketLine.order_line_id)
        .join(MenuItem, MenuItem.id == OrderLine.menu_item_id)
        .filter(TicketLine.ticket_id == ticket_id)
        .order_by(TicketLine.position)
        .all()
    )
    return [
        {
            "id": tl.id,
            "order_line_id": tl.order_line_id,
            "item_name": tl.item_name,
            "quantity": tl.quantity,
            "special_instructions": tl.special_instructions,
            "status": tl.status.value,
            "preparation_time": prep,
        }
        for tl, prep in rows
    ]


def _ticket_row(t: KitchenTicket, o: Order) -> dict:
    return {
        "id": t.id,
        "ticket_number": t.ticket_number,
        "order_id": t.order_id,
        "order_number": o.order_number,
        "table_id": o.table_id,
        "customer_name": o.customer_name,
        "order_type": o.order_type.value,
        "printer_id": t.printer_id,
        "category": t.category.value,
        "status": t.status.value,
        "printed_at": t.printed_at,
        "completed_at": t.completed_at,
        "reprint_count": t.reprint_count,
        "created_at": t.created_at,
        "time_elapsed": _elapsed_minutes(t.created_at),
    }


@router.get("/")
def list_tickets(
    status: str | None = None,
    category: str | None = None,
    date: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    q = db.query(KitchenTicket, Order).join(Order, Order.id == KitchenTicket.order_id)
    try:
        if status:
            q = q.filter(KitchenTicket.status == TicketStatus(status))
        if category:
            q = q.filter(KitchenTicket.category == TicketCategory(category))
    except ValueError:
        raise HTTPException(400, detail="invalid filter value")
    if date:
        q = q.filter(func.date(KitchenTicket.created_at) == date)

    limit = max(1, min(limit, 200))
    rows = q.order_by(KitchenTicket.created_at.desc()).offset(max(0, offset)).limit(limit).all()

    kots = []
    for t, o in rows:
        out = _ticket_row(t, o)
        out["items"] = _ticket_lines(db, t.id)
        kots.append(out)
    return {"kots": kots}


@router.get("/stats/summary")
def stats_summary(date: str | None = None, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    day = date or datetime.now(timezone.utc).date().isoformat()
    on_day = func.date(KitchenTicket.created_at) == day

    status_counts = (
        db.query(KitchenTicket.status, func.count(KitchenTicket.id))
        .filter(on_day)
        .group_by(KitchenTicket.status)
        .all()
    )
    category_counts = (
        db.query(KitchenTicket.category, func.count(KitchenTicket.id))
        .filter(on_day)
        .group_by(KitchenTicket.category)
        .all()
    )

    # averaged in Python so the query stays portable across SQLite/Postgres
    done = (
        db.query(KitchenTicket.created_at, KitchenTicket.completed_at)
        .filter(on_day, KitchenTicket.completed_at.isnot(None))
        .all()
    )
    minutes = [(c2 - c1).total_seconds() / 60 for c1, c2 in done]
    avg_prep = round(sum(minutes) / len(minutes), 1) if minutes else 0

    return {
        "date": day,
        "status_counts": [{"status": s.value, "count": n} for s, n in status_counts],
        "avg_preparation_time": avg_prep,
        "category_breakdown": [{"category": c.value, "count": n} for c, n in category_counts],
    }


@router.get("/{ticket_id}")
def get_ticket(ticket_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    t = db.get(KitchenTicket, ticket_id)
    if not t:
        raise HTTPException(404, detail="KOT not found")
    o = db.get(Order, t.order_id)
    out = _ticket_row(t, o)
    out["order_instructions"] = o.special_instructions
    out["items"] = _ticket_lines(db, t.id)
    return out


@router.put("/{ticket_id}/status")
def set_ticket_status(ticket_id: str, body: StatusIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        new_status = update_ticket_status(db, ticket_id, body.status)
    except PosError as e:
        raise http_error(e)
    return {"id": ticket_id, "status": new_status.value}


@router.put("/{ticket_id}/items/{line_id}/status")
def set_line_status(
    ticket_id: str,
    line_id: str,
    body: StatusIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    try:
        res = update_ticket_line_status(db, ticket_id, line_id, body.status)
    except PosError as e:
        raise http_error(e)
    return {"id": line_id, "status": res["status"].value, "ticket_ready": res["ticket_ready"]}


@router.post("/{ticket_id}/print", response_model=PrintOut)
def print_ticket(ticket_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        outcome = PrintDispatcher(db).print_ticket(ticket_id)
    except PosError as e:
        raise http_error(e)
    return outcome.as_dict()
