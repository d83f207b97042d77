from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from kotflow.db import get_db
from kotflow.deps import require_auth, http_error
from kotflow.errors import PosError
from kotflow.schemas.orders import OrderIn, OrderCreatedOut, StatusIn, PrintOut
from kotflow.models.core import (
    Order, OrderLine, OrderStatus, OrderType, MenuItem, KitchenTicket,
)
from kotflow.services import system_settings
from kotflow.services.fulfillment import update_order_status
from kotflow.services.placement import OrderDraft, place_order
from kotflow.services.pricing import LineRequest, _money
from kotflow.services.printing import PrintDispatcher, dispatch_ticket_in_background

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_row(o: Order) -> dict:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "table_id": o.table_id,
        "session_id": o.session_id,
        "customer_id": o.customer_id,
        "customer_name": o.customer_name,
        "order_type": o.order_type.value,
        "subtotal": float(_money(o.subtotal)),
        "tax_amount": float(_money(o.tax_amount)),
        "discount_amount": float(_money(o.discount_amount)),
        "total_amount": float(_money(o.total_amount)),
        "status": o.status.value,
        "payment_status": o.payment_status.value,
        "special_instructions": o.special_instructions,
        "created_by": o.created_by,
        "created_at": o.created_at,
        "updated_at": o.updated_at,
    }


def _line_rows(db: Session, order_id: str) -> list[dict]:
    rows = (
        db.query(OrderLine, MenuItem.name, MenuItem.description, MenuItem.preparation_time)
        .join(MenuItem, MenuItem.id == OrderLine.menu_item_id)
        .filter(OrderLine.order_id == order_id)
        .order_by(OrderLine.position)
        .all()
    )
    return [
        {
            "id": l.id,
            "menu_item_id": l.menu_item_id,
            "item_name": name,
            "description": desc,
            "preparation_time": prep,
            "quantity": l.quantity,
            "unit_price": float(_money(l.unit_price)),
            "total_price": float(_money(l.total_price)),
            "status": l.status.value,
            "special_instructions": l.special_instructions,
        }
        for l, name, desc, prep in rows
    ]


@router.get("/")
def list_orders(
    status: str | None = None,
    table_id: str | None = None,
    date: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    q = db.query(Order)

    if status:
        try:
            q = q.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid status")
    if table_id:
        q = q.filter(Order.table_id == table_id)
    if date:
        q = q.filter(func.date(Order.created_at) == date)

    limit = max(1, min(limit, 200))
    offset = max(0, offset)
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()

    orders = []
    for o in rows:
        out = _order_row(o)
        out["items"] = _line_rows(db, o.id)
        orders.append(out)
    return {"orders": orders}


@router.post("/", response_model=OrderCreatedOut, status_code=201)
def create_order(
    body: OrderIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    draft = OrderDraft(
        order_type=OrderType(body.order_type),
        lines=[LineRequest(i.menu_item_id, i.quantity, i.special_instructions) for i in body.items],
        table_id=body.table_id,
        session_id=body.session_id,
        customer_id=body.customer_id,
        customer_name=body.customer_name,
        special_instructions=body.special_instructions,
    )
    try:
        result = place_order(db, draft, created_by=sub)
    except PosError as e:
        raise http_error(e)

    # printing never decides whether the order succeeded
    auto_print = system_settings.get_auto_print(db)
    if auto_print:
        background.add_task(dispatch_ticket_in_background, result.ticket_id)

    return OrderCreatedOut(
        id=result.order_id,
        order_number=result.order_number,
        ticket_id=result.ticket_id,
        ticket_number=result.ticket_number,
        total_amount=float(result.total_amount),
        auto_print=auto_print,
    )


@router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = db.get(Order, order_id)
    if not o:
        raise HTTPException(404, detail="Order not found")

    out = _order_row(o)
    out["items"] = _line_rows(db, o.id)
    tickets = (
        db.query(KitchenTicket)
        .filter(KitchenTicket.order_id == o.id)
        .order_by(KitchenTicket.created_at)
        .all()
    )
    out["kots"] = [
        {
            "id": t.id,
            "ticket_number": t.ticket_number,
            "category": t.category.value,
            "status": t.status.value,
            "printer_id": t.printer_id,
            "printed_at": t.printed_at,
            "completed_at": t.completed_at,
        }
        for t in tickets
    ]
    return out


@router.put("/{order_id}/status")
def set_status(order_id: str, body: StatusIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        new_status = update_order_status(db, order_id, body.status)
    except PosError as e:
        raise http_error(e)
    return {"id": order_id, "status": new_status.value}


@router.post("/{order_id}/print-kot", response_model=PrintOut)
def print_kot(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        outcome = PrintDispatcher(db).print_latest_ticket_for_order(order_id)
    except PosError as e:
        raise http_error(e)
    return outcome.as_dict()


@router.post("/{order_id}/print-receipt", response_model=PrintOut)
def print_receipt(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        outcome = PrintDispatcher(db).print_receipt(order_id)
    except PosError as e:
        raise http_error(e)
    return outcome.as_dict()
