"""Status lifecycles for orders, kitchen tickets and ticket lines.

Every transition is a single conditional UPDATE: the row id plus the set of
current statuses the active ``TransitionPolicy`` accepts for the requested
target. Unknown status values are rejected before anything is written.

Ticket lines cascade into their ticket: once every line of a ticket is Ready
the ticket becomes Ready and gets its ``completed_at`` stamp, in the same
transaction as the line update.
"""
import logging
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import exists, func
from sqlalchemy.orm import Session

from kotflow.config import settings
from kotflow.errors import (
    InvalidStatusValue, InvalidTransition, NotFound, OrderCompletionBlocked,
)
from kotflow.models.core import (
    KitchenTicket, LineStatus, Order, OrderStatus, TicketLine, TicketStatus,
)

log = logging.getLogger(__name__)

ORDER_FLOW = [
    OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING,
    OrderStatus.READY, OrderStatus.SERVED, OrderStatus.COMPLETED,
]
TICKET_FLOW = [
    TicketStatus.PENDING, TicketStatus.PRINTED, TicketStatus.PREPARING,
    TicketStatus.READY, TicketStatus.SERVED,
]
LINE_FLOW = [LineStatus.PENDING, LineStatus.PREPARING, LineStatus.READY, LineStatus.SERVED]

TERMINAL = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


class TransitionPolicy:
    name = "base"

    def allowed_sources(self, target: PyEnum) -> set:
        raise NotImplementedError


class PermissivePolicy(TransitionPolicy):
    """Any member of the value set may follow any other."""

    name = "permissive"

    def allowed_sources(self, target: PyEnum) -> set:
        return set(type(target))


class ForwardOnlyPolicy(TransitionPolicy):
    """Same or later states only; terminal order states are final."""

    name = "forward_only"

    def allowed_sources(self, target: PyEnum) -> set:
        if target == OrderStatus.CANCELLED:
            return set(ORDER_FLOW) - TERMINAL
        flow = {OrderStatus: ORDER_FLOW, TicketStatus: TICKET_FLOW, LineStatus: LINE_FLOW}[type(target)]
        rank = flow.index(target)
        sources = set(flow[: rank + 1])
        if isinstance(target, OrderStatus):
            sources -= TERMINAL - {target}
        return sources


POLICIES = {p.name: p for p in (PermissivePolicy(), ForwardOnlyPolicy())}


def get_policy(name: str | None = None) -> TransitionPolicy:
    key = name or settings.STATUS_POLICY
    try:
        return POLICIES[key]
    except KeyError:
        raise ValueError(f"unknown status policy {key!r}")


def parse_status(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidStatusValue(value, [m.value for m in enum_cls])


def _conditional_update(db: Session, model, row_filter, target, policy: TransitionPolicy, values: dict) -> int:
    return (
        db.query(model)
        .filter(*row_filter, model.status.in_(list(policy.allowed_sources(target))))
        .update({model.status: target, model.updated_at: datetime.now(timezone.utc), **values},
                synchronize_session=False)
    )


def _reject(db: Session, model, row_filter, target, what: str):
    current = db.query(model.status).filter(*row_filter).scalar()
    db.rollback()
    if current is None:
        raise NotFound(f"{what} not found")
    raise InvalidTransition(f"{what} cannot move from {current.value} to {target.value}")


def _unserved_tickets(order_id: str):
    return exists().where(KitchenTicket.order_id == order_id, KitchenTicket.status != TicketStatus.SERVED)


def update_order_status(db: Session, order_id: str, status, policy: TransitionPolicy | None = None) -> OrderStatus:
    target = parse_status(OrderStatus, status)
    policy = policy or get_policy()

    row_filter = (Order.id == order_id,)
    guarded = row_filter
    if target == OrderStatus.COMPLETED:
        # completion guard is part of the UPDATE itself
        guarded = row_filter + (~_unserved_tickets(order_id),)
    if not _conditional_update(db, Order, guarded, target, policy, {}):
        if (target == OrderStatus.COMPLETED
                and db.query(Order.id).filter(*row_filter).scalar() is not None
                and db.query(_unserved_tickets(order_id)).scalar()):
            db.rollback()
            raise OrderCompletionBlocked("order has kitchen tickets that are not served yet")
        _reject(db, Order, row_filter, target, "order")
    db.commit()
    log.info("order %s -> %s", order_id, target.value)
    return target


def update_ticket_status(db: Session, ticket_id: str, status, policy: TransitionPolicy | None = None) -> TicketStatus:
    target = parse_status(TicketStatus, status)
    policy = policy or get_policy()
    now = datetime.now(timezone.utc)

    extra: dict = {}
    if target == TicketStatus.READY:
        extra[KitchenTicket.completed_at] = now

    row_filter = (KitchenTicket.id == ticket_id,)
    if not _conditional_update(db, KitchenTicket, row_filter, target, policy, extra):
        _reject(db, KitchenTicket, row_filter, target, "ticket")

    if target == TicketStatus.PRINTED:
        (db.query(KitchenTicket)
           .filter(KitchenTicket.id == ticket_id, KitchenTicket.printed_at.is_(None))
           .update({KitchenTicket.printed_at: now}, synchronize_session=False))
    if target == TicketStatus.READY:
        (db.query(TicketLine)
           .filter(TicketLine.ticket_id == ticket_id,
                   TicketLine.status.in_(list(policy.allowed_sources(LineStatus.READY))))
           .update({TicketLine.status: LineStatus.READY, TicketLine.updated_at: now}, synchronize_session=False))
    db.commit()
    log.info("ticket %s -> %s", ticket_id, target.value)
    return target


def cascade_ticket_ready(db: Session, ticket_id: str, policy: TransitionPolicy | None = None) -> bool:
    """Move the ticket to Ready when no line is left short of Ready.

    The ticket update goes through the same policy as a direct status change,
    so a ticket the policy holds past Ready keeps its status and completed_at.
    """
    remaining = (
        db.query(func.count(TicketLine.id))
        .filter(TicketLine.ticket_id == ticket_id, TicketLine.status != LineStatus.READY)
        .scalar()
    )
    if remaining:
        return False
    policy = policy or get_policy()
    row_filter = (KitchenTicket.id == ticket_id,)
    changed = _conditional_update(
        db, KitchenTicket, row_filter, TicketStatus.READY, policy,
        {KitchenTicket.completed_at: datetime.now(timezone.utc)},
    )
    return bool(changed)


def update_ticket_line_status(
    db: Session, ticket_id: str, line_id: str, status, policy: TransitionPolicy | None = None
) -> dict:
    target = parse_status(LineStatus, status)
    policy = policy or get_policy()

    row_filter = (TicketLine.id == line_id, TicketLine.ticket_id == ticket_id)
    if not _conditional_update(db, TicketLine, row_filter, target, policy, {}):
        _reject(db, TicketLine, row_filter, target, "ticket line")

    ticket_ready = False
    if target == LineStatus.READY:
        ticket_ready = cascade_ticket_ready(db, ticket_id, policy)
    db.commit()
    if ticket_ready:
        log.info("ticket %s ready: all lines ready", ticket_id)
    return {"status": target, "ticket_ready": ticket_ready}
