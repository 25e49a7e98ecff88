from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from dairy_ledger.models import DailyOrder, OrderStatus, Product
from dairy_ledger.services.customer_service import get_customer
from dairy_ledger.services.order_aggregation_service import (
    CENT,
    ZERO,
    LineItem,
    OrderSnapshot,
    to_money,
)
from dairy_ledger.services.payment_allocation_service import PaymentAllocation, allocate_payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLineInput:
    product_id: int
    quantity: Decimal
    # Set when an edited row keeps the price it was originally sold at.
    price: Decimal | None = None


def to_snapshot(order: DailyOrder) -> OrderSnapshot:
    return OrderSnapshot(
        id=order.id,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        order_date=order.order_date,
        items=tuple(LineItem.from_dict(item) for item in (order.items or [])),
        total_amount=to_money(order.total_amount),
        amount_paid=to_money(order.amount_paid),
        created_at=order.created_at,
        status=order.status.value if hasattr(order.status, 'value') else str(order.status),
    )


def list_order_snapshots(
    db: Session,
    *,
    owner_id: int,
    start: date | None = None,
    end: date | None = None,
    customer_id: int | None = None,
) -> list[OrderSnapshot]:
    query = select(DailyOrder).where(DailyOrder.owner_id == owner_id)
    if start is not None:
        query = query.where(DailyOrder.order_date >= start)
    if end is not None:
        query = query.where(DailyOrder.order_date <= end)
    if customer_id is not None:
        query = query.where(DailyOrder.customer_id == customer_id)
    query = query.order_by(DailyOrder.order_date.desc(), DailyOrder.created_at.asc(), DailyOrder.id.asc())
    return [to_snapshot(row) for row in db.execute(query).scalars().all()]


def build_line_items(
    db: Session,
    *,
    owner_id: int,
    lines: list[OrderLineInput],
    sold_items: dict[tuple[int, Decimal], LineItem] | None = None,
) -> list[LineItem]:
    """Price each line from its product, or from ``line.price`` when the row keeps its sold price.

    ``sold_items`` maps (product_id, price) to line items already on the order; a kept
    row whose product has since been deleted is rebuilt from that snapshot.
    """
    product_ids = {line.product_id for line in lines}
    products = {
        row.id: row
        for row in db.execute(
            select(Product).where(Product.owner_id == owner_id, Product.id.in_(product_ids))
        ).scalars().all()
    } if product_ids else {}
    sold_items = sold_items or {}

    items: list[LineItem] = []
    for line in lines:
        product = products.get(line.product_id)
        snapshot = None
        if product is None and line.price is not None:
            snapshot = sold_items.get((line.product_id, to_money(line.price)))
        if product is None and snapshot is None:
            raise ValueError(f'Product {line.product_id} not found')
        name = product.name if product is not None else snapshot.product_name
        if not line.quantity.is_finite() or line.quantity <= 0:
            raise ValueError(f'Quantity must be greater than zero for {name}')
        price = to_money(product.price if line.price is None else line.price)
        if price < 0:
            raise ValueError(f'Price cannot be negative for {name}')
        items.append(
            LineItem(
                product_id=line.product_id,
                product_name=name,
                quantity=line.quantity,
                unit=product.unit if product is not None else snapshot.unit,
                price=price,
                total=(line.quantity * price).quantize(CENT),
            )
        )
    return items


def _items_total(items: list[LineItem]) -> Decimal:
    return sum((item.total for item in items), ZERO)


def get_order(db: Session, *, owner_id: int, order_id: int) -> DailyOrder:
    order = db.execute(
        select(DailyOrder).where(DailyOrder.id == order_id, DailyOrder.owner_id == owner_id)
    ).scalar_one_or_none()
    if not order:
        raise ValueError('Order not found')
    return order


def create_order(
    db: Session,
    *,
    owner_id: int,
    customer_id: int,
    order_date: date,
    lines: list[OrderLineInput],
) -> DailyOrder:
    if not lines:
        raise ValueError('Add at least one item to the order')
    customer = get_customer(db, owner_id=owner_id, customer_id=customer_id)
    items = build_line_items(db, owner_id=owner_id, lines=lines)
    order = DailyOrder(
        owner_id=owner_id,
        customer_id=customer.id,
        customer_name=customer.name,
        order_date=order_date,
        items=[item.to_dict() for item in items],
        total_amount=_items_total(items),
        amount_paid=ZERO,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    db.flush()
    return order


def list_customer_day_orders(db: Session, *, owner_id: int, customer_id: int, order_date: date) -> list[DailyOrder]:
    return db.execute(
        select(DailyOrder)
        .where(
            DailyOrder.owner_id == owner_id,
            DailyOrder.customer_id == customer_id,
            DailyOrder.order_date == order_date,
        )
        .order_by(DailyOrder.created_at.asc(), DailyOrder.id.asc())
    ).scalars().all()


def replace_customer_day_items(
    db: Session,
    *,
    owner_id: int,
    customer_id: int,
    order_date: date,
    lines: list[OrderLineInput],
) -> DailyOrder | None:
    """Consolidate a customer's day into one order holding ``lines``.

    The oldest order is updated in place and keeps the day's combined
    payments; the other orders of that day are deleted. Everything happens in
    the caller's transaction. An empty ``lines`` deletes the whole day.

    Payments are never reduced by an edit, so shrinking the items can leave
    the order paid beyond its new total without a confirmation step. The
    surplus is logged and shown on the edit page as an advance.
    """
    day_orders = list_customer_day_orders(db, owner_id=owner_id, customer_id=customer_id, order_date=order_date)
    if not day_orders:
        raise ValueError('No orders found for this customer and date')
    if not lines:
        delete_customer_day(db, owner_id=owner_id, customer_id=customer_id, order_date=order_date)
        return None

    sold_items = {
        (item.product_id, item.price): item
        for order in day_orders
        for item in to_snapshot(order).items
    }
    items = build_line_items(db, owner_id=owner_id, lines=lines, sold_items=sold_items)
    keeper, *extra = day_orders
    keeper.items = [item.to_dict() for item in items]
    keeper.total_amount = _items_total(items)
    keeper.amount_paid = sum((to_money(order.amount_paid) for order in day_orders), ZERO)
    keeper.status = OrderStatus.PENDING
    if keeper.amount_paid > keeper.total_amount:
        logger.warning(
            'Edited order %s for customer %s on %s is paid %s over its new total',
            keeper.id,
            customer_id,
            order_date.isoformat(),
            keeper.amount_paid - keeper.total_amount,
        )
    if extra:
        db.execute(
            delete(DailyOrder).where(
                DailyOrder.owner_id == owner_id,
                DailyOrder.id.in_([order.id for order in extra]),
            )
        )
    db.flush()
    return keeper


def delete_order(db: Session, *, owner_id: int, order_id: int) -> None:
    order = get_order(db, owner_id=owner_id, order_id=order_id)
    db.delete(order)
    db.flush()


def delete_customer_day(db: Session, *, owner_id: int, customer_id: int, order_date: date) -> int:
    result = db.execute(
        delete(DailyOrder).where(
            DailyOrder.owner_id == owner_id,
            DailyOrder.customer_id == customer_id,
            DailyOrder.order_date == order_date,
        )
    )
    db.flush()
    return result.rowcount or 0


def set_customer_day_status(
    db: Session,
    *,
    owner_id: int,
    customer_id: int,
    order_date: date,
    status: OrderStatus,
) -> int:
    day_orders = list_customer_day_orders(db, owner_id=owner_id, customer_id=customer_id, order_date=order_date)
    if not day_orders:
        raise ValueError('No orders found for this customer and date')
    for order in day_orders:
        order.status = status
    db.flush()
    return len(day_orders)


def record_payment(
    db: Session,
    *,
    owner_id: int,
    customer_id: int,
    order_date: date,
    amount: Decimal,
    confirm_overpayment: bool = False,
) -> PaymentAllocation:
    day_orders = list_customer_day_orders(db, owner_id=owner_id, customer_id=customer_id, order_date=order_date)
    if not day_orders:
        raise ValueError('No orders found for this customer and date')

    allocation = allocate_payment(
        [to_snapshot(order) for order in day_orders],
        amount,
        confirm_overpayment=confirm_overpayment,
    )
    by_id = {order.id: order for order in day_orders}
    for update in allocation.updates:
        by_id[update.order_id].amount_paid = update.new_paid
    db.flush()

    if allocation.overpayment > 0:
        logger.info(
            'Recorded overpayment of %s for customer %s on %s',
            allocation.overpayment,
            customer_id,
            order_date.isoformat(),
        )
    return allocation
