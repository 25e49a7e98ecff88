from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from dairy_ledger.models import Customer, DailyOrder


def _clean_name(name: str) -> str:
    clean = (name or '').strip()
    if not clean:
        raise ValueError('Customer name is required')
    return clean


def list_customers(db: Session, *, owner_id: int) -> list[Customer]:
    return db.execute(
        select(Customer)
        .where(Customer.owner_id == owner_id)
        .order_by(Customer.position.asc(), Customer.created_at.asc(), Customer.id.asc())
    ).scalars().all()


def get_customer(db: Session, *, owner_id: int, customer_id: int) -> Customer:
    customer = db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.owner_id == owner_id)
    ).scalar_one_or_none()
    if not customer:
        raise ValueError('Customer not found')
    return customer


def create_customer(db: Session, *, owner_id: int, name: str) -> Customer:
    clean = _clean_name(name)
    last_position = db.execute(
        select(func.max(Customer.position)).where(Customer.owner_id == owner_id)
    ).scalar_one_or_none()
    customer = Customer(
        owner_id=owner_id,
        name=clean,
        position=0 if last_position is None else last_position + 1,
    )
    db.add(customer)
    db.flush()
    return customer


def update_customer(db: Session, *, owner_id: int, customer_id: int, name: str) -> Customer:
    customer = get_customer(db, owner_id=owner_id, customer_id=customer_id)
    customer.name = _clean_name(name)
    db.flush()
    return customer


def delete_customer(db: Session, *, owner_id: int, customer_id: int) -> int:
    customer = get_customer(db, owner_id=owner_id, customer_id=customer_id)
    deleted_orders = db.execute(
        delete(DailyOrder).where(DailyOrder.customer_id == customer.id, DailyOrder.owner_id == owner_id)
    ).rowcount
    db.delete(customer)
    db.flush()
    return deleted_orders or 0


def move_customer(db: Session, *, owner_id: int, customer_id: int, direction: str) -> Customer:
    if direction not in {'up', 'down'}:
        raise ValueError('Direction must be up or down')
    customers = list_customers(db, owner_id=owner_id)
    ids = [row.id for row in customers]
    if customer_id not in ids:
        raise ValueError('Customer not found')

    index = ids.index(customer_id)
    moved = customers[index]
    swap_with = index - 1 if direction == 'up' else index + 1
    if 0 <= swap_with < len(customers):
        customers[index], customers[swap_with] = customers[swap_with], customers[index]
    # Renumber densely so legacy rows sharing position 0 get a stable order.
    for position, row in enumerate(customers):
        row.position = position
    db.flush()
    return moved
