from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dairy_ledger.services.sort_utils import name_sort_key

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None or value == '':
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT)
    except InvalidOperation as exc:
        raise ValueError(f'Invalid amount: {value!r}') from exc


def to_quantity(value: Decimal | int | float | str | None) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f'Invalid quantity: {value!r}') from exc


@dataclass(frozen=True)
class LineItem:
    product_id: int
    product_name: str
    quantity: Decimal
    unit: str
    price: Decimal
    total: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        return cls(
            product_id=int(data['product_id']),
            product_name=str(data.get('product_name') or ''),
            quantity=to_quantity(data.get('quantity')),
            unit=str(data.get('unit') or ''),
            price=to_money(data.get('price')),
            total=to_money(data.get('total')),
        )

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': str(self.quantity),
            'unit': self.unit,
            'price': str(self.price),
            'total': str(self.total),
        }


@dataclass(frozen=True)
class OrderSnapshot:
    id: int
    customer_id: int
    customer_name: str
    order_date: date
    items: tuple[LineItem, ...]
    total_amount: Decimal
    amount_paid: Decimal
    created_at: datetime
    status: str = 'PENDING'

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass(frozen=True)
class DailySummary:
    order_date: date
    order_ids: tuple[int, ...]
    items: tuple[LineItem, ...]
    total_amount: Decimal
    total_paid: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_amount - self.total_paid

    @property
    def is_fully_paid(self) -> bool:
        return self.balance <= 0


@dataclass(frozen=True)
class CustomerSummary:
    customer_id: int
    customer_name: str
    order_ids: tuple[int, ...]
    items: tuple[LineItem, ...]
    total_amount: Decimal
    total_paid: Decimal
    statuses: frozenset[str] = field(default_factory=frozenset)

    @property
    def balance(self) -> Decimal:
        return self.total_amount - self.total_paid

    @property
    def is_fully_paid(self) -> bool:
        return self.balance <= 0


@dataclass(frozen=True)
class CustomerDailyBreakdown:
    customer_id: int
    customer_name: str
    daily_summaries: tuple[DailySummary, ...]


def merge_line_items(items: Iterable[LineItem]) -> list[LineItem]:
    """Merge items sharing (product, unit price), sorted by product name.

    The same product sold at two historical prices stays as two rows.
    """
    merged: dict[tuple[int, Decimal], LineItem] = {}
    for item in items:
        key = (item.product_id, item.price)
        existing = merged.get(key)
        if existing is None:
            merged[key] = item
            continue
        merged[key] = replace(
            existing,
            quantity=existing.quantity + item.quantity,
            total=existing.total + item.total,
        )
    return sorted(merged.values(), key=lambda item: name_sort_key(item.product_name))


def orders_on(orders: Iterable[OrderSnapshot], day: date) -> list[OrderSnapshot]:
    return [order for order in orders if order.order_date == day]


def _group(orders: Iterable[OrderSnapshot], key) -> dict:
    grouped: dict = {}
    for order in orders:
        grouped.setdefault(key(order), []).append(order)
    return grouped


def _summarize_day(order_date: date, orders: list[OrderSnapshot]) -> DailySummary:
    return DailySummary(
        order_date=order_date,
        order_ids=tuple(order.id for order in orders),
        items=tuple(merge_line_items(item for order in orders for item in order.items)),
        total_amount=sum((order.total_amount for order in orders), ZERO),
        total_paid=sum((order.amount_paid for order in orders), ZERO),
    )


def summarize_by_date(orders: Iterable[OrderSnapshot]) -> list[DailySummary]:
    """Per-date summaries, newest date first."""
    grouped = _group(orders, lambda order: order.order_date)
    summaries = [_summarize_day(day, day_orders) for day, day_orders in grouped.items()]
    return sorted(summaries, key=lambda summary: summary.order_date, reverse=True)


def summarize_by_customer(orders: Iterable[OrderSnapshot]) -> list[CustomerSummary]:
    grouped = _group(orders, lambda order: order.customer_id)
    summaries = [
        CustomerSummary(
            customer_id=customer_id,
            customer_name=customer_orders[0].customer_name,
            order_ids=tuple(order.id for order in customer_orders),
            items=tuple(merge_line_items(item for order in customer_orders for item in order.items)),
            total_amount=sum((order.total_amount for order in customer_orders), ZERO),
            total_paid=sum((order.amount_paid for order in customer_orders), ZERO),
            statuses=frozenset(order.status for order in customer_orders),
        )
        for customer_id, customer_orders in grouped.items()
    ]
    return sorted(summaries, key=lambda summary: (name_sort_key(summary.customer_name), summary.customer_id))


def summarize_by_customer_and_date(orders: Iterable[OrderSnapshot]) -> list[CustomerDailyBreakdown]:
    grouped = _group(orders, lambda order: order.customer_id)
    breakdowns = [
        CustomerDailyBreakdown(
            customer_id=customer_id,
            customer_name=customer_orders[0].customer_name,
            daily_summaries=tuple(summarize_by_date(customer_orders)),
        )
        for customer_id, customer_orders in grouped.items()
    ]
    return sorted(breakdowns, key=lambda row: (name_sort_key(row.customer_name), row.customer_id))
