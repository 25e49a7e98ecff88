from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from dairy_ledger.services.order_aggregation_service import (
    ZERO,
    DailySummary,
    OrderSnapshot,
    summarize_by_date,
)
from dairy_ledger.services.sort_utils import name_sort_key


@dataclass(frozen=True)
class CustomerStatement:
    customer_id: int
    customer_name: str
    orders: tuple[OrderSnapshot, ...]
    total_amount: Decimal
    total_paid: Decimal
    daily_summaries: tuple[DailySummary, ...]

    @property
    def pending_amount(self) -> Decimal:
        return self.total_amount - self.total_paid


@dataclass(frozen=True)
class StatementResult:
    start: date
    end: date
    customer_statements: tuple[CustomerStatement, ...]
    grand_total_amount: Decimal
    grand_total_paid: Decimal
    total_orders: int

    @property
    def grand_total_pending(self) -> Decimal:
        return self.grand_total_amount - self.grand_total_paid

    @property
    def is_empty(self) -> bool:
        return self.total_orders == 0


def validate_range(start: date, end: date) -> None:
    if start > end:
        raise ValueError('Start date must be on or before end date')


def dates_in_range(start: date, end: date) -> list[date]:
    validate_range(start, end)
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def orders_in_range(
    orders: Iterable[OrderSnapshot],
    start: date,
    end: date,
    customer_id: int | None = None,
) -> list[OrderSnapshot]:
    validate_range(start, end)
    return [
        order
        for order in orders
        if start <= order.order_date <= end and (customer_id is None or order.customer_id == customer_id)
    ]


def generate_statement(
    orders: Iterable[OrderSnapshot],
    start: date,
    end: date,
    customer_id: int | None = None,
) -> StatementResult:
    filtered = orders_in_range(orders, start, end, customer_id)

    by_customer: dict[int, list[OrderSnapshot]] = {}
    for order in filtered:
        by_customer.setdefault(order.customer_id, []).append(order)

    statements = []
    for cid, customer_orders in by_customer.items():
        ordered = sorted(customer_orders, key=lambda order: (order.order_date, order.created_at, order.id))
        statements.append(
            CustomerStatement(
                customer_id=cid,
                customer_name=customer_orders[0].customer_name or 'Unknown',
                orders=tuple(ordered),
                total_amount=sum((order.total_amount for order in ordered), ZERO),
                total_paid=sum((order.amount_paid for order in ordered), ZERO),
                daily_summaries=tuple(summarize_by_date(ordered)),
            )
        )
    statements.sort(key=lambda row: (name_sort_key(row.customer_name), row.customer_id))

    return StatementResult(
        start=start,
        end=end,
        customer_statements=tuple(statements),
        grand_total_amount=sum((row.total_amount for row in statements), ZERO),
        grand_total_paid=sum((row.total_paid for row in statements), ZERO),
        total_orders=len(filtered),
    )
