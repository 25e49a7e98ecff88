from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from dairy_ledger.services.order_aggregation_service import ZERO, OrderSnapshot, orders_on
from dairy_ledger.services.sort_utils import name_sort_key


@dataclass(frozen=True)
class BoxRequirement:
    full_boxes: int
    remaining_pieces: Decimal
    needed_for_next_box: Decimal


@dataclass(frozen=True)
class ProductRef:
    id: int
    name: str
    unit: str
    units_per_box: int


@dataclass(frozen=True)
class ProductBoxRow:
    product_id: int
    name: str
    unit: str
    units_per_box: int
    total_quantity: Decimal
    total_value: Decimal
    requirement: BoxRequirement | None


def parse_units_per_box(raw: str | int | None) -> int:
    try:
        pieces = int(str(raw).strip())
    except (TypeError, ValueError):
        return 0
    return pieces if pieces > 0 else 0


def compute_box_requirement(total_quantity: Decimal | int, units_per_box: int) -> BoxRequirement | None:
    """None means the product has no box size configured."""
    if units_per_box <= 0:
        return None
    total = Decimal(total_quantity)
    if total < 0:
        raise ValueError('Total quantity cannot be negative')
    full, remainder = divmod(total, Decimal(units_per_box))
    needed = Decimal('0') if remainder == 0 else Decimal(units_per_box) - remainder
    return BoxRequirement(full_boxes=int(full), remaining_pieces=remainder, needed_for_next_box=needed)


def summarize_product_sales(
    orders: Iterable[OrderSnapshot],
    products: Iterable[ProductRef],
    day: date,
) -> list[ProductBoxRow]:
    sold_qty: dict[int, Decimal] = {}
    sold_value: dict[int, Decimal] = {}
    for order in orders_on(orders, day):
        for item in order.items:
            sold_qty[item.product_id] = sold_qty.get(item.product_id, Decimal('0')) + item.quantity
            sold_value[item.product_id] = sold_value.get(item.product_id, ZERO) + item.total

    rows = []
    for product in products:
        quantity = sold_qty.get(product.id, Decimal('0'))
        rows.append(
            ProductBoxRow(
                product_id=product.id,
                name=product.name,
                unit=product.unit,
                units_per_box=product.units_per_box,
                total_quantity=quantity,
                total_value=sold_value.get(product.id, ZERO),
                requirement=compute_box_requirement(quantity, product.units_per_box),
            )
        )
    return sorted(rows, key=lambda row: name_sort_key(row.name))
