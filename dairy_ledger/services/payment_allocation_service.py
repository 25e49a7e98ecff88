from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dairy_ledger.services.order_aggregation_service import CENT, ZERO, OrderSnapshot


class OverpaymentConfirmationRequired(ValueError):
    def __init__(self, amount: Decimal, balance: Decimal) -> None:
        self.amount = amount
        self.balance = balance
        super().__init__(
            f'Payment ({amount:.2f}) is more than the balance ({balance:.2f}). Confirm to record it as overpayment.'
        )


@dataclass(frozen=True)
class PaymentUpdate:
    order_id: int
    previous_paid: Decimal
    new_paid: Decimal

    @property
    def delta(self) -> Decimal:
        return self.new_paid - self.previous_paid


@dataclass(frozen=True)
class PaymentAllocation:
    amount: Decimal
    balance_before: Decimal
    updates: tuple[PaymentUpdate, ...]

    @property
    def overpayment(self) -> Decimal:
        return max(self.amount - max(self.balance_before, ZERO), ZERO)

    @property
    def applied_total(self) -> Decimal:
        return sum((update.delta for update in self.updates), ZERO)


def parse_payment_amount(raw: Decimal | int | str | None) -> Decimal:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValueError('Please enter a valid payment amount')
    if isinstance(raw, bool):
        raise ValueError('Please enter a valid payment amount')
    try:
        amount = Decimal(raw.strip() if isinstance(raw, str) else raw)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError('Please enter a valid payment amount') from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError('Please enter a valid payment amount')
    amount = amount.quantize(CENT)
    if amount <= 0:
        raise ValueError('Please enter a valid payment amount')
    return amount


def group_balance(orders: Sequence[OrderSnapshot]) -> Decimal:
    total = sum((order.total_amount for order in orders), ZERO)
    paid = sum((order.amount_paid for order in orders), ZERO)
    return total - paid


def allocate_payment(
    orders: Sequence[OrderSnapshot],
    amount: Decimal,
    *,
    confirm_overpayment: bool = False,
) -> PaymentAllocation:
    """Spread one payment over a customer's orders for a day, oldest first.

    Each order absorbs at most its own outstanding balance. Whatever is left
    after every outstanding order is settled goes to the last order touched,
    or to the most recently created order when nothing was outstanding.
    """
    if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
        raise ValueError('Payment amount must be a positive number')
    if not orders:
        raise ValueError('No orders to apply the payment to')

    balance = group_balance(orders)
    if amount > balance and not confirm_overpayment:
        raise OverpaymentConfirmationRequired(amount, balance)

    pending = sorted(
        (order for order in orders if order.outstanding > 0),
        key=lambda order: (order.created_at, order.id),
    )

    remaining = amount
    new_paid: dict[int, Decimal] = {}
    touched: list[OrderSnapshot] = []
    for order in pending:
        if remaining <= 0:
            break
        applied = min(remaining, order.outstanding)
        new_paid[order.id] = order.amount_paid + applied
        touched.append(order)
        remaining -= applied

    if remaining > 0:
        if touched:
            target = touched[-1]
        else:
            target = max(orders, key=lambda order: (order.created_at, order.id))
            touched.append(target)
        new_paid[target.id] = new_paid.get(target.id, target.amount_paid) + remaining

    updates = tuple(
        PaymentUpdate(order_id=order.id, previous_paid=order.amount_paid, new_paid=new_paid[order.id])
        for order in touched
    )
    return PaymentAllocation(amount=amount, balance_before=balance, updates=updates)
