from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from dairy_ledger.services.order_aggregation_service import OrderSnapshot
from dairy_ledger.services.payment_allocation_service import (
    OverpaymentConfirmationRequired,
    allocate_payment,
    group_balance,
    parse_payment_amount,
)

T1 = datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)


def _order(order_id: int, total: str, paid: str = '0', minutes: int = 0) -> OrderSnapshot:
    return OrderSnapshot(
        id=order_id,
        customer_id=1,
        customer_name='Sharma Stores',
        order_date=date(2024, 5, 1),
        items=(),
        total_amount=Decimal(total),
        amount_paid=Decimal(paid),
        created_at=T1 + timedelta(minutes=minutes),
    )


def _paid_after(orders, allocation) -> dict[int, Decimal]:
    result = {order.id: order.amount_paid for order in orders}
    for update in allocation.updates:
        result[update.order_id] = update.new_paid
    return result


class AllocatePaymentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.orders = [_order(1, '100.00', minutes=0), _order(2, '50.00', minutes=30)]

    def test_partial_payment_settles_oldest_first(self) -> None:
        allocation = allocate_payment(self.orders, Decimal('120'))

        self.assertEqual(_paid_after(self.orders, allocation), {1: Decimal('100.00'), 2: Decimal('20.00')})
        self.assertEqual(allocation.overpayment, Decimal('0.00'))

    def test_overpayment_requires_confirmation(self) -> None:
        with self.assertRaises(OverpaymentConfirmationRequired) as ctx:
            allocate_payment(self.orders, Decimal('200'))

        self.assertEqual(ctx.exception.amount, Decimal('200'))
        self.assertEqual(ctx.exception.balance, Decimal('150.00'))

    def test_confirmed_overpayment_goes_to_last_touched_order(self) -> None:
        allocation = allocate_payment(self.orders, Decimal('200'), confirm_overpayment=True)

        self.assertEqual(_paid_after(self.orders, allocation), {1: Decimal('100.00'), 2: Decimal('100.00')})
        self.assertEqual(allocation.overpayment, Decimal('50.00'))

    def test_nothing_outstanding_sends_payment_to_most_recent_order(self) -> None:
        orders = [_order(1, '40', paid='40', minutes=5), _order(2, '10', paid='10', minutes=1)]

        allocation = allocate_payment(orders, Decimal('25'), confirm_overpayment=True)

        self.assertEqual(len(allocation.updates), 1)
        self.assertEqual(allocation.updates[0].order_id, 1)
        self.assertEqual(allocation.updates[0].new_paid, Decimal('65'))

    def test_creation_time_ties_fall_back_to_id(self) -> None:
        orders = [_order(7, '30', minutes=0), _order(3, '30', minutes=0)]

        allocation = allocate_payment(orders, Decimal('30'))

        self.assertEqual([update.order_id for update in allocation.updates], [3])

    def test_fully_paid_orders_are_skipped(self) -> None:
        orders = [_order(1, '50', paid='50', minutes=0), _order(2, '50', paid='10', minutes=10)]

        allocation = allocate_payment(orders, Decimal('15'))

        self.assertEqual([update.order_id for update in allocation.updates], [2])
        self.assertEqual(allocation.updates[0].new_paid, Decimal('25'))

    def test_deltas_sum_to_amount_and_never_decrease(self) -> None:
        cases = [
            ([_order(1, '10.50'), _order(2, '20.25', minutes=1), _order(3, '5', minutes=2)], '33.33'),
            ([_order(1, '10.50', paid='3'), _order(2, '20.25', minutes=1)], '7.50'),
            ([_order(1, '1'), _order(2, '1', minutes=1)], '0.01'),
            ([_order(1, '99.99', paid='99.99')], '12.34'),
        ]
        for orders, raw_amount in cases:
            with self.subTest(amount=raw_amount):
                amount = Decimal(raw_amount)
                allocation = allocate_payment(orders, amount, confirm_overpayment=True)

                self.assertEqual(allocation.applied_total, amount)
                for update in allocation.updates:
                    self.assertGreaterEqual(update.new_paid, update.previous_paid)

    def test_rejects_non_positive_and_non_finite_amounts(self) -> None:
        for amount in (Decimal('0'), Decimal('-5'), Decimal('NaN'), Decimal('Infinity')):
            with self.subTest(amount=amount):
                with self.assertRaises(ValueError):
                    allocate_payment(self.orders, amount, confirm_overpayment=True)

    def test_rejects_empty_order_group(self) -> None:
        with self.assertRaises(ValueError):
            allocate_payment([], Decimal('10'))

    def test_group_balance(self) -> None:
        self.assertEqual(group_balance([_order(1, '100', paid='30'), _order(2, '50')]), Decimal('120'))


class ParsePaymentAmountTests(unittest.TestCase):
    def test_valid_amounts_are_quantized(self) -> None:
        self.assertEqual(parse_payment_amount('120'), Decimal('120.00'))
        self.assertEqual(parse_payment_amount(' 12.345 '), Decimal('12.34'))

    def test_invalid_amounts_are_rejected(self) -> None:
        for raw in ('', '   ', 'abc', '0', '-3', 'NaN', 'inf', '0.001', None, True):
            with self.subTest(raw=raw):
                with self.assertRaisesRegex(ValueError, 'valid payment amount'):
                    parse_payment_amount(raw)


if __name__ == '__main__':
    unittest.main()
