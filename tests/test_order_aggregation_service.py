from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from dairy_ledger.services.order_aggregation_service import (
    LineItem,
    OrderSnapshot,
    merge_line_items,
    summarize_by_customer,
    summarize_by_customer_and_date,
    summarize_by_date,
    to_money,
)

T0 = datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)


def _item(product_id: int, name: str, qty: str, price: str) -> LineItem:
    quantity = Decimal(qty)
    unit_price = Decimal(price)
    return LineItem(
        product_id=product_id,
        product_name=name,
        quantity=quantity,
        unit='packet',
        price=unit_price,
        total=(quantity * unit_price).quantize(Decimal('0.01')),
    )


def _order(order_id, customer_id, name, day, items, paid='0', minutes=0, status='PENDING') -> OrderSnapshot:
    total = sum((item.total for item in items), Decimal('0.00'))
    return OrderSnapshot(
        id=order_id,
        customer_id=customer_id,
        customer_name=name,
        order_date=day,
        items=tuple(items),
        total_amount=total,
        amount_paid=Decimal(paid),
        created_at=T0 + timedelta(minutes=minutes),
        status=status,
    )


class MergeLineItemsTests(unittest.TestCase):
    def test_same_product_and_price_are_combined(self) -> None:
        merged = merge_line_items([_item(1, 'Milk', '2', '30.00'), _item(1, 'Milk', '3', '30.00')])

        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].quantity, Decimal('5'))
        self.assertEqual(merged[0].total, Decimal('150.00'))

    def test_same_product_at_two_prices_stays_separate(self) -> None:
        merged = merge_line_items([_item(1, 'Milk', '2', '30.00'), _item(1, 'Milk', '1', '32.00')])

        self.assertEqual(len(merged), 2)
        self.assertEqual({row.price for row in merged}, {Decimal('30.00'), Decimal('32.00')})

    def test_rows_are_sorted_by_product_name_ignoring_case(self) -> None:
        merged = merge_line_items(
            [_item(3, 'paneer', '1', '90'), _item(1, 'Curd', '1', '35'), _item(2, 'butter', '1', '50')]
        )

        self.assertEqual([row.product_name for row in merged], ['butter', 'Curd', 'paneer'])

    def test_merging_preserves_totals(self) -> None:
        items = [_item(1, 'Milk', '1.5', '30'), _item(2, 'Curd', '2', '35'), _item(1, 'Milk', '0.5', '30')]

        merged = merge_line_items(items)

        self.assertEqual(sum(row.total for row in merged), sum(row.total for row in items))
        self.assertEqual(sum(row.quantity for row in merged), Decimal('4.0'))

    def test_line_item_round_trips_through_json_dict(self) -> None:
        item = _item(7, 'Ghee', '0.25', '640.00')

        self.assertEqual(LineItem.from_dict(item.to_dict()), item)
        self.assertEqual(item.to_dict()['quantity'], '0.25')


class SummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.day1 = date(2024, 5, 1)
        self.day2 = date(2024, 5, 2)
        self.orders = [
            _order(1, 10, 'Zeta Dairy', self.day1, [_item(1, 'Milk', '2', '30')], paid='60', minutes=0),
            _order(2, 10, 'Zeta Dairy', self.day1, [_item(1, 'Milk', '1', '30')], minutes=5),
            _order(3, 11, 'alpha cafe', self.day1, [_item(2, 'Curd', '2', '35')], paid='10', minutes=1),
            _order(4, 10, 'Zeta Dairy', self.day2, [_item(2, 'Curd', '1', '35')], minutes=10, status='DELIVERED'),
        ]

    def test_summarize_by_date_is_newest_first(self) -> None:
        summaries = summarize_by_date(self.orders)

        self.assertEqual([row.order_date for row in summaries], [self.day2, self.day1])
        day1 = summaries[1]
        self.assertEqual(day1.total_amount, Decimal('160.00'))
        self.assertEqual(day1.total_paid, Decimal('70'))
        self.assertEqual(day1.balance, Decimal('90.00'))
        self.assertFalse(day1.is_fully_paid)

    def test_summarize_by_customer_sorts_names_and_merges_items(self) -> None:
        summaries = summarize_by_customer([order for order in self.orders if order.order_date == self.day1])

        self.assertEqual([row.customer_name for row in summaries], ['alpha cafe', 'Zeta Dairy'])
        zeta = summaries[1]
        self.assertEqual(zeta.order_ids, (1, 2))
        self.assertEqual(len(zeta.items), 1)
        self.assertEqual(zeta.items[0].quantity, Decimal('3'))
        self.assertEqual(zeta.total_amount, Decimal('90.00'))
        self.assertEqual(zeta.balance, Decimal('30.00'))

    def test_summary_statuses_collect_every_order_status(self) -> None:
        zeta = [row for row in summarize_by_customer(self.orders) if row.customer_id == 10][0]

        self.assertEqual(zeta.statuses, frozenset({'PENDING', 'DELIVERED'}))

    def test_fully_paid_when_paid_meets_total(self) -> None:
        summaries = summarize_by_date([_order(9, 1, 'A', self.day1, [_item(1, 'Milk', '1', '30')], paid='45')])

        self.assertTrue(summaries[0].is_fully_paid)
        self.assertEqual(summaries[0].balance, Decimal('-15.00'))

    def test_summarize_by_customer_and_date(self) -> None:
        breakdown = summarize_by_customer_and_date(self.orders)

        self.assertEqual([row.customer_id for row in breakdown], [11, 10])
        self.assertEqual([row.order_date for row in breakdown[1].daily_summaries], [self.day2, self.day1])

    def test_empty_input_gives_empty_summaries(self) -> None:
        self.assertEqual(summarize_by_date([]), [])
        self.assertEqual(summarize_by_customer([]), [])


class MoneyTests(unittest.TestCase):
    def test_to_money_quantizes_to_cents(self) -> None:
        self.assertEqual(to_money('12.345'), Decimal('12.34'))
        self.assertEqual(to_money(0.1), Decimal('0.10'))
        self.assertEqual(to_money(None), Decimal('0.00'))

    def test_to_money_rejects_garbage(self) -> None:
        with self.assertRaises(ValueError):
            to_money('twelve')


if __name__ == '__main__':
    unittest.main()
