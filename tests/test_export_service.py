from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from io import BytesIO

from openpyxl import load_workbook

from dairy_ledger.services.export_service import (
    build_full_report_workbook,
    build_statement_pdf,
    build_statement_workbook,
    format_items,
    format_quantity,
)
from dairy_ledger.services.order_aggregation_service import LineItem, OrderSnapshot
from dairy_ledger.services.statement_service import generate_statement


def _order(order_id, customer_id, name, day, qty, price) -> OrderSnapshot:
    total = (Decimal(qty) * Decimal(price)).quantize(Decimal('0.01'))
    return OrderSnapshot(
        id=order_id,
        customer_id=customer_id,
        customer_name=name,
        order_date=day,
        items=(LineItem(1, 'Milk', Decimal(qty), 'packet', Decimal(price), total),),
        total_amount=total,
        amount_paid=Decimal('0'),
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


class ExportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.orders = [
            _order(1, 1, 'Sharma & Sons <Wholesale>', date(2024, 5, 1), '2', '30.00'),
            _order(2, 2, 'Green Bakery', date(2024, 5, 1), '1.5', '30.00'),
        ]

    def test_format_helpers(self) -> None:
        self.assertEqual(format_quantity(Decimal('10')), '10')
        self.assertEqual(format_quantity(Decimal('1.50')), '1.5')
        self.assertEqual(format_items(self.orders[0].items), 'Milk (x2 @ 30.00)')

    def test_full_report_has_a_sheet_per_day(self) -> None:
        content = build_full_report_workbook(self.orders, date(2024, 5, 1), date(2024, 5, 2))

        workbook = load_workbook(BytesIO(content))
        self.assertEqual(workbook.sheetnames, ['2024-05-01', '2024-05-02'])
        self.assertEqual(workbook['2024-05-02']['A1'].value, 'No orders found for 2024-05-02')

        sheet = workbook['2024-05-01']
        self.assertEqual(sheet['A1'].value, 'Customer Name')
        self.assertEqual(sheet['A2'].value, 'Green Bakery')
        labels = [row[4] for row in sheet.iter_rows(values_only=True)]
        self.assertEqual(labels.count('Customer Total'), 2)
        last = list(sheet.iter_rows(values_only=True))[-1]
        self.assertEqual(last[4], 'Grand Total')
        self.assertEqual(Decimal(str(last[5])), Decimal('105'))

    def test_statement_workbook(self) -> None:
        statement = generate_statement(self.orders, date(2024, 5, 1), date(2024, 5, 1))

        workbook = load_workbook(BytesIO(build_statement_workbook(statement, title='Dairy Ledger')))

        sheet = workbook['Statement']
        self.assertEqual(sheet['A1'].value, 'Dairy Ledger - Statement')
        values = [row[0] for row in sheet.iter_rows(values_only=True)]
        self.assertIn('Customer: Green Bakery', values)

    def test_statement_pdf_escapes_names(self) -> None:
        statement = generate_statement(self.orders, date(2024, 5, 1), date(2024, 5, 1))

        content = build_statement_pdf(statement, title='Dairy & Co')

        self.assertTrue(content.startswith(b'%PDF'))

    def test_empty_statement_cannot_be_exported(self) -> None:
        statement = generate_statement([], date(2024, 5, 1), date(2024, 5, 1))

        with self.assertRaisesRegex(ValueError, 'No data available'):
            build_statement_workbook(statement, title='Dairy Ledger')
        with self.assertRaisesRegex(ValueError, 'No data available'):
            build_statement_pdf(statement, title='Dairy Ledger')


if __name__ == '__main__':
    unittest.main()
