from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from io import BytesIO
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from dairy_ledger.services.order_aggregation_service import LineItem, OrderSnapshot, orders_on
from dairy_ledger.services.sort_utils import name_sort_key
from dairy_ledger.services.statement_service import StatementResult, dates_in_range

XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
PDF_MEDIA_TYPE = 'application/pdf'
MONEY_FORMAT = '#,##0.00'
HEADER_BLUE = colors.HexColor('#0284c7')


def format_quantity(value: Decimal) -> str:
    normalized = value.normalize()
    # normalize() turns 10 into 1E+1
    return f'{normalized:f}'


def format_items(items: Iterable[LineItem], separator: str = ', ') -> str:
    return separator.join(
        f'{item.product_name} (x{format_quantity(item.quantity)} @ {item.price:.2f})' for item in items
    )


def _ensure_rows(statement: StatementResult) -> None:
    if statement.is_empty:
        raise ValueError('No data available for the selected date range')


def _workbook_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_full_report_workbook(orders: Iterable[OrderSnapshot], start: date, end: date) -> bytes:
    """One sheet per calendar day in the range with every line sold that day."""
    days = dates_in_range(start, end)
    all_orders = list(orders)
    workbook = Workbook()
    workbook.remove(workbook.active)
    bold = Font(bold=True)
    big_bold = Font(bold=True, size=14)

    for day in days:
        sheet = workbook.create_sheet(title=day.isoformat())
        day_orders = orders_on(all_orders, day)
        if not day_orders:
            sheet.append([f'No orders found for {day.isoformat()}'])
            continue

        sheet.append(['Customer Name', 'Product Name', 'Quantity', 'Unit', 'Price per Unit', 'Total Price'])
        for cell in sheet[1]:
            cell.font = bold

        by_customer: dict[int, list[OrderSnapshot]] = {}
        for order in day_orders:
            by_customer.setdefault(order.customer_id, []).append(order)

        grand_total = Decimal('0.00')
        for customer_orders in sorted(by_customer.values(), key=lambda rows: name_sort_key(rows[0].customer_name)):
            customer_name = customer_orders[0].customer_name
            customer_total = Decimal('0.00')
            for item in (item for order in customer_orders for item in order.items):
                sheet.append([customer_name, item.product_name, item.quantity, item.unit, item.price, item.total])
                sheet.cell(row=sheet.max_row, column=5).number_format = MONEY_FORMAT
                sheet.cell(row=sheet.max_row, column=6).number_format = MONEY_FORMAT
                customer_total += item.total
            sheet.append(['', '', '', '', 'Customer Total', customer_total])
            sheet.cell(row=sheet.max_row, column=5).font = bold
            total_cell = sheet.cell(row=sheet.max_row, column=6)
            total_cell.font = bold
            total_cell.number_format = MONEY_FORMAT
            sheet.append([])
            grand_total += customer_total

        sheet.append(['', '', '', '', 'Grand Total', grand_total])
        sheet.cell(row=sheet.max_row, column=5).font = big_bold
        grand_cell = sheet.cell(row=sheet.max_row, column=6)
        grand_cell.font = big_bold
        grand_cell.number_format = MONEY_FORMAT

        for column, width in zip('ABCDEF', (25, 30, 10, 10, 15, 15)):
            sheet.column_dimensions[column].width = width

    return _workbook_bytes(workbook)


def build_statement_workbook(statement: StatementResult, *, title: str) -> bytes:
    _ensure_rows(statement)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = 'Statement'
    bold = Font(bold=True)

    sheet.append([f'{title} - Statement'])
    sheet['A1'].font = Font(bold=True, size=14)
    sheet.append([f'Period: {statement.start.isoformat()} to {statement.end.isoformat()}'])
    sheet.append([])
    sheet.append(['Overall Summary'])
    sheet.cell(row=sheet.max_row, column=1).font = bold
    sheet.append(['Total Order Value', statement.grand_total_amount])
    sheet.append(['Total Paid', statement.grand_total_paid])
    sheet.append(['Pending Amount', statement.grand_total_pending])
    sheet.append([])

    for customer in statement.customer_statements:
        sheet.append([f'Customer: {customer.customer_name}'])
        sheet.cell(row=sheet.max_row, column=1).font = bold
        sheet.append([
            'Customer Total',
            customer.total_amount,
            'Customer Paid',
            customer.total_paid,
            'Customer Pending',
            customer.pending_amount,
        ])
        sheet.append(['Date', 'Items', 'Total', 'Paid', 'Balance'])
        for cell in sheet[sheet.max_row]:
            cell.font = bold
        for summary in customer.daily_summaries:
            sheet.append([
                summary.order_date.isoformat(),
                format_items(summary.items),
                summary.total_amount,
                summary.total_paid,
                summary.balance,
            ])
        sheet.append([])

    for column, width in zip('ABCDEF', (18, 40, 14, 14, 16, 14)):
        sheet.column_dimensions[column].width = width
    return _workbook_bytes(workbook)


def build_statement_pdf(statement: StatementResult, *, title: str) -> bytes:
    _ensure_rows(statement)
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=14 * mm,
        bottomMargin=14 * mm,
        title=f'{title} - Statement',
    )
    styles = getSampleStyleSheet()
    cell_style = styles['BodyText']
    story = [
        Paragraph(f'{escape(title)} - Statement', styles['Title']),
        Paragraph(f'Period: {statement.start.isoformat()} to {statement.end.isoformat()}', styles['Normal']),
        Spacer(1, 6 * mm),
        Paragraph('Overall Summary', styles['Heading2']),
        Paragraph(f'Total Order Value: {statement.grand_total_amount:.2f}', styles['Normal']),
        Paragraph(f'Total Paid: {statement.grand_total_paid:.2f}', styles['Normal']),
        Paragraph(f'Pending Amount: {statement.grand_total_pending:.2f}', styles['Normal']),
        Spacer(1, 6 * mm),
    ]

    table_style = TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_BLUE),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
    ])

    for customer in statement.customer_statements:
        story.append(Paragraph(f'Customer: {escape(customer.customer_name)}', styles['Heading3']))
        story.append(
            Paragraph(
                f'Total: {customer.total_amount:.2f} | Paid: {customer.total_paid:.2f} '
                f'| Pending: {customer.pending_amount:.2f}',
                styles['Normal'],
            )
        )
        rows = [['Date', 'Items', 'Total', 'Paid', 'Balance']]
        for summary in customer.daily_summaries:
            rows.append([
                summary.order_date.isoformat(),
                Paragraph('<br/>'.join(escape(format_items([item])) for item in summary.items), cell_style),
                f'{summary.total_amount:.2f}',
                f'{summary.total_paid:.2f}',
                f'{summary.balance:.2f}',
            ])
        table = Table(rows, colWidths=[24 * mm, 86 * mm, 24 * mm, 24 * mm, 24 * mm], repeatRows=1)
        table.setStyle(table_style)
        story.append(table)
        story.append(Spacer(1, 8 * mm))

    doc.build(story)
    return buffer.getvalue()
