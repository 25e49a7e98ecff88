from __future__ import annotations

import base64
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from urllib.error import HTTPError, URLError
from urllib.parse import urlsplit
from urllib.request import Request, urlopen

from dairy_ledger.config import Settings
from dairy_ledger.services.export_service import format_quantity
from dairy_ledger.services.order_aggregation_service import ZERO, OrderSnapshot
from dairy_ledger.services.sort_utils import name_sort_key
from dairy_ledger.services.statement_service import orders_in_range

logger = logging.getLogger(__name__)


class SheetSyncError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SheetSyncConfig:
    url: str
    username: str | None = None
    password: str | None = None
    timeout_seconds: int = 30

    def __repr__(self) -> str:
        return f'SheetSyncConfig(url={self.url!r}, username={self.username!r}, password=***)'

    @property
    def count_url(self) -> str:
        return self.url.split('?', 1)[0].rstrip('/') + '/count'

    def headers(self) -> dict[str, str]:
        headers = {'Accept': 'application/json', 'Content-Type': 'application/json'}
        if self.username and self.password:
            token = base64.b64encode(f'{self.username}:{self.password}'.encode('utf-8')).decode('ascii')
            headers['Authorization'] = f'Basic {token}'
        return headers


def load_sheet_sync_config(settings: Settings) -> SheetSyncConfig:
    url = (settings.sheet_sync_url or '').strip()
    if not url:
        raise ValueError('Sheet sync is not configured. Set SHEET_SYNC_URL.')
    parts = urlsplit(url)
    if parts.scheme not in {'http', 'https'} or not parts.netloc:
        raise ValueError('SHEET_SYNC_URL must be an http(s) URL')

    username = (settings.sheet_sync_username or '').strip() or None
    password = settings.sheet_sync_password.get_secret_value() if settings.sheet_sync_password else None
    if bool(username) != bool(password):
        raise ValueError('Set both SHEET_SYNC_USERNAME and SHEET_SYNC_PASSWORD, or neither')
    if settings.sheet_sync_timeout_seconds <= 0:
        raise ValueError('SHEET_SYNC_TIMEOUT_SECONDS must be greater than zero')
    return SheetSyncConfig(
        url=url,
        username=username,
        password=password,
        timeout_seconds=settings.sheet_sync_timeout_seconds,
    )


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal('0.01')))


def build_sync_rows(orders: Iterable[OrderSnapshot], start: date, end: date) -> list[dict]:
    """One row per (date, customer); ``ID`` is the upsert key on the sheet side."""
    filtered = orders_in_range(orders, start, end)

    period_totals: dict[int, Decimal] = {}
    grouped: dict[tuple[date, int], dict] = {}
    for order in filtered:
        period_totals[order.customer_id] = period_totals.get(order.customer_id, ZERO) + order.total_amount
        key = (order.order_date, order.customer_id)
        summary = grouped.get(key)
        if summary is None:
            summary = {
                'date': order.order_date,
                'customer_id': order.customer_id,
                'customer_name': order.customer_name,
                'products': {},
                'total': ZERO,
                'paid': ZERO,
            }
            grouped[key] = summary
        summary['total'] += order.total_amount
        summary['paid'] += order.amount_paid
        for item in order.items:
            summary['products'][item.product_name] = summary['products'].get(item.product_name, Decimal('0')) + item.quantity

    ordered = sorted(
        grouped.values(),
        key=lambda row: (name_sort_key(row['customer_name']), row['date'], row['customer_id']),
    )
    return [
        {
            'ID': f"{row['date'].isoformat()}-{row['customer_id']}",
            'Date': row['date'].isoformat(),
            'Customer_Name': row['customer_name'],
            'Products_Ordered': ', '.join(
                f'{name} (x{format_quantity(qty)})' for name, qty in row['products'].items()
            ),
            'Daily_Total': _money(row['total']),
            'Daily_Paid': _money(row['paid']),
            'Daily_Pending': _money(row['total'] - row['paid']),
            'Customer_Total_for_Period': _money(period_totals.get(row['customer_id'], ZERO)),
        }
        for row in ordered
    ]


def _error_message(status_code: int, body: dict) -> str:
    if status_code == 401:
        return 'Error 401: Unauthorized. Please check the sheet API username and password.'
    if status_code == 404:
        return 'Error 404: Not Found. The sheet API URL seems to be incorrect.'
    if status_code == 405:
        return (
            'Error 405: Method Not Allowed. The sheet API endpoint does not support this request method; '
            'check the API service configuration.'
        )
    if body.get('error'):
        return f"Sync failed: {body['error']}"
    return f'Request failed with status {status_code}.'


def _request(config: SheetSyncConfig, url: str, *, method: str, payload: dict | None = None) -> dict:
    req = Request(
        url=url,
        data=json.dumps(payload).encode('utf-8') if payload is not None else None,
        headers=config.headers(),
        method=method,
    )
    try:
        with urlopen(req, timeout=config.timeout_seconds) as response:
            raw = response.read().decode('utf-8')
    except HTTPError as exc:
        raw_body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
        try:
            body = json.loads(raw_body) if raw_body else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        logger.warning('Sheet API %s %s failed with status %s', method, url, exc.code)
        raise SheetSyncError(_error_message(exc.code, body), status_code=exc.code) from exc
    except URLError as exc:
        logger.warning('Sheet API %s %s network error: %s', method, url, exc.reason)
        raise SheetSyncError(f'Sheet API network error: {exc.reason}') from exc

    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise SheetSyncError('Sheet API returned a response that is not JSON') from exc
    return parsed if isinstance(parsed, dict) else {'data': parsed}


def check_connection(config: SheetSyncConfig) -> int:
    """Returns the number of rows the sheet reports."""
    body = _request(config, config.count_url, method='GET')
    try:
        return int(body.get('rows', 0))
    except (TypeError, ValueError) as exc:
        raise SheetSyncError('Sheet API returned an unexpected row count') from exc


def push_rows(config: SheetSyncConfig, rows: list[dict]) -> int:
    if not rows:
        return 0
    _request(config, config.url, method='POST', payload={'data': rows})
    logger.info('Synced %s rows to the sheet API', len(rows))
    return len(rows)
