from __future__ import annotations

import argparse
import logging
from datetime import date

from sqlalchemy import select

from dairy_ledger.config import settings
from dairy_ledger.db import SessionLocal
from dairy_ledger.models import Principal
from dairy_ledger.services.order_service import list_order_snapshots
from dairy_ledger.services.sheet_sync_service import (
    build_sync_rows,
    check_connection,
    load_sheet_sync_config,
    push_rows,
)


def sync_sheet(*, username: str, start: date, end: date) -> int:
    config = load_sheet_sync_config(settings)
    with SessionLocal() as db:
        owner = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
        if not owner:
            raise RuntimeError(f'Unknown user: {username}')
        orders = list_order_snapshots(db, owner_id=owner.id, start=start, end=end)
    return push_rows(config, build_sync_rows(orders, start, end))


def main() -> None:
    parser = argparse.ArgumentParser(description='Push daily customer totals to the configured sheet API.')
    parser.add_argument('--username', help='Owner whose orders are synced.')
    parser.add_argument('--start', type=date.fromisoformat, default=None, help='First day (YYYY-MM-DD), default today.')
    parser.add_argument('--end', type=date.fromisoformat, default=None, help='Last day (YYYY-MM-DD), default --start.')
    parser.add_argument('--check', action='store_true', help='Only test the connection and print the row count.')
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper(), format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    if args.check:
        rows = check_connection(load_sheet_sync_config(settings))
        print(f'Sheet API reachable: rows={rows}')
        return

    if not args.username:
        parser.error('--username is required unless --check is given')
    start = args.start or date.today()
    end = args.end or start
    synced = sync_sheet(username=args.username, start=start, end=end)
    print(f'Sheet sync complete: rows={synced}')


if __name__ == '__main__':
    main()
