from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from dairy_ledger.auth import Principal, get_current_principal
from dairy_ledger.config import settings
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip, parse_date_param
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.customer_service import list_customers
from dairy_ledger.services.export_service import (
    PDF_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    build_full_report_workbook,
    build_statement_pdf,
    build_statement_workbook,
)
from dairy_ledger.services.order_service import list_order_snapshots
from dairy_ledger.services.sheet_sync_service import (
    SheetSyncError,
    build_sync_rows,
    check_connection,
    load_sheet_sync_config,
    push_rows,
)
from dairy_ledger.services.statement_service import StatementResult, generate_statement, validate_range

router = APIRouter(prefix='/statements', tags=['statements'])


def _read_range(params) -> tuple[date, date, int | None]:
    today = date.today()
    start = parse_date_param(params.get('start'), default=today.replace(day=1))
    end = parse_date_param(params.get('end'), default=today)
    try:
        validate_range(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raw_customer = str(params.get('customer_id') or '').strip()
    if raw_customer and not raw_customer.isdigit():
        raise HTTPException(status_code=400, detail='Invalid customer')
    return start, end, int(raw_customer) if raw_customer else None


def _statement(db: Session, principal: Principal, start: date, end: date, customer_id: int | None) -> StatementResult:
    orders = list_order_snapshots(db, owner_id=principal.id, start=start, end=end, customer_id=customer_id)
    return generate_statement(orders, start, end, customer_id)


def _download(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


def _render(
    request: Request,
    db: Session,
    principal: Principal,
    start: date,
    end: date,
    customer_id: int | None,
    *,
    sync_message: str | None = None,
    sync_error: str | None = None,
    status_code: int = 200,
):
    return request.app.state.templates.TemplateResponse(
        'statements.html',
        {
            'request': request,
            'principal': principal,
            'start': start,
            'end': end,
            'customer_id': customer_id,
            'customers': list_customers(db, owner_id=principal.id),
            'statement': _statement(db, principal, start, end, customer_id),
            'sync_configured': bool(settings.sheet_sync_url),
            'sync_message': sync_message,
            'sync_error': sync_error,
        },
        status_code=status_code,
    )


@router.get('')
def statements_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    start, end, customer_id = _read_range(request.query_params)
    return _render(request, db, principal, start, end, customer_id)


@router.get('/export.xlsx')
def statements_export_xlsx(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    start, end, customer_id = _read_range(request.query_params)
    statement = _statement(db, principal, start, end, customer_id)
    try:
        content = build_statement_workbook(statement, title=settings.business_name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='STATEMENT_EXPORTED',
        ip=get_client_ip(request),
        metadata={'format': 'xlsx', 'start': start.isoformat(), 'end': end.isoformat(), 'customer_id': customer_id},
    )
    db.commit()
    return _download(content, XLSX_MEDIA_TYPE, f'statement_{start.isoformat()}_to_{end.isoformat()}.xlsx')


@router.get('/export.pdf')
def statements_export_pdf(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    start, end, customer_id = _read_range(request.query_params)
    statement = _statement(db, principal, start, end, customer_id)
    try:
        content = build_statement_pdf(statement, title=settings.business_name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='STATEMENT_EXPORTED',
        ip=get_client_ip(request),
        metadata={'format': 'pdf', 'start': start.isoformat(), 'end': end.isoformat(), 'customer_id': customer_id},
    )
    db.commit()
    return _download(content, PDF_MEDIA_TYPE, f'statement_{start.isoformat()}_to_{end.isoformat()}.pdf')


@router.get('/full-report.xlsx')
def statements_full_report(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    start, end, _customer_id = _read_range(request.query_params)
    orders = list_order_snapshots(db, owner_id=principal.id, start=start, end=end)
    content = build_full_report_workbook(orders, start, end)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='FULL_REPORT_EXPORTED',
        ip=get_client_ip(request),
        metadata={'start': start.isoformat(), 'end': end.isoformat(), 'orders': len(orders)},
    )
    db.commit()
    return _download(content, XLSX_MEDIA_TYPE, f'full_report_{start.isoformat()}_to_{end.isoformat()}.xlsx')


@router.post('/sync')
async def statements_sync(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    start, end, customer_id = _read_range(form)
    try:
        config = load_sheet_sync_config(settings)
        rows = build_sync_rows(list_order_snapshots(db, owner_id=principal.id, start=start, end=end), start, end)
        if not rows:
            raise ValueError('No orders found in the selected date range to sync')
        synced = push_rows(config, rows)
    except (ValueError, SheetSyncError) as exc:
        return _render(request, db, principal, start, end, customer_id, sync_error=str(exc), status_code=400)

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='SHEET_SYNCED',
        ip=get_client_ip(request),
        metadata={'start': start.isoformat(), 'end': end.isoformat(), 'rows': synced},
    )
    db.commit()
    return _render(
        request,
        db,
        principal,
        start,
        end,
        customer_id,
        sync_message=f'Successfully synced {synced} daily records to the sheet.',
    )


@router.post('/sync/test')
async def statements_sync_test(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    start, end, customer_id = _read_range(form)
    try:
        rows = check_connection(load_sheet_sync_config(settings))
    except (ValueError, SheetSyncError) as exc:
        return _render(request, db, principal, start, end, customer_id, sync_error=str(exc), status_code=400)
    return _render(
        request,
        db,
        principal,
        start,
        end,
        customer_id,
        sync_message=f'Connection successful. The sheet currently has {rows} rows.',
    )
