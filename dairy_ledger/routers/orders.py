from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_ledger.auth import Principal, get_current_principal
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip, parse_date_param
from dairy_ledger.models import OrderStatus
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.customer_service import list_customers
from dairy_ledger.services.order_aggregation_service import ZERO, summarize_by_customer
from dairy_ledger.services.order_service import (
    OrderLineInput,
    create_order,
    delete_customer_day,
    delete_order,
    list_order_snapshots,
    replace_customer_day_items,
    set_customer_day_status,
)
from dairy_ledger.services.product_service import list_products

router = APIRouter(prefix='/orders', tags=['orders'])


def _orders_url(day: date) -> str:
    return f'/orders?date={day.isoformat()}'


def _parse_lines(form, *, keep_prices: bool) -> list[OrderLineInput]:
    product_ids = form.getlist('product_id')
    quantities = form.getlist('quantity')
    if len(product_ids) != len(quantities):
        raise HTTPException(status_code=400, detail='Malformed order items')
    original_ids = form.getlist('original_product_id') if keep_prices else []
    prices = form.getlist('price') if keep_prices else []

    lines: list[OrderLineInput] = []
    for index, (raw_product_id, raw_qty) in enumerate(zip(product_ids, quantities)):
        raw_qty = str(raw_qty).strip()
        if raw_qty == '':
            continue
        if not str(raw_product_id).isdigit():
            raise HTTPException(status_code=400, detail='Select a product for every item')
        try:
            quantity = Decimal(raw_qty)
        except InvalidOperation as exc:
            raise HTTPException(status_code=400, detail=f'Invalid quantity: {raw_qty}') from exc
        if not quantity.is_finite() or quantity <= 0:
            raise HTTPException(status_code=400, detail='Quantity must be greater than zero')

        product_id = int(raw_product_id)
        price = None
        # A row keeps its sold price only while it still points at the same product.
        if index < len(original_ids) and index < len(prices) and str(original_ids[index]) == str(product_id):
            try:
                price = Decimal(str(prices[index]).strip())
            except InvalidOperation as exc:
                raise HTTPException(status_code=400, detail='Malformed order items') from exc
        lines.append(OrderLineInput(product_id=product_id, quantity=quantity, price=price))
    return lines


@router.get('')
def orders_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    selected_date = parse_date_param(request.query_params.get('date'), default=date.today())
    orders = list_order_snapshots(db, owner_id=principal.id, start=selected_date, end=selected_date)
    summaries = summarize_by_customer(orders)
    return request.app.state.templates.TemplateResponse(
        'orders.html',
        {
            'request': request,
            'principal': principal,
            'selected_date': selected_date,
            'summaries': summaries,
            'daily_total': sum((summary.total_amount for summary in summaries), ZERO),
            'customers': list_customers(db, owner_id=principal.id),
            'products': list_products(db, owner_id=principal.id),
        },
    )


@router.post('/create')
async def orders_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    order_date = parse_date_param(str(form.get('date', '')))
    customer_id_raw = str(form.get('customer_id', '')).strip()
    if not customer_id_raw.isdigit():
        raise HTTPException(status_code=400, detail='Select a customer')
    lines = _parse_lines(form, keep_prices=False)
    try:
        order = create_order(
            db,
            owner_id=principal.id,
            customer_id=int(customer_id_raw),
            order_date=order_date,
            lines=lines,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='ORDER_CREATED',
        ip=get_client_ip(request),
        entity_type='daily_order',
        entity_id=order.id,
        metadata={'customer_id': order.customer_id, 'date': order_date.isoformat(), 'total': str(order.total_amount)},
    )
    db.commit()
    return RedirectResponse(_orders_url(order_date), status_code=303)


@router.get('/{customer_id}/{order_date}/edit')
def orders_edit_page(
    customer_id: int,
    order_date: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    day = parse_date_param(order_date)
    orders = list_order_snapshots(db, owner_id=principal.id, start=day, end=day, customer_id=customer_id)
    summaries = summarize_by_customer(orders)
    if not summaries:
        raise HTTPException(status_code=404, detail='No orders found for this customer and date')
    return request.app.state.templates.TemplateResponse(
        'order_edit.html',
        {
            'request': request,
            'principal': principal,
            'selected_date': day,
            'summary': summaries[0],
            'products': list_products(db, owner_id=principal.id),
        },
    )


@router.post('/{customer_id}/{order_date}/edit')
async def orders_edit_submit(
    customer_id: int,
    order_date: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    day = parse_date_param(order_date)
    form = await request.form()
    lines = _parse_lines(form, keep_prices=True)
    try:
        order = replace_customer_day_items(
            db,
            owner_id=principal.id,
            customer_id=customer_id,
            order_date=day,
            lines=lines,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='ORDER_DAY_REPLACED' if order else 'ORDER_DAY_DELETED',
        ip=get_client_ip(request),
        entity_type='daily_order',
        entity_id=order.id if order else None,
        metadata={'customer_id': customer_id, 'date': day.isoformat(), 'lines': len(lines)},
    )
    db.commit()
    return RedirectResponse(_orders_url(day), status_code=303)


@router.post('/{customer_id}/{order_date}/delete')
def orders_delete_day(
    customer_id: int,
    order_date: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    day = parse_date_param(order_date)
    deleted = delete_customer_day(db, owner_id=principal.id, customer_id=customer_id, order_date=day)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='ORDER_DAY_DELETED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer_id,
        metadata={'date': day.isoformat(), 'deleted_count': deleted},
    )
    db.commit()
    return RedirectResponse(_orders_url(day), status_code=303)


@router.post('/{customer_id}/{order_date}/status')
async def orders_set_status(
    customer_id: int,
    order_date: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    day = parse_date_param(order_date)
    form = await request.form()
    raw_status = str(form.get('status', '')).strip().upper()
    try:
        new_status = OrderStatus(raw_status)
        updated = set_customer_day_status(
            db,
            owner_id=principal.id,
            customer_id=customer_id,
            order_date=day,
            status=new_status,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='ORDER_DAY_STATUS_SET',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer_id,
        metadata={'date': day.isoformat(), 'status': new_status.value, 'orders': updated},
    )
    db.commit()
    return RedirectResponse(_orders_url(day), status_code=303)


@router.post('/by-id/{order_id}/delete')
async def orders_delete_single(
    order_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    next_url = str(form.get('next', '')).strip()
    try:
        delete_order(db, owner_id=principal.id, order_id=order_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='ORDER_DELETED',
        ip=get_client_ip(request),
        entity_type='daily_order',
        entity_id=order_id,
    )
    db.commit()
    # Only follow local redirects.
    if not next_url.startswith('/') or next_url.startswith('//'):
        next_url = '/orders'
    return RedirectResponse(next_url, status_code=303)
