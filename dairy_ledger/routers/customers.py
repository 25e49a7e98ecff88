from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_ledger.auth import Principal, get_current_principal
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip, parse_date_param
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.customer_service import (
    create_customer,
    delete_customer,
    get_customer,
    list_customers,
    move_customer,
    update_customer,
)
from dairy_ledger.services.order_aggregation_service import ZERO, summarize_by_customer, summarize_by_date
from dairy_ledger.services.order_service import list_order_snapshots, record_payment
from dairy_ledger.services.payment_allocation_service import (
    OverpaymentConfirmationRequired,
    parse_payment_amount,
)

router = APIRouter(prefix='/customers', tags=['customers'])


def _load_customer(db: Session, principal: Principal, customer_id: int):
    try:
        return get_customer(db, owner_id=principal.id, customer_id=customer_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get('')
def customers_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    customers = list_customers(db, owner_id=principal.id)
    balances = {
        summary.customer_id: summary.balance
        for summary in summarize_by_customer(list_order_snapshots(db, owner_id=principal.id))
    }
    return request.app.state.templates.TemplateResponse(
        'customers.html',
        {
            'request': request,
            'principal': principal,
            'customers': customers,
            'balances': balances,
        },
    )


@router.post('/create')
async def customers_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        customer = create_customer(db, owner_id=principal.id, name=str(form.get('name', '')))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_CREATED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer.id,
        metadata={'name': customer.name},
    )
    db.commit()
    return RedirectResponse('/customers', status_code=303)


@router.get('/{customer_id}')
def customer_detail(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    customer = _load_customer(db, principal, customer_id)
    orders = list_order_snapshots(db, owner_id=principal.id, customer_id=customer.id)
    daily_summaries = summarize_by_date(orders)
    total_value = sum((summary.total_amount for summary in daily_summaries), ZERO)
    total_paid = sum((summary.total_paid for summary in daily_summaries), ZERO)
    return request.app.state.templates.TemplateResponse(
        'customer_detail.html',
        {
            'request': request,
            'principal': principal,
            'customer': customer,
            'daily_summaries': daily_summaries,
            'stats': {
                'total_orders': len(orders),
                'total_paid': total_paid,
                'pending_amount': total_value - total_paid,
            },
        },
    )


@router.post('/{customer_id}/update')
async def customers_update(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        customer = update_customer(db, owner_id=principal.id, customer_id=customer_id, name=str(form.get('name', '')))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_UPDATED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer.id,
        metadata={'name': customer.name},
    )
    db.commit()
    return RedirectResponse(f'/customers/{customer.id}', status_code=303)


@router.post('/{customer_id}/delete')
def customers_delete(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        deleted_orders = delete_customer(db, owner_id=principal.id, customer_id=customer_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_DELETED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer_id,
        metadata={'deleted_orders': deleted_orders},
    )
    db.commit()
    return RedirectResponse('/customers', status_code=303)


@router.post('/{customer_id}/move')
async def customers_move(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        direction = str(form.get('direction', ''))
        moved = move_customer(db, owner_id=principal.id, customer_id=customer_id, direction=direction)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CUSTOMER_MOVED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=moved.id,
        metadata={'direction': direction, 'position': moved.position},
    )
    db.commit()
    return RedirectResponse('/customers', status_code=303)


@router.post('/{customer_id}/payments')
async def customers_record_payment(
    customer_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    customer = _load_customer(db, principal, customer_id)
    form = await request.form()
    order_date = parse_date_param(str(form.get('date', '')))
    confirm = str(form.get('confirm_overpayment', '')).strip().lower() in {'1', 'true', 'yes', 'on'}
    try:
        amount = parse_payment_amount(str(form.get('amount', '')))
        allocation = record_payment(
            db,
            owner_id=principal.id,
            customer_id=customer.id,
            order_date=order_date,
            amount=amount,
            confirm_overpayment=confirm,
        )
    except OverpaymentConfirmationRequired as exc:
        db.rollback()
        return request.app.state.templates.TemplateResponse(
            'payment_confirm.html',
            {
                'request': request,
                'principal': principal,
                'customer': customer,
                'order_date': order_date,
                'amount': exc.amount,
                'balance': exc.balance,
            },
            status_code=409,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PAYMENT_RECORDED',
        ip=get_client_ip(request),
        entity_type='customer',
        entity_id=customer.id,
        metadata={
            'date': order_date.isoformat(),
            'amount': str(allocation.amount),
            'overpayment': str(allocation.overpayment),
            'updates': [
                {'order_id': update.order_id, 'delta': str(update.delta), 'new_paid': str(update.new_paid)}
                for update in allocation.updates
            ],
        },
    )
    db.commit()
    return RedirectResponse(f'/customers/{customer.id}', status_code=303)
