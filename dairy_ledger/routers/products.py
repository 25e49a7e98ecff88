from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_ledger.auth import Principal, get_current_principal
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.product_service import create_product, delete_product, list_products, update_product

router = APIRouter(prefix='/products', tags=['products'])


@router.get('')
def products_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return request.app.state.templates.TemplateResponse(
        'products.html',
        {
            'request': request,
            'principal': principal,
            'products': list_products(db, owner_id=principal.id),
        },
    )


@router.post('/create')
async def products_create(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        product = create_product(
            db,
            owner_id=principal.id,
            name=str(form.get('name', '')),
            price=str(form.get('price', '')),
            unit=str(form.get('unit', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PRODUCT_CREATED',
        ip=get_client_ip(request),
        entity_type='product',
        entity_id=product.id,
        metadata={'name': product.name, 'price': str(product.price), 'unit': product.unit},
    )
    db.commit()
    return RedirectResponse('/products', status_code=303)


@router.post('/{product_id}/update')
async def products_update(
    product_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        product = update_product(
            db,
            owner_id=principal.id,
            product_id=product_id,
            name=str(form.get('name', '')),
            price=str(form.get('price', '')),
            unit=str(form.get('unit', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PRODUCT_UPDATED',
        ip=get_client_ip(request),
        entity_type='product',
        entity_id=product.id,
        metadata={'name': product.name, 'price': str(product.price), 'unit': product.unit},
    )
    db.commit()
    return RedirectResponse('/products', status_code=303)


@router.post('/{product_id}/delete')
def products_delete(
    product_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        delete_product(db, owner_id=principal.id, product_id=product_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PRODUCT_DELETED',
        ip=get_client_ip(request),
        entity_type='product',
        entity_id=product_id,
    )
    db.commit()
    return RedirectResponse('/products', status_code=303)
