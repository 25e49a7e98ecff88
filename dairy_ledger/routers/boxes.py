from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_ledger.auth import Principal, get_current_principal
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip, parse_date_param
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.box_requirement_service import parse_units_per_box, summarize_product_sales
from dairy_ledger.services.order_service import list_order_snapshots
from dairy_ledger.services.product_service import list_products, set_units_per_box, to_product_refs

router = APIRouter(prefix='/boxes', tags=['boxes'])


@router.get('')
def boxes_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    selected_date = parse_date_param(request.query_params.get('date'), default=date.today())
    orders = list_order_snapshots(db, owner_id=principal.id, start=selected_date, end=selected_date)
    rows = summarize_product_sales(orders, to_product_refs(list_products(db, owner_id=principal.id)), selected_date)
    return request.app.state.templates.TemplateResponse(
        'boxes.html',
        {
            'request': request,
            'principal': principal,
            'selected_date': selected_date,
            'rows': rows,
        },
    )


@router.post('/{product_id}/units')
async def boxes_set_units(
    product_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    units_per_box = parse_units_per_box(form.get('units_per_box'))
    try:
        set_units_per_box(db, owner_id=principal.id, product_id=product_id, units_per_box=units_per_box)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PRODUCT_BOX_SIZE_SET',
        ip=get_client_ip(request),
        entity_type='product',
        entity_id=product_id,
        metadata={'units_per_box': units_per_box},
    )
    db.commit()
    day = parse_date_param(str(form.get('date', '')), default=date.today())
    return RedirectResponse(f'/boxes?date={day.isoformat()}', status_code=303)
