from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_ledger.config import settings
from dairy_ledger.db import get_db
from dairy_ledger.dependencies import get_client_ip, get_templates
from dairy_ledger.models import Principal as PrincipalModel
from dairy_ledger.security.csrf import verify_csrf
from dairy_ledger.security.passwords import check_password
from dairy_ledger.security.sessions import create_web_session, revoke_web_session
from dairy_ledger.services.audit_service import log_audit, log_auth_event

router = APIRouter(tags=['auth'])

LOGIN_FAILED = 'Invalid username or password'


def _login_failed(request: Request):
    return request.app.state.templates.TemplateResponse(
        'login.html',
        {'request': request, 'error': LOGIN_FAILED},
        status_code=401,
    )


@router.get('/login')
def login_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    return templates.TemplateResponse('login.html', {'request': request, 'error': None})


@router.post('/login')
async def login_submit(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    username = str(form.get('username', '')).strip()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    failure_reason = None
    upgraded_hash = None
    if not principal:
        failure_reason = 'UNKNOWN_USERNAME'
    elif not principal.active:
        failure_reason = 'INACTIVE_PRINCIPAL'
    else:
        valid, upgraded_hash = check_password(password, principal.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'

    if failure_reason:
        log_auth_event(
            db,
            attempted_username=username,
            success=False,
            failure_reason=failure_reason,
            principal_id=principal.id if principal else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        return _login_failed(request)

    if upgraded_hash:
        principal.password_hash = upgraded_hash
    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(db, actor_principal_id=principal.id, action='AUTH_LOGIN', ip=ip, metadata={'username': username})
    db.commit()

    response = RedirectResponse('/', status_code=303)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_principal_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
    )
    db.commit()

    response = RedirectResponse('/login', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response
