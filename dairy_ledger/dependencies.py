from datetime import date

from fastapi import HTTPException, Request
from fastapi.templating import Jinja2Templates


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def parse_date_param(raw: str | None, default: date | None = None) -> date:
    value = (raw or '').strip()
    if not value:
        if default is None:
            raise HTTPException(status_code=400, detail='Date is required')
        return default
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid date: {value}') from exc
