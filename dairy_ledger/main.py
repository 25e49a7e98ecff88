import logging
from decimal import Decimal
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from dairy_ledger.auth import get_current_principal
from dairy_ledger.config import settings
from dairy_ledger.routers import auth, boxes, customers, orders, products, statements
from dairy_ledger.security.csrf import install_csrf_cookie_middleware
from dairy_ledger.security.headers import install_security_headers
from dairy_ledger.security.sessions import install_auth_session_middleware
from dairy_ledger.services.export_service import format_quantity

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title=settings.business_name)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


def _money(value) -> str:
    return f'{Decimal(value or 0):,.2f}'


def _qty(value) -> str:
    return format_quantity(Decimal(value or 0))


app.state.templates.env.globals['csrf_token'] = _csrf_token
app.state.templates.env.globals['business_name'] = settings.business_name
app.state.templates.env.filters['money'] = _money
app.state.templates.env.filters['qty'] = _qty

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(orders.router)
app.include_router(customers.router)
app.include_router(products.router)
app.include_router(boxes.router)
app.include_router(statements.router)


@app.get('/')
def root(request: Request):
    get_current_principal(request)
    return RedirectResponse('/orders', status_code=303)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
