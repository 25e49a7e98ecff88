from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_ledger.models import Product
from dairy_ledger.services.box_requirement_service import ProductRef
from dairy_ledger.services.order_aggregation_service import to_money


def _validate(name: str, price: Decimal | str, unit: str) -> tuple[str, Decimal, str]:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValueError('Product name is required')
    clean_unit = (unit or '').strip()
    if not clean_unit:
        raise ValueError('Unit is required')
    clean_price = to_money(price)
    if not clean_price.is_finite() or clean_price < 0:
        raise ValueError('Price cannot be negative')
    return clean_name, clean_price, clean_unit


def list_products(db: Session, *, owner_id: int) -> list[Product]:
    return db.execute(
        select(Product).where(Product.owner_id == owner_id).order_by(Product.name.asc(), Product.id.asc())
    ).scalars().all()


def get_product(db: Session, *, owner_id: int, product_id: int) -> Product:
    product = db.execute(
        select(Product).where(Product.id == product_id, Product.owner_id == owner_id)
    ).scalar_one_or_none()
    if not product:
        raise ValueError('Product not found')
    return product


def create_product(db: Session, *, owner_id: int, name: str, price: Decimal | str, unit: str) -> Product:
    clean_name, clean_price, clean_unit = _validate(name, price, unit)
    product = Product(owner_id=owner_id, name=clean_name, price=clean_price, unit=clean_unit, units_per_box=0)
    db.add(product)
    db.flush()
    return product


def update_product(
    db: Session,
    *,
    owner_id: int,
    product_id: int,
    name: str,
    price: Decimal | str,
    unit: str,
) -> Product:
    product = get_product(db, owner_id=owner_id, product_id=product_id)
    # Existing orders keep their name/price snapshots.
    product.name, product.price, product.unit = _validate(name, price, unit)
    db.flush()
    return product


def delete_product(db: Session, *, owner_id: int, product_id: int) -> None:
    product = get_product(db, owner_id=owner_id, product_id=product_id)
    db.delete(product)
    db.flush()


def set_units_per_box(db: Session, *, owner_id: int, product_id: int, units_per_box: int) -> Product:
    if units_per_box < 0:
        raise ValueError('Units per box cannot be negative')
    product = get_product(db, owner_id=owner_id, product_id=product_id)
    product.units_per_box = units_per_box
    db.flush()
    return product


def to_product_refs(products: list[Product]) -> list[ProductRef]:
    return [
        ProductRef(id=row.id, name=row.name, unit=row.unit, units_per_box=int(row.units_per_box or 0))
        for row in products
    ]
