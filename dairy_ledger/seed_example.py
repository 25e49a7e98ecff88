from decimal import Decimal

from sqlalchemy import select

from dairy_ledger.db import SessionLocal, engine
from dairy_ledger.models import Base, Customer, Principal, Product
from dairy_ledger.security.passwords import hash_password

DEMO_PRODUCTS = [
    ('Full Cream Milk', Decimal('30.00'), 'packet', 24),
    ('Toned Milk', Decimal('26.00'), 'packet', 24),
    ('Curd', Decimal('35.00'), 'cup', 12),
    ('Paneer', Decimal('90.00'), 'block', 0),
]
DEMO_CUSTOMERS = ['Sharma Stores', 'Green Bakery', 'Hotel Annapurna']


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        owner = db.execute(select(Principal).where(Principal.username == 'owner')).scalar_one_or_none()
        if not owner:
            owner = Principal(username='owner', password_hash=hash_password('ownerpass'), active=True)
            db.add(owner)
            db.flush()

        existing_products = set(db.execute(select(Product.name).where(Product.owner_id == owner.id)).scalars().all())
        for name, price, unit, units_per_box in DEMO_PRODUCTS:
            if name not in existing_products:
                db.add(Product(owner_id=owner.id, name=name, price=price, unit=unit, units_per_box=units_per_box))

        existing_customers = set(db.execute(select(Customer.name).where(Customer.owner_id == owner.id)).scalars().all())
        position = len(existing_customers)
        for name in DEMO_CUSTOMERS:
            if name not in existing_customers:
                position += 1
                db.add(Customer(owner_id=owner.id, name=name, position=position))

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
