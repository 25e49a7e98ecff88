from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from dairy_ledger.models import AuditLog, Base, DailyOrder, Principal
from dairy_ledger.services.audit_service import log_audit
from dairy_ledger.services.customer_service import (
    create_customer,
    delete_customer,
    get_customer,
    list_customers,
    move_customer,
    update_customer,
)
from dairy_ledger.services.order_service import OrderLineInput, create_order
from dairy_ledger.services.product_service import (
    create_product,
    list_products,
    set_units_per_box,
    to_product_refs,
    update_product,
)


class CustomerProductServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine('sqlite://')
        Base.metadata.create_all(self.engine)
        self.db = Session(self.engine)
        owner = Principal(username='owner', password_hash='x', active=True)
        other = Principal(username='other', password_hash='x', active=True)
        self.db.add_all([owner, other])
        self.db.flush()
        self.owner_id = owner.id
        self.other_id = other.id

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _names(self) -> list[str]:
        return [row.name for row in list_customers(self.db, owner_id=self.owner_id)]

    def test_customers_keep_insertion_position(self) -> None:
        for name in ('Zeta', 'Alpha', 'Mid'):
            create_customer(self.db, owner_id=self.owner_id, name=name)

        self.assertEqual(self._names(), ['Zeta', 'Alpha', 'Mid'])

    def test_move_customer_swaps_with_neighbour(self) -> None:
        created = [create_customer(self.db, owner_id=self.owner_id, name=name) for name in ('A', 'B', 'C')]

        moved = move_customer(self.db, owner_id=self.owner_id, customer_id=created[2].id, direction='up')

        self.assertEqual(moved.id, created[2].id)
        self.assertEqual(self._names(), ['A', 'C', 'B'])

        move_customer(self.db, owner_id=self.owner_id, customer_id=created[0].id, direction='up')
        self.assertEqual(self._names(), ['A', 'C', 'B'])

        with self.assertRaises(ValueError):
            move_customer(self.db, owner_id=self.owner_id, customer_id=created[0].id, direction='sideways')

    def test_customer_name_is_required(self) -> None:
        with self.assertRaises(ValueError):
            create_customer(self.db, owner_id=self.owner_id, name='   ')

    def test_customers_are_scoped_to_owner(self) -> None:
        customer = create_customer(self.db, owner_id=self.other_id, name='Hidden')

        with self.assertRaisesRegex(ValueError, 'Customer not found'):
            get_customer(self.db, owner_id=self.owner_id, customer_id=customer.id)
        with self.assertRaises(ValueError):
            update_customer(self.db, owner_id=self.owner_id, customer_id=customer.id, name='Mine')

    def test_delete_customer_removes_their_orders(self) -> None:
        customer = create_customer(self.db, owner_id=self.owner_id, name='Sharma')
        product = create_product(self.db, owner_id=self.owner_id, name='Milk', price='30', unit='packet')
        for _ in range(2):
            create_order(
                self.db,
                owner_id=self.owner_id,
                customer_id=customer.id,
                order_date=date(2024, 5, 1),
                lines=[OrderLineInput(product_id=product.id, quantity=Decimal('1'))],
            )

        deleted = delete_customer(self.db, owner_id=self.owner_id, customer_id=customer.id)

        self.assertEqual(deleted, 2)
        self.assertEqual(self.db.execute(select(func.count()).select_from(DailyOrder)).scalar_one(), 0)
        self.assertEqual(self._names(), [])

    def test_product_validation(self) -> None:
        with self.assertRaises(ValueError):
            create_product(self.db, owner_id=self.owner_id, name='', price='10', unit='packet')
        with self.assertRaises(ValueError):
            create_product(self.db, owner_id=self.owner_id, name='Milk', price='-1', unit='packet')
        with self.assertRaises(ValueError):
            create_product(self.db, owner_id=self.owner_id, name='Milk', price='abc', unit='packet')
        with self.assertRaises(ValueError):
            create_product(self.db, owner_id=self.owner_id, name='Milk', price='10', unit=' ')

    def test_products_sorted_and_box_size_persisted(self) -> None:
        milk = create_product(self.db, owner_id=self.owner_id, name='Milk', price='30', unit='packet')
        create_product(self.db, owner_id=self.owner_id, name='Curd', price='35', unit='cup')
        update_product(self.db, owner_id=self.owner_id, product_id=milk.id, name='Milk', price='31.5', unit='packet')
        set_units_per_box(self.db, owner_id=self.owner_id, product_id=milk.id, units_per_box=24)

        refs = to_product_refs(list_products(self.db, owner_id=self.owner_id))

        self.assertEqual([ref.name for ref in refs], ['Curd', 'Milk'])
        self.assertEqual(refs[0].units_per_box, 0)
        self.assertEqual(refs[1].units_per_box, 24)
        self.assertEqual(milk.price, Decimal('31.50'))

        with self.assertRaises(ValueError):
            set_units_per_box(self.db, owner_id=self.owner_id, product_id=milk.id, units_per_box=-1)

    def test_audit_rows_store_metadata(self) -> None:
        log_audit(
            self.db,
            actor_principal_id=self.owner_id,
            action='PRODUCT_CREATED',
            ip='127.0.0.1',
            entity_type='product',
            entity_id=7,
            metadata={'name': 'Milk', 'price': Decimal('30.00'), 'date': date(2024, 5, 1), 'ids': (1, 2)},
        )
        self.db.flush()

        row = self.db.execute(select(AuditLog)).scalar_one()
        self.assertEqual(row.action, 'PRODUCT_CREATED')
        self.assertEqual(row.meta, {'name': 'Milk', 'price': '30.00', 'date': '2024-05-01', 'ids': [1, 2]})


if __name__ == '__main__':
    unittest.main()
