from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from fastapi import HTTPException
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from dairy_ledger.dependencies import parse_date_param
from dairy_ledger.models import Base, Principal, WebSession
from dairy_ledger.security.passwords import check_password, hash_password
from dairy_ledger.security.sessions import create_web_session, load_principal_from_token, revoke_web_session


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password('ownerpass')

        self.assertNotEqual(hashed, 'ownerpass')
        self.assertEqual(check_password('ownerpass', hashed), (True, None))
        self.assertFalse(check_password('wrongpass', hashed)[0])
        self.assertFalse(check_password('', hashed)[0])

    def test_short_password_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            hash_password('short')


class ParseDateParamTests(unittest.TestCase):
    def test_parsing(self) -> None:
        self.assertEqual(parse_date_param('2024-05-01'), date(2024, 5, 1))
        self.assertEqual(parse_date_param('', default=date(2024, 1, 1)), date(2024, 1, 1))

    def test_invalid_or_missing_date_is_a_bad_request(self) -> None:
        for raw in ('2024-13-01', 'yesterday', None):
            with self.subTest(raw=raw):
                with self.assertRaises(HTTPException) as ctx:
                    parse_date_param(raw)
                self.assertEqual(ctx.exception.status_code, 400)


class WebSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine('sqlite://')
        Base.metadata.create_all(self.engine)
        self.db = Session(self.engine)
        principal = Principal(username='owner', password_hash='x', active=True)
        self.db.add(principal)
        self.db.flush()
        self.principal_id = principal.id

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_valid_token_loads_principal(self) -> None:
        token = create_web_session(self.db, self.principal_id, ip='127.0.0.1', user_agent='tests')

        principal = load_principal_from_token(self.db, token)

        self.assertEqual(principal.id, self.principal_id)
        self.assertEqual(principal.username, 'owner')

    def test_unknown_or_missing_token(self) -> None:
        self.assertIsNone(load_principal_from_token(self.db, None))
        self.assertIsNone(load_principal_from_token(self.db, 'not-a-token'))

    def test_revoked_token_is_rejected(self) -> None:
        token = create_web_session(self.db, self.principal_id, ip=None, user_agent=None)

        revoke_web_session(self.db, token)

        self.assertIsNone(load_principal_from_token(self.db, token))

    def test_expired_token_is_rejected(self) -> None:
        token = create_web_session(self.db, self.principal_id, ip=None, user_agent=None)
        web_session = self.db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one()
        web_session.expires_at = datetime.now(tz=timezone.utc) - timedelta(minutes=1)
        self.db.flush()

        self.assertIsNone(load_principal_from_token(self.db, token))


if __name__ == '__main__':
    unittest.main()
