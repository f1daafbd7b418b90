"""
Pytest fixtures for cashdesk backend tests.

Provides a fresh application on in-memory SQLite per test, a fake document
sink, a deficit factory and the Flask test client.
"""

from datetime import date

import pytest
from cashdesk import create_app
from cashdesk.extensions import db
from cashdesk.models import DeficitDraft
from cashdesk.money import to_cents
from cashdesk.services import deficit_service
from cashdesk.validation import SinkUnavailable


MANAGER_PIN = "4321"
WRONG_PIN = "0000"
SHIFT_DATE = date(2026, 10, 1)


class FakeSink:
    """Records every produced copy; copies listed in fail_copies raise."""

    def __init__(self):
        self.produced = []
        self.fail_copies = set()

    def produce(self, record, copy_number, receipt_number):
        if copy_number in self.fail_copies:
            raise SinkUnavailable(f"Printer offline (copy {copy_number})")
        self.produced.append((record.id, copy_number, receipt_number))


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MANAGER_PIN': MANAGER_PIN,
        'PIN_HASH_ROUNDS': 4,
        'DUE_DATE_GRACE_DAYS': 5,
        'MONTHLY_SALARY': '15000.00',
        'RECEIPT_OUTPUT_DIR': str(tmp_path / 'receipts'),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def sink(app):
    """Replace the file sink with an in-memory fake."""
    fake = FakeSink()
    app.extensions['document_sink'] = fake
    return fake


@pytest.fixture(scope='function')
def make_deficit(app):
    """Create deficits through the intake service; amounts as decimal strings."""
    def _make(total_sales="1243526.25", money_given="1230026.25", *, on=SHIFT_DATE, shift="Matin", **extra):
        draft = DeficitDraft(
            date=on,
            total_sales_cents=to_cents(total_sales),
            money_given_cents=to_cents(money_given),
            shift=shift,
            **extra,
        )
        return deficit_service.create_deficit(draft)

    return _make
