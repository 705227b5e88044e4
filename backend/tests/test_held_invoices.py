"""
Held invoice lifecycle: hold, list, restore (once), discard.
"""

import threading
from datetime import datetime

import pytest

from linuspos import create_app

from linuspos.extensions import db
from linuspos.models import HeldInvoice, HeldInvoiceLine
from linuspos.services import held_invoice_service
from linuspos.services.held_invoice_service import (
    HeldInvoiceNotFoundError,
    discard_held_invoice,
    hold_invoice,
    list_held_invoices,
    restore_held_invoice,
)
from linuspos.validation import ValidationError

from conftest import stock_of


CART = [
    {"id": "p1", "name": "Cola", "price": 10.0, "category": "Drinks", "stock": 20,
     "barcode": "6281000000011", "image": None, "quantity": 2},
    {"id": "p2", "name": "Bread", "price": 5.0, "category": "Bakery", "stock": 8,
     "barcode": "6281000000028", "image": "data:image/png;base64,AAAA", "quantity": 1},
]


class TestHeldInvoiceService:

    def test_hold_and_restore_exact_items(self, products):
        invoice_id = hold_invoice(CART).id
        assert len(list_held_invoices()) == 1

        items = restore_held_invoice(invoice_id)
        assert items == CART
        assert list_held_invoices() == []
        assert db.session.query(HeldInvoiceLine).count() == 0

    def test_hold_does_not_touch_stock(self, products):
        hold_invoice(CART)
        assert stock_of("p1") == 20
        assert stock_of("p2") == 8

    def test_restore_only_once(self, db_session):
        invoice_id = hold_invoice(CART).id
        restore_held_invoice(invoice_id)
        with pytest.raises(HeldInvoiceNotFoundError):
            restore_held_invoice(invoice_id)

    def test_empty_cart_rejected(self, db_session):
        with pytest.raises(ValidationError):
            hold_invoice([])
        assert db.session.query(HeldInvoice).count() == 0

    def test_malformed_item_rejected(self, db_session):
        with pytest.raises(ValidationError):
            hold_invoice([{"id": "p1", "name": "Cola", "price": 1, "quantity": 0}])

    def test_newest_first(self, db_session):
        older = hold_invoice(CART[:1])
        newer = hold_invoice(CART[1:])
        older.created_at = datetime(2026, 1, 1, 8, 0)
        newer.created_at = datetime(2026, 1, 1, 9, 0)
        db.session.commit()

        assert [inv.id for inv in list_held_invoices()] == [newer.id, older.id]

    def test_discard(self, db_session):
        invoice_id = hold_invoice(CART).id
        discard_held_invoice(invoice_id)
        assert list_held_invoices() == []
        assert db.session.query(HeldInvoiceLine).count() == 0
        with pytest.raises(HeldInvoiceNotFoundError):
            discard_held_invoice(invoice_id)

    def test_sub_cent_price_rejected(self, db_session):
        with pytest.raises(ValidationError):
            hold_invoice([{**CART[0], "price": "0.333"}])
        assert db.session.query(HeldInvoice).count() == 0


class TestHeldInvoiceRoutes:

    def test_lifecycle(self, client, staff_headers):
        resp = client.post("/api/held-invoices", json={"items": CART}, headers=staff_headers)
        assert resp.status_code == 201
        invoice_id = resp.json["id"]
        assert resp.json["items"] == CART

        listed = client.get("/api/held-invoices", headers=staff_headers).json
        assert listed["count"] == 1
        assert listed["items"][0]["date"].endswith("Z")

        restored = client.post(f"/api/held-invoices/{invoice_id}/restore", headers=staff_headers)
        assert restored.status_code == 200
        assert restored.json["items"] == CART

        again = client.post(f"/api/held-invoices/{invoice_id}/restore", headers=staff_headers)
        assert again.status_code == 404

    def test_bare_list_accepted(self, client, staff_headers):
        resp = client.post("/api/held-invoices", json=CART, headers=staff_headers)
        assert resp.status_code == 201

    def test_empty_hold(self, client, staff_headers):
        resp = client.post("/api/held-invoices", json={"items": []}, headers=staff_headers)
        assert resp.status_code == 400

    def test_discard_route(self, client, staff_headers):
        invoice_id = client.post("/api/held-invoices", json={"items": CART}, headers=staff_headers).json["id"]
        assert client.delete(f"/api/held-invoices/{invoice_id}", headers=staff_headers).status_code == 200
        assert client.delete(f"/api/held-invoices/{invoice_id}", headers=staff_headers).status_code == 404


class TestConcurrentRestore:
    """Two terminals restoring the same invoice at the same moment."""

    @pytest.fixture
    def file_app(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'held.db'}",
            'ADMIN_USERNAME': 'admin',
        })
        with app.app_context():
            db.create_all()
        yield app
        with app.app_context():
            db.session.remove()
            db.engine.dispose()

    @pytest.mark.parametrize("operation", [restore_held_invoice, discard_held_invoice])
    def test_only_one_terminal_wins(self, file_app, monkeypatch, operation):
        with file_app.app_context():
            invoice_id = hold_invoice(CART).id

        # Both callers reach the write step before either takes the lock
        barrier = threading.Barrier(2)
        waited = set()
        real_begin = held_invoice_service.begin_write_transaction

        def begin_together():
            if threading.get_ident() not in waited:
                waited.add(threading.get_ident())
                barrier.wait(timeout=5)
            real_begin()

        monkeypatch.setattr(held_invoice_service, "begin_write_transaction", begin_together)

        results, errors = [], []

        def worker():
            with file_app.app_context():
                try:
                    results.append(operation(invoice_id))
                except HeldInvoiceNotFoundError as exc:
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert len(results) == 1
        assert len(errors) == 1
        if operation is restore_held_invoice:
            assert results[0] == CART

        with file_app.app_context():
            assert db.session.query(HeldInvoice).count() == 0
            assert db.session.query(HeldInvoiceLine).count() == 0
