"""
Terminal client tests.

The Gateway and TerminalSession run against the real app through httpx's
WSGI transport. Single-flight and poller timing use an in-memory gateway so
no database work happens off the test thread.
"""

import threading
import time

import httpx
import pytest

from linuspos.services.auth_service import toggle_user_active
from linuspos.services.sales_service import commit_sale
from linuspos.signals import data_changed
from linuspos.terminal import Gateway, LowStockMonitor, ProductRefresher, RepeatingTask, TerminalSession
from linuspos.terminal.errors import (
    AccountDisabledError,
    CartNotEmptyError,
    CheckoutInProgressError,
    ConfirmationRequiredError,
    EmptyCartError,
    GatewayAuthError,
    GatewayConflictError,
    GatewayError,
    GatewayNotFoundError,
    GatewayPermissionError,
    GatewayValidationError,
    NotAuthenticatedError,
    OutOfStockError,
)
from linuspos.terminal.pollers import connect_to_data_changed, disconnect_from_data_changed

from conftest import ADMIN_PASSWORD, STAFF_PASSWORD, make_product, stock_of


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeGateway:
    """Just enough of Gateway for session logic that must not touch the database."""

    def __init__(self):
        self.products = [
            {"id": "p1", "name": "Cola", "price": 10, "stock": 20, "category": "Drinks", "barcode": "1"},
            {"id": "p3", "name": "Milk", "price": 4.25, "stock": 5, "category": "Dairy", "barcode": "3"},
        ]
        self.settings = {"storeName": "Test Shop", "currency": "SAR", "lowStockThreshold": 5, "taxRate": 0.15}
        self.committed = []
        self.commit_started = threading.Event()
        self.release_commit = threading.Event()
        self.release_commit.set()
        self.commit_error = None
        self.logged_out = False

    def login(self, username, password):
        return {"username": username, "name": username.title(), "permissions": {"canViewReports": True}}

    def logout(self):
        self.logged_out = True

    def get_settings(self):
        return dict(self.settings)

    def update_settings(self, patch):
        self.settings.update(patch)
        return dict(self.settings)

    def list_products(self, search=None, category=None):
        return [dict(p) for p in self.products]

    def commit_sale(self, payload):
        self.commit_started.set()
        self.release_commit.wait(5)
        if self.commit_error:
            raise self.commit_error
        self.committed.append(payload)
        return {"id": payload["id"], "total": 28.75}

    def get_sale(self, sale_id):
        return {"id": sale_id, "total": 28.75}


@pytest.fixture
def gateway(app, db_session):
    with Gateway(app=app) as gw:
        yield gw


@pytest.fixture
def terminal(app, staff_user, products):
    session = TerminalSession.for_app(app, start_pollers=False)
    session.login("sara", STAFF_PASSWORD)
    yield session
    if session.is_authenticated:
        session.logout()
    session.gateway.close()


# =============================================================================
# GATEWAY
# =============================================================================


class TestGateway:

    def test_login_keeps_token(self, gateway, staff_user):
        user = gateway.login("sara", STAFF_PASSWORD)
        assert user["username"] == "sara"
        assert gateway.token
        assert gateway.me()["name"] == "Sara"

        gateway.logout()
        assert gateway.token is None
        with pytest.raises(GatewayAuthError):
            gateway.me()

    def test_bad_credentials(self, gateway, staff_user):
        with pytest.raises(GatewayAuthError) as exc:
            gateway.login("sara", "nope")
        assert exc.value.status_code == 401

    def test_disabled_account_is_distinguishable(self, gateway, admin_user, staff_user):
        toggle_user_active("sara")
        with pytest.raises(AccountDisabledError) as exc:
            gateway.login("sara", STAFF_PASSWORD)
        assert isinstance(exc.value, GatewayPermissionError)

    def test_permission_error(self, gateway, staff_user):
        gateway.login("sara", STAFF_PASSWORD)
        with pytest.raises(GatewayPermissionError) as exc:
            gateway.list_users()
        assert exc.value.status_code == 403

    def test_admin_operations(self, gateway, admin_user, products):
        gateway.login("admin", ADMIN_PASSWORD)
        assert [p["id"] for p in gateway.list_products(search="cola")] == ["p1"]
        assert gateway.list_categories() == ["Bakery", "Dairy", "Drinks", "Snacks"]
        assert gateway.product_by_barcode("6281000000028")["name"] == "Bread"

        saved = gateway.save_products({"id": "p4", "stock": 9})
        assert saved[0]["stock"] == 9
        gateway.delete_product("p4")
        with pytest.raises(GatewayNotFoundError):
            gateway.delete_product("p4")

        created = gateway.create_user(username="huda", password="huda123", name="Huda")
        assert created["isActive"] is True
        assert gateway.toggle_user("huda")["isActive"] is False
        with pytest.raises(GatewayConflictError):
            gateway.toggle_user("admin")

        # p4 is gone; p2 sits exactly on the new threshold
        assert gateway.update_settings({"lowStockThreshold": 8})["lowStockThreshold"] == 8
        assert {n["productId"] for n in gateway.low_stock_notifications()} == {"p2", "p3"}
        assert gateway.report_summary()["salesCount"] == 0
        assert gateway.clear_products() == 3

    def test_sales_round_trip(self, gateway, staff_user, products):
        gateway.login("sara", STAFF_PASSWORD)
        totals = gateway.cart_totals([{"price": 10, "quantity": 2}, {"price": 5, "quantity": 1}])
        assert totals["display"]["total"] == "28.75"

        sale = gateway.commit_sale({"items": [{"id": "p1", "name": "Cola", "price": 10, "quantity": 2}]})
        assert gateway.get_sale(sale["id"])["status"] == "Completed"
        assert "Cola" in gateway.receipt_html(sale["id"])

    def test_validation_and_conflict_details(self, gateway, staff_user, products):
        gateway.login("sara", STAFF_PASSWORD)
        with pytest.raises(GatewayValidationError):
            gateway.commit_sale({"items": []})
        with pytest.raises(GatewayConflictError) as exc:
            gateway.commit_sale({"items": [{"id": "p4", "name": "Dates", "price": 12, "quantity": 1}]})
        assert exc.value.details["items"][0]["productId"] == "p4"

    def test_held_invoices(self, gateway, staff_user):
        gateway.login("sara", STAFF_PASSWORD)
        invoice = gateway.hold_invoice([{"id": "p1", "name": "Cola", "price": 10, "quantity": 1}])
        assert len(gateway.list_held_invoices()) == 1
        gateway.discard_held_invoice(invoice["id"])
        assert gateway.list_held_invoices() == []

    def test_health(self, gateway):
        assert gateway.health()["status"] == "ok"

    def test_path_segments_are_quoted(self):
        seen = []

        def record(request):
            seen.append(request.url.raw_path)
            return httpx.Response(200, json={})

        with Gateway("http://pos.invalid", transport=httpx.MockTransport(record)) as gw:
            gw.product_by_barcode("12?3#4%")
            gw.toggle_user("a/b")
        assert seen == [b"/api/products/barcode/12%3F3%234%25", b"/api/users/a%2Fb/toggle"]

    def test_barcode_with_reserved_characters(self, gateway, staff_user, products):
        make_product("p9", "Tea", "2.00", stock=4, barcode="12?3#4%")
        gateway.login("sara", STAFF_PASSWORD)
        assert gateway.product_by_barcode("12?3#4%")["id"] == "p9"

    def test_transport_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with Gateway("http://pos.invalid", transport=httpx.MockTransport(refuse)) as gw:
            with pytest.raises(GatewayError) as exc:
                gw.health()
        assert exc.value.status_code is None
        assert "unreachable" in str(exc.value)

    def test_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="oops"))
        with Gateway("http://pos.invalid", transport=transport) as gw:
            with pytest.raises(GatewayError) as exc:
                gw.health()
        assert type(exc.value) is GatewayError
        assert exc.value.status_code == 500


# =============================================================================
# TERMINAL SESSION
# =============================================================================


class TestTerminalSession:

    def test_login_loads_context(self, terminal, app):
        assert terminal.user["username"] == "sara"
        assert terminal.settings["taxRate"] == 0.15
        assert len(terminal.products) == 4
        assert terminal.low_stock_interval == app.config["LOW_STOCK_POLL_SECONDS"]
        assert not terminal.has_permission("canViewReports")

    def test_checkout(self, terminal):
        products = {p["id"]: p for p in terminal.products}
        terminal.add_to_cart(products["p1"])
        terminal.add_to_cart(products["p1"])
        terminal.scan_barcode("6281000000028")
        assert terminal.totals().total == 28.75

        sale = terminal.checkout()
        assert sale["total"] == 28.75
        assert sale["cashier"] == "Sara"
        assert terminal.cart.is_empty
        assert stock_of("p1") == 18
        assert stock_of("p2") == 7

    def test_checkout_empty_cart(self, terminal):
        with pytest.raises(EmptyCartError):
            terminal.checkout()

    def test_out_of_stock_product(self, terminal):
        dates = next(p for p in terminal.products if p["id"] == "p4")
        with pytest.raises(OutOfStockError):
            terminal.add_to_cart(dates)

    def test_stock_conflict_keeps_cart(self, terminal):
        milk = next(p for p in terminal.products if p["id"] == "p3")
        terminal.add_to_cart(milk)
        commit_sale({"items": [{"id": "p3", "name": "Milk", "price": "4.25", "quantity": 5}]}, cashier="Omar")

        with pytest.raises(GatewayConflictError) as exc:
            terminal.checkout()
        assert exc.value.details["items"][0]["stock"] == 0
        assert len(terminal.cart) == 1

    def test_hold_and_restore(self, terminal):
        products = {p["id"]: p for p in terminal.products}
        terminal.add_to_cart(products["p1"])
        terminal.change_quantity("p1", 2)
        original = terminal.cart.to_payload()

        terminal.hold()
        assert terminal.cart.is_empty
        [held] = terminal.held_invoices()
        assert held["items"] == original

        terminal.add_to_cart(products["p2"])
        with pytest.raises(CartNotEmptyError):
            terminal.restore_held_invoice(held["id"])
        assert len(terminal.held_invoices()) == 1

        terminal.restore_held_invoice(held["id"], confirm_override=True)
        assert terminal.cart.to_payload() == original
        assert terminal.held_invoices() == []

    def test_hold_empty_cart(self, terminal):
        with pytest.raises(EmptyCartError):
            terminal.hold()

    def test_discard_needs_confirmation(self, terminal):
        terminal.add_to_cart(terminal.products[0])
        held = terminal.hold()

        with pytest.raises(ConfirmationRequiredError):
            terminal.discard_held_invoice(held["id"])
        assert len(terminal.held_invoices()) == 1

        terminal.discard_held_invoice(held["id"], confirm=True)
        assert terminal.held_invoices() == []

    def test_logout_clears_context(self, terminal):
        terminal.add_to_cart(terminal.products[0])
        terminal.logout()
        assert not terminal.is_authenticated
        assert terminal.cart.is_empty
        with pytest.raises(NotAuthenticatedError):
            terminal.totals()


class TestCheckoutGuard:

    def _session(self, gateway):
        session = TerminalSession(gateway, start_pollers=False)
        session.login("sara", "x")
        session.add_to_cart(gateway.products[0])
        return session

    def test_second_checkout_while_in_flight(self):
        gateway = FakeGateway()
        gateway.release_commit.clear()
        session = self._session(gateway)

        results = []
        worker = threading.Thread(target=lambda: results.append(session.checkout()))
        worker.start()
        assert gateway.commit_started.wait(2)

        with pytest.raises(CheckoutInProgressError):
            session.checkout()

        gateway.release_commit.set()
        worker.join(2)
        assert len(gateway.committed) == 1
        assert len(results) == 1
        assert session.cart.is_empty

    def test_retry_reuses_sale_id(self):
        gateway = FakeGateway()
        gateway.commit_error = GatewayError("Server unreachable")
        session = self._session(gateway)

        with pytest.raises(GatewayError):
            session.checkout()
        first_id = session._pending_sale_id

        gateway.commit_error = None
        sale = session.checkout()
        assert sale["id"] == first_id

    def test_duplicate_id_recovers_committed_sale(self):
        gateway = FakeGateway()
        gateway.commit_error = GatewayConflictError("already recorded", 409)
        session = self._session(gateway)

        sale = session.checkout()
        assert sale["total"] == 28.75
        assert session.cart.is_empty


# =============================================================================
# POLLERS
# =============================================================================


class TestRepeatingTask:

    def test_trigger_runs_immediately(self):
        ran = threading.Event()
        task = RepeatingTask(ran.set, interval=60, name="test-task")
        task.start(run_now=False)
        try:
            assert not ran.wait(0.1)
            task.trigger()
            assert ran.wait(2)
        finally:
            task.stop()
        assert not task.running

    def test_start_runs_now_and_on_interval(self):
        calls = []
        task = RepeatingTask(lambda: calls.append(1), interval=0.05)
        task.start()
        try:
            assert wait_for(lambda: len(calls) >= 3)
        finally:
            task.stop()

    def test_failures_are_logged_not_raised(self, caplog):
        def broken():
            raise RuntimeError("boom")

        task = RepeatingTask(broken, interval=60, name="broken-task")
        task.run_once()
        assert "broken-task run failed" in caplog.text

    def test_stop_without_start(self):
        RepeatingTask(lambda: None, interval=1).stop()


class TestLowStockMonitor:

    def test_scan_replaces_notifications(self):
        stock = {"value": 3}
        updates = []
        monitor = LowStockMonitor(
            fetch_products=lambda: [{"id": "p3", "name": "Milk", "stock": stock["value"]}],
            get_threshold=lambda: 5,
            on_update=updates.append,
        )
        assert [n["id"] for n in monitor.scan()] == ["low_stock_p3"]

        stock["value"] = 50
        monitor.scan()
        assert monitor.notifications == []
        assert updates[-1] == []

    def test_data_changed_triggers_rescan(self):
        monitor = LowStockMonitor(fetch_products=list, get_threshold=lambda: 5)
        triggered = []
        monitor.trigger = lambda: triggered.append(True)

        connect_to_data_changed(monitor)
        try:
            data_changed.send(None, entity="settings")
            data_changed.send(None, entity="users")
            data_changed.send(None, entity="products")
        finally:
            disconnect_from_data_changed(monitor)

        data_changed.send(None, entity="settings")
        assert triggered == [True, True]

    def test_product_refresher(self):
        received = []
        refresher = ProductRefresher(fetch_products=lambda: [{"id": "p1", "stock": 2}], on_refresh=received.append)
        refresher.refresh()
        assert received == [[{"id": "p1", "stock": 2}]]

        triggered = []
        refresher.trigger = lambda: triggered.append(True)
        refresher.on_data_changed(None, entity="settings")
        refresher.on_data_changed(None, entity="sales")
        assert triggered == [True]


class TestSessionPollers:

    def test_pollers_follow_login_and_logout(self):
        gateway = FakeGateway()
        session = TerminalSession(gateway, low_stock_interval=60, product_refresh_interval=60)
        session.login("sara", "x")
        try:
            assert session.low_stock_monitor.running
            assert session.product_refresher.running
            assert wait_for(lambda: [n["productId"] for n in session.notifications] == ["p3"])

            gateway.products[1]["stock"] = 40
            session.update_settings({"lowStockThreshold": 5})
            assert wait_for(lambda: session.notifications == [])
        finally:
            monitor = session.low_stock_monitor
            session.logout()

        assert not monitor.running
        assert session.low_stock_monitor is None
        assert gateway.logged_out

    def test_refresher_updates_cart_stock(self):
        gateway = FakeGateway()
        session = TerminalSession(gateway, low_stock_interval=60, product_refresh_interval=60)
        session.login("sara", "x")
        try:
            session.add_to_cart(gateway.products[1])
            gateway.products[1]["stock"] = 1
            data_changed.send(None, entity="products")
            assert wait_for(lambda: session.cart.find("p3").stock == 1)
            assert session.change_quantity("p3", 1) is False
        finally:
            session.logout()
