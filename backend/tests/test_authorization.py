"""
Authorization tests for Linus POS.

Verifies:
- Unauthenticated requests return 401
- Staff (no permissions) denied privileged operations (403)
- Each permission opens exactly its own routes
- Admin can perform privileged operations
"""

import pytest

from linuspos.services import auth_service

from conftest import auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/products"),
            ("GET", "/api/products/categories"),
            ("POST", "/api/products"),
            ("DELETE", "/api/products"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/abc"),
            ("POST", "/api/cart/totals"),
            ("GET", "/api/held-invoices"),
            ("POST", "/api/held-invoices"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("PUT", "/api/users/admin/toggle"),
            ("GET", "/api/settings"),
            ("PUT", "/api/settings"),
            ("GET", "/api/notifications/low-stock"),
            ("GET", "/api/reports/summary"),
            ("GET", "/api/reports/inventory.csv"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "ok"
        assert resp.json["checks"]["database"]["status"] == "healthy"


# =============================================================================
# STAFF DENIED PRIVILEGED OPERATIONS (403)
# =============================================================================


class TestStaffDeniedPrivileged:
    """A cashier with no permissions can sell but not administer."""

    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("POST", "/api/products", "canManageInventory"),
            ("DELETE", "/api/products/p1", "canManageInventory"),
            ("DELETE", "/api/products", "canManageInventory"),
            ("GET", "/api/sales", "canViewReports"),
            ("GET", "/api/reports/summary", "canViewReports"),
            ("GET", "/api/reports/sales.csv", "canViewReports"),
            ("GET", "/api/reports/sales.html", "canViewReports"),
            ("PUT", "/api/settings", "canManageSettings"),
            ("PATCH", "/api/settings", "canManageSettings"),
            ("GET", "/api/users", "canManageUsers"),
            ("POST", "/api/users", "canManageUsers"),
            ("PUT", "/api/users/admin/toggle", "canManageUsers"),
        ],
    )
    def test_denied(self, client, staff_headers, method, path, permission):
        resp = getattr(client, method.lower())(path, json={}, headers=staff_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == permission

    def test_staff_can_sell(self, client, staff_headers, products):
        resp = client.post(
            "/api/sales",
            json={"items": [{"id": "p1", "name": "Cola", "price": 10, "quantity": 1}]},
            headers=staff_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# PERMISSIONS ARE INDEPENDENT
# =============================================================================


class TestSinglePermission:

    @pytest.mark.parametrize(
        "permission,allowed,denied",
        [
            ("canManageInventory", ("DELETE", "/api/products"), ("GET", "/api/users")),
            ("canViewReports", ("GET", "/api/reports/summary"), ("PUT", "/api/settings")),
            ("canManageSettings", ("PUT", "/api/settings"), ("GET", "/api/sales")),
            ("canManageUsers", ("GET", "/api/users"), ("DELETE", "/api/products")),
        ],
    )
    def test_permission_opens_only_its_routes(self, client, db_session, permission, allowed, denied):
        auth_service.create_user("tester", "tester1", "Tester", permissions={permission: True})
        headers = auth_headers(get_auth_token(client, "tester", "tester1"))

        method, path = allowed
        resp = getattr(client, method.lower())(path, json={}, headers=headers)
        assert resp.status_code != 403, f"{permission} should open {method} {path}"

        method, path = denied
        resp = getattr(client, method.lower())(path, json={}, headers=headers)
        assert resp.status_code == 403


# =============================================================================
# ADMIN CAN PERFORM PRIVILEGED OPERATIONS
# =============================================================================


class TestAdminAccess:

    @pytest.mark.parametrize(
        "path",
        ["/api/users", "/api/sales", "/api/reports/summary", "/api/reports/sales.csv", "/api/settings"],
    )
    def test_admin_reads(self, client, admin_headers, path):
        assert client.get(path, headers=admin_headers).status_code == 200

    def test_cors_header_for_known_origin(self, client, admin_headers):
        resp = client.get("/api/settings", headers={**admin_headers, "Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        resp = client.get("/api/settings", headers={**admin_headers, "Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
