import pytest

from linuspos.extensions import db
from linuspos.models import SystemSettings
from linuspos.services import settings_service
from linuspos.signals import data_changed
from linuspos.validation import ValidationError


class TestSettingsService:

    def test_defaults_from_config(self, db_session):
        settings = settings_service.get_settings()
        assert settings.to_dict()["storeName"] == "Test Shop"
        assert settings.currency == "SAR"
        assert settings.low_stock_threshold == 5
        assert float(settings.tax_rate) == 0.15

    def test_singleton(self, db_session):
        settings_service.get_settings()
        settings_service.get_settings()
        assert db.session.query(SystemSettings).count() == 1

    def test_partial_update_persists(self, db_session, admin_user):
        settings_service.update_settings({"currency": "usd", "lowStockThreshold": 3}, user_id=admin_user.id)
        db.session.expire_all()
        settings = settings_service.get_settings()
        assert settings.currency == "USD"
        assert settings.low_stock_threshold == 3
        assert settings.store_name == "Test Shop"
        assert settings.updated_by_user_id == admin_user.id

    @pytest.mark.parametrize(
        "patch",
        [
            {"currency": "EUR"},
            {"lowStockThreshold": -1},
            {"lowStockThreshold": 2.5},
            {"lowStockThreshold": True},
            {"taxRate": 1.5},
            {"taxRate": "abc"},
            {"storeName": "   "},
            {"theme": "dark"},
        ],
    )
    def test_invalid_patch_rejected(self, db_session, patch):
        with pytest.raises(ValidationError):
            settings_service.update_settings(patch)
        assert settings_service.get_settings().currency == "SAR"

    def test_update_sends_data_changed(self, db_session):
        received = []

        def listener(sender, entity=None, **kwargs):
            received.append(entity)

        data_changed.connect(listener)
        try:
            settings_service.update_settings({"taxRate": "0.05"})
        finally:
            data_changed.disconnect(listener)

        assert received == ["settings"]


class TestSettingsRoutes:

    def test_any_user_can_read(self, client, staff_headers):
        resp = client.get("/api/settings", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["currency"] == "SAR"

    def test_staff_cannot_update(self, client, staff_headers):
        resp = client.put("/api/settings", json={"currency": "USD"}, headers=staff_headers)
        assert resp.status_code == 403

    def test_admin_update(self, client, admin_headers):
        resp = client.put("/api/settings", json={"storeName": "Linus Market", "taxRate": 0.05}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["storeName"] == "Linus Market"
        assert resp.json["taxRate"] == 0.05

    def test_patch_verb_and_validation(self, client, admin_headers):
        assert client.patch("/api/settings", json={"currency": "YER"}, headers=admin_headers).status_code == 200
        assert client.patch("/api/settings", json={"currency": "XXX"}, headers=admin_headers).status_code == 400
        assert client.put("/api/settings", data="nope", headers=admin_headers).status_code == 400
