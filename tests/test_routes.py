from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from conftest import ADDRESS, EOJ
from echonet_local.accessory import HeaterCoolerAccessory
from echonet_local.cache import AccessoryRecord
from echonet_local.controller import DeviceStateController
from echonet_local.routes import create_app, register_routes
from echonet_local.state import TargetMode

ACCESSORY_ID = 'acc-1'


@pytest.fixture
def accessory(gateway, fast_retry):
    record = AccessoryRecord(uuid=ACCESSORY_ID, address=ADDRESS, eoj=EOJ, name='RAS-X40', maker_code='000008')
    controller = DeviceStateController(gateway, ADDRESS, EOJ, name='RAS-X40', retry=fast_retry, debounce=0.01)
    return HeaterCoolerAccessory(record, controller)


@pytest.fixture
def echonet_api(accessory):
    """Stand-in for EchonetLocalAPI with one accessory."""
    api = Mock()
    api.disabled = False
    api.accessories = {ACCESSORY_ID: accessory}
    api.get_accessory = api.accessories.get
    api.event_listeners = []
    api.status = Mock(return_value={'status': 'running', 'accessories': 1})
    api.refresh_all = AsyncMock(return_value=1)
    return api


@pytest.fixture
def client(echonet_api):
    app = create_app()
    register_routes(app, lambda: echonet_api)
    with TestClient(app) as test_client:
        yield test_client


class TestInfoRoutes:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "Echonet Local"

    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert "version" in data

    def test_status_when_not_initialized(self):
        app = create_app()
        register_routes(app, lambda: None)
        with TestClient(app) as test_client:
            assert test_client.get("/status").status_code == 503


class TestAccessoryRoutes:
    def test_list(self, client):
        response = client.get("/accessories")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["accessories"][0]["id"] == ACCESSORY_ID

    def test_get_one(self, client):
        response = client.get(f"/accessories/{ACCESSORY_ID}")
        assert response.status_code == 200
        assert response.json()["information"]["Manufacturer"] == "Daikin"

    def test_unknown_accessory(self, client):
        assert client.get("/accessories/nope").status_code == 404
        assert client.post("/accessories/nope/set?active=1").status_code == 404

    def test_get_characteristic(self, client):
        response = client.get(f"/accessories/{ACCESSORY_ID}/HeatingThresholdTemperature")
        assert response.status_code == 200
        assert response.json()["value"] == 23

    def test_unknown_characteristic(self, client):
        assert client.get(f"/accessories/{ACCESSORY_ID}/Brightness").status_code == 404

    def test_set(self, client, accessory):
        response = client.post(f"/accessories/{ACCESSORY_ID}/set?active=1&target_state=2&cooling_threshold=25")
        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == {
            "Active": 1,
            "TargetHeaterCoolerState": 2,
            "CoolingThresholdTemperature": 25,
        }
        assert accessory.controller.get_power() is True
        assert accessory.controller.get_target_mode() == TargetMode.COOL

    def test_set_out_of_range_changes_nothing(self, client, accessory):
        response = client.post(f"/accessories/{ACCESSORY_ID}/set?active=1&heating_threshold=35")
        assert response.status_code == 400
        assert accessory.controller.get_power() is False

    def test_set_unsupported_swing(self, client):
        response = client.post(f"/accessories/{ACCESSORY_ID}/set?swing=1")
        assert response.status_code == 400

    def test_set_without_changes(self, client):
        assert client.post(f"/accessories/{ACCESSORY_ID}/set").status_code == 400

    def test_refresh(self, client, echonet_api):
        response = client.post("/refresh")
        assert response.status_code == 200
        assert response.json()["refreshed"] == 1
        echonet_api.refresh_all.assert_awaited_once()


class TestDisabledPlatform:
    def test_routes_report_unavailable(self, client, echonet_api):
        echonet_api.disabled = True
        assert client.get("/accessories").status_code == 503
        assert client.get("/events").status_code == 503
        assert client.post("/refresh").status_code == 503
        assert client.get("/status").status_code == 200


class TestAuthentication:
    def test_api_key_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr('echonet_local.routes.API_KEYS', {'secret'})

        assert client.get("/status").status_code == 401
        assert client.get("/status", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert client.get("/status", headers={"Authorization": "Bearer secret"}).status_code == 200
