import pytest

from echonet_local.config import BridgeConfig, verify_config


def test_defaults_are_valid():
    config = BridgeConfig()
    assert verify_config(config) == (True, [])
    assert config.refresh_interval_seconds == 60
    assert config.request_timeout_seconds == 60.0


def test_interval_is_converted_from_minutes():
    assert BridgeConfig(refresh_interval=5).refresh_interval_seconds == 300


@pytest.mark.parametrize("interval", [0, 0.5, -1, 'often', None])
def test_refresh_interval_below_one_is_rejected(interval):
    ok, errors = verify_config(BridgeConfig(refresh_interval=interval))
    assert ok is False
    assert len(errors) == 1
    assert 'refresh_interval' in errors[0]


@pytest.mark.parametrize("timeout", ['soon', '', True])
def test_non_numeric_timeout_is_rejected(timeout):
    ok, errors = verify_config(BridgeConfig(request_timeout=timeout))
    assert ok is False
    assert 'request_timeout' in errors[0]


def test_numeric_string_timeout_is_accepted():
    config = BridgeConfig(request_timeout='10')
    assert verify_config(config) == (True, [])
    assert config.request_timeout_seconds == 10.0


def test_all_problems_are_reported():
    ok, errors = verify_config(BridgeConfig(refresh_interval=0, request_timeout=-3, discovery_timeout=0))
    assert ok is False
    assert len(errors) == 3
