import pytest

from echonet_local import homekit_uuids
from echonet_local.accessory import CHARACTERISTIC_PROPS


def test_exposed_characteristics_have_uuids():
    for name in CHARACTERISTIC_PROPS:
        uuid = homekit_uuids.get_characteristic_uuid(name)
        assert homekit_uuids.HOMEKIT_CHARACTERISTICS[uuid] == name


def test_service_uuids():
    assert homekit_uuids.get_service_uuid('HeaterCooler') == '000000BC-0000-1000-8000-0026BB765291'
    assert homekit_uuids.get_service_uuid('AccessoryInformation') == '0000003E-0000-1000-8000-0026BB765291'


def test_unknown_names_raise():
    with pytest.raises(KeyError):
        homekit_uuids.get_service_uuid('Lightbulb')
    with pytest.raises(KeyError):
        homekit_uuids.get_characteristic_uuid('Brightness')


@pytest.mark.parametrize("name, value, expected", [
    ('TargetHeaterCoolerState', 2, 'Cool'),
    ('CurrentHeaterCoolerState', 1, 'Idle'),
    ('SwingMode', 1, 'Enabled'),
    ('CurrentTemperature', 21, '21'),
    ('Active', 7, '7'),
])
def test_value_names(name, value, expected):
    assert homekit_uuids.get_characteristic_value_name(name, value) == expected


def test_only_used_lookups_are_exported():
    helpers = {name for name in dir(homekit_uuids) if name.startswith('get_')}
    assert helpers == {'get_service_uuid', 'get_characteristic_uuid', 'get_characteristic_value_name'}
