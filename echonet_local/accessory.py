#
# Copyright 2025 The EchonetLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""HeaterCooler accessory: HomeKit-style characteristics on top of a controller."""

import logging
from typing import Any, Callable, Dict, List, Optional

from .cache import AccessoryRecord
from .controller import (
    ATTR_COOLING_SETPOINT,
    ATTR_CURRENT_MODE,
    ATTR_CURRENT_TEMPERATURE,
    ATTR_HEATING_SETPOINT,
    ATTR_POWER,
    ATTR_SWING,
    ATTR_TARGET_MODE,
    DeviceStateController,
)
from .homekit_uuids import get_characteristic_uuid, get_characteristic_value_name, get_service_uuid
from .protocol import format_eoj
from .state import CurrentMode, TargetMode

logger = logging.getLogger('echonet-local')

ACTIVE = 'Active'
CURRENT_STATE = 'CurrentHeaterCoolerState'
TARGET_STATE = 'TargetHeaterCoolerState'
CURRENT_TEMPERATURE = 'CurrentTemperature'
COOLING_THRESHOLD = 'CoolingThresholdTemperature'
HEATING_THRESHOLD = 'HeatingThresholdTemperature'
SWING_MODE = 'SwingMode'

TARGET_STATE_VALUES = {
    TargetMode.AUTO: 0,
    TargetMode.HEAT: 1,
    TargetMode.COOL: 2,
}
TARGET_STATE_MODES = {value: mode for mode, value in TARGET_STATE_VALUES.items()}

CURRENT_STATE_VALUES = {
    CurrentMode.IDLE: 1,
    CurrentMode.HEATING: 2,
    CurrentMode.COOLING: 3,
}

# name -> props, as a HomeKit accessory server would advertise them
CHARACTERISTIC_PROPS: Dict[str, Dict[str, Any]] = {
    ACTIVE: {'perms': ['pr', 'pw', 'ev'], 'format': 'uint8', 'minValue': 0, 'maxValue': 1, 'minStep': 1},
    CURRENT_STATE: {'perms': ['pr', 'ev'], 'format': 'uint8', 'minValue': 0, 'maxValue': 3, 'minStep': 1},
    TARGET_STATE: {'perms': ['pr', 'pw', 'ev'], 'format': 'uint8', 'minValue': 0, 'maxValue': 2, 'minStep': 1},
    CURRENT_TEMPERATURE: {'perms': ['pr', 'ev'], 'format': 'float', 'minValue': -127, 'maxValue': 125, 'minStep': 1},
    COOLING_THRESHOLD: {'perms': ['pr', 'pw', 'ev'], 'format': 'float', 'minValue': 16, 'maxValue': 30, 'minStep': 1},
    HEATING_THRESHOLD: {'perms': ['pr', 'pw', 'ev'], 'format': 'float', 'minValue': 16, 'maxValue': 30, 'minStep': 1},
    SWING_MODE: {'perms': ['pr', 'pw', 'ev'], 'format': 'uint8', 'minValue': 0, 'maxValue': 1, 'minStep': 1},
}

_ATTRIBUTE_CHARACTERISTICS = {
    ATTR_POWER: ACTIVE,
    ATTR_TARGET_MODE: TARGET_STATE,
    ATTR_CURRENT_MODE: CURRENT_STATE,
    ATTR_CURRENT_TEMPERATURE: CURRENT_TEMPERATURE,
    ATTR_HEATING_SETPOINT: HEATING_THRESHOLD,
    ATTR_COOLING_SETPOINT: COOLING_THRESHOLD,
    ATTR_SWING: SWING_MODE,
}

UpdateCallback = Callable[['HeaterCoolerAccessory', str, Any], None]

# ECHONET Lite manufacturer codes (0x8A) of common air conditioner makers
MAKER_NAMES = {
    '000005': 'Sharp',
    '000006': 'Mitsubishi Electric',
    '000008': 'Daikin',
    '00000B': 'Panasonic',
    '000016': 'Toshiba',
}


def maker_name(maker_code: Optional[str]) -> str:
    """Manufacturer name for a six hex digit maker code."""
    if not maker_code:
        return 'Manufacturer'
    return MAKER_NAMES.get(maker_code.upper(), 'Manufacturer')


def _to_homekit(attribute: str, value: Any) -> Any:
    if attribute in (ATTR_POWER, ATTR_SWING):
        return 1 if value else 0
    if attribute == ATTR_TARGET_MODE:
        return TARGET_STATE_VALUES[value]
    if attribute == ATTR_CURRENT_MODE:
        return CURRENT_STATE_VALUES[value]
    return value


class HeaterCoolerAccessory:
    """Outward-facing get/set handlers for one air conditioner.

    Getters answer from the controller's cache and setters return as soon as
    the controller accepted the change, so device trouble never reaches the
    caller.
    """

    def __init__(self, record: AccessoryRecord, controller: DeviceStateController,
                 on_update: Optional[UpdateCallback] = None):
        self.record = record
        self.controller = controller
        self.on_update = on_update
        self.characteristics: List[str] = [
            ACTIVE, CURRENT_STATE, TARGET_STATE, CURRENT_TEMPERATURE,
            COOLING_THRESHOLD, HEATING_THRESHOLD,
        ]
        if record.swing_supported:
            self.characteristics.append(SWING_MODE)
        controller.add_listener(self._handle_controller_change)

    @property
    def id(self) -> str:
        return self.record.uuid

    @property
    def name(self) -> str:
        return self.record.name

    def detach(self):
        self.controller.remove_listener(self._handle_controller_change)

    def _handle_controller_change(self, attribute: str, value: Any):
        characteristic = _ATTRIBUTE_CHARACTERISTICS.get(attribute)
        if characteristic is None or characteristic not in self.characteristics:
            return
        value = _to_homekit(attribute, value)
        logger.debug(f"{self.name} - {characteristic} -> {value}")
        if self.on_update:
            self.on_update(self, characteristic, value)

    def get(self, characteristic: str) -> Any:
        """Current value of a characteristic, straight from cache."""
        if characteristic not in self.characteristics:
            raise KeyError(characteristic)

        c = self.controller
        if characteristic == ACTIVE:
            return 1 if c.get_power() else 0
        if characteristic == CURRENT_STATE:
            return CURRENT_STATE_VALUES[c.get_current_mode()]
        if characteristic == TARGET_STATE:
            return TARGET_STATE_VALUES[c.get_target_mode()]
        if characteristic == CURRENT_TEMPERATURE:
            return c.get_current_temperature()
        if characteristic == COOLING_THRESHOLD:
            return c.get_cooling_setpoint()
        if characteristic == HEATING_THRESHOLD:
            return c.get_heating_setpoint()
        return 1 if c.get_swing() else 0

    def validate(self, characteristic: str, value: Any) -> int:
        props = CHARACTERISTIC_PROPS[characteristic]
        if isinstance(value, bool):
            value = int(value)
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{characteristic} expects a number, got {value!r}")
        if not number.is_integer():
            raise ValueError(f"{characteristic} must be a whole number, got {value!r}")
        number = int(number)
        if not props['minValue'] <= number <= props['maxValue']:
            raise ValueError(f"{characteristic} must be between {props['minValue']} and {props['maxValue']}, got {number}")
        return number

    def set(self, characteristic: str, value: Any):
        """Apply a write from the host.

        Raises:
            KeyError for an unknown characteristic
            PermissionError for a read-only one
            ValueError for an out-of-range value
        """
        if characteristic not in self.characteristics:
            raise KeyError(characteristic)
        if 'pw' not in CHARACTERISTIC_PROPS[characteristic]['perms']:
            raise PermissionError(f"{characteristic} is read-only")

        value = self.validate(characteristic, value)
        c = self.controller
        if characteristic == ACTIVE:
            c.set_power(value == 1)
        elif characteristic == TARGET_STATE:
            c.set_mode(TARGET_STATE_MODES[value])
        elif characteristic == COOLING_THRESHOLD:
            c.set_cooling_setpoint(value)
        elif characteristic == HEATING_THRESHOLD:
            c.set_heating_setpoint(value)
        elif characteristic == SWING_MODE:
            c.set_swing(value == 1)

    def info(self) -> Dict[str, Any]:
        return {
            'Name': self.record.name,
            'Manufacturer': maker_name(self.record.maker_code),
            'Model': self.record.model or self.record.name,
            'SerialNumber': self.record.serial or self.record.uuid,
        }

    def to_dict(self) -> Dict[str, Any]:
        characteristics = []
        for name in self.characteristics:
            value = self.get(name)
            characteristics.append({
                'type': get_characteristic_uuid(name),
                'name': name,
                'value': value,
                'value_name': get_characteristic_value_name(name, value),
                **CHARACTERISTIC_PROPS[name],
            })

        return {
            'id': self.id,
            'name': self.name,
            'address': self.record.address,
            'eoj': format_eoj(self.record.eoj),
            'information': self.info(),
            'service': {
                'type': get_service_uuid('HeaterCooler'),
                'name': 'HeaterCooler',
                'characteristics': characteristics,
            },
            'state': self.controller.state.snapshot(),
        }
