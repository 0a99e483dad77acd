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

"""Appliance state and the mode mapping tables."""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

# Property codes of the air conditioner object we reconcile
EPC_POWER = 0x80
EPC_MODE = 0xB0
EPC_TARGET_TEMPERATURE = 0xB3
EPC_CURRENT_TEMPERATURE = 0xBB
EPC_SWING = 0xA3

REFRESH_CODES = (EPC_POWER, EPC_MODE, EPC_TARGET_TEMPERATURE, EPC_CURRENT_TEMPERATURE)

UNKNOWN_TEMPERATURE = -127

# Automatic swing setting codes; any code other than off counts as swinging
SWING_OFF = 0x31
SWING_ON = 0x41

# Wire values of the operation mode property
WIRE_MODE_AUTO = 1
WIRE_MODE_COOL = 2
WIRE_MODE_HEAT = 3


class TargetMode(Enum):
    AUTO = 'auto'
    HEAT = 'heat'
    COOL = 'cool'


class CurrentMode(Enum):
    IDLE = 'idle'
    HEATING = 'heating'
    COOLING = 'cooling'


_WIRE_TO_TARGET = {
    WIRE_MODE_AUTO: TargetMode.AUTO,
    WIRE_MODE_COOL: TargetMode.COOL,
    WIRE_MODE_HEAT: TargetMode.HEAT,
}
_TARGET_TO_WIRE = {mode: wire for wire, mode in _WIRE_TO_TARGET.items()}
_TARGET_TO_CURRENT = {
    TargetMode.AUTO: CurrentMode.IDLE,
    TargetMode.HEAT: CurrentMode.HEATING,
    TargetMode.COOL: CurrentMode.COOLING,
}


def wire_to_target_mode(wire: Any) -> TargetMode:
    """Map an operation mode value to a target mode; unknown values mean AUTO."""
    return _WIRE_TO_TARGET.get(wire, TargetMode.AUTO)


def target_mode_to_wire(mode: TargetMode) -> int:
    return _TARGET_TO_WIRE[mode]


def derive_current_mode(mode: TargetMode) -> CurrentMode:
    return _TARGET_TO_CURRENT[mode]


class ApplianceState:
    """Reconciled state of one air conditioner.

    Owned by exactly one DeviceStateController. current_mode is not stored;
    it is always derived from target_mode.
    """

    def __init__(self, address: str, object_id: Tuple[int, int, int], swing_supported: bool = False):
        self.address = address
        self.object_id = tuple(object_id)
        self.power = False
        self.target_mode = TargetMode.AUTO
        self.current_temperature = UNKNOWN_TEMPERATURE
        self.setpoints: Dict[TargetMode, Optional[int]] = {
            TargetMode.HEAT: None,
            TargetMode.COOL: None,
        }
        self.swing_supported = swing_supported
        self.swing_enabled: Optional[bool] = None
        self.write_in_flight = False

    @property
    def current_mode(self) -> CurrentMode:
        return derive_current_mode(self.target_mode)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of the state for logging and the REST API."""
        data = {
            'power': self.power,
            'target_mode': self.target_mode.value,
            'current_mode': self.current_mode.value,
            'current_temperature': self.current_temperature,
            'heating_setpoint': self.setpoints[TargetMode.HEAT],
            'cooling_setpoint': self.setpoints[TargetMode.COOL],
            'write_in_flight': self.write_in_flight,
        }
        if self.swing_supported:
            data['swing'] = self.swing_enabled
        return data
