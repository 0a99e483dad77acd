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
"""
HomeKit UUID mappings for the services and characteristics we expose.

An air conditioner is presented as a HeaterCooler service, which is what
HomeKit controllers expect for a unit that can both heat and cool:

    HeaterCooler (000000BC)
      Active                       R/W  0 = Inactive, 1 = Active
      CurrentHeaterCoolerState     R    0 = Inactive, 1 = Idle, 2 = Heating, 3 = Cooling
      TargetHeaterCoolerState      R/W  0 = Auto, 1 = Heat, 2 = Cool
      CurrentTemperature           R    degrees Celsius
      CoolingThresholdTemperature  R/W  degrees Celsius
      HeatingThresholdTemperature  R/W  degrees Celsius
      SwingMode                    R/W  0 = Disabled, 1 = Enabled (optional)
"""

HOMEKIT_SERVICES = {
    "0000003E-0000-1000-8000-0026BB765291": "AccessoryInformation",
    "000000BC-0000-1000-8000-0026BB765291": "HeaterCooler",
}

HOMEKIT_CHARACTERISTICS = {
    # === ACCESSORY INFORMATION ===
    "00000020-0000-1000-8000-0026BB765291": "Manufacturer",
    "00000021-0000-1000-8000-0026BB765291": "Model",
    "00000023-0000-1000-8000-0026BB765291": "Name",
    "00000030-0000-1000-8000-0026BB765291": "SerialNumber",

    # === HEATER COOLER ===
    "000000B0-0000-1000-8000-0026BB765291": "Active",
    "000000B1-0000-1000-8000-0026BB765291": "CurrentHeaterCoolerState",
    "000000B2-0000-1000-8000-0026BB765291": "TargetHeaterCoolerState",
    "00000011-0000-1000-8000-0026BB765291": "CurrentTemperature",
    "0000000D-0000-1000-8000-0026BB765291": "CoolingThresholdTemperature",
    "00000012-0000-1000-8000-0026BB765291": "HeatingThresholdTemperature",
    "000000B6-0000-1000-8000-0026BB765291": "SwingMode",
}

_CHARACTERISTIC_UUIDS = {name: uuid for uuid, name in HOMEKIT_CHARACTERISTICS.items()}
_SERVICE_UUIDS = {name: uuid for uuid, name in HOMEKIT_SERVICES.items()}

# Human-readable value mappings
HOMEKIT_VALUES = {
    "Active": {
        0: "Inactive",
        1: "Active"
    },
    "CurrentHeaterCoolerState": {
        0: "Inactive",
        1: "Idle",
        2: "Heating",
        3: "Cooling"
    },
    "TargetHeaterCoolerState": {
        0: "Auto",
        1: "Heat",
        2: "Cool"
    },
    "SwingMode": {
        0: "Disabled",
        1: "Enabled"
    },
}


def get_service_uuid(name: str) -> str:
    return _SERVICE_UUIDS[name]


def get_characteristic_uuid(name: str) -> str:
    """Convert a characteristic name back to its HomeKit UUID."""
    return _CHARACTERISTIC_UUIDS[name]


def get_characteristic_value_name(characteristic_name: str, value) -> str:
    """Convert HomeKit characteristic value to human-readable name."""
    if characteristic_name in HOMEKIT_VALUES and value in HOMEKIT_VALUES[characteristic_name]:
        return HOMEKIT_VALUES[characteristic_name][value]
    return str(value)
