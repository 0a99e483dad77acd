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
"""Echonet Local - REST API and HomeKit-style bridge for ECHONET Lite air conditioners."""

from .__version__ import __version__

__author__ = "Echonet Local Contributors"
__description__ = "REST API for ECHONET Lite air conditioners"

from .accessory import HeaterCoolerAccessory
from .api import EchonetLocalAPI
from .cache import AccessoryCacheSQLite, AccessoryRecord
from .coalescer import WriteCoalescer
from .config import BridgeConfig, verify_config
from .controller import DeviceStateController
from .database import DB_SCHEMA
from .gateway import EchonetGateway, GatewayError, GatewayTimeout, PropertyGateway
from .refresher import PeriodicRefresher
from .retry import RetryExecutor, RetryExhaustedError
from .state import ApplianceState, CurrentMode, TargetMode
from . import homekit_uuids

__all__ = [
    "__version__",
    "HeaterCoolerAccessory",
    "EchonetLocalAPI",
    "AccessoryCacheSQLite",
    "AccessoryRecord",
    "WriteCoalescer",
    "BridgeConfig",
    "verify_config",
    "DeviceStateController",
    "DB_SCHEMA",
    "EchonetGateway",
    "GatewayError",
    "GatewayTimeout",
    "PropertyGateway",
    "PeriodicRefresher",
    "RetryExecutor",
    "RetryExhaustedError",
    "ApplianceState",
    "CurrentMode",
    "TargetMode",
    "homekit_uuids",
]
