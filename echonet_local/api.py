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

"""Echonet Local API - discovers air conditioners and owns their controllers."""

import asyncio
import json
import logging
import time
import uuid as uuidlib
from typing import Any, Dict, List, Optional, Set, Tuple

from .accessory import HeaterCoolerAccessory
from .cache import AccessoryCacheSQLite, AccessoryRecord
from .config import BridgeConfig, verify_config
from .controller import DeviceStateController
from .gateway import PropertyGateway
from .protocol import (
    AIR_CONDITIONER_CLASS,
    EPC_MAKER_CODE,
    EPC_PRODUCT_CODE,
    EPC_SERIAL_NUMBER,
    EPC_SET_PROPERTY_MAP,
    format_eoj,
)
from .retry import READ_MAX_ATTEMPTS, RetryExecutor, RetryExhaustedError
from .state import EPC_SWING

# Configure logging
logger = logging.getLogger('echonet-local')

DEVICE_INFO_CODES = (EPC_SERIAL_NUMBER, EPC_PRODUCT_CODE, EPC_MAKER_CODE, EPC_SET_PROPERTY_MAP)

# Fixed namespace so an appliance keeps its id across restarts
ACCESSORY_NAMESPACE = uuidlib.uuid5(uuidlib.NAMESPACE_DNS, 'echonet-local')


def accessory_uuid(serial: Optional[str], address: str) -> str:
    """Stable accessory id from the serial number, or the address without one."""
    return str(uuidlib.uuid5(ACCESSORY_NAMESPACE, serial or address))


class EchonetLocalAPI:
    """Platform: one controller and accessory per discovered air conditioner."""
    controllers: Dict[str, DeviceStateController]
    accessories: Dict[str, HeaterCoolerAccessory]

    def __init__(self, db_path: str, config: Optional[BridgeConfig] = None,
                 retry: Optional[RetryExecutor] = None):
        self.config = config or BridgeConfig()
        ok, errors = verify_config(self.config)
        self.config_errors: List[str] = errors
        self.disabled = not ok
        if self.disabled:
            logger.error(f"Invalid configuration. Please check your configuration: {'; '.join(errors)}")

        self.cache = AccessoryCacheSQLite(db_path)
        for record in self.cache.load_all():
            logger.info(f"Loading accessory from cache: {record.name}")

        self.gateway: Optional[PropertyGateway] = None
        self.retry = retry or RetryExecutor()
        self.controllers = {}
        self.accessories = {}
        self.event_listeners: List[asyncio.Queue] = []
        self.last_update: Optional[float] = None
        self.discovering = False

        # Cleanup tracking
        self.background_tasks: Set[asyncio.Task] = set()
        self._seen_objects: Set[Tuple[str, Tuple[int, int, int]]] = set()
        self.is_shutting_down = False

    async def initialize(self, gateway: PropertyGateway):
        """Attach the gateway, subscribe to notifications and start discovery."""
        if self.disabled:
            logger.warning("Platform disabled by configuration errors, not starting discovery")
            return

        self.gateway = gateway
        gateway.subscribe(self.handle_notification)
        await gateway.discover(self.handle_discovery, self.config.devices)
        self.discovering = True
        self._spawn(self._stop_discovery_later(float(self.config.discovery_timeout)))
        logger.info("Echonet Local API initialized successfully")

    async def _stop_discovery_later(self, delay: float):
        await asyncio.sleep(delay)
        self.stop_discovery()

    def stop_discovery(self):
        if self.gateway and self.discovering:
            self.gateway.stop_discovery()
            self.discovering = False
            logger.info(f"Discovery finished, {len(self.accessories)} accessories active")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
        return task

    async def cleanup(self):
        """Stop controllers, close SSE queues and release the gateway."""
        logger.info("Starting cleanup...")
        self.is_shutting_down = True

        if self.gateway:
            self.stop_discovery()
            self.gateway.unsubscribe(self.handle_notification)

        for accessory in self.accessories.values():
            accessory.detach()
        if self.controllers:
            logger.info(f"Stopping {len(self.controllers)} controllers")
            await asyncio.gather(*(c.stop() for c in self.controllers.values()), return_exceptions=True)

        if self.background_tasks:
            logger.info(f"Cancelling {len(self.background_tasks)} background tasks")
            tasks = list(self.background_tasks)
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # Close all event listener queues
        if self.event_listeners:
            logger.info(f"Closing {len(self.event_listeners)} event listener queues")
            for queue in self.event_listeners:
                # Signal end of stream
                queue.put_nowait(None)
            self.event_listeners.clear()

        if self.gateway:
            await self.gateway.close()
            self.gateway = None

        logger.info("Cleanup complete")

    # -- discovery -----------------------------------------------------------

    def handle_discovery(self, address: str, instances: List[Tuple[int, int, int]]):
        """Gateway discovery handler: follow up on every air conditioner instance."""
        for eoj in instances:
            eoj = tuple(eoj)
            logger.debug(f"Device found: {address} {format_eoj(eoj)}")
            if eoj[:2] != AIR_CONDITIONER_CLASS or self.is_shutting_down:
                continue
            self._spawn(self._add_discovered(address, eoj))

    async def _add_discovered(self, address: str, eoj):
        try:
            await self.add_appliance(address, eoj)
        except Exception as e:
            logger.error(f"Failed to add appliance {address} {format_eoj(eoj)}: {e}")

    async def add_appliance(self, address: str, eoj) -> Optional[HeaterCoolerAccessory]:
        """Read an appliance's identity and register it as an accessory."""
        eoj = tuple(eoj)
        key = (address, eoj)
        if key in self._seen_objects:
            return None
        self._seen_objects.add(key)

        try:
            info = await self.retry.execute(
                lambda: self.gateway.get_batch(address, eoj, DEVICE_INFO_CODES),
                READ_MAX_ATTEMPTS,
                f"{address} Get device information",
            )
        except RetryExhaustedError as e:
            logger.error(f"Failed to read device information from {address}: {e.last_error}")
            # Let a later announcement retry this appliance
            self._seen_objects.discard(key)
            return None

        serial = (info.get(EPC_SERIAL_NUMBER) or {}).get('number')
        product = (info.get(EPC_PRODUCT_CODE) or {}).get('code')
        maker = (info.get(EPC_MAKER_CODE) or {}).get('code')
        settable = (info.get(EPC_SET_PROPERTY_MAP) or {}).get('properties', [])

        record = AccessoryRecord(
            uuid=accessory_uuid(serial, address),
            address=address,
            eoj=eoj,
            name=product or address,
            model=product,
            maker_code=f"{maker:06X}" if maker is not None else None,
            serial=serial,
            swing_supported=EPC_SWING in settable,
        )
        return self.add_accessory(record)

    def add_accessory(self, record: AccessoryRecord) -> HeaterCoolerAccessory:
        """Create the controller and accessory for a record, once per uuid."""
        existing = self.accessories.get(record.uuid)
        if existing:
            logger.debug(f"Accessory {existing.name} already active, ignoring duplicate")
            return existing

        cached = self.cache.get(record.uuid)
        if cached:
            logger.info(f"Restoring existing accessory from cache: {cached.name}")
            # Keep the cached name, follow the appliance to its current address
            record.name = cached.name
            if record == cached:
                self.cache.touch(record.uuid)
            else:
                self.cache.save(record)
        else:
            logger.info(f"Adding new accessory: {record.name}({record.address})")
            self.cache.save(record)

        controller = DeviceStateController(
            self.gateway,
            record.address,
            record.eoj,
            name=record.name,
            retry=self.retry,
            swing_supported=record.swing_supported,
        )
        accessory = HeaterCoolerAccessory(record, controller, on_update=self.handle_accessory_update)
        self.controllers[record.uuid] = controller
        self.accessories[record.uuid] = accessory
        controller.start(self.config.refresh_interval_seconds)
        return accessory

    # -- events --------------------------------------------------------------

    def handle_notification(self, address: str, object_id, props):
        """Gateway notification handler; each controller filters by address."""
        for controller in list(self.controllers.values()):
            controller.handle_notification(address, object_id, props)

    def handle_accessory_update(self, accessory: HeaterCoolerAccessory, characteristic: str, value: Any):
        self.last_update = time.time()
        if self.is_shutting_down or not self.event_listeners:
            return
        event_data = {
            'type': 'accessory',
            'id': accessory.id,
            'name': accessory.name,
            'characteristic': characteristic,
            'value': value,
            'timestamp': self.last_update,
        }
        self._spawn(self.broadcast_event(event_data))

    async def broadcast_event(self, event_data):
        """Broadcast change event to all connected SSE clients."""
        try:
            event_json = json.dumps(event_data)
            event_message = f"data: {event_json}\n\n"

            for listener in list(self.event_listeners):
                await listener.put(event_message)
        except Exception as e:
            logger.error(f"Error broadcasting event: {e}")

    # -- queries -------------------------------------------------------------

    def get_accessory(self, accessory_id: str) -> Optional[HeaterCoolerAccessory]:
        return self.accessories.get(accessory_id)

    async def refresh_all(self) -> int:
        """Refresh every active appliance now; returns how many were refreshed."""
        controllers = list(self.controllers.values())
        results = await asyncio.gather(*(c.refresh() for c in controllers), return_exceptions=True)
        for controller, result in zip(controllers, results):
            if isinstance(result, Exception):
                logger.error(f"{controller.label} - Refresh failed: {result}")
        return len(controllers)

    def status(self) -> Dict[str, Any]:
        return {
            'status': 'disabled' if self.disabled else 'running',
            'config_errors': self.config_errors,
            'discovering': self.discovering,
            'accessories': len(self.accessories),
            'cached_accessories': len(self.cache.load_all()),
            'event_listeners': len(self.event_listeners),
            'last_update': self.last_update,
            'refresh_interval': self.config.refresh_interval,
            'request_timeout': None if self.disabled else self.config.request_timeout_seconds,
        }
