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

"""Device state controller: one reconciled view per air conditioner.

The controller sits between the accessory (instant get/set from cache) and the
gateway (slow, lossy property access). Three actors mutate the state:

- set_*() calls from the accessory, applied optimistically and written back
  through the debounced WriteCoalescer
- refresh(), run by the PeriodicRefresher
- apply_notification(), fed by the gateway's INF/INFC dispatch

Reads and notifications share one normalization path. Failed writes are
logged and never rolled back; the next refresh reconciles any divergence.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .coalescer import DEFAULT_DEBOUNCE, WriteCoalescer
from .gateway import PropertyGateway
from .protocol import format_eoj
from .refresher import PeriodicRefresher
from .retry import READ_MAX_ATTEMPTS, WRITE_MAX_ATTEMPTS, RetryExecutor, RetryExhaustedError
from .state import (
    EPC_CURRENT_TEMPERATURE,
    EPC_MODE,
    EPC_POWER,
    EPC_SWING,
    EPC_TARGET_TEMPERATURE,
    REFRESH_CODES,
    SWING_OFF,
    SWING_ON,
    UNKNOWN_TEMPERATURE,
    ApplianceState,
    CurrentMode,
    TargetMode,
    target_mode_to_wire,
    wire_to_target_mode,
)

logger = logging.getLogger('echonet-local')

ATTR_POWER = 'power'
ATTR_TARGET_MODE = 'target_mode'
ATTR_CURRENT_MODE = 'current_mode'
ATTR_CURRENT_TEMPERATURE = 'current_temperature'
ATTR_HEATING_SETPOINT = 'heating_setpoint'
ATTR_COOLING_SETPOINT = 'cooling_setpoint'
ATTR_SWING = 'swing'

# Publish order
ATTRIBUTES = (
    ATTR_POWER,
    ATTR_TARGET_MODE,
    ATTR_CURRENT_MODE,
    ATTR_CURRENT_TEMPERATURE,
    ATTR_HEATING_SETPOINT,
    ATTR_COOLING_SETPOINT,
    ATTR_SWING,
)

# Answered by the getters while a lane has never been set or reported
DEFAULT_HEATING_SETPOINT = 23
DEFAULT_COOLING_SETPOINT = 27

_SETPOINT_ATTRS = {
    TargetMode.HEAT: ATTR_HEATING_SETPOINT,
    TargetMode.COOL: ATTR_COOLING_SETPOINT,
}

Listener = Callable[[str, Any], None]


def format_props(props: List[Tuple[int, Any]]) -> str:
    """Render (code, payload) pairs for log lines."""
    return json.dumps([{'epc': f'0x{code:02X}', 'edt': payload} for code, payload in sorted(props, key=lambda p: p[0])])


class DeviceStateController:
    """Single source of truth for one appliance's logical state."""

    def __init__(self, gateway: PropertyGateway, address: str, object_id, name: Optional[str] = None,
                 retry: Optional[RetryExecutor] = None, swing_supported: bool = False,
                 write_auto_setpoint: bool = True, debounce: float = DEFAULT_DEBOUNCE):
        self.gateway = gateway
        self.state = ApplianceState(address, object_id, swing_supported)
        self.name = name or address
        self.retry = retry or RetryExecutor()
        self.write_auto_setpoint = write_auto_setpoint
        self.listeners: List[Listener] = []
        self.coalescer = WriteCoalescer(self._write_cycle, on_busy=self._on_write_busy,
                                        delay=debounce, name=self.label)
        self.refresher: Optional[PeriodicRefresher] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def address(self) -> str:
        return self.state.address

    @property
    def object_id(self) -> Tuple[int, int, int]:
        return self.state.object_id

    @property
    def label(self) -> str:
        return f"{self.name}({self.address})"

    @property
    def write_in_flight(self) -> bool:
        return self.state.write_in_flight

    def _on_write_busy(self, busy: bool):
        self.state.write_in_flight = busy

    # -- lifecycle -----------------------------------------------------------

    def start(self, refresh_interval: Optional[float] = None, initial_refresh: bool = True):
        """Start periodic polling (interval in seconds) and an initial refresh."""
        if refresh_interval:
            self.refresher = PeriodicRefresher(self.refresh, refresh_interval,
                                               lambda: self.state.write_in_flight, name=self.label)
            self.refresher.start()
        if initial_refresh:
            self._spawn(self._initial_refresh())

    async def _initial_refresh(self):
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"{self.label} - Failed initial refresh: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def stop(self):
        """Stop polling, drop a pending write and cancel background work."""
        if self.refresher:
            await self.refresher.stop()
        await self.coalescer.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- listeners -----------------------------------------------------------

    def add_listener(self, listener: Listener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def attribute_value(self, attribute: str) -> Any:
        """Current getter value for a logical attribute name."""
        getter = {
            ATTR_POWER: self.get_power,
            ATTR_TARGET_MODE: self.get_target_mode,
            ATTR_CURRENT_MODE: self.get_current_mode,
            ATTR_CURRENT_TEMPERATURE: self.get_current_temperature,
            ATTR_HEATING_SETPOINT: self.get_heating_setpoint,
            ATTR_COOLING_SETPOINT: self.get_cooling_setpoint,
            ATTR_SWING: self.get_swing,
        }[attribute]
        return getter()

    def _publish(self, attributes):
        for attribute in ATTRIBUTES:
            if attribute not in attributes:
                continue
            if attribute == ATTR_SWING and not self.state.swing_supported:
                continue
            value = self.attribute_value(attribute)
            for listener in list(self.listeners):
                try:
                    listener(attribute, value)
                except Exception as e:
                    logger.error(f"{self.label} - Listener failed for {attribute}: {e}")

    # -- getters (always from cache) -----------------------------------------

    def get_power(self) -> bool:
        return self.state.power

    def get_target_mode(self) -> TargetMode:
        return self.state.target_mode

    def get_current_mode(self) -> CurrentMode:
        return self.state.current_mode

    def get_current_temperature(self) -> int:
        return self.state.current_temperature

    def get_heating_setpoint(self) -> int:
        value = self.state.setpoints[TargetMode.HEAT]
        return DEFAULT_HEATING_SETPOINT if value is None else value

    def get_cooling_setpoint(self) -> int:
        value = self.state.setpoints[TargetMode.COOL]
        return DEFAULT_COOLING_SETPOINT if value is None else value

    def get_swing(self) -> bool:
        return bool(self.state.swing_enabled)

    # -- setters (optimistic, non-blocking) ----------------------------------

    def set_power(self, power: bool):
        logger.info(f"{self.label} - SET Active: {power}")
        self.state.power = bool(power)
        self.coalescer.request_write()

    def set_mode(self, mode: TargetMode):
        mode = TargetMode(mode)
        logger.info(f"{self.label} - SET TargetHeaterCoolerState: {mode.value}")
        self.state.target_mode = mode
        self._publish({ATTR_TARGET_MODE, ATTR_CURRENT_MODE})
        self.coalescer.request_write()

    def set_heating_setpoint(self, temperature: int):
        logger.info(f"{self.label} - SET HeatingThresholdTemperature: {temperature}")
        temperature = int(temperature)
        self.state.setpoints[TargetMode.HEAT] = temperature
        cool = self.state.setpoints[TargetMode.COOL]
        if cool is not None and cool < temperature:
            # Heating never ends above cooling; the cooling lane follows
            self.state.setpoints[TargetMode.COOL] = temperature
            self._publish({ATTR_COOLING_SETPOINT})
        self.coalescer.request_write()

    def set_cooling_setpoint(self, temperature: int):
        logger.info(f"{self.label} - SET CoolingThresholdTemperature: {temperature}")
        temperature = int(temperature)
        self.state.setpoints[TargetMode.COOL] = temperature
        heat = self.state.setpoints[TargetMode.HEAT]
        if heat is not None and heat > temperature:
            self.state.setpoints[TargetMode.HEAT] = temperature
            self._publish({ATTR_HEATING_SETPOINT})
        self.coalescer.request_write()

    def set_swing(self, enabled: bool):
        if not self.state.swing_supported:
            logger.warning(f"{self.label} - Swing is not supported by this appliance, ignoring")
            return
        logger.info(f"{self.label} - SET SwingMode: {enabled}")
        self.state.swing_enabled = bool(enabled)
        self.coalescer.request_write()

    # -- write path ----------------------------------------------------------

    def _auto_temperature(self) -> Optional[int]:
        if not self.write_auto_setpoint:
            return None
        heat = self.state.setpoints[TargetMode.HEAT]
        cool = self.state.setpoints[TargetMode.COOL]
        if heat is None or cool is None:
            return None
        return heat + (cool - heat) // 2

    def serialize_write_set(self) -> List[Tuple[int, Dict[str, Any]]]:
        """Full-state write batch for the current local target state."""
        props: List[Tuple[int, Dict[str, Any]]] = [(EPC_POWER, {'status': self.state.power})]

        if self.state.power:
            mode = self.state.target_mode
            props.append((EPC_MODE, {'mode': target_mode_to_wire(mode)}))
            if mode == TargetMode.AUTO:
                temperature = self._auto_temperature()
            else:
                temperature = self.state.setpoints[mode]
            if temperature is not None:
                props.append((EPC_TARGET_TEMPERATURE, {'temperature': temperature}))

        if self.state.swing_supported and self.state.swing_enabled is not None:
            props.append((EPC_SWING, {'mode': SWING_ON if self.state.swing_enabled else SWING_OFF}))

        return props

    async def _write_cycle(self):
        props = self.serialize_write_set()
        description = f"{self.label} SetC {format_props(props)}"
        logger.debug(description)
        try:
            await self.retry.execute(
                lambda: self.gateway.set_batch(self.address, self.object_id, props),
                WRITE_MAX_ATTEMPTS,
                description,
            )
        except RetryExhaustedError as e:
            logger.error(f"{self.label} - Failed to set {format_props(props)}: {e.last_error}")

    # -- read path -----------------------------------------------------------

    async def refresh(self):
        """Pull power, mode, target and room temperature and publish everything."""
        logger.debug(f"{self.label} - Refreshing status...")

        codes = list(REFRESH_CODES)
        if self.state.swing_supported:
            codes.append(EPC_SWING)

        try:
            values = await self.retry.execute(
                lambda: self.gateway.get_batch(self.address, self.object_id, codes),
                READ_MAX_ATTEMPTS,
                f"{self.label} Get {', '.join(f'0x{code:02X}' for code in codes)}",
            )
        except RetryExhaustedError as e:
            logger.warning(f"{self.label} - Failed to refresh status: {e.last_error}")
            values = {}

        for code in codes:
            payload = values.get(code)
            if payload is None:
                if values:
                    logger.warning(f"{self.label} - No value for 0x{code:02X}, keeping cached value")
                continue
            self._apply(code, payload, split_auto=False)

        logger.debug(f"{self.label} - {json.dumps(self.state.snapshot())}")
        self._publish(set(ATTRIBUTES))

    def handle_notification(self, address: str, object_id, props: List[Tuple[int, Any]]):
        """Gateway subscriber: fold a notification meant for this appliance."""
        if address != self.address:
            return
        if object_id is not None and tuple(object_id) != self.object_id:
            logger.debug(f"{self.label} - Ignoring notification for object {format_eoj(object_id)}")
            return
        for code, payload in props:
            self.apply_notification(code, payload)

    def apply_notification(self, code: int, payload: Optional[Dict[str, Any]]) -> Set[str]:
        """Apply one pushed property and publish only what changed."""
        if not payload:
            return set()
        if code not in (EPC_POWER, EPC_MODE, EPC_TARGET_TEMPERATURE, EPC_CURRENT_TEMPERATURE, EPC_SWING):
            return set()

        logger.info(f"{self.label} - Received 0x{code:02X}: {payload}")
        changed = self._apply(code, payload, split_auto=True)
        self._publish(changed)
        return changed

    # -- normalization -------------------------------------------------------

    def _apply(self, code: int, payload: Dict[str, Any], split_auto: bool) -> Set[str]:
        state = self.state
        changed: Set[str] = set()

        if code == EPC_POWER:
            power = bool(payload.get('status'))
            if power != state.power:
                state.power = power
                changed.add(ATTR_POWER)

        elif code == EPC_MODE:
            mode = wire_to_target_mode(payload.get('mode'))
            if mode != state.target_mode:
                state.target_mode = mode
                changed.update((ATTR_TARGET_MODE, ATTR_CURRENT_MODE))

        elif code == EPC_TARGET_TEMPERATURE:
            changed.update(self._apply_target_temperature(payload.get('temperature'), split_auto))

        elif code == EPC_CURRENT_TEMPERATURE:
            temperature = payload.get('temperature')
            temperature = UNKNOWN_TEMPERATURE if temperature is None else int(temperature)
            if temperature != state.current_temperature:
                state.current_temperature = temperature
                changed.add(ATTR_CURRENT_TEMPERATURE)

        elif code == EPC_SWING and state.swing_supported:
            enabled = payload.get('mode') != SWING_OFF
            if enabled != state.swing_enabled:
                state.swing_enabled = enabled
                changed.add(ATTR_SWING)

        return changed

    def _apply_target_temperature(self, temperature: Optional[int], split_auto: bool) -> Set[str]:
        # AUTO reports no discrete setpoint
        if temperature is None:
            return set()

        temperature = int(temperature)
        setpoints = self.state.setpoints
        mode = self.state.target_mode
        before = dict(setpoints)

        # First reported value seeds every lane that has never been set
        for lane in (TargetMode.HEAT, TargetMode.COOL):
            if setpoints[lane] is None:
                setpoints[lane] = temperature

        if mode in _SETPOINT_ATTRS:
            # The inactive lane keeps the locally remembered preference
            setpoints[mode] = temperature
        elif split_auto and not setpoints[TargetMode.HEAT] <= temperature <= setpoints[TargetMode.COOL]:
            setpoints[TargetMode.HEAT] = temperature - 1
            setpoints[TargetMode.COOL] = temperature + 1

        return {attr for lane, attr in _SETPOINT_ATTRS.items() if setpoints[lane] != before[lane]}
