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
"""Property gateway: get/set/notify access to ECHONET Lite devices over UDP."""

import asyncio
import logging
import socket
import struct
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from . import protocol
from .protocol import ProtocolError

logger = logging.getLogger('echonet-local')

ECHONET_PORT = 3610
MULTICAST_GROUP = '224.0.23.0'

# (address, object_id, [(code, payload), ...])
NotifyHandler = Callable[[str, Tuple[int, int, int], List[Tuple[int, Any]]], None]
# (address, [object_id, ...])
DiscoveryHandler = Callable[[str, List[Tuple[int, int, int]]], None]


class GatewayError(Exception):
    """A request to a device failed."""


class GatewayTimeout(GatewayError):
    """A device did not answer within the request timeout."""


class PropertyGateway(ABC):
    """Black-box property access used by the device controllers."""

    @abstractmethod
    async def get(self, address: str, object_id, code: int) -> Optional[Dict[str, Any]]:
        """Read one property."""

    @abstractmethod
    async def get_batch(self, address: str, object_id, codes: Iterable[int]) -> Dict[int, Optional[Dict[str, Any]]]:
        """Read several properties in one request; rejected ones map to None."""

    @abstractmethod
    async def set_batch(self, address: str, object_id, props: List[Tuple[int, Dict[str, Any]]]) -> None:
        """Write several properties in one request, waiting for the device's ack."""

    @abstractmethod
    def subscribe(self, handler: NotifyHandler) -> None:
        """Register a handler for unsolicited property notifications."""

    @abstractmethod
    def unsubscribe(self, handler: NotifyHandler) -> None:
        """Remove a notification handler."""

    @abstractmethod
    async def discover(self, handler: DiscoveryHandler, addresses: Iterable[str] = ()) -> None:
        """Ask devices to announce their object instances."""

    @abstractmethod
    def stop_discovery(self) -> None:
        """Stop forwarding instance lists to discovery handlers."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""


class _EchonetProtocol(asyncio.DatagramProtocol):
    def __init__(self, gateway: 'EchonetGateway'):
        self.gateway = gateway

    def datagram_received(self, data, addr):
        self.gateway._on_datagram(data, addr[0])

    def error_received(self, exc):
        logger.debug(f"UDP error received: {exc}")


class EchonetGateway(PropertyGateway):
    """ECHONET Lite gateway on UDP port 3610 (unicast requests, multicast discovery)."""

    def __init__(self, request_timeout: float = 60.0, bind_address: str = '0.0.0.0', port: int = ECHONET_PORT):
        self.request_timeout = request_timeout
        self.bind_address = bind_address
        self.port = port
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._tid = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._discovery_tids: set = set()
        self._notify_handlers: List[NotifyHandler] = []
        self._discovery_handlers: List[DiscoveryHandler] = []

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.bind_address, self.port))
        membership = struct.pack('4s4s', socket.inet_aton(MULTICAST_GROUP), socket.inet_aton(self.bind_address))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 0)
        sock.setblocking(False)
        return sock

    async def start(self):
        """Open the UDP endpoint and join the ECHONET Lite multicast group."""
        if self.transport is not None:
            return
        loop = asyncio.get_running_loop()
        self.transport, _ = await loop.create_datagram_endpoint(
            lambda: _EchonetProtocol(self), sock=self._create_socket()
        )
        logger.info(f"ECHONET Lite gateway listening on {self.bind_address}:{self.port} (timeout {self.request_timeout}s)")

    async def close(self):
        if self.transport is not None:
            self.transport.close()
            self.transport = None
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        self._discovery_tids.clear()
        logger.info("ECHONET Lite gateway closed")

    def _next_tid(self) -> int:
        self._tid = (self._tid + 1) & 0xFFFF
        return self._tid

    def _send(self, address: str, tid: int, deoj, esv: int, props: List[Tuple[int, bytes]]):
        if self.transport is None:
            raise GatewayError("Gateway not started")
        frame = protocol.encode_frame(tid, protocol.CONTROLLER_EOJ, deoj, esv, props)
        logger.debug(f"TX {address} tid={tid} esv=0x{esv:02X} {frame.hex()}")
        self.transport.sendto(frame, (address, self.port))

    async def _request(self, address: str, object_id, esv: int, props: List[Tuple[int, bytes]]) -> protocol.Frame:
        tid = self._next_tid()
        future = asyncio.get_running_loop().create_future()
        self._pending[tid] = future
        try:
            self._send(address, tid, object_id, esv, props)
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise GatewayTimeout(f"No response from {address} {protocol.format_eoj(object_id)} within {self.request_timeout}s") from e
        except OSError as e:
            raise GatewayError(f"Failed to send to {address}: {e}") from e
        finally:
            self._pending.pop(tid, None)

    async def get(self, address, object_id, code):
        values = await self.get_batch(address, object_id, [code])
        return values.get(code)

    async def get_batch(self, address, object_id, codes):
        codes = list(codes)
        frame = await self._request(address, object_id, protocol.ESV_GET, [(code, b'') for code in codes])
        if frame.esv not in (protocol.ESV_GET_RES, protocol.ESV_GET_SNA):
            raise GatewayError(f"Unexpected response ESV 0x{frame.esv:02X} from {address}")

        values: Dict[int, Optional[Dict[str, Any]]] = {code: None for code in codes}
        for epc, edt in frame.props:
            try:
                values[epc] = protocol.decode_edt(epc, edt)
            except ProtocolError as e:
                logger.warning(f"Ignoring malformed property from {address}: {e}")
        return values

    async def set_batch(self, address, object_id, props):
        raw = [(code, protocol.encode_edt(code, value)) for code, value in props]
        frame = await self._request(address, object_id, protocol.ESV_SETC, raw)
        if frame.esv == protocol.ESV_SETC_SNA:
            rejected = [f"0x{epc:02X}" for epc, edt in frame.props if edt]
            raise GatewayError(f"{address} rejected properties {', '.join(rejected) or '(unknown)'}")
        if frame.esv != protocol.ESV_SET_RES:
            raise GatewayError(f"Unexpected response ESV 0x{frame.esv:02X} from {address}")

    def subscribe(self, handler):
        if handler not in self._notify_handlers:
            self._notify_handlers.append(handler)

    def unsubscribe(self, handler):
        if handler in self._notify_handlers:
            self._notify_handlers.remove(handler)

    async def discover(self, handler, addresses=()):
        addresses = list(addresses)
        if handler not in self._discovery_handlers:
            self._discovery_handlers.append(handler)

        props = [(protocol.EPC_SELF_NODE_INSTANCE_LIST, b'')]
        for target in [MULTICAST_GROUP, *addresses]:
            tid = self._next_tid()
            self._discovery_tids.add(tid)
            try:
                self._send(target, tid, protocol.NODE_PROFILE_EOJ, protocol.ESV_GET, props)
            except OSError as e:
                logger.error(f"Discovery request to {target} failed: {e}")
        logger.info(f"Discovery requested (multicast + {len(addresses)} configured devices)")

    def stop_discovery(self):
        self._discovery_handlers.clear()
        self._discovery_tids.clear()

    def _on_datagram(self, data: bytes, address: str):
        try:
            frame = protocol.decode_frame(data)
        except ProtocolError as e:
            logger.debug(f"Dropping invalid frame from {address}: {e}")
            return

        logger.debug(f"RX {address} tid={frame.tid} esv=0x{frame.esv:02X} {data.hex()}")

        if frame.tid in self._discovery_tids or self._is_instance_announcement(frame):
            self._dispatch_instances(address, frame)
            if frame.tid in self._discovery_tids:
                return

        if frame.esv in protocol.RESPONSE_ESVS:
            future = self._pending.get(frame.tid)
            if future is not None and not future.done():
                future.set_result(frame)
            return

        if frame.esv in protocol.NOTIFICATION_ESVS:
            if frame.esv == protocol.ESV_INFC:
                self._acknowledge(address, frame)
            self._dispatch_notification(address, frame)

    @staticmethod
    def _is_instance_announcement(frame: protocol.Frame) -> bool:
        return frame.seoj == protocol.NODE_PROFILE_EOJ and any(
            epc in (protocol.EPC_INSTANCE_LIST_NOTIFICATION, protocol.EPC_SELF_NODE_INSTANCE_LIST)
            for epc, _ in frame.props
        )

    def _acknowledge(self, address: str, frame: protocol.Frame):
        try:
            ack = protocol.encode_frame(frame.tid, protocol.CONTROLLER_EOJ, frame.seoj, protocol.ESV_INFC_RES,
                                        [(epc, b'') for epc, _ in frame.props])
            if self.transport is not None:
                self.transport.sendto(ack, (address, self.port))
        except (ProtocolError, OSError) as e:
            logger.debug(f"Failed to acknowledge INFC from {address}: {e}")

    def _dispatch_instances(self, address: str, frame: protocol.Frame):
        for epc, edt in frame.props:
            if epc not in (protocol.EPC_INSTANCE_LIST_NOTIFICATION, protocol.EPC_SELF_NODE_INSTANCE_LIST):
                continue
            try:
                payload = protocol.decode_edt(epc, edt)
            except ProtocolError as e:
                logger.debug(f"Invalid instance list from {address}: {e}")
                continue
            if not payload:
                continue
            for handler in list(self._discovery_handlers):
                try:
                    handler(address, payload['instances'])
                except Exception as e:
                    logger.error(f"Discovery handler failed for {address}: {e}")

    def _dispatch_notification(self, address: str, frame: protocol.Frame):
        props = []
        for epc, edt in frame.props:
            try:
                props.append((epc, protocol.decode_edt(epc, edt)))
            except ProtocolError as e:
                logger.debug(f"Skipping malformed notification property from {address}: {e}")

        for handler in list(self._notify_handlers):
            try:
                handler(address, frame.seoj, props)
            except Exception as e:
                logger.error(f"Notification handler failed for {address}: {e}")
