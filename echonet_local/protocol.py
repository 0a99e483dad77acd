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

"""ECHONET Lite frame and property (EDT) codec.

Only the subset of the protocol needed to drive a home air conditioner is
covered here:

Frame layout (format 1):
------------------------
    EHD1 EHD2 | TID (2) | SEOJ (3) | DEOJ (3) | ESV | OPC | OPC x (EPC PDC EDT)

Property payloads:
------------------
Decoded EDTs are plain dicts so that callers never deal with raw bytes, e.g.
``0x80`` becomes ``{"status": True}`` and ``0xB3`` becomes
``{"temperature": 24}``.
"""

from typing import Any, Dict, List, NamedTuple, Optional, Tuple

EHD = b'\x10\x81'

# Service codes (ESV)
ESV_SETI = 0x60
ESV_SETC = 0x61
ESV_GET = 0x62
ESV_INF_REQ = 0x63
ESV_SETI_SNA = 0x50
ESV_SETC_SNA = 0x51
ESV_GET_SNA = 0x52
ESV_INF_SNA = 0x53
ESV_SET_RES = 0x71
ESV_GET_RES = 0x72
ESV_INF = 0x73
ESV_INFC = 0x74
ESV_INFC_RES = 0x7A

RESPONSE_ESVS = {ESV_SET_RES, ESV_GET_RES, ESV_SETI_SNA, ESV_SETC_SNA, ESV_GET_SNA, ESV_INF_SNA}
NOTIFICATION_ESVS = {ESV_INF, ESV_INFC}

# Object codes
CONTROLLER_EOJ = (0x05, 0xFF, 0x01)
NODE_PROFILE_EOJ = (0x0E, 0xF0, 0x01)
AIR_CONDITIONER_CLASS = (0x01, 0x30)

# Property codes we know how to encode/decode
EPC_OPERATION_STATUS = 0x80
EPC_MAKER_CODE = 0x8A
EPC_PRODUCT_CODE = 0x8C
EPC_SERIAL_NUMBER = 0x8D
EPC_STATUS_CHANGE_MAP = 0x9D
EPC_SET_PROPERTY_MAP = 0x9E
EPC_GET_PROPERTY_MAP = 0x9F
EPC_AUTO_SWING = 0xA3
EPC_OPERATION_MODE = 0xB0
EPC_TEMPERATURE_SETTING = 0xB3
EPC_ROOM_TEMPERATURE = 0xBB
EPC_INSTANCE_LIST_NOTIFICATION = 0xD5
EPC_SELF_NODE_INSTANCE_LIST = 0xD6

STATUS_ON = 0x30
STATUS_OFF = 0x31
MODE_BASE = 0x40
TEMPERATURE_UNDEFINED = 0xFD
# Room temperature bytes that do not carry a reading
ROOM_TEMPERATURE_INVALID = {0x7E, 0x7F, 0x80}


class ProtocolError(Exception):
    """Raised for frames or property values that cannot be encoded/decoded."""


class Frame(NamedTuple):
    """A decoded ECHONET Lite frame."""
    tid: int
    seoj: Tuple[int, int, int]
    deoj: Tuple[int, int, int]
    esv: int
    props: List[Tuple[int, bytes]]


def format_eoj(eoj) -> str:
    """Format an object code as 0x013001."""
    return '0x' + ''.join(f'{b:02X}' for b in eoj)


def encode_frame(tid: int, seoj, deoj, esv: int, props: List[Tuple[int, bytes]]) -> bytes:
    """Build an ECHONET Lite frame from raw (epc, edt) pairs."""
    if not 0 <= tid <= 0xFFFF:
        raise ProtocolError(f"TID out of range: {tid}")
    if len(props) > 0xFF:
        raise ProtocolError(f"Too many properties in one frame: {len(props)}")

    out = bytearray(EHD)
    out += tid.to_bytes(2, 'big')
    out += bytes(seoj)
    out += bytes(deoj)
    out.append(esv)
    out.append(len(props))
    for epc, edt in props:
        edt = edt or b''
        if len(edt) > 0xFF:
            raise ProtocolError(f"EDT too long for EPC 0x{epc:02X}")
        out.append(epc)
        out.append(len(edt))
        out += edt
    return bytes(out)


def decode_frame(data: bytes) -> Frame:
    """Parse an ECHONET Lite frame into its raw components."""
    if len(data) < 12:
        raise ProtocolError(f"Frame too short ({len(data)} bytes)")
    if data[0:2] != EHD:
        raise ProtocolError(f"Unsupported frame header: {data[0:2].hex()}")

    tid = int.from_bytes(data[2:4], 'big')
    seoj = tuple(data[4:7])
    deoj = tuple(data[7:10])
    esv = data[10]
    opc = data[11]

    props = []
    pos = 12
    for _ in range(opc):
        if pos + 2 > len(data):
            raise ProtocolError("Truncated property header")
        epc = data[pos]
        pdc = data[pos + 1]
        pos += 2
        if pos + pdc > len(data):
            raise ProtocolError(f"Truncated EDT for EPC 0x{epc:02X}")
        props.append((epc, bytes(data[pos:pos + pdc])))
        pos += pdc

    return Frame(tid, seoj, deoj, esv, props)


def _decode_property_map(edt: bytes) -> List[int]:
    count = edt[0]
    if count < 16:
        return sorted(edt[1:1 + count])
    # Bitmap form: byte i, bit j -> EPC (0x80 + 0x10 * j + i)
    epcs = []
    for i, byte in enumerate(edt[1:17]):
        for j in range(8):
            if byte & (1 << j):
                epcs.append(0x80 + 0x10 * j + i)
    return sorted(epcs)


def _decode_instance_list(edt: bytes) -> List[Tuple[int, int, int]]:
    count = edt[0]
    instances = []
    for i in range(count):
        chunk = edt[1 + 3 * i:4 + 3 * i]
        if len(chunk) < 3:
            break
        instances.append(tuple(chunk))
    return instances


def _ascii(edt: bytes) -> str:
    return edt.decode('ascii', errors='ignore').strip('\x00 ')


def decode_edt(epc: int, edt: Optional[bytes]) -> Optional[Dict[str, Any]]:
    """Decode the EDT of one property into a payload dict.

    Returns None for an empty EDT (Get requests, SNA responses).
    """
    if not edt:
        return None

    try:
        if epc == EPC_OPERATION_STATUS:
            return {'status': edt[0] == STATUS_ON}
        if epc == EPC_OPERATION_MODE:
            return {'mode': edt[0] - MODE_BASE if edt[0] >= MODE_BASE else 0}
        if epc == EPC_TEMPERATURE_SETTING:
            return {'temperature': None if edt[0] == TEMPERATURE_UNDEFINED else edt[0]}
        if epc == EPC_ROOM_TEMPERATURE:
            if edt[0] in ROOM_TEMPERATURE_INVALID:
                return {'temperature': None}
            return {'temperature': int.from_bytes(edt[0:1], 'big', signed=True)}
        if epc == EPC_AUTO_SWING:
            return {'mode': edt[0]}
        if epc == EPC_MAKER_CODE:
            return {'code': int.from_bytes(edt[0:3], 'big')}
        if epc == EPC_PRODUCT_CODE:
            return {'code': _ascii(edt) or None}
        if epc == EPC_SERIAL_NUMBER:
            return {'number': _ascii(edt) or None}
        if epc in (EPC_STATUS_CHANGE_MAP, EPC_SET_PROPERTY_MAP, EPC_GET_PROPERTY_MAP):
            return {'properties': _decode_property_map(edt)}
        if epc in (EPC_INSTANCE_LIST_NOTIFICATION, EPC_SELF_NODE_INSTANCE_LIST):
            return {'instances': _decode_instance_list(edt)}
    except IndexError as e:
        raise ProtocolError(f"Malformed EDT for EPC 0x{epc:02X}: {edt.hex()}") from e

    return {'raw': edt}


def encode_edt(epc: int, value: Dict[str, Any]) -> bytes:
    """Encode a payload dict for one writable property."""
    try:
        if epc == EPC_OPERATION_STATUS:
            return bytes([STATUS_ON if value['status'] else STATUS_OFF])
        if epc == EPC_OPERATION_MODE:
            mode = int(value['mode'])
            if not 0 <= mode <= 0x0F:
                raise ProtocolError(f"Operation mode out of range: {mode}")
            return bytes([MODE_BASE + mode])
        if epc == EPC_TEMPERATURE_SETTING:
            temperature = value['temperature']
            if temperature is None:
                return bytes([TEMPERATURE_UNDEFINED])
            temperature = int(temperature)
            if not 0 <= temperature <= 50:
                raise ProtocolError(f"Temperature setting out of range: {temperature}")
            return bytes([temperature])
        if epc == EPC_AUTO_SWING:
            return bytes([int(value['mode']) & 0xFF])
    except KeyError as e:
        raise ProtocolError(f"Missing field {e} for EPC 0x{epc:02X}") from e

    raise ProtocolError(f"Don't know how to encode EPC 0x{epc:02X}")
