import pytest

from echonet_local import protocol
from echonet_local.protocol import ProtocolError, decode_edt, decode_frame, encode_edt, encode_frame


def test_encode_frame_layout():
    frame = encode_frame(0x0102, protocol.CONTROLLER_EOJ, (0x01, 0x30, 0x01), protocol.ESV_GET,
                         [(0x80, b''), (0xB0, b'')])
    assert frame == bytes([
        0x10, 0x81,
        0x01, 0x02,
        0x05, 0xFF, 0x01,
        0x01, 0x30, 0x01,
        0x62, 0x02,
        0x80, 0x00,
        0xB0, 0x00,
    ])


def test_decode_frame_get_response():
    data = bytes([0x10, 0x81, 0x00, 0x07, 0x01, 0x30, 0x01, 0x05, 0xFF, 0x01, 0x72, 0x02,
                  0x80, 0x01, 0x30, 0xB3, 0x01, 0x18])
    frame = decode_frame(data)
    assert frame.tid == 7
    assert frame.seoj == (0x01, 0x30, 0x01)
    assert frame.deoj == (0x05, 0xFF, 0x01)
    assert frame.esv == protocol.ESV_GET_RES
    assert frame.props == [(0x80, b'\x30'), (0xB3, b'\x18')]


@pytest.mark.parametrize("data", [
    b'\x10\x81\x00',
    b'\x10\x82' + bytes(10),
    bytes([0x10, 0x81, 0, 1, 1, 0x30, 1, 5, 0xFF, 1, 0x72, 1, 0x80, 0x02, 0x30]),
])
def test_decode_frame_rejects_malformed(data):
    with pytest.raises(ProtocolError):
        decode_frame(data)


class TestDecodeEdt:
    def test_empty_edt_is_none(self):
        assert decode_edt(0x80, b'') is None
        assert decode_edt(0x80, None) is None

    def test_power(self):
        assert decode_edt(0x80, b'\x30') == {'status': True}
        assert decode_edt(0x80, b'\x31') == {'status': False}

    def test_operation_mode(self):
        assert decode_edt(0xB0, b'\x41') == {'mode': 1}
        assert decode_edt(0xB0, b'\x42') == {'mode': 2}
        assert decode_edt(0xB0, b'\x43') == {'mode': 3}
        assert decode_edt(0xB0, b'\x44') == {'mode': 4}

    def test_target_temperature_undefined(self):
        assert decode_edt(0xB3, b'\x19') == {'temperature': 25}
        assert decode_edt(0xB3, b'\xFD') == {'temperature': None}

    def test_room_temperature_signed_and_invalid(self):
        assert decode_edt(0xBB, b'\x16') == {'temperature': 22}
        assert decode_edt(0xBB, b'\xFB') == {'temperature': -5}
        assert decode_edt(0xBB, b'\x7E') == {'temperature': None}

    def test_identity_properties(self):
        assert decode_edt(0x8A, b'\x00\x00\x08') == {'code': 8}
        assert decode_edt(0x8C, b'RAS-X40\x00\x00') == {'code': 'RAS-X40'}
        assert decode_edt(0x8D, b'\x00\x00') == {'number': None}

    def test_property_map_list_form(self):
        assert decode_edt(0x9E, bytes([3, 0xB3, 0x80, 0xA3])) == {'properties': [0x80, 0xA3, 0xB3]}

    def test_property_map_bitmap_form(self):
        edt = bytearray(17)
        edt[0] = 16
        edt[1] |= 0x01          # 0x80
        edt[1 + 3] |= 0x01 << 2  # 0xA3
        edt[1 + 0x0B] |= 0x01 << 3  # 0xBB
        assert decode_edt(0x9E, bytes(edt)) == {'properties': [0x80, 0xA3, 0xBB]}

    def test_instance_list(self):
        edt = bytes([2, 0x01, 0x30, 0x01, 0x02, 0x88, 0x01])
        assert decode_edt(0xD6, edt) == {'instances': [(0x01, 0x30, 0x01), (0x02, 0x88, 0x01)]}

    def test_unknown_property_is_raw(self):
        assert decode_edt(0xC0, b'\x01\x02') == {'raw': b'\x01\x02'}


class TestEncodeEdt:
    def test_power(self):
        assert encode_edt(0x80, {'status': True}) == b'\x30'
        assert encode_edt(0x80, {'status': False}) == b'\x31'

    def test_mode(self):
        assert encode_edt(0xB0, {'mode': 2}) == b'\x42'

    def test_temperature(self):
        assert encode_edt(0xB3, {'temperature': 25}) == b'\x19'
        with pytest.raises(ProtocolError):
            encode_edt(0xB3, {'temperature': 60})

    def test_swing(self):
        assert protocol.EPC_AUTO_SWING == 0xA3
        assert encode_edt(protocol.EPC_AUTO_SWING, {'mode': 0x41}) == b'\x41'
        assert decode_edt(protocol.EPC_AUTO_SWING, b'\x31') == {'mode': 0x31}

    def test_missing_field_and_unknown_code(self):
        with pytest.raises(ProtocolError):
            encode_edt(0x80, {})
        with pytest.raises(ProtocolError):
            encode_edt(0xBB, {'temperature': 20})


def test_format_eoj():
    assert protocol.format_eoj((0x01, 0x30, 0x01)) == '0x013001'
