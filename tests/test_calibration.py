"""Tests for calibration register decoding and the calibration store."""

from __future__ import annotations

import struct

import pytest

from opendaq_driver import Calib, CalibrationStore, ResponseError
from opendaq_driver.calibration import IDENTITY, decode_register, parse_register_payload


class TestDecodeRegister:
    @pytest.mark.parametrize("output_class", [True, False])
    def test_zero_register_is_identity(self, output_class):
        assert decode_register(0, 0, output_class) == Calib(1.0, 0.0)

    def test_gain_is_one_plus_fraction(self):
        assert decode_register(32767, 0, False).gain == pytest.approx(1.0 + 32767 / 65536)
        assert decode_register(-32768, 0, False).gain == 0.5

    def test_input_offset_scale(self):
        assert decode_register(0, 64, output_class=False).offset == 2.0

    def test_output_offset_scale(self):
        assert decode_register(0, 64, output_class=True).offset == 64 / 65536

    def test_offset_scales_differ_by_2_to_11(self):
        coarse = decode_register(0, 1000, output_class=False).offset
        fine = decode_register(0, 1000, output_class=True).offset
        assert coarse / fine == 2**11


class TestParseRegisterPayload:
    def test_decodes_big_endian_fields(self):
        payload = struct.pack(">Bhh", 3, -16384, -96)
        assert parse_register_payload(payload, 3, output_class=False) == Calib(0.75, -3.0)

    def test_wrong_length(self):
        with pytest.raises(ResponseError, match="expected 5"):
            parse_register_payload(b"\x03\x00\x00", 3, output_class=False)


class TestCalib:
    def test_apply_and_invert(self):
        cal = Calib(1.25, -3.0)
        assert cal.apply(8.0) == 7.0
        assert cal.invert(7.0) == 8.0

    def test_identity(self):
        assert IDENTITY.apply(123.0) == 123.0


class TestCalibrationStore:
    def test_indexed_in_order(self):
        store = CalibrationStore([Calib(1.0, 0.0), Calib(2.0, 1.0)])
        assert len(store) == 2
        assert store[1] == Calib(2.0, 1.0)
        assert list(store) == [Calib(1.0, 0.0), Calib(2.0, 1.0)]

    def test_read_only(self):
        store = CalibrationStore.zeroed(3)
        with pytest.raises(TypeError):
            store[0] = Calib(2.0, 0.0)

    def test_zeroed(self):
        assert all(entry == IDENTITY for entry in CalibrationStore.zeroed(17))

    def test_out_of_range_is_an_error(self):
        with pytest.raises(IndexError):
            CalibrationStore.zeroed(2)[2]
