import pytest

from fpgaprog.ftdi_jtag_mpsse import FtdiJtagMpsse
from fpgaprog.mpsse import (
    LOOPBACK_END,
    LOOPBACK_START,
    MPSSE_BITMODE,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    MPSSE_WRITE_TMS,
    SEND_IMMEDIATE,
    SET_BITS_LOW,
    ChipType,
    FtdiTransport,
    MpsseBitConfig,
)

TMS_CMD = MPSSE_WRITE_TMS | MPSSE_LSB | MPSSE_BITMODE | MPSSE_WRITE_NEG
TDI_CMD = MPSSE_LSB | MPSSE_DO_WRITE | MPSSE_WRITE_NEG


class FakeTransport(FtdiTransport):
    def __init__(self, chip=ChipType.FT2232H, product="Test Probe"):
        self._chip = chip
        self._product = product
        self.writes = []
        self.rx = bytearray()
        self.read_requests = []
        self.closed = False

    @property
    def chip_type(self):
        return self._chip

    @property
    def max_packet_size(self):
        return 512

    @property
    def product(self):
        return self._product

    def usb_reset(self):
        pass

    def set_bitmode(self, bitmask, mode):
        pass

    def purge_buffers(self):
        pass

    def set_latency_timer(self, latency):
        pass

    def set_baudrate(self, baudrate):
        pass

    def read_data(self, length):
        self.read_requests.append(length)
        if self.rx:
            chunk = bytes(self.rx[:length])
            del self.rx[:length]
            return chunk
        return bytes(length)

    def write_data(self, data):
        self.writes.append(bytes(data))
        return len(data)

    def set_read_chunk_size(self, size):
        pass

    def set_write_chunk_size(self, size):
        pass

    def close(self):
        self.closed = True

    @property
    def written(self):
        return b"".join(self.writes)


def make(chip=ChipType.FT2232H, product="Test Probe", bit_low_val=0,
         invert=False, clk=6_000_000):
    transport = FakeTransport(chip, product)
    cable = MpsseBitConfig(bit_low_val=bit_low_val, bit_low_dir=0x0B)
    jtag = FtdiJtagMpsse(transport, cable, clk, invert, 0, None)
    transport.writes.clear()
    transport.read_requests.clear()
    return jtag, transport


def test_init_sends_pin_configuration_and_sets_state():
    transport = FakeTransport()
    cable = MpsseBitConfig(bit_low_val=0x08, bit_low_dir=0x0B)
    jtag = FtdiJtagMpsse(transport, cable, 6_000_000, False, 0, None)
    assert bytes((SET_BITS_LOW, 0x08, 0x0B)) in transport.written
    assert jtag.curr_tms == 1
    assert jtag.curr_tdi == 0
    assert jtag.read_mode == 0


def test_invert_read_edge_selects_negative_edge():
    jtag, _ = make(invert=True)
    assert jtag.read_mode == MPSSE_READ_NEG


def test_digilent_fast_clock_switches_read_edge():
    jtag, _ = make(product="Digilent USB Device")
    assert jtag.read_mode == 0
    real = jtag.set_clk_freq(30_000_000)
    assert real == 30_000_000
    assert jtag.read_mode == MPSSE_READ_NEG
    jtag.set_clk_freq(1_000_000)
    assert jtag.read_mode == 0


def test_product_argument_enables_ch552_workaround():
    transport = FakeTransport()
    jtag = FtdiJtagMpsse(transport, MpsseBitConfig(), 6_000_000, False, 0,
                         "Sipeed-Debug")
    assert jtag.ch552_workaround is True
    transport.read_requests.clear()
    assert jtag.write_tms(b"\x01", 1, True) == 1
    assert transport.read_requests == [1]


def test_write_tms_flush():
    jtag, transport = make()
    assert jtag.write_tms(b"\x1f", 5, True) == 5
    assert transport.written == bytes((TMS_CMD, 4, 0x80 | 0x1F))


def test_write_tms_splits_in_six_bit_commands():
    jtag, transport = make()
    assert jtag.write_tms(b"\x7f", 7, True) == 7
    assert transport.written == bytes((TMS_CMD, 5, 0x80 | 0b111111,
                                       TMS_CMD, 0, 0x81))


def test_write_tms_without_flush_keeps_buffer():
    jtag, transport = make()
    jtag.write_tms(b"\x01", 1, False)
    assert transport.writes == []
    assert jtag.pending == 3
    assert jtag.write_tms(b"", 0, True) == 0


def test_write_tms_rejects_short_buffer():
    jtag, _ = make()
    with pytest.raises(ValueError):
        jtag.write_tms(b"\x01", 9, True)


def test_toggle_clk_uses_clock_commands_on_h_chips():
    jtag, transport = make(chip=ChipType.FT2232H)
    assert jtag.toggle_clk(0, 0, 20) == 20
    jtag.flush()
    assert transport.written == bytes((0x8F, 1, 0, 0x8E, 3))


def test_toggle_clk_falls_back_to_tms_on_other_chips():
    jtag, transport = make(chip=ChipType.FT2232C)
    assert jtag.toggle_clk(1, 0, 3) == 3
    jtag.flush()
    assert transport.written == bytes((TMS_CMD, 2, 0x80 | 0b111))


def test_write_tdi_bytes_without_read():
    jtag, transport = make()
    assert jtag.write_tdi(b"\x12\x34", 16, False, False) == b""
    assert transport.written == bytes((TDI_CMD, 1, 0)) + b"\x12\x34"


def test_write_tdi_single_byte_uses_bit_command():
    jtag, transport = make()
    jtag.write_tdi(b"\xab", 8, False, False)
    assert transport.written == bytes((TDI_CMD | MPSSE_BITMODE, 7, 0xAB))


def test_write_tdi_read_returns_received_bytes():
    jtag, transport = make()
    transport.rx += b"\xde\xad"
    result = jtag.write_tdi(b"\x00\x00", 16, False, True)
    assert result == b"\xde\xad"
    assert transport.written.endswith(bytes((SEND_IMMEDIATE,)))


def test_write_tdi_residual_bits_are_realigned():
    jtag, transport = make()
    transport.rx += b"\xa0"
    assert jtag.write_tdi(b"\x0f", 4, False, True) == b"\x0a"


def test_write_tdi_last_bit_sent_with_tms():
    jtag, transport = make()
    jtag.write_tdi(b"\x80", 8, True, False)
    assert transport.written == bytes((TDI_CMD | MPSSE_BITMODE, 6, 0x80,
                                       TMS_CMD, 0, 0x81))
    transport.writes.clear()
    jtag.write_tdi(b"\x00", 8, True, False)
    assert transport.written.endswith(bytes((TMS_CMD, 0, 0x01)))


def test_write_tdi_last_with_read_merges_final_bit():
    jtag, transport = make()
    transport.rx += b"\xfe\x80"
    assert jtag.write_tdi(b"\x00", 8, True, True) == b"\xff"


def test_write_tdi_last_with_zero_length_raises():
    jtag, _ = make()
    with pytest.raises(ValueError):
        jtag.write_tdi(None, 0, True, False)


def test_write_tms_tdi_pure_tdi_round_trip():
    jtag, transport = make()
    transport.rx += b"\x5a"
    tdo = jtag.write_tms_tdi(b"\x00", b"\x5a", 8)
    assert tdo == b"\x5a"
    cmd = TDI_CMD | MPSSE_DO_READ | MPSSE_BITMODE
    assert bytes((cmd, 7, 0x5A)) in transport.written
    assert jtag.curr_tms == 0


def test_write_tms_tdi_pure_tms_sequence():
    jtag, transport = make()
    tdo = jtag.write_tms_tdi(b"\x07", b"\x00", 3)
    assert len(tdo) == 1
    assert bytes((TMS_CMD | MPSSE_DO_READ, 2, 0b111)) in transport.written
    assert jtag.curr_tms == 1


def test_write_tms_tdi_rejects_short_buffers():
    jtag, _ = make()
    with pytest.raises(ValueError):
        jtag.write_tms_tdi(b"\x00", b"\x00\x00", 16)


def test_close_runs_loopback_and_releases():
    jtag, transport = make()
    jtag.close()
    assert bytes((LOOPBACK_START,)) in transport.written
    assert transport.written.rstrip(bytes((SEND_IMMEDIATE,))).endswith(
        bytes((LOOPBACK_END,)))
    assert transport.closed is True