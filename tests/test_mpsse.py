import pytest

from fpgaprog.mpsse import (
    BITMODE_BITBANG,
    BITMODE_MPSSE,
    BITMODE_RESET,
    DIS_DIV_5,
    EN_DIV_5,
    SEND_IMMEDIATE,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    TCK_DIVISOR,
    ChipType,
    FtdiTransport,
    Mpsse,
    MpsseBitConfig,
    MpsseError,
)


class FakeTransport(FtdiTransport):
    def __init__(self, chip=ChipType.FT2232H, packet_size=64, short_write=False):
        self._chip = chip
        self._packet_size = packet_size
        self.short_write = short_write
        self.calls = []
        self.writes = []
        self.replies = []
        self.closed = False

    @property
    def chip_type(self):
        return self._chip

    @property
    def max_packet_size(self):
        return self._packet_size

    @property
    def product(self):
        return "Test Cable"

    def usb_reset(self):
        self.calls.append(("usb_reset",))

    def set_bitmode(self, bitmask, mode):
        self.calls.append(("set_bitmode", bitmask, mode))

    def purge_buffers(self):
        self.calls.append(("purge",))

    def set_latency_timer(self, latency):
        self.calls.append(("latency", latency))

    def set_baudrate(self, baudrate):
        self.calls.append(("baudrate", baudrate))

    def read_data(self, length):
        if self.replies:
            chunk = self.replies.pop(0)
            return chunk[:length]
        return b"\x00" * length

    def write_data(self, data):
        self.writes.append(bytes(data))
        return len(data) - 1 if self.short_write else len(data)

    def set_read_chunk_size(self, size):
        self.calls.append(("read_chunk", size))

    def set_write_chunk_size(self, size):
        self.calls.append(("write_chunk", size))

    def close(self):
        self.closed = True


CABLE = MpsseBitConfig(bit_low_val=0x08, bit_low_dir=0x0B,
                       bit_high_val=0x01, bit_high_dir=0x03)


def make(chip=ChipType.FT2232H, packet_size=64, clk=6_000_000):
    transport = FakeTransport(chip=chip, packet_size=packet_size)
    return transport, Mpsse(transport, CABLE, clk)


def test_buffer_size_and_product_from_transport():
    transport, mpsse = make(packet_size=128)
    assert mpsse.buffer_size == 128
    assert mpsse.product == "Test Cable"
    assert mpsse.index == 0


def test_set_clk_freq_with_divide_by_5():
    transport, mpsse = make()
    real = mpsse.set_clk_freq(6_000_000)
    assert real == 6_000_000
    assert mpsse.clk_hz == real
    assert transport.writes == [bytes([EN_DIV_5, TCK_DIVISOR, 0, 0])]


def test_set_clk_freq_full_speed():
    transport, mpsse = make()
    real = mpsse.set_clk_freq(30_000_000)
    assert real == 30_000_000
    assert transport.writes == [bytes([DIS_DIV_5, TCK_DIVISOR, 0, 0])]


def test_set_clk_freq_2232c_has_no_divider_command():
    transport, mpsse = make(chip=ChipType.FT2232C)
    mpsse.set_clk_freq(1_000_000)
    assert transport.writes[0][0] == TCK_DIVISOR
    assert len(transport.writes[0]) == 3


@pytest.mark.parametrize("request_hz", [1_000, 100_000, 1_000_001, 2_500_000,
                                        7_000_000, 15_000_000, 40_000_000])
def test_real_frequency_never_exceeds_request(request_hz):
    transport, mpsse = make()
    real = mpsse.set_clk_freq(request_hz)
    assert 0 < real <= request_hz
    assert mpsse.clk_hz == real


def test_set_clk_freq_rejects_zero():
    transport, mpsse = make()
    with pytest.raises(ValueError):
        mpsse.set_clk_freq(0)


def test_init_mpsse_sets_pins():
    transport, mpsse = make()
    mpsse.init(5, 0xFB, BITMODE_MPSSE)
    assert ("set_bitmode", 0x00, BITMODE_RESET) in transport.calls
    assert ("set_bitmode", 0xFB, BITMODE_MPSSE) in transport.calls
    assert ("latency", 5) in transport.calls
    assert transport.writes[-1] == bytes([SET_BITS_LOW, 0x08, 0x0B,
                                          SET_BITS_HIGH, 0x01, 0x03])
    assert ("read_chunk", 64) in transport.calls
    assert ("write_chunk", 64) in transport.calls


def test_init_4232h_only_low_bank():
    transport, mpsse = make(chip=ChipType.FT4232H)
    mpsse.init(1, 0x00, BITMODE_MPSSE)
    assert transport.writes[-1] == bytes([SET_BITS_LOW, 0x08, 0x0B])


def test_init_bitbang_writes_nothing():
    transport, mpsse = make()
    mpsse.init(1, 0x0B, BITMODE_BITBANG)
    assert transport.writes == []
    assert ("set_bitmode", 0x0B, BITMODE_BITBANG) in transport.calls


def test_store_splits_on_buffer_size():
    transport, mpsse = make(packet_size=4)
    payload = bytes(range(10))
    mpsse.store(payload)
    assert transport.writes == [payload[:4], payload[4:8]]
    assert mpsse.pending == 2
    assert mpsse.write() == 2
    assert b"".join(transport.writes) == payload
    assert mpsse.pending == 0


def test_store_single_int():
    transport, mpsse = make()
    mpsse.store(SEND_IMMEDIATE)
    assert mpsse.pending == 1
    mpsse.write()
    assert transport.writes == [bytes([SEND_IMMEDIATE])]


def test_write_empty_sends_nothing():
    transport, mpsse = make()
    assert mpsse.write() == 0
    assert transport.writes == []


def test_short_write_raises():
    transport, mpsse = make()
    transport.short_write = True
    mpsse.store(b"\x01\x02")
    with pytest.raises(MpsseError):
        mpsse.write()


def test_read_assembles_chunks_and_sends_immediate():
    transport, mpsse = make()
    transport.replies = [b"\xaa", b"\xbb\xcc"]
    mpsse.store(b"\x10")
    data = mpsse.read(3)
    assert data == b"\xaa\xbb\xcc"
    assert transport.writes[-1] == bytes([0x10, SEND_IMMEDIATE])


def test_close_resets_and_releases():
    transport, mpsse = make()
    with mpsse:
        pass
    assert transport.closed
    assert ("set_bitmode", 0, BITMODE_RESET) in transport.calls
    assert ("usb_reset",) in transport.calls