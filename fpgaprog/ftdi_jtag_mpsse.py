"""JTAG probe driven through the MPSSE engine of an FTDI chip."""

from __future__ import annotations

import logging

from .gpio import GpioMpsse
from .mpsse import (
    BITMODE_MPSSE,
    LOOPBACK_END,
    LOOPBACK_START,
    MPSSE_BITMODE,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    MPSSE_WRITE_TMS,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    ChipType,
    FtdiTransport,
    MpsseBitConfig,
)

logger = logging.getLogger(__name__)

__all__ = ["FtdiJtagMpsse"]

# Chips able to output clock cycles without data transfer.
_CLOCK_ONLY_CHIPS = (ChipType.FT2232H, ChipType.FT4232H, ChipType.FT232H)

_CLK_BYTES_CMD = 0x8F   # clock n x 8 bits, no data
_CLK_BITS_CMD = 0x8E    # clock n bits, no data
_MAX_CLK_CHUNK = 0x10000 * 8
_TMS_BITS_PER_CMD = 6
_TMS_TDI_BUFFER = 1024  # bytes kept for a TDI run in write_tms_tdi
_FAST_EDGE_FREQ = 15_000_000


def _byte(data: bytes | bytearray | None, index: int) -> int:
    if data is None or index >= len(data):
        return 0
    return data[index]


def _bit(data: bytes | bytearray, pos: int) -> int:
    return (data[pos >> 3] >> (pos & 0x07)) & 0x01


def _put_bit(buffer: bytearray, pos: int, value: int) -> None:
    mask = 1 << (pos & 0x07)
    if value:
        buffer[pos >> 3] |= mask
    else:
        buffer[pos >> 3] &= ~mask & 0xFF


def _check_length(name: str, data: bytes | bytearray | None, length: int) -> None:
    if data is not None and len(data) < (length + 7) // 8:
        raise ValueError(f"{name} holds fewer than {length} bits")


class FtdiJtagMpsse(GpioMpsse):
    """JTAG access (TMS, TDI/TDO, clock) using MPSSE shift commands.

    Bit buffers are LSB first: bit ``i`` is ``data[i // 8] >> (i % 8) & 1``.
    """

    def __init__(self, transport: FtdiTransport, cable: MpsseBitConfig,
                 clk_hz: int = 6_000_000, invert_read_edge: bool = False,
                 verbose: int = 0, product: str | None = None) -> None:
        self.write_mode = MPSSE_WRITE_NEG  # always write on falling edge
        self.read_mode = 0
        self.invert_read_edge = invert_read_edge
        super().__init__(transport, cable, clk_hz, verbose)
        if product is not None:
            self.product = product
        self.ch552_workaround = self.product.startswith("Sipeed-Debug")
        self._tdo_pos = 0
        self._tms_buf = 0

        self.init(5, 0xFB, BITMODE_MPSSE)
        self._config_edge()

        self.curr_tms = (cable.bit_low_val >> 3) & 0x01
        self.curr_tdi = (cable.bit_low_val >> 1) & 0x01

    def _config_edge(self) -> None:
        """Sample on the falling edge when asked or with fast Digilent cables."""
        fast_digilent = (self.clk_hz >= _FAST_EDGE_FREQ and
                         self.product.startswith("Digilent USB Device"))
        self.read_mode = MPSSE_READ_NEG if (self.invert_read_edge or fast_digilent) else 0

    def set_clk_freq(self, clk_hz: int) -> int:
        """Set the TCK frequency and reselect the read edge; return the real one."""
        real = super().set_clk_freq(clk_hz)
        self._config_edge()
        return real

    @property
    def _tms_cmd(self) -> int:
        return MPSSE_WRITE_TMS | MPSSE_LSB | MPSSE_BITMODE | self.write_mode

    def write_tms(self, tms: bytes, length: int, flush_buffer: bool = False) -> int:
        """Send ``length`` TMS bits (TDI held high); return ``length``."""
        if length == 0:
            return 0
        _check_length("tms", tms, length)

        per_flush = self.buffer_size // 3
        stored = 0
        offset = 0
        remaining = length
        while remaining > 0:
            count = min(remaining, _TMS_BITS_PER_CMD)
            value = 0x80
            for i in range(count):
                value |= _bit(tms, offset) << i
                offset += 1
            self.store(bytes((self._tms_cmd, count - 1, value)))
            stored += 1
            if stored == per_flush:
                stored = 0
                self.write()
                if self.ch552_workaround:
                    self.transport.read_data(length // 8 + 1)
            remaining -= count

        if flush_buffer:
            self.write()
        if self.ch552_workaround:
            self.transport.read_data(length // 8 + 1)
        return length

    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> int:
        """Generate ``clk_len`` clock cycles; return ``clk_len``."""
        if self.transport.chip_type in _CLOCK_ONLY_CHIPS:
            remaining = clk_len
            while remaining:
                chunk = min(remaining, _MAX_CLK_CHUNK)
                if chunk > 8:
                    cycles8 = chunk // 8
                    remaining -= cycles8 * 8
                    cycles8 -= 1
                    self.store(bytes((_CLK_BYTES_CMD, cycles8 & 0xFF,
                                      (cycles8 >> 8) & 0xFF)))
                if remaining and remaining < 9:
                    self.store(bytes((_CLK_BITS_CMD, remaining - 1)))
                    remaining = 0
            return clk_len
        fill = 0xFF if tms else 0x00
        return self.write_tms(bytes([fill]) * ((clk_len + 7) // 8), clk_len, False)

    def flush(self) -> int:
        """Send the buffered commands."""
        return self.write()

    def write_tdi(self, tdi: bytes | None, length: int, last: bool = False,
                  read: bool = False) -> bytes:
        """Shift ``length`` TDI bits, the last one with TMS high when ``last``.

        Returns the TDO bits when ``read``, otherwise ``b""``.
        """
        if length < 0:
            raise ValueError("length must not be negative")
        if last and length == 0:
            raise ValueError("a final bit needs at least one bit to shift")
        _check_length("tdi", tdi, length)

        rx = bytearray((length + 7) // 8)
        real_len = length - 1 if last else length
        nb_byte = real_len >> 3
        nb_bit = real_len & 0x07
        xfer = self.buffer_size - 3
        command = MPSSE_LSB
        if tdi is not None:
            command |= MPSSE_DO_WRITE | self.write_mode
        if read:
            command |= MPSSE_DO_READ | self.read_mode

        if nb_byte + self.pending + 3 > self.buffer_size:
            self.write()

        # a single full byte is cheaper as a bit command
        if nb_byte == 1 and nb_bit == 0 and not last:
            nb_byte, nb_bit = 0, 8

        tx_pos = 0
        rx_pos = 0
        while nb_byte:
            xfer_len = min(nb_byte, xfer)
            self.store(bytes((command, (xfer_len - 1) & 0xFF,
                              ((xfer_len - 1) >> 8) & 0xFF)))
            if tdi is not None:
                self.store(tdi[tx_pos:tx_pos + xfer_len])
                tx_pos += xfer_len
            if read:
                rx[rx_pos:rx_pos + xfer_len] = self.read(xfer_len)
                rx_pos += xfer_len
            elif self.ch552_workaround:
                self.write()
                self.transport.read_data(xfer_len)
            elif not last:
                self.write()
            nb_byte -= xfer_len

        double_read = nb_bit != 0
        if nb_bit:
            self.store(bytes((command | MPSSE_BITMODE, nb_bit - 1)))
            if tdi is not None:
                self.store(_byte(tdi, tx_pos))
            if read and (not last or self.ch552_workaround):
                rx[rx_pos] = self.read(1)[0] >> (8 - nb_bit)
                double_read = False
            elif self.ch552_workaround:
                self.write()
                self.transport.read_data(nb_bit)
            elif not last:
                self.write()

        if last:
            last_bit = _byte(tdi, tx_pos) & (1 << nb_bit)
            tms_cmd = self._tms_cmd
            if read:
                tms_cmd |= MPSSE_DO_READ | self.read_mode
            self.store(bytes((tms_cmd, 0x00, 0x81 if last_bit else 0x01)))
            if read:
                answer = self.read(2 if double_read else 1)
                if double_read:
                    rx[rx_pos] = answer[0] >> (8 - nb_bit)
                rx[rx_pos] |= (answer[-1] & 0x80) >> (7 - nb_bit)
            elif self.ch552_workaround:
                self.write()
                self.transport.read_data(1)
            else:
                self.write()

        if read:
            logger.debug("tdo %s", bytes(rx).hex())
            return bytes(rx)
        return b""

    def _update_tdo_buff(self, received: bytes, tdo: bytearray, length: int) -> None:
        for i in range(length):
            _put_bit(tdo, self._tdo_pos, _bit(received, i))
            self._tdo_pos += 1

    def _update_tms_buff(self, bit: int, offset: int, tdi: int, tdo: bytearray,
                         end: bool = False) -> int:
        """Append a TMS bit; send the sequence when full or at ``end``."""
        if not end:
            if bit:
                self._tms_buf |= 1 << offset
            else:
                self._tms_buf &= ~(1 << offset) & 0xFF
            offset += 1
        if offset == _TMS_BITS_PER_CMD or end:
            if tdi:
                self._tms_buf |= 0x80
            else:
                self._tms_buf &= 0x7F
            command = (self._tms_cmd | MPSSE_DO_READ | self.read_mode,
                       offset - 1, self._tms_buf)
            if self.verbose:
                print(f"\t{command[0]:02x} {command[1]:02d} {command[2]:02x}")
            self.store(bytes(command))
            self._update_tdo_buff(self.read(1), tdo, offset)
            offset = 0
            self._tms_buf = 0
        return offset

    def write_tms_tdi(self, tms: bytes, tdi: bytes, length: int) -> bytes:
        """Send ``length`` TMS/TDI bit pairs and return the TDO bits."""
        _check_length("tms", tms, length)
        _check_length("tdi", tdi, length)

        tdo = bytearray((length + 7) // 8)
        tdi_buf = bytearray(_TMS_TDI_BUFFER)
        mode = 0  # 0 none, 1 TDI run, 2 TMS run
        buff_len = 0
        self._tms_buf = 0
        self._tdo_pos = 0

        for pos in range(length):
            tms_bit = _bit(tms, pos)
            tdi_bit = _bit(tdi, pos)

            if tms_bit == self.curr_tms:
                if mode == 2 and buff_len != 0 and tdi_bit == self.curr_tdi:
                    buff_len = self._update_tms_buff(tms_bit, buff_len, tdi_bit, tdo)
                else:
                    if mode != 1 and buff_len != 0:
                        buff_len = self._update_tms_buff(0, buff_len, self.curr_tdi,
                                                         tdo, end=True)
                    _put_bit(tdi_buf, buff_len, tdi_bit)
                    buff_len += 1
                    mode = 1
            else:
                if mode == 1 and buff_len > 0:
                    is_end = False
                    # TMS 0 -> 1 rides along with the last TDI bit
                    if self.curr_tms == 0 and tms_bit == 1:
                        _put_bit(tdi_buf, buff_len, tdi_bit)
                        buff_len += 1
                        is_end = True
                    received = self.write_tdi(bytes(tdi_buf), buff_len, is_end, True)
                    self._update_tdo_buff(received, tdo, buff_len)
                    tdi_buf = bytearray(_TMS_TDI_BUFFER)
                    buff_len = 0
                    if is_end:
                        self.curr_tdi = tdi_bit
                        mode = 1
                        continue
                elif tdi_bit != self.curr_tdi and mode == 2 and buff_len > 0:
                    buff_len = self._update_tms_buff(0, buff_len, self.curr_tdi,
                                                     tdo, end=True)
                    self._tms_buf = 0
                buff_len = self._update_tms_buff(tms_bit, buff_len, tdi_bit, tdo)
                mode = 2

            if buff_len == 8 * _TMS_TDI_BUFFER and mode == 1:
                received = self.write_tdi(bytes(tdi_buf), buff_len, False, True)
                self._update_tdo_buff(received, tdo, buff_len)
                tdi_buf = bytearray(_TMS_TDI_BUFFER)
                buff_len = 0
            elif buff_len == _TMS_BITS_PER_CMD and mode == 2:
                buff_len = self._update_tms_buff(0, buff_len, self.curr_tdi,
                                                 tdo, end=True)
                self._tms_buf = 0
            self.curr_tdi = tdi_bit
            self.curr_tms = tms_bit

        if buff_len > 0:
            if mode == 1:
                received = self.write_tdi(bytes(tdi_buf), buff_len, False, True)
                self._update_tdo_buff(received, tdo, buff_len)
            elif mode == 2:
                self._update_tms_buff(0, buff_len, self.curr_tdi, tdo, end=True)

        if self.verbose:
            logger.info("end state: tdi %d tms %d", self.curr_tdi, self.curr_tms)
        return bytes(tdo)

    def close(self) -> None:
        """Wait until everything is shifted out (loopback echo), then release."""
        try:
            probe = bytes((
                SET_BITS_LOW, 0xFF, 0x00,
                SET_BITS_HIGH, 0xFF, 0x00,
                LOOPBACK_START,
                MPSSE_DO_READ | self.read_mode | MPSSE_DO_WRITE |
                self.write_mode | MPSSE_LSB,
                0x04, 0x00,
                0xAA, 0x55, 0x00, 0xFF, 0xAA,
                LOOPBACK_END,
            ))
            self.store(probe)
            echoed = self.read(5)
            if len(echoed) != 5:
                logger.error("Loopback failed, expect problems on later runs %d",
                             len(echoed))
        finally:
            super().close()