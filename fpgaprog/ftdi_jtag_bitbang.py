"""JTAG probe driven by bit-banging the pins of an FTDI chip."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .mpsse import (
    BITMODE_BITBANG,
    BITMODE_SYNCBB,
    FtdiTransport,
    Mpsse,
    MpsseBitConfig,
    MpsseError,
)

logger = logging.getLogger(__name__)

__all__ = ["JtagPins", "FtdiJtagBitbang"]

_PIN_MIN = 0  # TXD
_PIN_MAX = 7  # RI
_MAX_CLK_HZ = 3_000_000
_BITBANG_BUFFER = 4096
_PID_FT232R = 0x6001
_PID_FT231X = 0x6015


@dataclass
class JtagPins:
    """Pin numbers (0..7) of the data bus used for each JTAG signal."""

    tck_pin: int
    tms_pin: int
    tdi_pin: int
    tdo_pin: int


def _bit(data: bytes | bytearray, pos: int) -> int:
    return (data[pos >> 3] >> (pos & 0x07)) & 0x01


class FtdiJtagBitbang(Mpsse):
    """JTAG access where every TCK edge is one byte written to the data bus.

    Bit buffers are LSB first: bit ``i`` is ``data[i // 8] >> (i % 8) & 1``.
    """

    def __init__(self, transport: FtdiTransport, cable: MpsseBitConfig,
                 pins: JtagPins, clk_hz: int = 3_000_000, verbose: int = 0,
                 pid: int | None = None) -> None:
        for pin in (pins.tck_pin, pins.tms_pin, pins.tdi_pin, pins.tdo_pin):
            if not _PIN_MIN <= pin <= _PIN_MAX:
                raise ValueError(f"Invalid pin ID {pin}")

        super().__init__(transport, cable, clk_hz, verbose)
        self.tck_pin = 1 << pins.tck_pin
        self.tms_pin = 1 << pins.tms_pin
        self.tdi_pin = 1 << pins.tdi_pin
        self.tdo_pin = 1 << pins.tdo_pin
        self._bitmode = 0
        self._curr_tms = 0
        self._bb = bytearray()

        pid = cable.pid if pid is None else pid
        self.pid = pid
        if pid == _PID_FT232R:
            self.rx_size = 256
        elif pid == _PID_FT231X:
            self.rx_size = 512
        else:
            self.rx_size = self.buffer_size

        # let the USB stack split transfers to the right packet size
        self.buffer_size = _BITBANG_BUFFER

        self.set_clk_freq(clk_hz)
        self.init(1, self._out_mask, BITMODE_BITBANG)
        self._set_bitmode(BITMODE_BITBANG)

    @property
    def _out_mask(self) -> int:
        return self.tck_pin | self.tms_pin | self.tdi_pin

    def set_clk_freq(self, clk_hz: int) -> int:
        """Set the bitbang rate, limited to 3 MHz; return the rate used."""
        if clk_hz <= 0:
            raise ValueError("clock frequency must be positive")
        real = clk_hz
        if real > _MAX_CLK_HZ:
            logger.warning("Jtag probe limited to 3MHz")
            real = _MAX_CLK_HZ
        logger.info("Jtag frequency : requested %dHz -> real %dHz", clk_hz, real)
        self.transport.set_baudrate(real)
        self._clk_hz = real
        return real

    def _set_bitmode(self, mode: int) -> None:
        if self._bitmode == mode:
            return
        self._bitmode = mode
        self.transport.set_bitmode(self._out_mask, mode)
        self.transport.purge_buffers()

    def _write(self, tdo: bytearray | None, byte_offset: int, nb_bit: int) -> int:
        """Send the buffered states; when ``tdo`` is given, sample TDO into it."""
        num = len(self._bb)
        if num == 0:
            return 0
        self._set_bitmode(BITMODE_SYNCBB if tdo is not None else BITMODE_BITBANG)

        sent = self.transport.write_data(bytes(self._bb))
        if sent != num:
            raise MpsseError(f"problem {sent} written")

        if tdo is not None:
            samples = self.transport.read_data(num)
            if len(samples) != num:
                raise MpsseError(f"problem {len(samples)} read")
            # TDO is sampled on the rising edge: keep odd samples only,
            # shifting each bit in from the MSB side (LSB first on the wire)
            offset = 0
            for i in range(num - nb_bit * 2 + 1, num, 2):
                index = byte_offset + (offset >> 3)
                if index < len(tdo):
                    tdo[index] = ((0x80 if samples[i] & self.tdo_pin else 0x00)
                                  | (tdo[index] >> 1))
                offset += 1
        self._bb.clear()
        return sent

    def write_tms(self, tms: bytes, length: int, flush_buffer: bool = False) -> int:
        """Queue ``length`` TMS bits with TDI high; return ``length``."""
        if length == 0:
            return self.flush() if flush_buffer else 0
        if len(tms) < (length + 7) // 8:
            raise ValueError(f"tms holds fewer than {length} bits")

        if len(self._bb) + 2 > self.buffer_size:
            self.flush()

        for i in range(length):
            self._curr_tms = self.tms_pin if _bit(tms, i) else 0
            val = self.tdi_pin | self._curr_tms
            self._bb.append(val)
            self._bb.append(val | self.tck_pin)
            if len(self._bb) + 2 > self.buffer_size:
                self._write(None, 0, 0)

        if flush_buffer:
            self._write(None, 0, 0)
        return length

    def write_tdi(self, tx: bytes | None, length: int, end: bool = False,
                  read: bool = False) -> bytes:
        """Shift ``length`` TDI bits, raising TMS on the last one when ``end``.

        Returns the TDO bits when ``read``, otherwise ``b""``.
        """
        if length < 0:
            raise ValueError("length must not be negative")
        if length == 0:
            return b""
        if tx is not None and len(tx) < (length + 7) // 8:
            raise ValueError(f"tx holds fewer than {length} bits")

        xfer_size = self.rx_size if read else self.buffer_size
        if length * 2 + 1 < xfer_size:
            chunk = length
        else:
            chunk = ((xfer_size >> 1) // 8) * 8

        rx = bytearray((length + 7) // 8) if read else None
        rx_pos = 0

        if self._bb:
            self.flush()

        pos = 0
        for i in range(length):
            if end and i == length - 1:
                self._curr_tms = self.tms_pin
            val = self._curr_tms
            if tx is not None and _bit(tx, i):
                val |= self.tdi_pin
            self._bb.append(val)
            self._bb.append(val | self.tck_pin)
            pos += 1
            if pos == chunk:
                pos = 0
                self._write(rx, rx_pos, chunk)
                if read:
                    rx_pos += chunk // 8

        if self._bb:
            pending = len(self._bb)
            self._write(rx if pending > 1 else None, rx_pos, pending // 2)

        return bytes(rx) if rx is not None else b""

    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> int:
        """Generate ``clk_len`` clock cycles with constant TMS and TDI."""
        val = (self.tms_pin if tms else 0) | (self.tdi_pin if tdi else 0)
        for _ in range(clk_len):
            if len(self._bb) + 2 > self.buffer_size:
                self._write(None, 0, 0)
            self._bb.append(val | self.tck_pin)
            self._bb.append(val)
        self._write(None, 0, 0)
        return clk_len

    def flush(self) -> int:
        """Send the buffered states; return the number of bytes sent."""
        return self._write(None, 0, 0)

    def is_full(self) -> bool:
        """True when the buffer holds as many states as one transfer allows."""
        return len(self._bb) == 8 * (self.buffer_size // 8 // 2)