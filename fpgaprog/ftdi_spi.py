"""SPI master over an FTDI MPSSE channel."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from .gpio import GpioMpsse
from .mpsse import (
    BITMODE_MPSSE,
    INTERFACE_B,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    FtdiTransport,
    MpsseBitConfig,
)

logger = logging.getLogger(__name__)

__all__ = ["SpiTimeoutError", "CsMode", "Endianness", "SpiPins", "FtdiSpi"]

_WRITE_ONLY_CHUNK = 4096


class SpiTimeoutError(TimeoutError):
    """Raised when a polled status never reaches the expected value."""


class CsMode(enum.IntEnum):
    """Chip-select handling."""

    AUTO = 0
    MANUAL = 1


class Endianness(enum.IntEnum):
    """Bit order on the wire."""

    MSB_FIRST = 0
    LSB_FIRST = 1


@dataclass
class SpiPins:
    """Pin masks; zero keeps the default."""

    cs_pin: int = 0
    sck_pin: int = 0
    holdn_pin: int = 0
    wpn_pin: int = 0


def _default_cable() -> MpsseBitConfig:
    return MpsseBitConfig(vid=0x403, pid=0x6010, interface=INTERFACE_B,
                          bit_low_val=0x08, bit_low_dir=0x0B,
                          bit_high_val=0x08, bit_high_dir=0x0B, index=0)


class FtdiSpi(GpioMpsse):
    """SPI master: SCLK ADBUS0, MOSI ADBUS1, MISO ADBUS2, CS ADBUS3 by default."""

    def __init__(self, transport: FtdiTransport, cable: MpsseBitConfig | None = None,
                 pins: SpiPins | None = None, clk_hz: int = 6_000_000,
                 verbose: int = 0) -> None:
        super().__init__(transport, cable if cable is not None else _default_cable(),
                         clk_hz, verbose)
        self.cs_bits = 1 << 3
        self.clk = 1 << 0
        self.holdn = 0
        self.wpn = 0
        if pins is not None:
            if pins.cs_pin:
                self.cs_bits = pins.cs_pin
            if pins.sck_pin:
                self.clk = pins.sck_pin
            if pins.holdn_pin:
                self.holdn = pins.holdn_pin
            if pins.wpn_pin:
                self.wpn = pins.wpn_pin

        self.cs = 0
        self.clk_idle = 0
        self.wr_mode = 0
        self.rd_mode = 0
        self.endian = 0
        self.cs_mode = CsMode.AUTO

        # clk belongs to the MPSSE engine; CS, HOLDn and WPn are plain outputs
        free_pins = self.cs_bits | self.holdn | self.wpn
        self.gpio_set_output(free_pins)
        self.gpio_set(free_pins)

        self.set_mode(0)
        self.set_cs_mode(CsMode.AUTO)
        self.set_endianness(Endianness.MSB_FIRST)

        self.init(1, 0x00, BITMODE_MPSSE)

    def set_mode(self, mode: int) -> None:
        """Select SPI mode 0..3 and drive the clock pin to its idle level."""
        if mode == 0:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, MPSSE_WRITE_NEG, 0
        elif mode == 1:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, 0, MPSSE_READ_NEG
        elif mode == 2:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, 0, MPSSE_READ_NEG
        elif mode == 3:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, MPSSE_WRITE_NEG, 0
        else:
            raise ValueError(f"invalid SPI mode {mode}")
        if self.clk_idle:
            self.gpio_set(self.clk)
        else:
            self.gpio_clear(self.clk)

    def set_endianness(self, endian: Endianness | int) -> None:
        """Record the bit order."""
        self.endian = 0 if endian == Endianness.MSB_FIRST else MPSSE_LSB

    def set_cs_mode(self, cs_mode: CsMode | int) -> None:
        """Choose automatic or manual chip-select handling."""
        self.cs_mode = CsMode(cs_mode)

    def conf_cs(self, state: int) -> None:
        """Drive CS low when ``state`` is zero, high otherwise (sent twice)."""
        for _ in range(2):
            if state == 0:
                self.gpio_clear(self.cs_bits)
            else:
                self.gpio_set(self.cs_bits)

    def set_cs(self) -> None:
        """Deassert chip select (drive high)."""
        self.cs = self.cs_bits
        self.conf_cs(self.cs)

    def clear_cs(self) -> None:
        """Assert chip select (drive low)."""
        self.cs = 0
        self.conf_cs(self.cs)

    def write_then_read(self, tx: bytes, rx_len: int) -> bytes:
        """Send ``tx`` then read ``rx_len`` bytes within one CS assertion."""
        self.set_cs_mode(CsMode.MANUAL)
        self.clear_cs()
        try:
            self.write_and_read(len(tx), tx, False)
            return self.write_and_read(rx_len, None, True)
        finally:
            self.set_cs()
            self.set_cs_mode(CsMode.AUTO)

    def write_and_read(self, count: int, tx: bytes | None, read: bool) -> bytes:
        """Clock ``count`` bytes, sending ``tx`` if given; return bytes read."""
        if tx is not None and len(tx) < count:
            raise ValueError("tx shorter than the requested count")
        max_xfer = self.buffer_size if read else _WRITE_ONLY_CHUNK
        command = ((MPSSE_DO_READ | self.rd_mode) if read else 0) | \
                  ((MPSSE_DO_WRITE | self.wr_mode) if tx is not None else 0)

        if self.cs_mode == CsMode.AUTO:
            self.clear_cs()
        self.write()

        received = bytearray()
        pos = 0
        while pos < count:
            xfer = min(count - pos, max_xfer)
            frame = bytearray((command, (xfer - 1) & 0xFF, ((xfer - 1) >> 8) & 0xFF))
            if tx is not None:
                frame += tx[pos:pos + xfer]
            self.store(bytes(frame))
            if read:
                received += self.read(xfer)
            else:
                self.write()
            pos += xfer

        if self.cs_mode == CsMode.AUTO:
            self.set_cs()
        return bytes(received)

    def spi_put_cmd(self, cmd: int, tx: bytes | None, length: int,
                    read: bool = False) -> bytes:
        """Send ``cmd`` followed by ``length`` bytes; return the bytes after ``cmd``."""
        payload = bytes(tx[:length]) if tx is not None else bytes(length)
        if len(payload) < length:
            raise ValueError("tx shorter than the requested length")
        rx = self.write_and_read(length + 1, bytes((cmd & 0xFF,)) + payload, read)
        return rx[1:] if read else b""

    def spi_put(self, tx: bytes | None, length: int, read: bool = False) -> bytes:
        """Transfer ``length`` bytes; return what was read."""
        return self.write_and_read(length, tx, read)

    def spi_wait(self, cmd: int, mask: int, cond: int, timeout: int,
                 verbose: bool = False) -> int:
        """Send ``cmd`` and poll the answer until ``answer & mask == cond``.

        Returns the last status byte; raises :class:`SpiTimeoutError` after
        ``timeout`` reads.
        """
        count = 0
        status = 0
        self.set_cs_mode(CsMode.MANUAL)
        self.clear_cs()
        try:
            self.write_and_read(1, bytes((cmd & 0xFF,)), False)
            while True:
                status = self.write_and_read(1, None, True)[0]
                count += 1
                if count == timeout:
                    logger.error("timeout: %02x %d", status, count)
                    break
                if verbose:
                    print(f"{status:02x} {mask:02x} {cond:02x} {count:02x}")
                if (status & mask) == cond:
                    break
        finally:
            self.set_cs()
            self.set_cs_mode(CsMode.AUTO)

        if count == timeout:
            raise SpiTimeoutError(f"wait: status {status:02x} after {count} reads")
        return status