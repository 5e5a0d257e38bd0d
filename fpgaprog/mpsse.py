"""FTDI MPSSE engine: command buffering, clock setup and device initialisation."""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "MpsseError",
    "ChipType",
    "MpsseBitConfig",
    "FtdiTransport",
    "Mpsse",
    "SET_BITS_LOW",
    "SET_BITS_HIGH",
    "GET_BITS_LOW",
    "GET_BITS_HIGH",
    "LOOPBACK_START",
    "LOOPBACK_END",
    "TCK_DIVISOR",
    "SEND_IMMEDIATE",
    "DIS_DIV_5",
    "EN_DIV_5",
    "MPSSE_WRITE_NEG",
    "MPSSE_BITMODE",
    "MPSSE_READ_NEG",
    "MPSSE_LSB",
    "MPSSE_DO_WRITE",
    "MPSSE_DO_READ",
    "MPSSE_WRITE_TMS",
    "BITMODE_RESET",
    "BITMODE_BITBANG",
    "BITMODE_MPSSE",
    "BITMODE_SYNCBB",
    "INTERFACE_ANY",
    "INTERFACE_A",
    "INTERFACE_B",
    "INTERFACE_C",
    "INTERFACE_D",
]

# MPSSE opcodes
SET_BITS_LOW = 0x80
GET_BITS_LOW = 0x81
SET_BITS_HIGH = 0x82
GET_BITS_HIGH = 0x83
LOOPBACK_START = 0x84
LOOPBACK_END = 0x85
TCK_DIVISOR = 0x86
SEND_IMMEDIATE = 0x87
DIS_DIV_5 = 0x8A
EN_DIV_5 = 0x8B

# Shift command flags
MPSSE_WRITE_NEG = 0x01
MPSSE_BITMODE = 0x02
MPSSE_READ_NEG = 0x04
MPSSE_LSB = 0x08
MPSSE_DO_WRITE = 0x10
MPSSE_DO_READ = 0x20
MPSSE_WRITE_TMS = 0x40

# Bit modes
BITMODE_RESET = 0x00
BITMODE_BITBANG = 0x01
BITMODE_MPSSE = 0x02
BITMODE_SYNCBB = 0x04

# Channel selection
INTERFACE_ANY = 0
INTERFACE_A = 1
INTERFACE_B = 2
INTERFACE_C = 3
INTERFACE_D = 4

_OPEN_BAUDRATE = 115200


class MpsseError(RuntimeError):
    """Raised when a transfer with the FTDI chip fails."""


class ChipType(enum.IntEnum):
    """FTDI chip families."""

    AM = 0
    BM = 1
    FT2232C = 2
    R = 3
    FT2232H = 4
    FT4232H = 5
    FT232H = 6
    FT230X = 7


@dataclass
class MpsseBitConfig:
    """Cable description: USB ids, channel and default pin values/directions."""

    vid: int = 0x0403
    pid: int = 0x6010
    interface: int = INTERFACE_A
    bit_low_val: int = 0
    bit_low_dir: int = 0
    bit_high_val: int = 0
    bit_high_dir: int = 0
    index: int = -1


class FtdiTransport(abc.ABC):
    """An opened FTDI channel. Methods raise on failure."""

    @property
    @abc.abstractmethod
    def chip_type(self) -> ChipType:
        """Family of the opened chip."""

    @property
    @abc.abstractmethod
    def max_packet_size(self) -> int:
        """USB maximum packet size of the channel."""

    @property
    def product(self) -> str:
        """The USB iProduct string, empty when the device has none."""
        return ""

    @abc.abstractmethod
    def usb_reset(self) -> None:
        """Reset the USB device."""

    @abc.abstractmethod
    def set_bitmode(self, bitmask: int, mode: int) -> None:
        """Select the bit mode and the output pin mask."""

    @abc.abstractmethod
    def purge_buffers(self) -> None:
        """Drop the content of the RX and TX buffers."""

    @abc.abstractmethod
    def set_latency_timer(self, latency: int) -> None:
        """Set the latency timer in milliseconds."""

    @abc.abstractmethod
    def set_baudrate(self, baudrate: int) -> None:
        """Set the baudrate (bitbang clock rate)."""

    @abc.abstractmethod
    def read_data(self, length: int) -> bytes:
        """Read up to ``length`` bytes; may return fewer."""

    @abc.abstractmethod
    def write_data(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""

    @abc.abstractmethod
    def set_read_chunk_size(self, size: int) -> None:
        """Set the read transfer chunk size."""

    @abc.abstractmethod
    def set_write_chunk_size(self, size: int) -> None:
        """Set the write transfer chunk size."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the device."""


def _format_freq(hz: float) -> str:
    if hz >= 1e6:
        return f"{hz / 1e6:2.2f}MHz"
    if hz >= 1e3:
        return f"{hz / 1e3:3.2f}KHz"
    return f"{hz:3.2f}Hz"


class Mpsse:
    """Buffered access to an FTDI channel driven in MPSSE mode."""

    def __init__(self, transport: FtdiTransport, cable: MpsseBitConfig,
                 clk_hz: int, verbose: int = 0) -> None:
        self.transport = transport
        self.cable = cable
        self.verbose = verbose
        self._debug = verbose > 2
        self.vid = cable.vid
        self.pid = cable.pid
        self.index = 0 if cable.index == -1 else cable.index
        self._clk_hz = clk_hz

        transport.set_baudrate(_OPEN_BAUDRATE)
        self.buffer_size = transport.max_packet_size
        if self.buffer_size <= 0:
            raise MpsseError("invalid transfer buffer size")
        self._buffer = bytearray()

        self.product = transport.product or ""
        if not self.product:
            logger.warning("Can't read iProduct field from FTDI: "
                           "considered as empty string")

    @property
    def clk_hz(self) -> int:
        """Current clock frequency in Hz."""
        return self._clk_hz

    @property
    def pending(self) -> int:
        """Number of bytes waiting in the command buffer."""
        return len(self._buffer)

    def init(self, latency: int, bitmask_mode: int, mode: int) -> None:
        """Reset the chip, select ``mode`` and, in MPSSE mode, set clock and pins."""
        transport = self.transport
        transport.usb_reset()
        transport.set_bitmode(0x00, BITMODE_RESET)
        transport.purge_buffers()
        transport.set_latency_timer(latency)
        transport.set_bitmode(bitmask_mode, mode)

        if mode == BITMODE_MPSSE:
            transport.read_data(5)
            self.set_clk_freq(self._clk_hz)

            command = bytearray((SET_BITS_LOW, self.cable.bit_low_val & 0xFF,
                                 self.cable.bit_low_dir & 0xFF))
            if transport.chip_type != ChipType.FT4232H:
                command += bytes((SET_BITS_HIGH, self.cable.bit_high_val & 0xFF,
                                  self.cable.bit_high_dir & 0xFF))
            self.store(bytes(command))
            self.write()

        transport.set_read_chunk_size(self.buffer_size)
        transport.set_write_chunk_size(self.buffer_size)

    def set_clk_freq(self, clk_hz: int) -> int:
        """Program the TCK divisor for ``clk_hz``; return the real frequency."""
        if clk_hz <= 0:
            raise ValueError("clock frequency must be positive")
        requested = clk_hz
        self._clk_hz = clk_hz

        if self.transport.chip_type != ChipType.FT2232C:
            base_freq = 60_000_000
            if clk_hz > 6_000_000:
                use_divide_by_5 = False
                self.store(DIS_DIV_5)
            else:
                use_divide_by_5 = True
                base_freq //= 5
                self.store(EN_DIV_5)
        else:
            base_freq = 12_000_000
            use_divide_by_5 = False

        limit = 6_000_000 if use_divide_by_5 else 30_000_000
        if self._clk_hz > limit:
            logger.warning("Jtag probe limited to %dMHz", limit // 1_000_000)
            self._clk_hz = limit

        presc = ((((base_freq // self._clk_hz) - 1) & 0xFFFFFFFF) // 2) & 0xFFFF
        real_freq = base_freq // ((1 + presc) * 2)
        if real_freq > self._clk_hz:
            presc = (presc + 1) & 0xFFFF
        real_freq = base_freq // ((1 + presc) * 2)

        logger.info("Jtag frequency : requested %s -> real %s",
                    _format_freq(requested), _format_freq(real_freq))
        if self._debug:
            print(f"presc : {presc} input freq : {base_freq} "
                  f"requested freq : {self._clk_hz} real freq : {real_freq:f}")

        self.store(bytes((TCK_DIVISOR, presc & 0xFF, (presc >> 8) & 0xFF)))
        self.write()
        self.transport.read_data(4)
        self.transport.purge_buffers()

        self._clk_hz = real_freq
        return real_freq

    def store(self, data: bytes | bytearray | int) -> None:
        """Append command bytes, sending full buffers as they fill."""
        if isinstance(data, int):
            data = bytes((data & 0xFF,))
        view = memoryview(bytes(data))
        if len(self._buffer) + len(view) > self.buffer_size:
            if len(self._buffer) == self.buffer_size:
                self.write()
            while len(self._buffer) + len(view) > self.buffer_size:
                room = self.buffer_size - len(self._buffer)
                self._buffer += view[:room]
                self.write()
                view = view[room:]
        if len(view):
            self._buffer += view

    def write(self) -> int:
        """Send the buffered commands; return the number of bytes sent."""
        if not self._buffer:
            return 0
        if self._debug:
            print(f"write {len(self._buffer)}")
        sent = self.transport.write_data(bytes(self._buffer))
        if sent != len(self._buffer):
            raise MpsseError(f"fail to write: {sent} of {len(self._buffer)} bytes sent")
        self._buffer.clear()
        return sent

    def read(self, length: int) -> bytes:
        """Flush pending commands and read exactly ``length`` bytes."""
        self.store(SEND_IMMEDIATE)
        self.write()
        received = bytearray()
        while len(received) < length:
            chunk = self.transport.read_data(length - len(received))
            if self._debug:
                print(f"read {len(chunk)}: {bytes(chunk).hex()}")
            received += chunk
        return bytes(received)

    def close(self) -> None:
        """Reset the bit mode, reset and purge the chip, then release it."""
        try:
            self.transport.set_bitmode(0, BITMODE_RESET)
            self.transport.usb_reset()
            self.transport.purge_buffers()
        finally:
            self.transport.close()

    def __enter__(self) -> "Mpsse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()