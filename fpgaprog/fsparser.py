"""Parser for Gowin ``.fs`` bitstream files (ASCII '0'/'1' lines)."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

__all__ = ["reverse_byte", "bits_to_int", "FsParser"]

# Number of configuration lines for each device, keyed by IDCODE.
_LINES_BY_IDCODE = {
    0x0900281B: 274,  # GW1N-1
    0x0900381B: 274,  # GW1N-1S
    0x0100681B: 274,  # GW1NZ-1
    0x0100181B: 494,  # GW1N-2
    0x1100181B: 494,  # GW1N-2B
    0x0300081B: 494,  # GW1NS-2
    0x0300181B: 494,  # GW1NSx-2C
    0x0100981B: 494,  # GW1NSR-4C
    0x0100381B: 494,  # GW1N-4(ES)
    0x1100381B: 494,  # GW1N-4B
    0x0100481B: 712,  # GW1N-6(9C ES?)
    0x1100481B: 712,  # GW1N-9C
    0x0100581B: 712,  # GW1N-9(ES)
    0x1100581B: 712,  # GW1N-9
    0x0000081B: 1342,  # GW2A-18
    0x0000281B: 2038,  # GW2A-55
}

# Devices whose address length is not a multiple of a byte.
_PADDED_IDCODES = {0x0100481B, 0x1100481B, 0x0100581B, 0x1100581B}

_MASK64 = (1 << 64) - 1


def reverse_byte(value: int) -> int:
    """Return the 8-bit value with its bit order reversed."""
    return int(format(value & 0xFF, "08b")[::-1], 2)


def bits_to_int(bits: str) -> int:
    """Convert a string of '1'/'0' characters to an integer (MSB first).

    Any character other than '1' counts as a zero bit.
    """
    value = 0
    for char in bits:
        value = (value << 1) | (1 if char == "1" else 0)
    return value


def _byte_at(bits: str, start: int, width: int = 8) -> int:
    return bits_to_int(bits[start:start + width].ljust(width, "0"))


class FsParser:
    """Reads an ``.fs`` file: header fields, raw bit data and data checksum."""

    def __init__(self, data: str | bytes, reverse_bytes: bool = False,
                 verbose: bool = False) -> None:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("ascii")
        self._raw = data
        self.reverse_bytes = reverse_bytes
        self.verbose = verbose
        self.header: dict[str, str] = {}
        self.bit_data = b""
        self.bit_length = 0
        self.checksum = 0
        self.idcode = 0
        self.compressed = False
        self._zero8 = 0xFF
        self._zero4 = 0xFF
        self._zero2 = 0xFF
        self._end_header = 0
        self._lines: list[str] = []

    def _parse_header(self) -> None:
        in_header = True
        line_index = 0
        for line in self._raw.split("\n"):
            if not line:
                break
            if line.startswith("/"):
                continue
            if line.endswith("\r"):
                line = line[:-1]
            self._lines.append(line)
            if not in_header:
                continue

            key = _byte_at(line, 0) & 0x7F
            val = bits_to_int(line) & _MASK64

            if key == 0x06:
                self.idcode = val & 0xFFFFFFFF
                self.header["idcode"] = f"{self.idcode:08x}"
            elif key == 0x0A:
                self.header["CheckSum"] = f"{val & 0xFFFF:04x}"
            elif key == 0x0B:
                self.header["SecurityBit"] = "ON"
            elif key == 0x10:
                self.header["loading_rate"] = str(0xFF & (val >> 16))
                self.compressed = bool(0x01 & (val >> 13))
                self.header["Compress"] = "ON" if self.compressed else "OFF"
                self.header["ProgramDoneBypass"] = (
                    "ON" if 0x01 & (val >> 12) else "OFF")
            elif key == 0x51:
                self._zero8 = 0xFF & (val >> 16)
                self._zero4 = 0xFF & (val >> 8)
                self._zero2 = 0xFF & val
            elif key == 0x52:
                self.header["SPIAddr"] = f"{val & 0xFFFFFFFF:08x}"
            elif key == 0x3B:
                in_header = False
                self.header["CRCCheck"] = "ON" if 0x01 & (val >> 23) else "OFF"
                self.header["ConfDataLength"] = str(0xFFFF & val)
                self._end_header = line_index
            line_index += 1

    def _expand(self, line: str, drop: int) -> str:
        if not self.compressed:
            return line[:len(line) - drop] if len(line) >= drop else line
        parts = []
        for i in range(0, max(len(line) - drop, 0), 8):
            c = _byte_at(line, i)
            if c == self._zero8:
                parts.append("0" * 64)
            elif c == self._zero4:
                parts.append("0" * 32)
            elif c == self._zero2:
                parts.append("0" * 16)
            else:
                parts.append(line[i:i + 8])
        return "".join(parts)

    def parse(self) -> "FsParser":
        """Parse the content; fills header, bit data and checksum."""
        self._parse_header()

        converted = bytearray()
        for line in self._lines:
            for i in range(0, len(line), 8):
                byte = _byte_at(line, i)
                converted.append(reverse_byte(byte) if self.reverse_bytes else byte)
        self.bit_data = bytes(converted)
        self.bit_length = len(self.bit_data) * 8

        if self.idcode == 0:
            logger.warning("IDCODE not found")

        nb_line = _LINES_BY_IDCODE.get(self.idcode, 0)
        if self.idcode not in _LINES_BY_IDCODE:
            logger.warning("Unknown IDCODE")
        padding = 0
        if self.idcode in _PADDED_IDCODES:
            padding = 4
            if self.compressed:
                padding += 5 * 8

        try:
            conf_length = int(self.header["ConfDataLength"])
        except KeyError:
            raise ValueError("missing configuration data length in header") from None
        nb_line = min(nb_line, conf_length)

        data_lines = self._lines[self._end_header + 1:]
        data_lines = (data_lines + [""] * nb_line)[:nb_line]

        drop = 6 * 8
        if self.header.get("CRCCheck") == "ON":
            drop += 2 * 8

        payload = "".join(self._expand(line, drop)[padding:] for line in data_lines)

        self.checksum = sum(
            _byte_at(payload, pos, 16) for pos in range(0, len(payload), 16)
        ) & 0xFFFF

        if self.verbose:
            print(f"checksum 0x{self.checksum:04x}")
        return self