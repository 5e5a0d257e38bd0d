"""Parser for Intel HEX data files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .fsparser import reverse_byte

logger = logging.getLogger(__name__)

__all__ = ["IhexError", "DataSection", "IhexParser"]

_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")

_LEN_BASE = 1
_ADDR_BASE = 3
_TYPE_BASE = 7
_DATA_BASE = 9

_RECORD_DATA = 0
_RECORD_EOF = 1


class IhexError(ValueError):
    """Raised when an Intel HEX file is malformed."""


@dataclass
class DataSection:
    """A run of contiguous data bytes starting at ``addr``."""

    addr: int
    length: int = 0
    data: bytearray = field(default_factory=bytearray)


def _hex_field(line: str, start: int, width: int) -> int:
    text = line[start:start + width]
    if len(text) != width or not _HEX_DIGITS.fullmatch(text):
        raise IhexError(f"invalid hexadecimal field in line {line!r}")
    return int(text, 16)


class IhexParser:
    """Reads an Intel HEX file into a flat byte image and a list of sections."""

    def __init__(self, data: str | bytes, reverse_order: bool = False,
                 verbose: bool = False) -> None:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("ascii")
        self._raw = data
        self.reverse_order = reverse_order
        self.verbose = verbose
        self._base_addr = 0
        self.bit_data = bytearray()
        self.bit_length = 0
        self.sections: list[DataSection] = []

    def _lines(self) -> list[str]:
        lines = self._raw.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return lines

    def parse(self) -> "IhexParser":
        """Parse the content; raises :class:`IhexError` on malformed input.

        Sections are only recorded once the end-of-file record is met.
        """
        self.bit_data = bytearray()
        self.bit_length = 0
        self.sections = []
        current: DataSection | None = None
        next_addr = 0

        for line in self._lines():
            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith("#"):
                continue
            if not line.startswith(":"):
                raise IhexError("a line must start with ':'")

            byte_len = _hex_field(line, _LEN_BASE, 2)
            addr = _hex_field(line, _ADDR_BASE, 4)
            record_type = _hex_field(line, _TYPE_BASE, 2)
            checksum = _hex_field(line, _DATA_BASE + byte_len * 2, 2)
            total = byte_len + record_type + (addr & 0xFF) + ((addr >> 8) & 0xFF)

            if record_type == _RECORD_DATA:
                loc_addr = self._base_addr + addr
                if current is None or next_addr != addr:
                    if current is not None:
                        self.sections.append(current)
                    current = DataSection(addr=loc_addr & 0xFFFF)

                needed = loc_addr + byte_len
                if len(self.bit_data) < needed:
                    self.bit_data.extend(bytes(2 * needed - len(self.bit_data)))
                for i in range(byte_len):
                    value = _hex_field(line, _DATA_BASE + 2 * i, 2)
                    stored = reverse_byte(value) if self.reverse_order else value
                    self.bit_data[loc_addr + i] = stored
                    total += value
                    current.data.append(stored)
                current.length = (current.length + byte_len) & 0xFFFF
                next_addr = (addr + byte_len) & 0xFFFF
                self.bit_length += byte_len * 8
            elif record_type == _RECORD_EOF:
                if current is not None and current.length != 0:
                    self.sections.append(current)
                return self
            else:
                raise IhexError(f"unknown record type {record_type:02x}")

            if checksum != (-total) & 0xFF:
                raise IhexError("wrong checksum")

        return self