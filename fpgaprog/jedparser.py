"""Parser for JEDEC fuse files (``.jed``)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .fsparser import reverse_byte

logger = logging.getLogger(__name__)

__all__ = ["JedError", "JedSection", "JedParser"]

_STX = "\x02"
_ETX = "\x03"

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_HEX_RE = re.compile(r"\s*(?:0[xX])?([0-9A-Fa-f]+)")


class JedError(ValueError):
    """Raised when a JEDEC file is malformed or inconsistent."""


@dataclass
class JedSection:
    """One ``L`` field: fuse offset, packed data rows and preceding note."""

    offset: int
    data: list[bytes] = field(default_factory=list)
    length: int = 0
    note: str = ""


def _scan_int(text: str) -> int | None:
    match = _INT_RE.match(text)
    return int(match.group(1)) if match else None


def _scan_hex(text: str) -> int | None:
    match = _HEX_RE.match(text)
    return int(match.group(1), 16) if match else None


def _char_value(line: str, index: int) -> int:
    char = line[index] if index < len(line) else "\0"
    return (ord(char) - ord("0")) & 0xFF


def _pack_lsb_first(bits: str) -> int:
    value = 0
    for i, char in enumerate(bits):
        if char == "1":
            value |= 1 << i
    return value & 0xFF


class JedParser:
    """Reads a JEDEC file: header fields, fuse sections and checksum."""

    def __init__(self, data: str | bytes, verbose: bool = False) -> None:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("latin-1")
        self._raw = data
        self.verbose = verbose
        self._pos = 0
        self._eof = False
        self._reset()

    def _reset(self) -> None:
        self.sections: list[JedSection] = []
        self.fuse_list = ""
        self.fuse_count = 0
        self.pin_count = 0
        self.max_vect_test = 0
        self.features_row = 0
        self.feabits = 0
        self.has_feabits = False
        self.checksum = 0
        self.computed_checksum = 0
        self.user_code = 0
        self.security_settings = 0
        self.default_fuse_state = 0
        self.default_test_condition = 0
        self.arch_code = 0
        self.pinout_code = 0

    def _readline(self) -> str:
        if self._pos >= len(self._raw):
            self._eof = True
            return ""
        end = self._raw.find("\n", self._pos)
        if end < 0:
            line = self._raw[self._pos:]
            self._pos = len(self._raw)
            self._eof = True
        else:
            line = self._raw[self._pos:end]
            self._pos = end + 1
        if line.endswith("\r"):
            line = line[:-1]
        return line

    def _read_field(self) -> list[str]:
        """Collect consecutive lines up to one ending with '*'."""
        lines = []
        while True:
            line = self._readline()
            if not line:
                break
            done = line.endswith("*")
            if done:
                line = line[:-1]
            lines.append(line)
            if done:
                break
        return lines

    def _add_string(self, content: str, section: JedSection) -> None:
        self.fuse_list += content
        packed = bytes(
            _pack_lsb_first(content[i:i + 8]) for i in range(0, len(content), 8)
        )
        section.data.append(packed)
        section.length += len(content)

    def _add_tokens(self, tokens: list[str], section: JedSection) -> None:
        length = 0
        packed = bytearray()
        for token in tokens:
            length += len(token)
            self.fuse_list += token
            packed.append(_pack_lsb_first(token))
        section.data.append(bytes(packed))
        section.length += length

    def _parse_e_field(self, lines: list[str]) -> None:
        if len(lines) < 2:
            raise JedError("E field needs a Feature Row and FEAbits")
        row = 0
        for i, char in enumerate(lines[0][1:]):
            if char == "1":
                row |= 1 << i
        self.features_row = row & 0xFFFFFFFFFFFFFFFF
        bits = 0
        for i, char in enumerate(lines[1]):
            if char == "1":
                bits |= 1 << i
        self.feabits = bits & 0xFFFF
        self.has_feabits = True

    def _parse_l_field(self, lines: list[str], note: str) -> None:
        offset = _scan_int(lines[0][1:])
        section = JedSection(offset=offset if offset is not None else 0)
        if len(lines) > 1:
            for line in lines[1:]:
                if line:
                    self._add_string(line, section)
        else:
            self._add_tokens(lines[0].split()[1:], section)
        section.note = note
        self.sections.append(section)

    def _parse_user_code(self, line: str) -> None:
        kind = line[1:2]
        if kind == "H":
            value = _scan_hex(line[2:])
            if value is not None:
                self.user_code = value & 0xFFFFFFFF
        elif kind == "A":
            value = _scan_int(line[2:])
            if value is not None:
                self.user_code = value & 0xFFFFFFFF
        else:
            code = self.user_code
            for char in line[1:]:
                code = ((code << 1) | ((ord(char) - ord("0")) & 0xFFFFFFFF)) & 0xFFFFFFFF
            self.user_code = code

    def parse(self) -> "JedParser":
        """Parse the content; raises :class:`JedError` on any inconsistency."""
        self._reset()
        self._eof = False
        stx = self._raw.find(_STX)
        if stx < 0:
            raise JedError("STX not found: wrong file")
        self._pos = stx + 1
        if self._raw[self._pos:self._pos + 1] == "*":
            self._pos += 1
            self._readline()

        previous_note = ""
        while True:
            lines = self._read_field()
            if not lines:
                if self._eof:
                    break
                continue
            line = lines[0]
            instr = line[:1]

            if instr == _ETX:
                if self.verbose:
                    print("end")
                break
            if instr == "N":
                previous_note = line[line.find(" ") + 1:]
            elif instr == "Q":
                count = _scan_int(line[2:])
                qualifier = line[1:2]
                if qualifier not in ("F", "P", "V"):
                    raise JedError(f"unknown qualifier for 'Q': {line}")
                if count is None:
                    raise JedError(f"missing count in {line}")
                if qualifier == "F":
                    self.fuse_count = count
                elif qualifier == "P":
                    self.pin_count = count
                else:
                    self.max_vect_test = count
            elif instr == "G":
                self.security_settings = _char_value(line, 1)
            elif instr == "F":
                self.default_fuse_state = _char_value(line, 1)
            elif instr == "J":
                arch = _scan_int(line[1:])
                if arch is not None:
                    self.arch_code = arch
                pinout = _scan_int(line[3:])
                if pinout is not None:
                    self.pinout_code = pinout
            elif instr == "C":
                value = _scan_hex(line[1:])
                if value is not None:
                    self.checksum = value & 0xFFFF
            elif instr == "E":
                self._parse_e_field(lines)
            elif instr == "L":
                self._parse_l_field(lines, previous_note)
            elif instr == "U":
                self._parse_user_code(line)
            elif instr == "X":
                value = _scan_int(line[1:])
                if value is not None:
                    self.default_test_condition = value
            else:
                raise JedError(f"unknown field: {line}")

        size = sum(section.length for section in self.sections)

        fuses = self.fuse_list
        if len(fuses) % 8:
            fuses += "0" * (8 - len(fuses) % 8)
        total = 0
        for i in range(0, len(fuses), 8):
            try:
                total += reverse_byte(int(fuses[i:i + 8], 2))
            except ValueError:
                raise JedError("invalid fuse data") from None
        self.computed_checksum = total & 0xFFFF

        if self.verbose:
            print(f"theorical checksum {self.checksum:x} -> {self.computed_checksum:x}")
        if self.checksum != self.computed_checksum:
            raise JedError("wrong checksum")
        if self.verbose and self.sections:
            print(f"array size {len(self.sections[0].data)}")
        if self.fuse_count != size:
            raise JedError("Not all fuses are programmed")
        return self

    def describe(self) -> str:
        """Return a human-readable summary of the parsed file."""
        out = []
        if self.has_feabits:
            fea = self.feabits
            out.append("feabits :\n")
            out.append(f"{fea:04x} <-> {fea}\n")
            boot = {
                0: "Single Boot from Configuration Flash",
                1: "Dual Boot from Configuration Flash then External if there is a failure",
                3: "Single Boot from External Flash",
            }.get((fea >> 11) & 0x07, "Error")
            out.append(f"\tBoot Mode       : {boot}\n")

            def state(bit: int, on: str, off: str) -> str:
                return on if (fea >> bit) & 0x01 else off

            out.append(f"\tMaster Mode SPI : {state(11, 'enable', 'disable')}\n")
            out.append(f"\tI2c port        : {state(10, 'disable', 'enable')}\n")
            out.append(f"\tSlave SPI port  : {state(9, 'disable', 'enable')}\n")
            out.append(f"\tJTAG port       : {state(8, 'disable', 'enable')}\n")
            out.append(f"\tDONE            : {state(7, 'enable', 'disable')}\n")
            out.append(f"\tINITN           : {state(6, 'enable', 'disable')}\n")
            out.append(f"\tPROGRAMN        : {state(5, 'disable', 'enable')}\n")
            out.append(f"\tMy_ASSP         : {state(4, 'enable', 'disable')}\n")

        out.append(f"Pin Count  : {self.pin_count}\n")
        out.append(f"Fuse Count : {self.fuse_count}\n")

        for index, section in enumerate(self.sections):
            content = "".join(chunk.hex() for chunk in section.data)
            out.append(
                f"area[{index}] {section.offset:4d} {section.length:4d} "
                f"{len(section.data)} {content} {section.note}\n"
            )
            if section.offset == 2656:
                break
        return "".join(out)