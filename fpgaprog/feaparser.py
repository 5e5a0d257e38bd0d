"""Parser for MachXO3D ``.fea`` files holding the Feature Row and FEAbits."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

__all__ = ["FeaParser"]

# FEAbits
FEA_I2C_DG_FIL_EN = 1 << 0
FEA_MY_ASSP_EN = 1 << 4
FEA_PROG_PERSIST = 1 << 5
FEA_INITN_PERSIST = 1 << 6
FEA_DONE_PERSIST = 1 << 7
FEA_JTAG_PERSIST = 1 << 8
FEA_SSPI_PERSIST = 1 << 9
FEA_I2C_PERSIST = 1 << 10
FEA_MSPI_PERSIST = 1 << 11
FEA_I2C_DG_RANGE_SEL = 1 << 15
FEA_VERSION_RB_PROT = 1 << 16

# Feature Row, upper word
FEATURE_SFDP_CONT_FAIL = 1 << 14
FEATURE_SFDP_EN = 1 << 15
FEATURE_BULK_ERASE_DISABLE = 1 << 16
FEATURE_32BIT_SPIM = 1 << 17
FEATURE_MCLK_BYPASS = 1 << 18
FEATURE_LSBF = 1 << 19
FEATURE_RX_EDGE = 1 << 20
FEATURE_TX_EDGE = 1 << 21
FEATURE_CPOL = 1 << 22
FEATURE_CPHA = 1 << 23
FEATURE_EBR_ENABLE = 1 << 26
FEATURE_SSPI_AUTO = 1 << 28
FEATURE_CPU = 1 << 29

_ROW_BITS = 96


def _flag(value: int, mask: int, on: str, off: str) -> str:
    return on if value & mask else off


def _boot_mode(feabits: int) -> str:
    mode = (feabits >> 12) & 0x07
    if not feabits & FEA_MSPI_PERSIST:
        table = {
            0: "Dual Boot, CFG0 - CFG1\n",
            1: "Dual Boot, CFG1 - CFG0\n",
            3: "Single Boot, CFG0\n",
            4: "Single Boot, CFG1\n",
            5: "Dual Boot, Boot from former bitstream first\n",
            7: "Dual Boot, Boot from latter bitstream first\n",
        }
        if mode in table:
            return table[mode]
        if mode & 0x03 == 2:
            return "Dual Boot, No Boot\n"
        return "Unknown boot sequence selection"
    if mode == 0:
        return "Dual Boot, CFG0 - Ext\n"
    if mode & 0x03 == 1:
        return "Single Boot, Ext\n"
    if mode == 2:
        return "Dual Boot, Ext - CFG0\n"
    if mode & 0x03 == 3:
        return "Dual Boot, Ext - Ext\n"
    if mode == 4:
        return "Dual Boot, CFG1 - Ext\n"
    if mode == 6:
        return "Dual Boot, Ext - CFG1\n"
    return "Unknown boot sequence selection"


def _flash_protection(feabits: int) -> str:
    prot = (feabits >> 1) & 0x07
    if prot == 0:
        return "None\n"
    text = ""
    if prot & 0x04:
        text += "CFG0 & CFG1 "
    if prot & 0x02:
        text += "Feature, Security Keys "
    if prot & 0x01:
        text += "All UFMs"
    return text + "\n"


class FeaParser:
    """Reads the 96-bit Feature Row and the 32-bit FEAbits from a ``.fea`` file.

    ``features_row`` holds three 32-bit words, index 0 being the lowest.
    """

    def __init__(self, data: str | bytes, verbose: bool = False) -> None:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("ascii")
        self._raw = data
        self.verbose = verbose
        self.features_row: tuple[int, int, int] = (0, 0, 0)
        self.feabits = 0
        self.has_feabits = False

    def _bit_lines(self) -> list[str]:
        lines = []
        for line in self._raw.split("\n"):
            if not line:
                break
            if line.endswith("\r"):
                line = line[:-1]
            if line[:1] in ("0", "1"):
                lines.append(line)
        return lines

    def parse(self) -> "FeaParser":
        """Parse the content; an empty file leaves ``has_feabits`` False."""
        lines = self._bit_lines()
        if not lines:
            return self
        if len(lines) < 2:
            raise ValueError("FEAbits line missing after Feature Row")
        logger.info("Parsing Feature Row & FEAbits...")

        row_bits, fea_bits = lines[0], lines[1]
        if len(row_bits) > _ROW_BITS:
            raise ValueError(f"Feature Row longer than {_ROW_BITS} bits")
        words = [0, 0, 0]
        for i, char in enumerate(row_bits):
            if char == "1":
                words[2 - i // 32] |= 1 << (31 - i % 32)
        self.features_row = (words[0], words[1], words[2])

        size = len(fea_bits)
        feabits = 0
        for i, char in enumerate(fea_bits):
            if char == "1":
                feabits |= 1 << (size - i - 1)
        self.feabits = feabits & 0xFFFFFFFF
        self.has_feabits = True
        return self

    def describe(self) -> str:
        """Return a human-readable dump of the Feature Row and FEAbits."""
        if not self.has_feabits:
            return ""
        row0, row1, row2 = self.features_row
        fea = self.feabits
        ed = ("Enabled", "Disabled")
        yn = ("Yes", "No")
        out = ["\nFeature Row: [0x" + "".join(f"{w:08x}" for w in (row2, row1, row0)) + "]\n"]
        out += [
            f"\tCore Clock Select     : 0x{(row2 >> 30) & 0x03:x}\n",
            f"\tCPU                   : {1 if row2 & FEATURE_CPU else 0}\n",
            f"\tSSPI Auto             : {_flag(row2, FEATURE_SSPI_AUTO, *ed)}\n",
            f"\tReserved Zero (1)     : 0x{(row2 >> 27) & 0x01:x}\n",
            f"\tEBR Enable            : {_flag(row2, FEATURE_EBR_ENABLE, *yn)}\n",
            f"\tHSE Clock Select      : 0x{(row2 >> 24) & 0x03:x}\n",
            f"\tCPHA                  : {_flag(row2, FEATURE_CPHA, *ed)}\n",
            f"\tCPOL                  : {_flag(row2, FEATURE_CPOL, *ed)}\n",
            f"\tTx Edge               : {_flag(row2, FEATURE_TX_EDGE, *ed)}\n",
            f"\tRx Edge               : {_flag(row2, FEATURE_RX_EDGE, *ed)}\n",
            f"\tLSBF                  : {_flag(row2, FEATURE_LSBF, *ed)}\n",
            f"\tMClock Bypass         : {_flag(row2, FEATURE_MCLK_BYPASS, *ed)}\n",
            f"\t32-bit SPIM           : {_flag(row2, FEATURE_32BIT_SPIM, *ed)}\n",
            f"\tBulk Erase Disable    : {_flag(row2, FEATURE_BULK_ERASE_DISABLE, *yn)}\n",
            f"\tSFDP Enable           : {_flag(row2, FEATURE_SFDP_EN, *yn)}\n",
            f"\tSFDP Continue on Fail : {_flag(row2, FEATURE_SFDP_CONT_FAIL, *yn)}\n",
            f"\tReserved Zero (2)     : 0x{(row2 >> 12) & 0x03:x}\n",
            f"\tSlave Idle Timer Count: {(row2 >> 8) & 0x0F}\n",
            f"\tMaster Timer Count    : {(row2 >> 4) & 0x0F}\n",
            f"\tMaster Retry Count    : {(row2 >> 2) & 0x03}\n",
            f"\tReserved Zero (2)     : 0x{row2 & 0x03:x}\n",
            f"\tDual Boot Address     : 0x{(row1 >> 16) & 0xFFFF:x}\n",
            f"\tI2C Slave Address     : 0x{(row1 >> 8) & 0xFF:x}\n",
            f"\tCustom Trace ID       : 0x{row1 & 0xFF:x}\n",
            f"\tCustom ID Code        : 0x{row0:x}\n",
            f"\nFEAbits: [0x{fea:08x}]\n",
            f"\tReserved Zero (16)\t: 0x{(fea >> 17) & 0xFFFF:x}\n",
            f"\tRollback Protection   : {_flag(fea, FEA_VERSION_RB_PROT, *ed)}\n",
            "\tI2C Deglitch Range\t: "
            f"{_flag(fea, FEA_I2C_DG_RANGE_SEL, '(1) 16 to 50 ns', '(0) 8 to 25 ns')}\n",
            "\tBoot Mode             : " + _boot_mode(fea),
            f"\tMSPI Enable          : {_flag(fea, FEA_MSPI_PERSIST, *yn)}\n",
            f"\tI2C Disable          : {_flag(fea, FEA_I2C_PERSIST, *yn)}\n",
            f"\tSSPI Disable         : {_flag(fea, FEA_SSPI_PERSIST, *yn)}\n",
            f"\tJTAG Disable         : {_flag(fea, FEA_JTAG_PERSIST, *yn)}\n",
            f"\tDONE Enable          : {_flag(fea, FEA_DONE_PERSIST, *yn)}\n",
            f"\tINIT Enable          : {_flag(fea, FEA_INITN_PERSIST, *yn)}\n",
            f"\tPROGRAM Disable      : {_flag(fea, FEA_PROG_PERSIST, *yn)}\n",
            f"\tCustom ID Enable     : {_flag(fea, FEA_MY_ASSP_EN, *yn)}\n",
            "\tFlash Protection     : " + _flash_protection(fea),
            f"\tI2C Deglitch Filter   : {_flag(fea, FEA_I2C_DG_FIL_EN, *ed)}\n",
        ]
        return "".join(out)