"""Parsers for .fs, .fea, Intel HEX and JEDEC files, and FTDI MPSSE/bit-bang JTAG, SPI and GPIO drivers."""

__version__ = "0.1.0"