# fpgaprog

Readers for FPGA configuration files, plus drivers for FTDI-based JTAG and
SPI probes. The package has no dependencies outside the standard library.

## File parsers

Each parser takes the file content when you build it. The content can be
`bytes` or `str`. Calling `parse()` fills in the parser's attributes and
returns the parser.

| Module | Class | Reads |
| --- | --- | --- |
| `fpgaprog.fsparser` | `FsParser` | Gowin `.fs` bitstreams (lines of ASCII `0`/`1`) |
| `fpgaprog.feaparser` | `FeaParser` | MachXO3D `.fea` files (Feature Row and FEAbits) |
| `fpgaprog.ihexparser` | `IhexParser` | Intel HEX data files |
| `fpgaprog.jedparser` | `JedParser` | JEDEC fuse files (`.jed`) |

### FsParser

`FsParser(data, reverse_bytes=False, verbose=False).parse()` fills these attributes:

- `header`: a dict of fields such as `idcode`, `CheckSum`, `Compress`, `CRCCheck` and `ConfDataLength`.
- `idcode` and `compressed`.
- `bit_data` and `bit_length`. When `reverse_bytes` is true, each byte of `bit_data` is bit-reversed.
- `checksum`: the 16-bit checksum of the configuration data. The number of configuration lines comes from the IDCODE. For compressed files, the data is expanded before the checksum is computed.

`parse()` raises `ValueError` when the header has no configuration data length.

The module also exports two helpers:

- `reverse_byte(value)`
- `bits_to_int(bits)`

### FeaParser

`FeaParser(data).parse()` fills these attributes:

- `features_row`: three 32-bit words, lowest word first.
- `feabits`
- `has_feabits`

`describe()` returns a readable breakdown of every field. It covers the boot mode, the flash protection, the SPI settings and so on.

### IhexParser

`IhexParser(data, reverse_order=False).parse()` fills these attributes:

- `bit_data`: a flat byte image.
- `bit_length`
- `sections`: a list of `DataSection(addr, length, data)` blocks of contiguous bytes.

Only data and end-of-file records are accepted. Other record types, lines that do not start with `:`, bad hex digits and wrong checksums all raise `IhexError`, a subclass of `ValueError`.

### JedParser

```python
from fpgaprog.jedparser import JedParser

with open("design.jed", "rb") as fh:
    jed = JedParser(fh.read()).parse()

print(jed.fuse_count, jed.checksum)
for section in jed.sections:
    print(section.offset, section.length, section.note)
print(jed.describe())
```

`parse()` raises `JedError` (a subclass of `ValueError`) in these cases:

- No STX is found.
- A field is unknown.
- The computed fuse checksum does not match the `C` field.
- The fuses in the `L` fields do not add up to the `QF` fuse count.

## Probe drivers

`fpgaprog.mpsse.Mpsse` is the MPSSE command engine. It does the following:

- Buffers commands and sends full buffers automatically (`store`, `write`).
- Reads exactly the requested number of bytes (`read`).
- Resets the chip and selects a mode (`init`).
- Programs the TCK divisor and returns the real frequency (`set_clk_freq`).

It is also a context manager. On exit it calls `close()`, which resets the chip and releases it.

### Supplying a transport

`Mpsse` does no USB I/O itself. You pass it an object that subclasses the abstract base class `fpgaprog.mpsse.FtdiTransport` and implements:

- the properties `chip_type` (a `ChipType`) and `max_packet_size`;
- optionally the property `product`, the USB iProduct string;
- the methods `usb_reset`, `set_bitmode`, `purge_buffers`, `set_latency_timer`, `set_baudrate`, `read_data`, `write_data`, `set_read_chunk_size`, `set_write_chunk_size` and `close`.

`MpsseBitConfig` describes the cable. It holds the USB ids, the channel, and the default low and high pin values and directions. A short write raises `MpsseError`.

### Classes built on the engine

#### GpioMpsse (`fpgaprog.gpio`)

Reads and drives the low and high pin banks:

- `gpio_get`
- `gpio_set`
- `gpio_clear`
- `gpio_write`
- the `*_bank` variants of the above
- the direction helpers `gpio_set_dir`, `gpio_set_input` and `gpio_set_output`

#### FtdiSpi (`fpgaprog.ftdi_spi`)

An SPI master with these features:

- SPI modes 0 to 3 (`set_mode`).
- Automatic or manual chip-select (`CsMode`).
- Pins chosen with `SpiPins`.
- Transfers with `write_and_read`, `write_then_read`, `spi_put` and `spi_put_cmd`.

`spi_wait` polls a status byte and returns it. It raises `SpiTimeoutError` after `timeout` reads.

#### FtdiJtagMpsse (`fpgaprog.ftdi_jtag_mpsse`)

JTAG using MPSSE shift commands:

- `write_tms`
- `write_tdi`, which returns the TDO bits when `read=True`
- `toggle_clk`
- `write_tms_tdi`, for mixed TMS/TDI sequences, which returns TDO

Its `close()` waits for the shifts to finish by using a loopback echo.

#### FtdiJtagBitbang (`fpgaprog.ftdi_jtag_bitbang`)

JTAG in FTDI bit-bang mode:

- The pins are chosen with `JtagPins`, using numbers 0 to 7.
- The clock is limited to 3 MHz.
- TDO is sampled in synchronous bit-bang mode.

All bit buffers passed to the JTAG drivers are LSB first.

## What this package does not do

- It does not find or open USB devices. You provide the `FtdiTransport`.
- It has no command-line program.
- It has no device-level programming sequences. These include erasing or writing a particular FPGA's SRAM or flash, and SPI flash handling.

The parsers and probe drivers are the building blocks for such tools. They are not those tools.