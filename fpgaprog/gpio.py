"""GPIO access on the low (ADBUS) and high (ACBUS) pin banks of an MPSSE channel."""

from __future__ import annotations

from .mpsse import (
    GET_BITS_HIGH,
    GET_BITS_LOW,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    Mpsse,
)

__all__ = ["GpioMpsse"]


class GpioMpsse(Mpsse):
    """MPSSE channel with pin-level GPIO helpers.

    Pin values and directions are kept in ``cable``; write operations send
    them to the chip and raise :class:`~fpgaprog.mpsse.MpsseError` on failure.
    """

    def _gpio_store(self, low_pins: bool) -> None:
        cable = self.cable
        if low_pins:
            command = (SET_BITS_LOW, cable.bit_low_val & 0xFF, cable.bit_low_dir & 0xFF)
        else:
            command = (SET_BITS_HIGH, cable.bit_high_val & 0xFF, cable.bit_high_dir & 0xFF)
        self.store(bytes(command))

    def gpio_get(self) -> int:
        """Read both banks; the high bank is in bits 15..8."""
        self.store(bytes((GET_BITS_LOW, GET_BITS_HIGH)))
        low, high = self.read(2)
        return (high << 8) | low

    def gpio_get_bank(self, low_pins: bool) -> int:
        """Read the low or the high bank."""
        self.store(GET_BITS_LOW if low_pins else GET_BITS_HIGH)
        return self.read(1)[0]

    def gpio_set(self, gpios: int) -> None:
        """Drive high the pins of the 16-bit mask."""
        if gpios & 0x00FF:
            self.cable.bit_low_val |= gpios & 0xFF
            self._gpio_store(True)
        if gpios & 0xFF00:
            self.cable.bit_high_val |= (gpios >> 8) & 0xFF
            self._gpio_store(False)
        self.write()

    def gpio_set_bank(self, gpios: int, low_pins: bool) -> None:
        """Drive high the pins of an 8-bit mask on one bank."""
        if low_pins:
            self.cable.bit_low_val |= gpios & 0xFF
        else:
            self.cable.bit_high_val |= gpios & 0xFF
        self._gpio_store(low_pins)
        self.write()

    def gpio_clear(self, gpios: int) -> None:
        """Drive low the pins of the 16-bit mask."""
        if gpios & 0x00FF:
            self.cable.bit_low_val &= ~(gpios & 0xFF) & 0xFF
            self._gpio_store(True)
        if gpios & 0xFF00:
            self.cable.bit_high_val &= ~((gpios >> 8) & 0xFF) & 0xFF
            self._gpio_store(False)
        self.write()

    def gpio_clear_bank(self, gpios: int, low_pins: bool) -> None:
        """Drive low the pins of an 8-bit mask on one bank."""
        if low_pins:
            self.cable.bit_low_val &= ~gpios & 0xFF
        else:
            self.cable.bit_high_val &= ~gpios & 0xFF
        self._gpio_store(low_pins)
        self.write()

    def gpio_write(self, gpios: int) -> None:
        """Set all 16 pin values at once."""
        self.cable.bit_low_val = gpios & 0xFF
        self.cable.bit_high_val = (gpios >> 8) & 0xFF
        self._gpio_store(True)
        self._gpio_store(False)
        self.write()

    def gpio_write_bank(self, gpios: int, low_pins: bool) -> None:
        """Set the 8 pin values of one bank."""
        if low_pins:
            self.cable.bit_low_val = gpios & 0xFF
        else:
            self.cable.bit_high_val = gpios & 0xFF
        self._gpio_store(low_pins)
        self.write()

    def gpio_set_dir(self, direction: int) -> None:
        """Set the direction of all 16 pins (1 out, 0 in); nothing is sent."""
        self.cable.bit_low_dir = direction & 0xFF
        self.cable.bit_high_dir = (direction >> 8) & 0xFF

    def gpio_set_dir_bank(self, direction: int, low_pins: bool) -> None:
        """Set the direction of one bank; nothing is sent."""
        if low_pins:
            self.cable.bit_low_dir = direction & 0xFF
        else:
            self.cable.bit_high_dir = direction & 0xFF

    def gpio_set_input(self, gpios: int) -> None:
        """Configure the pins of the 16-bit mask as inputs."""
        if gpios & 0x00FF:
            self.cable.bit_low_dir &= ~(gpios & 0xFF) & 0xFF
        if gpios & 0xFF00:
            self.cable.bit_high_dir &= ~((gpios >> 8) & 0xFF) & 0xFF

    def gpio_set_input_bank(self, gpios: int, low_pins: bool) -> None:
        """Configure the pins of an 8-bit mask on one bank as inputs."""
        if low_pins:
            self.cable.bit_low_dir &= ~gpios & 0xFF
        else:
            self.cable.bit_high_dir &= ~gpios & 0xFF

    def gpio_set_output(self, gpios: int) -> None:
        """Configure the pins of the 16-bit mask as outputs."""
        if gpios & 0x00FF:
            self.cable.bit_low_dir |= gpios & 0xFF
        if gpios & 0xFF00:
            self.cable.bit_high_dir |= (gpios >> 8) & 0xFF

    def gpio_set_output_bank(self, gpios: int, low_pins: bool) -> None:
        """Configure the pins of an 8-bit mask on one bank as outputs."""
        if low_pins:
            self.cable.bit_low_dir |= gpios & 0xFF
        else:
            self.cable.bit_high_dir |= gpios & 0xFF