import logging

log = logging.getLogger(__name__)

MEMORY_SIZE = 0x10000

# Zero-page cells that SYS exchanges with machine code
SYS_A = 0x00
SYS_X = 0x01
SYS_Y = 0x02


class Memory:
    """Flat 64K address space behind PEEK, POKE, SYS and binary LOAD."""

    def __init__(self, size=MEMORY_SIZE):
        self.data = bytearray(size)

    def peek(self, address):
        return self.data[address % len(self.data)]

    def poke(self, address, value):
        self.data[address % len(self.data)] = value & 0xFF


class NativeCallout:
    """Stand-in for jumping into machine code.

    Hosts that can run native routines replace call(); this one only logs
    the request and hands the registers back untouched.
    """

    def call(self, address, registers):
        log.debug("native call at $%04X with A=%d X=%d Y=%d", address, *registers)
        return tuple(registers)
