from array import array

from errors import BasicLogicError, BasicSystemError

VARIABLE_COUNT = 26
ARRAY_SIZE = 128
STRING_SIZE = 256


def letter_index(ch):
    """Maps an upper-case letter byte to its variable slot."""
    return ch - 0x41


class VariableStore:
    """Twenty-six numeric arrays (element 0 doubles as the scalar) and
    twenty-six fixed-size NUL-terminated string buffers."""

    def __init__(self):
        self.numbers = [array('H', [0] * ARRAY_SIZE) for _ in range(VARIABLE_COUNT)]
        self.strings = [bytearray(STRING_SIZE) for _ in range(VARIABLE_COUNT)]

    def reset(self):
        for values in self.numbers:
            for i in range(ARRAY_SIZE):
                values[i] = 0
        for buffer in self.strings:
            buffer[:] = bytes(STRING_SIZE)

    def _check_index(self, index):
        if not 0 <= index < ARRAY_SIZE:
            raise BasicLogicError(f"array index {index} out of range")

    def get_number(self, slot, index=0):
        self._check_index(index)
        return self.numbers[slot][index]

    def set_number(self, slot, value, index=0):
        self._check_index(index)
        self.numbers[slot][index] = value & 0xFFFF

    def get_string(self, slot):
        buffer = self.strings[slot]
        end = buffer.find(0)
        if end == -1:
            raise BasicSystemError("unterminated string variable")
        return bytes(buffer[:end])

    def set_string(self, slot, data):
        data = bytes(data)
        if len(data) >= STRING_SIZE:
            raise BasicSystemError("string too long")
        buffer = self.strings[slot]
        buffer[:len(data)] = data
        buffer[len(data)] = 0
