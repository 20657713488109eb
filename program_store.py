"""Tokenized program lines kept in one contiguous, bounded byte region.

Each stored line is laid out as::

    <size> <number low> <number high> <token bytes...> <newline>

where size counts the whole record. Lines are kept in ascending order of
line number, so a linear scan doubles as the insertion-point search.
"""
import logging

from errors import BasicSystemError
from lexer import NEWLINE

log = logging.getLogger(__name__)

HEADER_SIZE = 3
DEFAULT_LIMIT = 0x6500 - 0x0200


def copy_down(memory, src, dst, size):
    """Moves size bytes from src to a lower (or equal) dst, low byte first."""
    for offset in range(size):
        memory[dst + offset] = memory[src + offset]


def copy_up(memory, src, dst, size):
    """Moves size bytes from src to a higher dst, high byte first."""
    for offset in range(size - 1, -1, -1):
        memory[dst + offset] = memory[src + offset]


class ProgramStore:
    def __init__(self, limit=DEFAULT_LIMIT):
        self.memory = bytearray(limit)
        self.top = 0

    @property
    def limit(self):
        return len(self.memory)

    def set_limit(self, limit):
        if limit < self.top:
            raise BasicSystemError("memory limit below program top")
        if limit > len(self.memory):
            self.memory.extend(bytes(limit - len(self.memory)))
        else:
            del self.memory[limit:]
        log.debug("program memory limit set to %d bytes", limit)

    def clear(self):
        self.top = 0

    def is_end(self, position):
        return position >= self.top

    def record_size(self, position):
        return self.memory[position]

    def line_number_at(self, position):
        return self.memory[position + 1] | (self.memory[position + 2] << 8)

    def body_at(self, position):
        size = self.memory[position]
        return bytes(self.memory[position + HEADER_SIZE:position + size])

    def next_position(self, position):
        return position + self.memory[position]

    def find(self, line_number):
        """Returns (found, position).

        On a miss the position is where a line with that number belongs.
        """
        position = 0
        while position < self.top:
            current = self.line_number_at(position)
            if current == line_number:
                return True, position
            if current > line_number:
                return False, position
            position = self.next_position(position)
        return False, position

    def _encode(self, record):
        body = record.body
        if not body.endswith(bytes([NEWLINE])):
            body += bytes([NEWLINE])
        size = HEADER_SIZE + len(body)
        if size > 0xFF:
            raise BasicSystemError("line too long")
        number = record.line_number
        return bytes([size, number & 0xFF, number >> 8]) + body

    def enter(self, record):
        """Inserts, replaces or (for an empty record) deletes a line."""
        found, position = self.find(record.line_number)
        new = b"" if record.is_empty else self._encode(record)
        old_size = self.record_size(position) if found else 0
        if self.top - old_size + len(new) > self.limit:
            raise BasicSystemError("out of program memory")

        if found:
            src = position + old_size
            copy_down(self.memory, src, position, self.top - src)
            self.top -= old_size
            log.debug("deleted line %d", record.line_number)
        if not new:
            return
        if position < self.top:
            copy_up(self.memory, position, position + len(new), self.top - position)
        self._write(position, new)
        log.debug("entered line %d (%d bytes)", record.line_number, len(new))

    def append(self, record):
        """Adds a line at the end without searching (used while loading)."""
        new = self._encode(record)
        if self.top + len(new) > self.limit:
            raise BasicSystemError("out of program memory")
        self._write(self.top, new)

    def _write(self, position, data):
        self.memory[position:position + len(data)] = data
        self.top += len(data)

    def lines(self, start=0, stop=None):
        """Yields (line_number, body) from start up to (excluding) stop."""
        stop = self.top if stop is None else stop
        position = start
        while position < self.top and position != stop:
            yield self.line_number_at(position), self.body_at(position)
            position = self.next_position(position)

    def line_numbers(self):
        return [number for number, _ in self.lines()]
