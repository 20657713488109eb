import logging

from errors import BasicLogicError, BasicSyntaxError
from expressions import COMMA, MINUS, LineCursor
from lexer import NEWLINE, NUMBER_TAG, Keyword
from numlib import negate

log = logging.getLogger(__name__)


class DataReader:
    """Feeds READ from the DATA lines of the stored program.

    Values are buffered one DATA line at a time; the scan position
    remembers which line to look at next.
    """

    def __init__(self, program):
        self.program = program
        self.buffer = []
        self.cursor = 0
        self.scan_pos = 0

    def restore(self):
        self.buffer = []
        self.cursor = 0
        self.scan_pos = 0

    def next_value(self):
        while self.cursor >= len(self.buffer):
            if not self._refill():
                raise BasicLogicError("out of DATA")
        value = self.buffer[self.cursor]
        self.cursor += 1
        return value

    def _refill(self):
        self.buffer = []
        self.cursor = 0
        while not self.program.is_end(self.scan_pos):
            position = self.scan_pos
            self.scan_pos = self.program.next_position(position)
            cursor = LineCursor(self.program.body_at(position))
            cursor.skip_space()
            if cursor.next() != Keyword.DATA:
                continue
            self.buffer = parse_data(cursor)
            log.debug("DATA line %d supplied %d values",
                      self.program.line_number_at(position), len(self.buffer))
            return True
        return False


def parse_data(cursor):
    """Parses the comma-separated, optionally negative literals of a DATA line."""
    values = []
    cursor.skip_space()
    if cursor.peek() == NEWLINE:
        return values
    while True:
        cursor.skip_space()
        negative = cursor.peek() == MINUS
        if negative:
            cursor.advance()
            cursor.skip_space()
        if cursor.peek() != NUMBER_TAG:
            raise BasicSyntaxError("number expected in DATA")
        value = cursor.peek(1) | (cursor.peek(2) << 8)
        cursor.advance(3)
        values.append(negate(value) if negative else value)
        cursor.skip_space()
        ch = cursor.next()
        if ch == NEWLINE:
            return values
        if ch != COMMA:
            raise BasicSyntaxError("expected ',' in DATA")
