import bisect
from enum import IntEnum

from errors import BasicSystemError
from numlib import format_unsigned, parse_decimal

NEWLINE = 0x0A
CR = 0x0D
QUOTE = 0x22
DOLLAR = 0x24
NUMBER_TAG = 0xFF
SPACES = b" \t\r"
RELOP_CHARS = b"<=>"

TOKEN_BUFFER_SIZE = 254
# Longest line the input buffer holds, terminator excluded
MAX_LINE_LENGTH = 254


class Keyword(IntEnum):
    NEW = 0x80
    LIST = 0x81
    LOAD = 0x82
    SAVE = 0x83
    RUN = 0x84
    REM = 0x85
    IF = 0x86
    THEN = 0x87
    GOTO = 0x88
    GOSUB = 0x89
    RETURN = 0x8A
    FOR = 0x8B
    TO = 0x8C
    NEXT = 0x8D
    POKE = 0x8E
    INPUT = 0x8F
    PRINT = 0x90
    OPEN = 0x91
    CLOSE = 0x92
    READ = 0x93
    RESTORE = 0x94
    DATA = 0x95
    END = 0x96
    SYS = 0x97
    AT = 0x98
    TAB = 0x99
    SUB = 0x9A
    CHR = 0x9B
    STR = 0x9C
    TIME = 0x9D
    PEEK = 0x9E
    RND = 0x9F
    NOT = 0xA0
    ABS = 0xA1
    SQR = 0xA2
    AND = 0xA3
    OR = 0xA4
    XOR = 0xA5
    MOD = 0xA6
    VAL = 0xA7
    LEN = 0xA8
    ASC = 0xA9
    LE = 0xAA
    GE = 0xAB
    NE = 0xAC
    LT = 0xAD
    GT = 0xAE
    EQ = 0xAF


SPELLINGS = {
    Keyword.SUB: 'SUB$',
    Keyword.CHR: 'CHR$',
    Keyword.STR: 'STR$',
    Keyword.TIME: 'TI',
    Keyword.LE: '<=',
    Keyword.GE: '>=',
    Keyword.NE: '<>',
    Keyword.LT: '<',
    Keyword.GT: '>',
    Keyword.EQ: '=',
}

STATEMENTS = frozenset(k for k in Keyword if Keyword.NEW <= k <= Keyword.SYS)
FUNCTIONS = frozenset(k for k in Keyword if Keyword.TIME <= k <= Keyword.ASC)
RELOPS = frozenset(k for k in Keyword if Keyword.LE <= k <= Keyword.EQ)


def spelling(keyword):
    return SPELLINGS.get(keyword, keyword.name)


def is_alpha(ch):
    return 0x41 <= ch <= 0x5A or 0x61 <= ch <= 0x7A


def is_digit(ch):
    return 0x30 <= ch <= 0x39


def to_upper(ch):
    return ch - 0x20 if 0x61 <= ch <= 0x7A else ch


class Token:
    def __init__(self, type, value):
        self.type = type
        self.value = value

    def __repr__(self):
        return f"Token({self.type}, {self.value})"

    def __eq__(self, other):
        return isinstance(other, Token) and (self.type, self.value) == (other.type, other.value)


class TokenRecord:
    """One tokenized input line.

    body holds the token stream including the trailing newline. line_number
    is set when the line started with a number and belongs in the program.
    """

    def __init__(self, body, line_number=None):
        self.body = bytes(body)
        self.line_number = line_number

    @property
    def is_program_line(self):
        return self.line_number is not None

    @property
    def is_empty(self):
        return not self.body.rstrip(SPACES + bytes([NEWLINE]))

    def __repr__(self):
        return f"TokenRecord({self.line_number}, {self.body!r})"


class _TokenBuffer:
    def __init__(self, size):
        self.size = size
        self.data = bytearray()

    def put(self, *values):
        for value in values:
            if len(self.data) >= self.size:
                raise BasicSystemError("token buffer overflow")
            self.data.append(value)


class Lexer:
    def __init__(self, buffer_size=TOKEN_BUFFER_SIZE):
        self.buffer_size = buffer_size
        # Alphabetical keyword dictionary searched with bisect
        self.dictionary = sorted(
            (spelling(k), k) for k in Keyword if is_alpha(ord(spelling(k)[0]))
        )
        self.spellings = [entry[0] for entry in self.dictionary]
        self.longest = max(len(s) for s in self.spellings)

    def tokenize(self, text):
        data = self._normalize(text)
        out = _TokenBuffer(self.buffer_size)
        pos = 0
        while data[pos] != NEWLINE and data[pos] in SPACES:
            pos += 1

        while True:
            ch = data[pos]
            if ch == NEWLINE:
                out.put(NEWLINE)
                break
            if ch == QUOTE:
                pos = self._copy_string(data, pos, out)
                continue
            if is_alpha(ch) and is_alpha(data[pos + 1]):
                match = self._match_keyword(data, pos)
                if match is not None:
                    keyword, length = match
                    out.put(keyword)
                    pos += length
                    if keyword == Keyword.REM:
                        # Remainder of a remark is kept verbatim
                        while data[pos] != NEWLINE:
                            out.put(data[pos])
                            pos += 1
                    continue
            if is_digit(ch):
                value, pos = parse_decimal(data, pos)
                out.put(NUMBER_TAG, value & 0xFF, value >> 8)
                continue
            if ch in RELOP_CHARS:
                keyword, pos = self._relop(data, pos)
                out.put(keyword)
                continue
            out.put(to_upper(ch))
            pos += 1

        raw = bytes(out.data)
        if raw[0] == NUMBER_TAG:
            return TokenRecord(raw[3:], raw[1] | (raw[2] << 8))
        return TokenRecord(raw)

    def _normalize(self, text):
        if not isinstance(text, str):
            text = bytes(text).decode('latin-1')
        text = text.encode('ascii', 'replace')
        for terminator in (b"\n", b"\r"):
            cut = text.find(terminator)
            if cut != -1:
                text = text[:cut]
        if len(text) > MAX_LINE_LENGTH:
            raise BasicSystemError(f"line longer than {MAX_LINE_LENGTH} characters")
        # A spare byte after the newline keeps one-character lookahead in range
        return text + bytes([NEWLINE, 0])

    def _copy_string(self, data, pos, out):
        out.put(QUOTE)
        pos += 1
        while True:
            ch = data[pos]
            if ch == NEWLINE:
                # Unterminated literal closes at end of line, which must still list
                if pos >= MAX_LINE_LENGTH:
                    raise BasicSystemError("line too long to close its string")
                out.put(QUOTE)
                return pos
            out.put(ch)
            pos += 1
            if ch == QUOTE:
                return pos

    def _match_keyword(self, data, pos):
        end = pos
        while end < len(data) and end - pos < self.longest and (is_alpha(data[end]) or data[end] == DOLLAR):
            end += 1
        candidate = bytes(to_upper(c) for c in data[pos:end]).decode('ascii')
        for length in range(len(candidate), 1, -1):
            word = candidate[:length]
            index = bisect.bisect_left(self.spellings, word)
            if index < len(self.spellings) and self.spellings[index] == word:
                return self.dictionary[index][1], length
        return None

    def _relop(self, data, pos):
        ch = data[pos]
        nxt = data[pos + 1]
        if ch == ord('<'):
            if nxt == ord('='):
                return Keyword.LE, pos + 2
            if nxt == ord('>'):
                return Keyword.NE, pos + 2
            return Keyword.LT, pos + 1
        if ch == ord('>'):
            if nxt == ord('='):
                return Keyword.GE, pos + 2
            return Keyword.GT, pos + 1
        return Keyword.EQ, pos + 1

    def decode(self, body):
        """Yields the items of a token stream as Token objects."""
        pos = 0
        while pos < len(body):
            ch = body[pos]
            if ch == NUMBER_TAG:
                yield Token('NUMBER', body[pos + 1] | (body[pos + 2] << 8))
                pos += 3
                continue
            if ch == NEWLINE:
                yield Token('NEWLINE', '\n')
            elif ch & 0x80:
                try:
                    yield Token('KEYWORD', Keyword(ch))
                except ValueError:
                    yield Token('CHAR', '?')
            else:
                yield Token('CHAR', chr(ch))
            pos += 1

    def detokenize(self, body):
        parts = []
        for token in self.decode(body):
            if token.type == 'NEWLINE':
                break
            if token.type == 'NUMBER':
                parts.append(format_unsigned(token.value))
            elif token.type == 'KEYWORD':
                parts.append(spelling(token.value))
            else:
                parts.append(token.value)
        return "".join(parts)

    def line_text(self, line_number, body):
        return format_unsigned(line_number) + self.detokenize(body)
