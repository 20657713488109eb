"""Numeric and string expression evaluation over a tokenized line.

Numeric expressions are evaluated by recursive descent onto a small,
bounded operand stack. String expressions append their bytes to a text
buffer instead (the same buffer PRINT later flushes).
"""
from collections import namedtuple
from enum import Enum

from errors import BasicLogicError, BasicSyntaxError, BasicSystemError
from lexer import (
    DOLLAR, FUNCTIONS, NEWLINE, NUMBER_TAG, QUOTE, RELOPS, SPACES,
    Keyword, is_alpha,
)
from numlib import (
    MASK, div16, format_signed, is_negative, mul16, negate, parse_signed,
    rem16, rnd16, sqr16,
)
from variables import ARRAY_SIZE, STRING_SIZE, letter_index

DEFAULT_STACK_DEPTH = 8
OUTPUT_BUFFER_SIZE = 255

LPAREN = ord('(')
RPAREN = ord(')')
COMMA = ord(',')
PLUS = ord('+')
MINUS = ord('-')
STAR = ord('*')
SLASH = ord('/')

VarRef = namedtuple('VarRef', ['slot', 'index', 'is_string'])


class Relation(Enum):
    LESS = 'LESS'
    EQUAL = 'EQUAL'
    GREATER = 'GREATER'


# Which comparison outcomes make each relational operator true
RELOP_TABLE = {
    Keyword.LE: {Relation.LESS, Relation.EQUAL},
    Keyword.GE: {Relation.GREATER, Relation.EQUAL},
    Keyword.NE: {Relation.LESS, Relation.GREATER},
    Keyword.LT: {Relation.LESS},
    Keyword.GT: {Relation.GREATER},
    Keyword.EQ: {Relation.EQUAL},
}


class LineCursor:
    """Read position within one token stream."""

    def __init__(self, body, pos=0):
        self.body = body
        self.pos = pos

    def peek(self, offset=0):
        index = self.pos + offset
        if index >= len(self.body):
            return NEWLINE
        return self.body[index]

    def advance(self, count=1):
        self.pos += count

    def next(self):
        ch = self.peek()
        self.pos += 1
        return ch

    def skip_space(self):
        while self.peek() != NEWLINE and self.peek() in SPACES:
            self.pos += 1

    def at_end(self):
        self.skip_space()
        return self.peek() == NEWLINE

    def expect(self, value):
        self.skip_space()
        if self.peek() != value:
            raise BasicSyntaxError(f"expected {value!r} at offset {self.pos}")
        self.pos += 1

    def expect_end(self):
        if not self.at_end():
            raise BasicSyntaxError(f"unexpected text at offset {self.pos}")

    def __repr__(self):
        return f"LineCursor({self.pos}, {self.body!r})"


class ExpressionStack:
    def __init__(self, depth=DEFAULT_STACK_DEPTH):
        self.depth = depth
        self.items = []

    def push(self, value):
        if len(self.items) >= self.depth:
            raise BasicSystemError("expression stack overflow")
        self.items.append(value & MASK)

    def pop(self):
        return self.items.pop()

    def pop_both(self):
        right = self.items.pop()
        left = self.items.pop()
        return left, right

    def clear(self):
        self.items.clear()

    def __len__(self):
        return len(self.items)


class TextBuffer:
    """Bounded byte accumulator that also tracks the print column."""

    def __init__(self, size=OUTPUT_BUFFER_SIZE):
        self.size = size
        self.data = bytearray()
        self.tab_pos = 0

    def put(self, ch):
        if len(self.data) >= self.size:
            raise BasicSystemError("output buffer overflow")
        self.data.append(ch)
        self.tab_pos = (self.tab_pos + 1) & 0xFF
        if ch == NEWLINE:
            self.tab_pos = 0

    def write(self, data):
        for ch in data:
            self.put(ch)

    def take(self):
        data = bytes(self.data)
        self.data.clear()
        return data

    def __len__(self):
        return len(self.data)


class Evaluator:
    def __init__(self, variables, memory, clock=None, stack_depth=DEFAULT_STACK_DEPTH):
        self.variables = variables
        self.memory = memory
        self.clock = clock
        self.stack = ExpressionStack(stack_depth)
        self.seed = 0
        self.functions = {
            Keyword.TIME: self._fn_time,
            Keyword.PEEK: self._fn_peek,
            Keyword.RND: self._fn_rnd,
            Keyword.NOT: self._fn_not,
            Keyword.ABS: self._fn_abs,
            Keyword.SQR: self._fn_sqr,
            Keyword.AND: self._fn_and,
            Keyword.OR: self._fn_or,
            Keyword.XOR: self._fn_xor,
            Keyword.MOD: self._fn_mod,
            Keyword.VAL: self._fn_val,
            Keyword.LEN: self._fn_len,
            Keyword.ASC: self._fn_asc,
        }

    # Numeric expressions

    def evaluate(self, cursor):
        """Evaluates one numeric expression and returns its 16-bit value."""
        self.expression(cursor)
        return self.stack.pop()

    def expression(self, cursor):
        self.term(cursor)
        while True:
            cursor.skip_space()
            op = cursor.peek()
            if op not in (PLUS, MINUS):
                return
            cursor.advance()
            self.term(cursor)
            left, right = self.stack.pop_both()
            self.stack.push(left + right if op == PLUS else left - right)

    def term(self, cursor):
        self.factor(cursor)
        while True:
            cursor.skip_space()
            op = cursor.peek()
            if op not in (STAR, SLASH):
                return
            cursor.advance()
            self.factor(cursor)
            left, right = self.stack.pop_both()
            self.stack.push(mul16(left, right) if op == STAR else div16(left, right))

    def factor(self, cursor):
        cursor.skip_space()
        ch = cursor.peek()
        if ch == MINUS:
            cursor.advance()
            self.factor(cursor)
            self.stack.push(negate(self.stack.pop()))
        elif ch == NUMBER_TAG:
            self.stack.push(cursor.peek(1) | (cursor.peek(2) << 8))
            cursor.advance(3)
        elif ch == LPAREN:
            cursor.advance()
            self.expression(cursor)
            cursor.expect(RPAREN)
        elif is_alpha(ch):
            ref = self.variable(cursor)
            if ref.is_string:
                raise BasicSyntaxError("string variable in numeric expression")
            self.stack.push(self.variables.get_number(ref.slot, ref.index))
        elif ch in FUNCTIONS:
            cursor.advance()
            self.functions[Keyword(ch)](cursor)
        else:
            raise BasicSyntaxError(f"unexpected {ch:#04x} in expression")

    def variable(self, cursor):
        """Parses a variable name: A, A(index) or A$."""
        cursor.skip_space()
        ch = cursor.next()
        if not is_alpha(ch):
            raise BasicSyntaxError("variable name expected")
        slot = letter_index(ch & 0xDF)
        nxt = cursor.peek()
        if nxt == DOLLAR:
            cursor.advance()
            return VarRef(slot, 0, True)
        if nxt != LPAREN:
            return VarRef(slot, 0, False)
        cursor.advance()
        self.expression(cursor)
        cursor.expect(RPAREN)
        index = self.stack.pop()
        if index >= ARRAY_SIZE:
            raise BasicLogicError(f"array index {index} out of range")
        return VarRef(slot, index, False)

    def one_arg(self, cursor):
        cursor.expect(LPAREN)
        self.expression(cursor)
        cursor.expect(RPAREN)

    def two_args(self, cursor):
        cursor.expect(LPAREN)
        self.expression(cursor)
        cursor.expect(COMMA)
        self.expression(cursor)
        cursor.expect(RPAREN)

    def string_arg(self, cursor):
        cursor.expect(LPAREN)
        ref = self.variable(cursor)
        if not ref.is_string:
            raise BasicSyntaxError("string variable expected")
        cursor.expect(RPAREN)
        return self.variables.get_string(ref.slot)

    def _fn_time(self, cursor):
        self.stack.push(self.clock.jiffies if self.clock is not None else 0)

    def _fn_peek(self, cursor):
        self.one_arg(cursor)
        self.stack.push(self.memory.peek(self.stack.pop()))

    def _fn_rnd(self, cursor):
        cursor.expect(LPAREN)
        cursor.skip_space()
        if cursor.peek() != RPAREN:
            self.expression(cursor)
            self.seed = self.stack.pop()
        cursor.expect(RPAREN)
        self.seed, value = rnd16(self.seed)
        self.stack.push(value)

    def _fn_not(self, cursor):
        self.one_arg(cursor)
        self.stack.push(~self.stack.pop())

    def _fn_abs(self, cursor):
        self.one_arg(cursor)
        value = self.stack.pop()
        self.stack.push(negate(value) if is_negative(value) else value)

    def _fn_sqr(self, cursor):
        self.one_arg(cursor)
        self.stack.push(sqr16(self.stack.pop()))

    def _fn_and(self, cursor):
        self.two_args(cursor)
        left, right = self.stack.pop_both()
        self.stack.push(left & right)

    def _fn_or(self, cursor):
        self.two_args(cursor)
        left, right = self.stack.pop_both()
        self.stack.push(left | right)

    def _fn_xor(self, cursor):
        self.two_args(cursor)
        left, right = self.stack.pop_both()
        self.stack.push(left ^ right)

    def _fn_mod(self, cursor):
        self.two_args(cursor)
        left, right = self.stack.pop_both()
        self.stack.push(rem16(left, right))

    def _fn_val(self, cursor):
        self.stack.push(parse_signed(self.string_arg(cursor)))

    def _fn_len(self, cursor):
        self.stack.push(len(self.string_arg(cursor)))

    def _fn_asc(self, cursor):
        text = self.string_arg(cursor)
        self.stack.push(text[0] if text else 0)

    # String expressions

    def string_expression(self, cursor, out):
        """Appends the value of a string expression to out."""
        cursor.skip_space()
        self._string_term(cursor, out)
        while True:
            cursor.skip_space()
            if cursor.peek() != PLUS:
                return
            cursor.advance()
            cursor.skip_space()
            self._string_term(cursor, out)

    def string_value(self, cursor):
        out = TextBuffer()
        self.string_expression(cursor, out)
        return bytes(out.data)

    def _string_term(self, cursor, out):
        ch = cursor.peek()
        if ch == QUOTE:
            cursor.advance()
            while True:
                ch = cursor.peek()
                if ch == NEWLINE:
                    return
                cursor.advance()
                if ch == QUOTE:
                    return
                out.put(ch)
        elif ch == Keyword.CHR:
            cursor.advance()
            self._chr(cursor, out)
        elif ch == Keyword.STR:
            cursor.advance()
            self.one_arg(cursor)
            out.write(format_signed(self.stack.pop()).encode('ascii'))
        elif ch == Keyword.SUB:
            cursor.advance()
            self._sub(cursor, out)
        else:
            ref = self.variable(cursor)
            if not ref.is_string:
                raise BasicSyntaxError("string expression expected")
            out.write(self.variables.get_string(ref.slot))

    def _chr(self, cursor, out):
        cursor.expect(LPAREN)
        while True:
            self.expression(cursor)
            value = self.stack.pop()
            if value > 0xFF:
                raise BasicLogicError(f"character code {value} out of range")
            out.put(value)
            cursor.skip_space()
            ch = cursor.next()
            if ch == RPAREN:
                return
            if ch != COMMA:
                raise BasicSyntaxError("expected ',' or ')' in CHR$")

    def _sub(self, cursor, out):
        cursor.expect(LPAREN)
        ref = self.variable(cursor)
        if not ref.is_string:
            raise BasicSyntaxError("string variable expected")
        cursor.expect(COMMA)
        self.expression(cursor)
        cursor.expect(COMMA)
        self.expression(cursor)
        cursor.expect(RPAREN)
        start, count = self.stack.pop_both()
        if start >= STRING_SIZE:
            raise BasicLogicError(f"substring start {start} out of range")
        buffer = self.variables.strings[ref.slot]
        pos = start
        while count > 0:
            ch = buffer[pos]
            if ch == 0:
                return
            out.put(ch)
            pos += 1
            if pos >= STRING_SIZE:
                raise BasicLogicError("substring runs past end of string")
            count -= 1

    # Relations

    def relation(self, cursor):
        """Evaluates `lhs relop rhs` and reports whether it holds.

        The left side is a string comparison when it names a string
        variable, otherwise both sides are signed numeric expressions.
        """
        cursor.skip_space()
        if is_alpha(cursor.peek()) and cursor.peek(1) == DOLLAR:
            ref = self.variable(cursor)
            op = self._relop(cursor)
            right = self.string_value(cursor)
            left = self.variables.get_string(ref.slot)
            outcome = compare(left, right.split(b"\0", 1)[0])
        else:
            self.expression(cursor)
            op = self._relop(cursor)
            self.expression(cursor)
            left, right = self.stack.pop_both()
            outcome = compare_signed(left, right)
        return outcome in RELOP_TABLE[op]

    def _relop(self, cursor):
        cursor.skip_space()
        ch = cursor.next()
        if ch not in RELOPS:
            raise BasicSyntaxError("relational operator expected")
        return Keyword(ch)


def compare(left, right):
    if left == right:
        return Relation.EQUAL
    return Relation.LESS if left < right else Relation.GREATER


def compare_signed(left, right):
    # Flip the sign bit so that unsigned ordering matches signed ordering
    return compare(left ^ 0x8000, right ^ 0x8000)
