"""16-bit integer helpers used by the tokenizer and the evaluator.

All values travel through the interpreter as unsigned 16-bit integers
(0..65535). The signed view is only taken when printing, comparing or
doing sign-magnitude arithmetic.
"""
import math

from errors import BasicLogicError, BasicSyntaxError

MASK = 0xFFFF
SIGN_BIT = 0x8000
RAND_SEED = 0xC0D5


def to_signed(value):
    value &= MASK
    return value - 0x10000 if value & SIGN_BIT else value


def negate(value):
    return (-value) & MASK


def is_negative(value):
    return bool(value & SIGN_BIT)


def pre_signed(a, b):
    """Reduces both operands to magnitudes and returns the sign of the result."""
    negative = is_negative(a) != is_negative(b)
    if is_negative(a):
        a = negate(a)
    if is_negative(b):
        b = negate(b)
    return a, b, negative


def adjust_signed(value, negative):
    return negate(value) if negative else value & MASK


def mul16(a, b):
    a, b, negative = pre_signed(a, b)
    return adjust_signed((a * b) & MASK, negative)


def mod16(a, b):
    """Unsigned divide returning (quotient, remainder)."""
    if b == 0:
        raise BasicLogicError("division by zero")
    return a // b, a % b


def div16(a, b):
    a, b, negative = pre_signed(a, b)
    quotient, _ = mod16(a, b)
    return adjust_signed(quotient, negative)


def rem16(a, b):
    # Remainder takes the sign of the dividend so that (a/b)*b + MOD(a,b) == a.
    a_neg = is_negative(a)
    a, b, _ = pre_signed(a, b)
    _, remainder = mod16(a, b)
    return adjust_signed(remainder, a_neg)


def sqr16(value):
    if is_negative(value):
        raise BasicLogicError("square root of negative number")
    return math.isqrt(value)


def rnd16(seed):
    """Advances the Galois LFSR (polynomial $0039) by eight bits.

    Returns the new seed and the random byte (0..255).
    """
    if seed & MASK == 0:
        seed = RAND_SEED
    low = seed & 0xFF
    high = (seed >> 8) & 0xFF
    for _ in range(8):
        carry = low >> 7
        low = (low << 1) & 0xFF
        feedback = high >> 7
        high = ((high << 1) | carry) & 0xFF
        if feedback:
            low ^= 0x39
    return (high << 8) | low, low


def parse_decimal(data, pos=0):
    """Parses an unsigned decimal run starting at pos.

    Returns (value, new_pos). A run with no digits yields 0 and leaves pos
    unchanged. Values that do not fit in 16 bits are a syntax error.
    """
    value = 0
    start = pos
    while pos < len(data) and 0x30 <= data[pos] <= 0x39:
        value = value * 10 + (data[pos] - 0x30)
        if value > MASK:
            raise BasicSyntaxError(f"number too large: {bytes(data[start:pos + 1]).decode('latin-1')}")
        pos += 1
    return value, pos


def to_number(data, pos=0):
    """Reads digits the way typed input is read: overflow wraps and the
    first non-digit ends the number."""
    value = 0
    while pos < len(data) and 0x30 <= data[pos] <= 0x39:
        value = (value * 10 + (data[pos] - 0x30)) & MASK
        pos += 1
    return value, pos


def parse_signed(data):
    """Parses an optionally negative decimal at the start of data."""
    pos = 0
    negative = len(data) > 0 and data[0] == 0x2D
    if negative:
        pos = 1
    value, _ = to_number(data, pos)
    return negate(value) if negative else value


def format_unsigned(value):
    return str(value & MASK)


def format_signed(value):
    return str(to_signed(value))
