import pytest

from clock import JiffyClock
from errors import BasicLogicError, BasicSyntaxError, BasicSystemError
from expressions import Evaluator, LineCursor, TextBuffer
from lexer import Lexer
from memory import Memory
from numlib import to_signed
from variables import VariableStore, letter_index


@pytest.fixture
def variables():
    return VariableStore()


@pytest.fixture
def evaluator(variables):
    return Evaluator(variables, Memory(), JiffyClock())


def cursor_for(text):
    return LineCursor(Lexer().tokenize(text).body)


def value(evaluator, text):
    cursor = cursor_for(text)
    result = evaluator.evaluate(cursor)
    assert cursor.at_end()
    assert len(evaluator.stack) == 0
    return to_signed(result)


def string(evaluator, text):
    return evaluator.string_value(cursor_for(text))


def slot(letter):
    return letter_index(ord(letter))


@pytest.mark.parametrize("text,expected", [
    ("1+2*3", 7),
    ("(1+2)*3", 9),
    ("10-2-3", 5),
    ("100/7/2", 7),
    ("-5+2", -3),
    ("--5", 5),
    ("2*-3", -6),
    ("-7/2", -3),
    ("32767+1", -32768),
    ("ABS(-9)", 9),
    ("NOT(0)", -1),
    ("SQR(99)", 9),
    ("AND(12,10)", 8),
    ("OR(12,10)", 14),
    ("XOR(12,10)", 6),
    ("MOD(17,5)", 2),
    ("MOD(-17,5)", -2),
])
def test_numeric_expressions(evaluator, text, expected):
    assert value(evaluator, text) == expected


def test_division_by_zero(evaluator):
    with pytest.raises(BasicLogicError):
        value(evaluator, "1/0")
    with pytest.raises(BasicLogicError):
        value(evaluator, "MOD(1,0)")


def test_negative_square_root(evaluator):
    with pytest.raises(BasicLogicError):
        value(evaluator, "SQR(-1)")


def test_variables_and_arrays(evaluator, variables):
    variables.set_number(slot('A'), 5)
    variables.set_number(slot('B'), 42, 3)
    assert value(evaluator, "A*2") == 10
    assert value(evaluator, "B(A-2)") == 42
    assert value(evaluator, "B(0)") == 0


def test_array_index_out_of_range(evaluator):
    with pytest.raises(BasicLogicError):
        value(evaluator, "A(128)")
    with pytest.raises(BasicLogicError):
        value(evaluator, "A(-1)")


def test_string_variable_in_numeric_context(evaluator):
    with pytest.raises(BasicSyntaxError):
        value(evaluator, "A$+1")


def test_string_functions_to_numbers(evaluator, variables):
    variables.set_string(slot('S'), b"-123XYZ")
    assert value(evaluator, "VAL(S$)") == -123
    assert value(evaluator, "LEN(S$)") == 7
    assert value(evaluator, "ASC(S$)") == ord('-')
    assert value(evaluator, "ASC(E$)") == 0


def test_peek_and_time(evaluator):
    evaluator.memory.poke(1000, 77)
    assert value(evaluator, "PEEK(1000)") == 77
    evaluator.clock.tick()
    evaluator.clock.tick()
    assert value(evaluator, "TI") == 2


def test_rnd_reseeds(evaluator):
    first = value(evaluator, "RND(7)")
    following = value(evaluator, "RND()")
    assert value(evaluator, "RND(7)") == first
    assert value(evaluator, "RND()") == following
    assert 0 <= first <= 255


def test_expression_stack_is_bounded(evaluator):
    # Each pending parenthesis keeps one operand on the stack
    assert value(evaluator, "1+(2+(3+(4+(5+(6+(7+8))))))") == 36
    with pytest.raises(BasicSystemError):
        value(evaluator, "1+(2+(3+(4+(5+(6+(7+(8+9)))))))")


def test_string_expressions(evaluator, variables):
    variables.set_string(slot('A'), b"HELLO")
    assert string(evaluator, '"AB"+"CD"') == b"ABCD"
    assert string(evaluator, 'A$+" "+STR$(-42)') == b"HELLO -42"
    assert string(evaluator, "CHR$(72,73)") == b"HI"
    assert string(evaluator, "SUB$(A$,1,3)") == b"ELL"
    assert string(evaluator, "SUB$(A$,3,100)") == b"LO"
    assert string(evaluator, "SUB$(A$,10,2)") == b""


def test_string_errors(evaluator, variables):
    with pytest.raises(BasicLogicError):
        string(evaluator, "CHR$(256)")
    with pytest.raises(BasicLogicError):
        string(evaluator, "SUB$(A$,256,1)")
    with pytest.raises(BasicSyntaxError):
        string(evaluator, "A+1")
    variables.set_string(slot('X'), b"X" * 200)
    variables.set_string(slot('Y'), b"Y" * 60)
    assert len(string(evaluator, "X$+SUB$(Y$,0,55)")) == 255
    with pytest.raises(BasicSystemError):
        string(evaluator, "X$+Y$")


@pytest.mark.parametrize("text,expected", [
    ("1<2", True),
    ("2<1", False),
    ("-1<1", True),
    ("-1>1", False),
    ("5=5", True),
    ("5<>5", False),
    ("5<=5", True),
    ("6>=5", True),
    ('A$="APPLE"', True),
    ('A$<"APPLES"', True),
    ('A$>"APP"', True),
    ('A$<>"PEAR"', True),
])
def test_relations(evaluator, variables, text, expected):
    variables.set_string(slot('A'), b"APPLE")
    assert evaluator.relation(cursor_for(text)) is expected


def test_text_buffer_tracks_column():
    out = TextBuffer()
    out.write(b"abc")
    assert out.tab_pos == 3
    out.put(10)
    assert out.tab_pos == 0
    assert out.take() == b"abc\n"
    assert len(out) == 0
